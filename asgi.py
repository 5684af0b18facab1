"""
asgi.py -- Application assembly for the Solo She site.

This is the ONLY file that imports from both api/ and web/. It joins the two
independent layers into a single ASGI app without coupling them to each other.
api/main.py knows nothing about web/; web/routes.py knows nothing about api/
beyond the shared rate limiter.

Error rendering is split by path: /api/* keeps the JSON ErrorResponse
envelope, every other path gets an HTML page (404 page, login redirect on
401, 502 page when the CMS fails an authenticated content page).

Run with:  uvicorn asgi:app --reload
"""

from pathlib import Path

from fastapi import Request
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.main import app, http_exception_handler
from core.fetcher import ContentUnavailable
from web.routes import content_unavailable_handler, render_http_error
from web.routes import router as web_router

API_PREFIX = "/api/"


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if request.url.path.startswith(API_PREFIX):
        return await http_exception_handler(request, exc)
    return render_http_error(request, exc)


# Mount the web UI router here, not in api/main.py.
app.include_router(web_router, tags=["Web UI"])
app.mount("/static", StaticFiles(directory=str(Path(__file__).parent / "web" / "static")), name="static")
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(ContentUnavailable, content_unavailable_handler)

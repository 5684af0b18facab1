"""
api/main.py -- FastAPI application entry point for the Solo She site.

Owns the application object, its lifespan, the middleware stack, the JSON
endpoints under /api and the API-side exception handlers. The server-rendered
pages are mounted by asgi.py, not here.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware    -- rejects requests with unexpected Host headers
  2. SessionMiddleware        -- signed cookie session carrying the draft-mode flag
  3. SlowAPIMiddleware        -- enforces per-route rate limits from api.limiter
  4. log_requests             -- one access-log line per request
  5. session_refresh          -- resolves identity, gates routes, rotates cookies

Lifespan handles startup (page cache, backend factory, purge task) and
shutdown (cancel purge task, close the cache) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import partial

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.preview import router as preview_router
from api.routes.revalidate import router as revalidate_router
from auth.backend import SupabaseBackend
from auth.middleware import session_refresh_middleware
from cache.store import PageCache
from core.config import get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("soloshe.api")

_PURGE_INTERVAL_SECONDS = 6 * 60 * 60

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Purge expired page-cache entries every 6 hours.

    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and unwinds the coroutine.
    """
    while True:
        await asyncio.sleep(_PURGE_INTERVAL_SECONDS)
        removed = app.state.cache.purge_expired()
        logger.info("Purged %d expired page(s)", removed)


def _warn_missing_config() -> None:
    """Log each optional integration that is switched off by missing config.

    None of these stop startup. Each missing value fails only the endpoint
    that needs it.
    """
    settings = get_settings()
    if not settings.supabase_configured:
        logger.warning("SUPABASE_URL / SUPABASE_ANON_KEY not set -- every visitor is anonymous")
    if not settings.wordpress_url:
        logger.warning("WORDPRESS_URL / WP_URL not set -- blog pages will render empty")
    if not settings.wordpress_revalidate_secret:
        logger.warning("WORDPRESS_REVALIDATE_SECRET / REVALIDATE_SECRET not set -- /api/revalidate will return 500")
    if not settings.preview_secret:
        logger.warning("PREVIEW_SECRET not set -- /api/preview will return 500")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Cache first -- the purge task and every page route reference it.
      2. Backend factory -- one Supabase client is built per request from it,
         so no identity state is ever shared between two visitors.
      3. Purge task last -- references app.state.cache.
    """
    settings = get_settings()
    logger.info("Solo She starting up")
    _warn_missing_config()

    cache_kwargs = {"ttl": settings.page_cache_ttl_seconds}
    if settings.page_cache_path:
        cache_kwargs["db_path"] = settings.page_cache_path
    app.state.cache = PageCache(**cache_kwargs)
    logger.info("Page cache initialized (ttl=%ds)", settings.page_cache_ttl_seconds)

    app.state.backend_factory = partial(SupabaseBackend.connect, settings.supabase_url, settings.supabase_anon_key)
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.cache.close()
    logger.info("Solo She shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Solo She",
    description="Solo female travel community: blog, member guides and profiles.",
    version=VERSION,
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Request-level middleware
#
# Each add_middleware() / @app.middleware() call wraps everything registered
# before it, so the LAST registration is the outermost layer. Registration
# below runs innermost-first: session refresh, logging, SlowAPI, session,
# trusted host.
# ---------------------------------------------------------------------------

app.middleware("http")(session_refresh_middleware)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


app.add_middleware(SlowAPIMiddleware)

# Signed with SECRET_KEY. Holds only the draft-mode flag; identity tokens
# travel in their own httpOnly cookies (auth/session.py).
app.add_middleware(
    SessionMiddleware,
    secret_key=get_settings().secret_key,
    same_site="lax",
    https_only=get_settings().secure_cookies,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=get_settings().allowed_hosts)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(revalidate_router, prefix="/api", tags=["Revalidation"])
app.include_router(preview_router, prefix="/api", tags=["Preview"])
# Web UI router is mounted by asgi.py, not here.
# api/ and web/ are independent layers -- only the top-level asgi.py imports both.


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it -- str(dict) produces a Python repr,
    not JSON.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/health", include_in_schema=True, tags=["Health"])
async def health() -> HealthResponse:
    """Return liveness, version and which integrations are configured."""
    settings = get_settings()

    def _state(flag) -> str:
        return "configured" if flag else "unconfigured"

    return HealthResponse(
        version=VERSION,
        components={
            "identity": _state(settings.supabase_configured),
            "cms": _state(settings.wordpress_url),
            "revalidate": _state(settings.wordpress_revalidate_secret),
            "preview": _state(settings.preview_secret),
        },
    )

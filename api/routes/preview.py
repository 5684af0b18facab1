"""
api/routes/preview.py -- CMS draft preview toggle.

GET /api/preview?secret=...&slug=...   enable draft mode, 307 to slug (default /blog)
GET /api/preview/exit                  disable draft mode, 307 to /

Draft mode lives in the signed session cookie (SessionMiddleware). While it is
on, blog pages skip the page cache and render fresh from the CMS.
"""

from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse

from auth.flows import safe_redirect_target
from core.config import get_settings
from core.models import DRAFT_MODE_SESSION_KEY

logger = logging.getLogger("soloshe.preview")

router = APIRouter()

DEFAULT_PREVIEW_TARGET = "/blog"


@router.get("/preview")
def enable_preview(request: Request, secret: Optional[str] = None, slug: Optional[str] = None):
    expected = get_settings().preview_secret
    if not expected:
        logger.error("Preview requested but PREVIEW_SECRET is not set")
        return JSONResponse(status_code=500, content={"error": "PREVIEW_SECRET environment variable is not set"})

    if not secret or not hmac.compare_digest(secret.encode("utf-8"), expected.encode("utf-8")):
        return PlainTextResponse("Invalid secret", status_code=401)

    request.session[DRAFT_MODE_SESSION_KEY] = True
    return RedirectResponse(safe_redirect_target(slug, default=DEFAULT_PREVIEW_TARGET), status_code=307)


@router.get("/preview/exit")
def exit_preview(request: Request):
    request.session.pop(DRAFT_MODE_SESSION_KEY, None)
    return RedirectResponse("/", status_code=307)

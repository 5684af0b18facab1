"""
auth/middleware.py -- Per-request session refresh and route gating.

Runs once per request (static assets excluded). Steps:

  1. Resolve the session via auth.session.refresh_session(). The backend call
     runs in the thread pool so a slow identity service never blocks the
     event loop. Requests carrying no session cookies skip the backend.
  2. Classify the path:
       protected  -- /dashboard, /profile, /settings, /submit, /saved, /app
       auth-only  -- /login, /signup
       other      -- everything else
  3. Apply the decision table:
       authenticated + auth-only   -> 302 /dashboard
       anonymous     + protected   -> 302 /login?redirectTo=<original path>
       anything else               -> pass through
  4. Apply the cookie writes from step 1 to whatever response goes out,
     except for cookies the route already set on that response.

Fail open: a backend that is unconfigured, unreachable or answering with
errors makes the request anonymous instead of failing it. Protected pages
still redirect to /login, but the public marketing site keeps working when
the identity service is down.

The resolved identity, its current access token and the per-request backend
are stored on request.state for route handlers (see auth.dependencies).
"""

from __future__ import annotations

import logging
from enum import Enum
from urllib.parse import urlencode

from fastapi import Request
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool

from auth.backend import BackendError, BackendUnavailable
from auth.session import apply_cookies, cookies_set_on, current_token, has_session_cookies, refresh_session

logger = logging.getLogger("soloshe.session")

PROTECTED_PREFIXES = ("/dashboard", "/profile", "/settings", "/submit", "/saved", "/app")
AUTH_ONLY_PATHS = ("/login", "/signup")

_STATIC_PREFIXES = ("/static/", "/_static/", "/favicon.ico")
_STATIC_EXTENSIONS = (".svg", ".png", ".jpg", ".jpeg", ".gif", ".webp", ".ico", ".css", ".js", ".map", ".woff2")


class RouteClass(str, Enum):
    PROTECTED = "protected"
    AUTH_ONLY = "auth_only"
    OTHER = "other"


def _matches(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def classify_route(path: str) -> RouteClass:
    if any(_matches(path, p) for p in PROTECTED_PREFIXES):
        return RouteClass.PROTECTED
    if any(_matches(path, p) for p in AUTH_ONLY_PATHS):
        return RouteClass.AUTH_ONLY
    return RouteClass.OTHER


def is_static_asset(path: str) -> bool:
    return path.startswith(_STATIC_PREFIXES) or path.lower().endswith(_STATIC_EXTENSIONS)


def login_redirect_url(path: str) -> str:
    return f"/login?{urlencode({'redirectTo': path})}"


async def session_refresh_middleware(request: Request, call_next):
    """Refresh the session, gate protected/auth-only routes, write cookies."""
    path = request.url.path
    request.state.identity = None
    request.state.backend = None
    request.state.access_token = None
    if is_static_asset(path):
        return await call_next(request)

    identity = None
    cookie_writes = []
    if has_session_cookies(request.cookies):
        try:
            backend = request.app.state.backend_factory()
            request.state.backend = backend
            identity, cookie_writes = await run_in_threadpool(refresh_session, backend, dict(request.cookies))
        except BackendUnavailable as exc:
            logger.warning("Session refresh skipped, identity backend unavailable: %s", exc.message)
        except BackendError as exc:
            logger.warning("Session refresh failed, continuing anonymous: %s (code=%s)", exc.message, exc.code)
    request.state.identity = identity
    if identity is not None:
        request.state.access_token = current_token(request.cookies, cookie_writes)

    route_class = classify_route(path)
    if identity is not None and route_class is RouteClass.AUTH_ONLY:
        response = RedirectResponse("/dashboard", status_code=302)
    elif identity is None and route_class is RouteClass.PROTECTED:
        response = RedirectResponse(login_redirect_url(path), status_code=302)
    else:
        response = await call_next(request)

    # Cookies the route set itself (login, logout) win over refresh writes.
    already_set = cookies_set_on(response)
    apply_cookies(response, [c for c in cookie_writes if c.name not in already_set])
    return response

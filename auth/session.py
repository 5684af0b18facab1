"""
auth/session.py -- Session cookies and per-request session refresh.

The identity backend issues a short-lived access token (JWT) and a long-lived
refresh token. Both ride in httpOnly cookies. On every page request the
session middleware calls refresh_session(), which:

  1. Reads both cookies. No cookies -> anonymous, nothing to write.
  2. If the access token has not expired, asks the backend who owns it
     (get_user). A valid answer needs no cookie writes.
  3. Otherwise (expired, or rejected by the backend) trades the refresh token
     for a new pair and returns cookie writes carrying the new pair.
  4. A rejected refresh token clears both cookies.

Nothing here mutates a response. refresh_session() RETURNS the cookie writes
and the caller applies them with apply_cookies(). Reading the session never
has hidden side effects.

Expiry is read from the token's unverified "exp" claim with python-jose. The
claim only decides whether to call get_user or refresh first; the backend
remains the authority on validity, so an unverified read is sufficient here.

Layer rule: no imports from api/, web/, profiles/, or cache/. Import from
core/ is allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
import time

from jose import JWTError, jwt

from auth.backend import BackendError, BackendUnavailable
from auth.models import AuthSession, Identity, SetCookie
from core.config import get_settings

logger = logging.getLogger("soloshe.session")

ACCESS_COOKIE = "sb-access-token"
REFRESH_COOKIE = "sb-refresh-token"

# Cookie lifetime. The access token inside expires much sooner; the cookie
# outlives it so the refresh token can still be presented.
SESSION_COOKIE_MAX_AGE = 60 * 60 * 24 * 7

# Treat tokens this close to expiry as expired so they don't lapse mid-request.
_EXPIRY_LEEWAY_SECONDS = 10


def access_token_expired(token: str, now: float | None = None) -> bool:
    """True if token's exp claim is past (or unreadable)."""
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return True
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return True
    current = time.time() if now is None else now
    return exp <= current + _EXPIRY_LEEWAY_SECONDS


def has_session_cookies(cookies) -> bool:
    return bool(cookies.get(ACCESS_COOKIE) or cookies.get(REFRESH_COOKIE))


def session_cookies(auth_session: AuthSession) -> list[SetCookie]:
    """Cookie writes that establish auth_session in the browser."""
    if not auth_session.is_active:
        return []
    return [
        SetCookie(ACCESS_COOKIE, auth_session.access_token, max_age=SESSION_COOKIE_MAX_AGE),
        SetCookie(REFRESH_COOKIE, auth_session.refresh_token, max_age=SESSION_COOKIE_MAX_AGE),
    ]


def clear_session_cookies() -> list[SetCookie]:
    return [SetCookie(ACCESS_COOKIE, None), SetCookie(REFRESH_COOKIE, None)]


def cookies_set_on(response) -> set[str]:
    """Names of the cookies a response already sets or deletes."""
    return {header.split("=", 1)[0].strip() for header in response.headers.getlist("set-cookie")}


def current_token(cookies, writes: list[SetCookie]) -> str | None:
    """The access token in force after writes are applied to cookies."""
    for cookie in writes:
        if cookie.name == ACCESS_COOKIE:
            return cookie.value
    return cookies.get(ACCESS_COOKIE)


def apply_cookies(response, cookies: list[SetCookie]) -> None:
    """Write SetCookie entries onto a Starlette response.

    httponly=True: JS cannot read the tokens (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    """
    secure = get_settings().secure_cookies
    for cookie in cookies:
        if cookie.is_deletion:
            response.delete_cookie(cookie.name, httponly=True, samesite="lax", secure=secure)
        else:
            response.set_cookie(
                cookie.name,
                value=cookie.value,
                max_age=cookie.max_age,
                httponly=True,
                samesite="lax",
                secure=secure,
            )


def refresh_session(backend, cookies: dict[str, str]) -> tuple[Identity | None, list[SetCookie]]:
    """Resolve the request's identity, renewing tokens when needed.

    Returns (identity or None, cookie writes for the caller to apply).
    BackendUnavailable propagates so the caller can decide to fail open.
    """
    access_token = cookies.get(ACCESS_COOKIE)
    refresh_token = cookies.get(REFRESH_COOKIE)
    if not access_token and not refresh_token:
        return None, []

    if access_token and not access_token_expired(access_token):
        try:
            identity = backend.get_user(access_token)
        except BackendUnavailable:
            raise
        except BackendError as exc:
            # An unreadable answer is treated as an unusable access token.
            logger.info("Access token check failed: %s", exc.message)
            identity = None
        if identity is not None:
            return identity, []

    if not refresh_token:
        return None, clear_session_cookies()

    try:
        auth_session = backend.refresh_session(refresh_token)
    except BackendUnavailable:
        raise
    except BackendError as exc:
        logger.info("Session refresh rejected: %s", exc.message)
        return None, clear_session_cookies()

    if auth_session is None or not auth_session.is_active:
        return None, clear_session_cookies()
    return auth_session.identity, session_cookies(auth_session)

"""
auth/dependencies.py -- Request helpers for authentication.

The session middleware (auth/middleware.py) resolves the identity once per
request and stores it on request.state. Everything here reads that result;
nothing here calls the identity backend to authenticate a second time.

try_get_current_user() is the soft variant (returns None when anonymous).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
get_backend() returns the per-request backend, creating one for requests
the middleware skipped.

Layer rule: no imports from web/, core/, profiles/, or cache/.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import Identity
from auth.session import ACCESS_COOKIE


def try_get_current_user(request: Request) -> Identity | None:
    """Return the identity resolved by the session middleware, or None."""
    return getattr(request.state, "identity", None)


def get_current_user(request: Request) -> Identity:
    """Require authentication. Raises HTTP 401 if the request is anonymous."""
    identity = try_get_current_user(request)
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return identity


def get_backend(request: Request):
    """Return this request's identity backend.

    Raises BackendUnavailable when the backend is not configured.
    """
    backend = getattr(request.state, "backend", None)
    if backend is None:
        backend = request.app.state.backend_factory()
        request.state.backend = backend
    return backend


def current_access_token(request: Request) -> str | None:
    """The access token in force for this request, refreshed if the middleware rotated it."""
    return getattr(request.state, "access_token", None) or request.cookies.get(ACCESS_COOKIE)

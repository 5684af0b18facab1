"""
tests/conftest.py -- Shared test fixtures for Solo She integration tests.

This module provides:
  - FakeBackend: in-memory stand-in for the Supabase identity/profile backend
  - _patch_lifespan(): wires a test backend + cache into app.state, bypassing
    real startup
  - fake_backend / page_cache: fresh per test
  - web_client: TestClient with follow_redirects=False for route tests
  - sign_in: helper fixture that puts a signed-in user's cookies on a client

Design: the page cache uses a plain ':memory:' SQLite database. PageCache
holds ONE connection (guarded by a lock, check_same_thread=False), so the
thread-pool workers TestClient uses all see the same in-memory schema.

Environment variables must be set before any app import so get_settings()
auto-generates SECRET_KEY in dev mode and the webhook/preview secrets exist.
WORDPRESS_URL is deliberately left unset: fetches degrade to empty results
(or ContentUnavailable when strict) and never touch the network. Tests that
need posts monkeypatch the fetch functions in web.routes.
"""

from __future__ import annotations

import asyncio
import os
import secrets
import time
from collections.abc import Generator
from contextlib import asynccontextmanager
from typing import Optional

# CRITICAL: Set env before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ["REVALIDATE_SECRET"] = "test-revalidate-secret"
os.environ["PREVIEW_SECRET"] = "test-preview-secret"
for _key in ("WORDPRESS_URL", "WP_URL", "WORDPRESS_REVALIDATE_SECRET"):
    os.environ.pop(_key, None)

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from api.limiter import limiter
from asgi import app
from auth.backend import UNIQUE_VIOLATION, BackendError, BackendUnavailable
from auth.models import AuthSession, Identity, Profile
from auth.session import ACCESS_COOKIE, REFRESH_COOKIE
from cache.store import PageCache

REVALIDATE_SECRET = "test-revalidate-secret"
PREVIEW_SECRET = "test-preview-secret"

# Rate limits are exercised by slowapi's own tests; here they would make
# test order matter.
limiter.enabled = False

_TOKEN_KEY = "fake-backend-signing-key"


def make_access_token(user_id: str, expires_in: int = 3600) -> str:
    """A JWT shaped like the backend's, with a real exp claim."""
    return jwt.encode(
        {"sub": user_id, "exp": int(time.time()) + expires_in, "jti": secrets.token_hex(4)},
        _TOKEN_KEY,
        algorithm="HS256",
    )


# ---------------------------------------------------------------------------
# Fake identity/profile backend
# ---------------------------------------------------------------------------


class FakeBackend:
    """In-memory backend with the SupabaseBackend method surface.

    Knobs for failure injection:
      insert_error   -- BackendError raised by every insert_profile call
      lookup_error   -- BackendError raised by every get_profile call
      sign_out_error -- BackendError raised by sign_out
      update_error   -- BackendError raised by update_profile
    """

    def __init__(self) -> None:
        self.passwords: dict[str, str] = {}
        self.identities: dict[str, Identity] = {}
        self.access_tokens: dict[str, Identity] = {}
        self.refresh_tokens: dict[str, Identity] = {}
        self.profiles: dict[str, Profile] = {}
        self.insert_attempts: list[Profile] = []
        self.signed_out: list[str] = []
        self.insert_error: Optional[BackendError] = None
        self.lookup_error: Optional[BackendError] = None
        self.sign_out_error: Optional[BackendError] = None
        self.update_error: Optional[BackendError] = None
        self.token_owner: Optional[str] = None

    # -- helpers -----------------------------------------------------------

    def add_user(self, email: str, password: str = "password123", username: Optional[str] = "traveller") -> Identity:
        identity = Identity(id=f"user-{len(self.identities) + 1}", email=email)
        self.identities[email] = identity
        self.passwords[email] = password
        if username is not None:
            self.profiles[identity.id] = Profile(id=identity.id, username=username)
        return identity

    def issue_session(self, identity: Identity, expires_in: int = 3600) -> AuthSession:
        access = make_access_token(identity.id, expires_in)
        refresh = secrets.token_hex(8)
        self.access_tokens[access] = identity
        self.refresh_tokens[refresh] = identity
        return AuthSession(identity=identity, access_token=access, refresh_token=refresh, expires_in=expires_in)

    # -- auth --------------------------------------------------------------

    def use_token(self, access_token: str) -> None:
        self.token_owner = access_token

    def sign_up(self, email: str, password: str) -> Optional[AuthSession]:
        if email in self.identities:
            raise BackendError("User already registered", code="user_already_exists")
        identity = self.add_user(email, password, username=None)
        return self.issue_session(identity)

    def sign_in_with_password(self, email: str, password: str) -> Optional[AuthSession]:
        if self.passwords.get(email) != password:
            raise BackendError("Invalid login credentials", code="invalid_credentials")
        return self.issue_session(self.identities[email])

    def get_user(self, access_token: str) -> Optional[Identity]:
        return self.access_tokens.get(access_token)

    def refresh_session(self, refresh_token: str) -> Optional[AuthSession]:
        identity = self.refresh_tokens.pop(refresh_token, None)
        if identity is None:
            raise BackendError("Invalid Refresh Token", code="refresh_token_not_found")
        return self.issue_session(identity)

    def sign_out(self, access_token: str) -> None:
        if self.sign_out_error is not None:
            raise self.sign_out_error
        self.signed_out.append(access_token)
        self.access_tokens.pop(access_token, None)

    # -- profiles ----------------------------------------------------------

    def insert_profile(self, profile: Profile) -> Profile:
        self.insert_attempts.append(profile)
        if self.insert_error is not None:
            raise self.insert_error
        if profile.id in self.profiles or any(p.username == profile.username for p in self.profiles.values()):
            raise BackendError("duplicate key value violates unique constraint", code=UNIQUE_VIOLATION)
        self.profiles[profile.id] = profile
        return profile

    def get_profile(self, user_id: str) -> Optional[Profile]:
        if self.lookup_error is not None:
            raise self.lookup_error
        return self.profiles.get(user_id)

    def update_profile(self, user_id: str, changes: dict) -> Profile:
        if self.update_error is not None:
            raise self.update_error
        current = self.profiles.get(user_id)
        if current is None:
            raise BackendError("Profile not found.", code="PGRST116")
        new_username = changes.get("username")
        if new_username and any(p.username == new_username and pid != user_id for pid, p in self.profiles.items()):
            raise BackendError("duplicate key value violates unique constraint", code=UNIQUE_VIOLATION)
        for key, value in changes.items():
            setattr(current, key, value)
        return current


def _unavailable_factory():
    raise BackendUnavailable("SUPABASE_URL / SUPABASE_ANON_KEY are not configured.")


# ---------------------------------------------------------------------------
# Lifespan patch
# ---------------------------------------------------------------------------


def _patch_lifespan(backend: Optional[FakeBackend], cache: PageCache):
    """Return an async context manager that replaces the real lifespan.

    backend=None simulates an unconfigured identity backend: the factory
    raises BackendUnavailable exactly as SupabaseBackend.connect() does.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.cache = cache
        app.state.backend_factory = (lambda: backend) if backend is not None else _unavailable_factory
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def page_cache() -> Generator[PageCache, None, None]:
    cache = PageCache(db_path=":memory:")
    yield cache
    cache.close()


@pytest.fixture
def web_client(fake_backend: FakeBackend, page_cache: PageCache) -> Generator[TestClient, None, None]:
    """Yield a TestClient over the full ASGI app (API + web UI).

    follow_redirects=False is essential: we assert on redirect *locations*
    (e.g. 302 to /login?redirectTo=...), which are invisible once the client
    follows the redirect and returns the final 200 response.
    """
    app.router.lifespan_context = _patch_lifespan(fake_backend, page_cache)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client


@pytest.fixture
def offline_client(page_cache: PageCache) -> Generator[TestClient, None, None]:
    """TestClient whose identity backend is unconfigured."""
    app.router.lifespan_context = _patch_lifespan(None, page_cache)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client


@pytest.fixture
def sign_in(fake_backend: FakeBackend):
    """Return a helper that signs a client in as a (new) user with a profile."""

    def _sign_in(client: TestClient, email: str = "ana@example.com", username: Optional[str] = "ana") -> Identity:
        identity = fake_backend.add_user(email, username=username)
        auth_session = fake_backend.issue_session(identity)
        client.cookies.set(ACCESS_COOKIE, auth_session.access_token)
        client.cookies.set(REFRESH_COOKIE, auth_session.refresh_token)
        return identity

    return _sign_in


@pytest.fixture
def access_token():
    """Return make_access_token for tests that need raw JWTs."""
    return make_access_token

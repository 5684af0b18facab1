"""
auth/backend.py -- Facade over the hosted identity/database service (Supabase).

The site never talks to Supabase directly outside this module. SupabaseBackend
exposes the handful of operations the auth flows and profile pages need and
converts every service failure into the BackendError taxonomy:

  BackendError        -- the service answered and refused (bad credentials,
                         unique violation, RLS denial). .code carries the
                         service's error code when it has one ("23505" for a
                         Postgres unique violation).
  BackendUnavailable  -- the service is unconfigured or unreachable. The
                         session middleware fails open on this one.

One SupabaseBackend is created per request (see api/main.py backend factory).
Session tokens live in the browser's cookies, not in a long-lived client, so
a shared singleton client would leak one user's session into another's request.

Row-level security: profile queries run with the caller's access token. After
sign-in the client carries the fresh token; for cookie-based requests
use_token() attaches the cookie token to the table client.

Layer rule: no imports from api/, web/, core/, profiles/, or cache/.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from supabase import AuthApiError, AuthError, AuthRetryableError, Client, ClientOptions, PostgrestAPIError, create_client

from auth.models import AuthSession, Identity, Profile

logger = logging.getLogger("soloshe.auth")

UNIQUE_VIOLATION = "23505"

PROFILES_TABLE = "profiles"
PROFILE_COLUMNS = "id, username, full_name, bio, avatar_url, role, privacy_level, created_at, updated_at"


class BackendError(Exception):
    """The identity/database service rejected an operation."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    @property
    def is_unique_violation(self) -> bool:
        return self.code == UNIQUE_VIOLATION


class BackendUnavailable(BackendError):
    """The identity/database service is unconfigured or unreachable."""


# ---------------------------------------------------------------------------
# Payload mappers
# ---------------------------------------------------------------------------


def _identity_from_user(user: Any) -> Identity | None:
    if user is None or not getattr(user, "id", None):
        return None
    return Identity(id=str(user.id), email=getattr(user, "email", None) or "")


def _session_from_response(response: Any) -> AuthSession | None:
    identity = _identity_from_user(getattr(response, "user", None))
    if identity is None:
        return None
    session = getattr(response, "session", None)
    if session is None:
        return AuthSession(identity=identity)
    return AuthSession(
        identity=identity,
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_in=int(getattr(session, "expires_in", None) or 3600),
    )


def profile_from_row(row: dict[str, Any]) -> Profile:
    return Profile(
        id=str(row["id"]),
        username=row["username"],
        full_name=row.get("full_name"),
        bio=row.get("bio"),
        avatar_url=row.get("avatar_url"),
        role=row.get("role") or "talent",
        privacy_level=row.get("privacy_level") or "public",
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def _translate(exc: Exception) -> BackendError:
    """Map a supabase/httpx exception onto the BackendError taxonomy."""
    if isinstance(exc, (httpx.HTTPError, AuthRetryableError)):
        return BackendUnavailable(f"Identity backend unreachable: {exc}")
    if isinstance(exc, PostgrestAPIError):
        return BackendError(exc.message or "Database request failed.", code=exc.code)
    if isinstance(exc, AuthError):
        return BackendError(exc.message, code=getattr(exc, "code", None))
    return BackendError(str(exc))


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------


class SupabaseBackend:
    """Per-request facade over a Supabase client."""

    def __init__(self, client: Client) -> None:
        self.client = client

    @classmethod
    def connect(cls, url: str, anon_key: str) -> SupabaseBackend:
        """Build a backend bound to the anon key. Raises BackendUnavailable if unconfigured."""
        if not url or not anon_key:
            raise BackendUnavailable("SUPABASE_URL / SUPABASE_ANON_KEY are not configured.")
        options = ClientOptions(auto_refresh_token=False, persist_session=False)
        try:
            client = create_client(url, anon_key, options=options)
        except Exception as exc:
            raise BackendUnavailable(f"Could not create Supabase client: {exc}") from exc
        return cls(client)

    def use_token(self, access_token: str) -> None:
        """Run subsequent table queries as the owner of access_token (RLS)."""
        self.client.postgrest.auth(access_token)

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def sign_up(self, email: str, password: str) -> AuthSession | None:
        """Create an identity. None when the service returned no user."""
        try:
            response = self.client.auth.sign_up({"email": email, "password": password})
        except (AuthError, httpx.HTTPError) as exc:
            raise _translate(exc) from exc
        auth_session = _session_from_response(response)
        if auth_session is not None and auth_session.access_token:
            self.use_token(auth_session.access_token)
        return auth_session

    def sign_in_with_password(self, email: str, password: str) -> AuthSession | None:
        try:
            response = self.client.auth.sign_in_with_password({"email": email, "password": password})
        except (AuthError, httpx.HTTPError) as exc:
            raise _translate(exc) from exc
        auth_session = _session_from_response(response)
        if auth_session is not None and auth_session.access_token:
            self.use_token(auth_session.access_token)
        return auth_session

    def get_user(self, access_token: str) -> Identity | None:
        """Validate access_token with the service. None if it is not (or no longer) valid."""
        try:
            response = self.client.auth.get_user(access_token)
        except AuthApiError:
            return None
        except (AuthError, httpx.HTTPError) as exc:
            raise _translate(exc) from exc
        identity = _identity_from_user(getattr(response, "user", None))
        if identity is not None:
            self.use_token(access_token)
        return identity

    def refresh_session(self, refresh_token: str) -> AuthSession | None:
        """Exchange a refresh token for a new token pair."""
        try:
            response = self.client.auth.refresh_session(refresh_token)
        except (AuthError, httpx.HTTPError) as exc:
            raise _translate(exc) from exc
        auth_session = _session_from_response(response)
        if auth_session is not None and auth_session.access_token:
            self.use_token(auth_session.access_token)
        return auth_session

    def sign_out(self, access_token: str) -> None:
        """Revoke the session behind access_token on the service side."""
        try:
            self.client.auth.admin.sign_out(access_token)
        except (AuthError, httpx.HTTPError) as exc:
            raise _translate(exc) from exc

    # ------------------------------------------------------------------
    # profiles table
    # ------------------------------------------------------------------

    def insert_profile(self, profile: Profile) -> Profile:
        row = {
            "id": profile.id,
            "username": profile.username,
            "role": profile.role,
            "privacy_level": profile.privacy_level,
        }
        try:
            response = self.client.table(PROFILES_TABLE).insert(row).execute()
        except (PostgrestAPIError, httpx.HTTPError) as exc:
            raise _translate(exc) from exc
        if not response.data:
            raise BackendError("Profile insert returned no row.")
        return profile_from_row(response.data[0])

    def get_profile(self, user_id: str) -> Profile | None:
        try:
            response = self.client.table(PROFILES_TABLE).select(PROFILE_COLUMNS).eq("id", user_id).limit(1).execute()
        except (PostgrestAPIError, httpx.HTTPError) as exc:
            raise _translate(exc) from exc
        return profile_from_row(response.data[0]) if response.data else None

    def update_profile(self, user_id: str, changes: dict[str, Any]) -> Profile:
        try:
            response = self.client.table(PROFILES_TABLE).update(changes).eq("id", user_id).execute()
        except (PostgrestAPIError, httpx.HTTPError) as exc:
            raise _translate(exc) from exc
        if not response.data:
            raise BackendError("Profile not found.", code="PGRST116")
        return profile_from_row(response.data[0])

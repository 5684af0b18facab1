"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Backend adapters build
these from service payloads; flows and routes only ever see these shapes.

Layer rule: no imports from api/, web/, core/, profiles/, or cache/.
"""

from __future__ import annotations

from dataclasses import dataclass

# Profile defaults applied on signup and on repair.
DEFAULT_ROLE = "talent"
DEFAULT_PRIVACY_LEVEL = "public"

ROLES = ("talent", "client")
PRIVACY_LEVELS = ("public", "private")


@dataclass
class Identity:
    """The identity backend's user record, reduced to what the site consumes.

    Owned by the backend. Created on signup and never mutated here.
    """

    id: str
    email: str


@dataclass
class AuthSession:
    """An identity plus the token pair that proves it.

    Tokens are None when the backend created the identity but withheld a
    session (e.g. email confirmation pending).
    """

    identity: Identity
    access_token: str | None = None
    refresh_token: str | None = None
    expires_in: int = 3600

    @property
    def is_active(self) -> bool:
        return bool(self.access_token and self.refresh_token)


@dataclass
class Profile:
    """The site's per-user record, keyed 1:1 by Identity.id."""

    id: str
    username: str
    full_name: str | None = None
    bio: str | None = None
    avatar_url: str | None = None
    role: str = DEFAULT_ROLE
    privacy_level: str = DEFAULT_PRIVACY_LEVEL
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class SetCookie:
    """A cookie write the caller must apply to the outgoing response.

    value=None means delete the cookie.
    """

    name: str
    value: str | None
    max_age: int | None = None

    @property
    def is_deletion(self) -> bool:
        return self.value is None

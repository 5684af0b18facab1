"""
auth/repair.py -- Bounded profile repair.

Every authenticated identity must own exactly one profile. Signup creates
identity and profile in two separate backend calls, so a failure between them
leaves an identity with no profile. ProfileRepair heals that lazily, the
first time the user logs in or opens a page that needs the profile.

Bound: ONE insert per triggering event. A ProfileRepair instance is scoped to
a single request; the second attempt() on the same instance returns None
without touching the backend. Callers react to None by failing closed:
  - login: sign the user out and show an error
  - profile pages: render the terminal "contact support" page
They never loop back and try again.
"""

from __future__ import annotations

import logging

from auth.backend import BackendError
from auth.models import DEFAULT_PRIVACY_LEVEL, DEFAULT_ROLE, Profile
from auth.usernames import generate_username

logger = logging.getLogger("soloshe.auth")


class ProfileRepair:
    def __init__(self, backend) -> None:
        self.backend = backend
        self.attempted = False

    def attempt(self, user_id: str, email: str | None) -> Profile | None:
        """Insert a default profile for user_id. None on failure or if already attempted."""
        if self.attempted:
            logger.error("Profile repair already attempted for user %s in this request; not retrying", user_id)
            return None
        self.attempted = True

        candidate = Profile(
            id=user_id,
            username=generate_username(email or "user"),
            role=DEFAULT_ROLE,
            privacy_level=DEFAULT_PRIVACY_LEVEL,
        )
        try:
            profile = self.backend.insert_profile(candidate)
        except BackendError as exc:
            logger.error("Profile repair failed for user %s: %s (code=%s)", user_id, exc.message, exc.code)
            return None
        logger.info("Repaired missing profile for user %s", user_id)
        return profile

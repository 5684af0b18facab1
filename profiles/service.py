"""
profiles/service.py -- Profile reads and edits for the signed-in user.

load_profile() is what every profile-backed page calls. A missing profile is
a transient anomaly (see auth/repair.py), so the first load triggers ONE
repair attempt. If that fails the page renders the terminal "contact support"
state -- it never redirects, which would only bounce the user into another
repair attempt.

update_profile() applies an explicit field edit. Only fields the form
actually submitted are written; everything else is left untouched.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from auth.backend import BackendError
from auth.flows import MSG_USERNAME_TAKEN, Failure, Success
from auth.models import Identity, Profile
from auth.repair import ProfileRepair
from auth.usernames import normalize_username, validate_username

logger = logging.getLogger("soloshe.profiles")

BIO_MAX_LENGTH = 500

MSG_BIO_TOO_LONG = f"Bio must be {BIO_MAX_LENGTH} characters or less"
MSG_UPDATE_FAILED = "Failed to update profile. Please try again."

# Pages that render profile data and must be rebuilt after an edit.
PROFILE_PAGES = ("/dashboard", "/profile")


def load_profile(backend, identity: Identity, repair: ProfileRepair) -> Optional[Profile]:
    """Return identity's profile, repairing it once if missing. None = terminal failure."""
    try:
        profile = backend.get_profile(identity.id)
    except BackendError as exc:
        logger.warning("Profile lookup failed for user %s: %s", identity.id, exc.message)
        profile = None
    if profile is not None:
        return profile
    logger.warning("Profile missing for user %s; attempting repair", identity.id)
    return repair.attempt(identity.id, identity.email)


def update_profile(
    backend,
    cache,
    user_id: str,
    username: Optional[str] = None,
    full_name: Optional[str] = None,
    bio: Optional[str] = None,
) -> Union[Success, Failure]:
    changes: dict[str, Optional[str]] = {}

    if username is not None:
        normalized = normalize_username(username)
        if error := validate_username(normalized):
            return Failure(error)
        changes["username"] = normalized

    if full_name is not None:
        changes["full_name"] = full_name.strip() or None

    if bio is not None:
        trimmed = bio.strip()
        if len(trimmed) > BIO_MAX_LENGTH:
            return Failure(MSG_BIO_TOO_LONG)
        changes["bio"] = trimmed or None

    if not changes:
        return Success()

    try:
        profile = backend.update_profile(user_id, changes)
    except BackendError as exc:
        if exc.is_unique_violation:
            return Failure(MSG_USERNAME_TAKEN)
        logger.error("Profile update failed for user %s: %s (code=%s)", user_id, exc.message, exc.code)
        return Failure(MSG_UPDATE_FAILED)

    for path in PROFILE_PAGES:
        cache.invalidate_path(path)
    return Success(payload=profile)

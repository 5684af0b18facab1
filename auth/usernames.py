"""
auth/usernames.py -- Username generation and validation.

generate_username() derives a candidate handle from an email address for
profiles the site creates on the user's behalf (profile repair). Usernames
the user types go through normalize_username() / validate_username() instead.

The random suffix does not guarantee uniqueness. The profiles table's unique
constraint is the arbiter; callers handle the collision.
"""

from __future__ import annotations

import random
import re

_NON_ALNUM = re.compile(r"[^a-z0-9]")
USERNAME_PATTERN = re.compile(r"^[a-z0-9_]+$")
USERNAME_MAX_LENGTH = 30


def generate_username(email: str) -> str:
    """Return the lowercased local part, stripped to [a-z0-9], plus 0-9999.

    Never fails: an email with no usable local part yields digits only.
    """
    base = _NON_ALNUM.sub("", email.split("@")[0].lower())
    return f"{base}{random.randrange(10000)}"


def normalize_username(raw: str) -> str:
    return raw.strip().lower()


def validate_username(username: str) -> str | None:
    """Return a user-facing error for a normalized username, or None if valid."""
    if not username:
        return "Username cannot be empty"
    if not USERNAME_PATTERN.match(username):
        return "Username can only contain letters, numbers, and underscores"
    if len(username) > USERNAME_MAX_LENGTH:
        return f"Username must be {USERNAME_MAX_LENGTH} characters or fewer"
    return None

"""
auth/flows.py -- Signup, login and logout against the identity backend.

Each flow returns a tagged outcome instead of performing HTTP itself:

  Redirect(target, cookies)   -- terminal; the route issues a 303 to target
  Failure(message, cookies)   -- render the form again with message inline
  Success(payload, cookies)   -- the operation finished, nothing to redirect

The route layer turns outcomes into responses (see web/routes.py). A flow
never returns after deciding to redirect, and no redirect is ever decided
inside an except block -- redirect decisions happen only after every backend
call in the flow has succeeded.

Signup:  create_identity -> bootstrap_profile -> Redirect(/dashboard)
Login:   authenticate -> verify_profile -> [repair once] -> Redirect(/dashboard)
Logout:  sign_out -> Redirect(/)

Known atomicity gap: signup's identity creation and profile insert are two
independent backend calls. If the insert fails, the identity is NOT deleted
(that needs service-role credentials this path does not hold). The user gets
a generic failure, no session cookies are written, and ProfileRepair creates
the missing profile on their next login.

Cache side effects run only after the backend mutation succeeded.

Layer rule: no imports from api/, web/, profiles/, or core/ beyond config.
The page cache is passed in by the caller; anything with invalidate_path()
works.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from auth.backend import BackendError, BackendUnavailable
from auth.models import DEFAULT_PRIVACY_LEVEL, DEFAULT_ROLE, Profile, SetCookie
from auth.repair import ProfileRepair
from auth.session import clear_session_cookies, session_cookies
from auth.usernames import normalize_username, validate_username

logger = logging.getLogger("soloshe.auth")

DASHBOARD_PATH = "/dashboard"
HOME_PATH = "/"

MSG_SIGNUP_REQUIRED = "Email, password, and username are required"
MSG_LOGIN_REQUIRED = "Email and password are required"
MSG_INVALID_CREDENTIALS = "Invalid email or password."
MSG_AUTH_FAILED = "Authentication failed"
MSG_USER_CREATION_FAILED = "User creation failed"
MSG_PROFILE_CREATION_FAILED = "Profile creation failed. Please try again."
MSG_USERNAME_TAKEN = "This username is already taken. Please choose another."
MSG_PROFILE_INCOMPLETE = "Profile setup incomplete. Please contact support."
MSG_BACKEND_UNAVAILABLE = "Sign in is temporarily unavailable. Please try again later."


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass
class Redirect:
    target: str
    cookies: list[SetCookie] = field(default_factory=list)


@dataclass
class Failure:
    message: str
    cookies: list[SetCookie] = field(default_factory=list)
    status_code: int = 400


@dataclass
class Success:
    payload: Any = None
    cookies: list[SetCookie] = field(default_factory=list)


Outcome = Union[Redirect, Failure, Success]


def safe_redirect_target(target: Optional[str], default: str = DASHBOARD_PATH) -> str:
    """Accept only server-local paths as post-login destinations.

    Rejects absolute URLs and protocol-relative "//host" paths, which would
    send the user off-site after login.
    """
    if target and target.startswith("/") and not target.startswith("//") and "\\" not in target:
        return target
    return default


def _invalidate_root_layout(cache) -> None:
    cache.invalidate_path("/", layout=True)


# ---------------------------------------------------------------------------
# Signup
# ---------------------------------------------------------------------------


def signup(backend, cache, email: str, password: str, username: str) -> Union[Redirect, Failure]:
    email = (email or "").strip()
    if not email or not password or not (username or "").strip():
        return Failure(MSG_SIGNUP_REQUIRED)

    username = normalize_username(username)
    if error := validate_username(username):
        return Failure(error)

    # 1. create_identity
    try:
        auth_session = backend.sign_up(email, password)
    except BackendUnavailable:
        logger.warning("Signup attempted while identity backend is unavailable")
        return Failure(MSG_BACKEND_UNAVAILABLE, status_code=503)
    except BackendError as exc:
        return Failure(exc.message)
    if auth_session is None:
        return Failure(MSG_USER_CREATION_FAILED)

    # 2. bootstrap_profile -- exactly one insert, user-chosen username
    profile = Profile(
        id=auth_session.identity.id,
        username=username,
        role=DEFAULT_ROLE,
        privacy_level=DEFAULT_PRIVACY_LEVEL,
    )
    try:
        backend.insert_profile(profile)
    except BackendError as exc:
        # Identity stays behind without a profile; repaired on next login.
        logger.error(
            "Profile creation failed for new user %s: %s (code=%s)",
            auth_session.identity.id,
            exc.message,
            exc.code,
        )
        if exc.is_unique_violation:
            return Failure(MSG_USERNAME_TAKEN)
        return Failure(MSG_PROFILE_CREATION_FAILED)

    _invalidate_root_layout(cache)
    return Redirect(DASHBOARD_PATH, cookies=session_cookies(auth_session))


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


def login(
    backend,
    cache,
    email: str,
    password: str,
    redirect_to: Optional[str] = None,
    repair: Optional[ProfileRepair] = None,
) -> Union[Redirect, Failure]:
    email = (email or "").strip()
    if not email or not password:
        return Failure(MSG_LOGIN_REQUIRED)

    # 1. authenticate -- one message for unknown user and wrong password
    try:
        auth_session = backend.sign_in_with_password(email, password)
    except BackendUnavailable:
        logger.warning("Login attempted while identity backend is unavailable")
        return Failure(MSG_BACKEND_UNAVAILABLE, status_code=503)
    except BackendError as exc:
        logger.info("Login rejected: %s", exc.message)
        return Failure(MSG_INVALID_CREDENTIALS, status_code=401)
    if auth_session is None or not auth_session.is_active:
        return Failure(MSG_AUTH_FAILED, status_code=401)

    user_id = auth_session.identity.id

    # 2. verify_profile -- "not found" and "query error" both mean missing
    try:
        profile = backend.get_profile(user_id)
    except BackendError as exc:
        logger.warning("Profile lookup failed for user %s: %s", user_id, exc.message)
        profile = None

    if profile is None:
        logger.warning("Profile missing for user %s", user_id)
        repair = repair or ProfileRepair(backend)
        if repair.attempt(user_id, auth_session.identity.email) is None:
            # Fail closed: no session may survive for a user with no profile.
            try:
                backend.sign_out(auth_session.access_token)
            except BackendError as exc:
                logger.error("Sign-out after failed profile repair also failed: %s", exc.message)
            return Failure(MSG_PROFILE_INCOMPLETE, cookies=clear_session_cookies(), status_code=500)

    _invalidate_root_layout(cache)
    return Redirect(safe_redirect_target(redirect_to), cookies=session_cookies(auth_session))


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------


def logout(backend, cache, access_token: Optional[str]) -> Union[Redirect, Failure]:
    """Revoke the session and send the user home.

    A backend error is returned to the caller, which may show it instead of
    redirecting. Both outcomes are valid here.
    """
    if access_token:
        try:
            backend.sign_out(access_token)
        except BackendError as exc:
            logger.warning("Logout failed: %s", exc.message)
            return Failure(exc.message if not isinstance(exc, BackendUnavailable) else MSG_BACKEND_UNAVAILABLE)

    _invalidate_root_layout(cache)
    return Redirect(HOME_PATH, cookies=clear_session_cookies())

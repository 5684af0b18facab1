"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (to mount as middleware) and web/routes.py (to
throttle the login and signup form posts with @limiter.limit()).

A single shared instance means every route counts against the same in-memory
store. Separate instances per module would each keep their own counters and
the limits would never trigger.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def auth_rate_limit() -> str:
    """Limit string for credential-bearing form posts, e.g. "10/minute"."""
    return get_settings().auth_rate_limit

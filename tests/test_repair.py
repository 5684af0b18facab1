"""
tests/test_repair.py -- Bounded profile repair (auth/repair.py).

The repair policy may insert at most ONE profile per triggering request. These
tests drive it with a backend whose inserts always fail and count the calls.
"""

from __future__ import annotations

from auth.backend import UNIQUE_VIOLATION, BackendError
from auth.models import DEFAULT_PRIVACY_LEVEL, DEFAULT_ROLE
from auth.repair import ProfileRepair


class TestProfileRepair:
    def test_success_returns_default_profile(self, fake_backend) -> None:
        repair = ProfileRepair(fake_backend)
        profile = repair.attempt("user-9", "Maya.K@example.com")
        assert profile is not None
        assert profile.id == "user-9"
        assert profile.username.startswith("mayak")
        assert profile.role == DEFAULT_ROLE
        assert profile.privacy_level == DEFAULT_PRIVACY_LEVEL
        assert fake_backend.profiles["user-9"] is profile

    def test_failure_returns_none(self, fake_backend) -> None:
        fake_backend.insert_error = BackendError("db down")
        assert ProfileRepair(fake_backend).attempt("user-9", "maya@example.com") is None

    def test_failing_backend_is_called_at_most_once(self, fake_backend) -> None:
        fake_backend.insert_error = BackendError("duplicate", code=UNIQUE_VIOLATION)
        repair = ProfileRepair(fake_backend)
        assert repair.attempt("user-9", "maya@example.com") is None
        assert repair.attempt("user-9", "maya@example.com") is None
        assert repair.attempt("user-9", "maya@example.com") is None
        assert len(fake_backend.insert_attempts) == 1

    def test_second_attempt_refused_even_after_success(self, fake_backend) -> None:
        repair = ProfileRepair(fake_backend)
        assert repair.attempt("user-9", "maya@example.com") is not None
        assert repair.attempt("user-9", "maya@example.com") is None
        assert len(fake_backend.insert_attempts) == 1

    def test_missing_email_still_generates_username(self, fake_backend) -> None:
        profile = ProfileRepair(fake_backend).attempt("user-9", None)
        assert profile is not None
        assert profile.username.startswith("user")

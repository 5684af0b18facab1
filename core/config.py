"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the site happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. supabase_url -> SUPABASE_URL). Type coercion is built in.

  Dual-name variables: the CMS base URL and the revalidation secret may be
      set under a current name or a legacy name. resolve_env() picks the
      current name and warns when both are set to different values. It takes
      a plain mapping so it can be tested without touching os.environ.

Security notes:
  SECRET_KEY signs the session cookie that carries the draft-mode flag.
  Shorter than 32 chars is rejected outright. In production mode (DEBUG not
  set or false), a missing SECRET_KEY is a hard startup failure.

  PREVIEW_SECRET and the revalidation secret are NOT validated here. Each is
  required only by its own endpoint; a missing value fails that endpoint and
  nothing else.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
auth/, profiles/, or cache/.
"""

import logging
import secrets
from collections.abc import Mapping
from functools import lru_cache
from typing import Optional
from urllib.parse import urlparse

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("soloshe.config")


# ---------------------------------------------------------------------------
# Dual-name environment resolution
# ---------------------------------------------------------------------------


def clean_env(value: Optional[str]) -> Optional[str]:
    """Trim a raw environment value. Blank strings count as unset."""
    trimmed = (value or "").strip()
    return trimmed or None


def _normalize_for_compare(key: str, value: str) -> str:
    if key.endswith("URL"):
        return value.rstrip("/")
    return value


def resolve_env(preferred_key: str, legacy_key: str, source: Mapping[str, Optional[str]]) -> Optional[str]:
    """Return the value for preferred_key, falling back to legacy_key.

    Logs a warning when both names are set and disagree. URL-valued keys
    (names ending in "URL") are compared without trailing slashes so that
    "https://cms.example.com" and "https://cms.example.com/" do not warn.
    """
    preferred = clean_env(source.get(preferred_key))
    legacy = clean_env(source.get(legacy_key))
    if preferred and legacy:
        if _normalize_for_compare(preferred_key, preferred) != _normalize_for_compare(legacy_key, legacy):
            logger.warning(
                "Both %s and %s are set but differ; using %s.",
                preferred_key,
                legacy_key,
                preferred_key,
            )
    return preferred or legacy


def normalize_base_url(url: Optional[str]) -> Optional[str]:
    """Reduce a CMS URL to scheme://host[/path] without a trailing slash.

    Returns None (integration disabled) for anything that is not http(s).
    """
    if not url:
        return None
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        logger.warning("CMS URL must be an absolute http(s) URL; CMS integration disabled.")
        return None
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}".rstrip("/")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.

    After validation, wordpress_url and wordpress_revalidate_secret hold the
    EFFECTIVE values (current name, else legacy name). wp_url and
    revalidate_secret keep whatever the legacy variables contained.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    secret_key: str = ""
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "testserver", "*.localhost"]

    # ------------------------------------------------------------------
    # Identity / database backend (Supabase)
    # ------------------------------------------------------------------

    supabase_url: str = ""
    supabase_anon_key: str = ""
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # CMS (WordPress). WORDPRESS_* is current, WP_URL / REVALIDATE_SECRET legacy.
    # ------------------------------------------------------------------

    wordpress_url: str = ""
    wp_url: str = ""
    wordpress_revalidate_secret: str = ""
    revalidate_secret: str = ""
    preview_secret: str = ""

    # ------------------------------------------------------------------
    # Page cache
    # ------------------------------------------------------------------

    page_cache_ttl_seconds: int = 3600
    page_cache_path: str = ""

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    auth_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Dev mode generates a throwaway key; production requires one."""
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Preview sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def resolve_dual_names(self) -> "Settings":
        raw = {
            "WORDPRESS_URL": self.wordpress_url,
            "WP_URL": self.wp_url,
            "WORDPRESS_REVALIDATE_SECRET": self.wordpress_revalidate_secret,
            "REVALIDATE_SECRET": self.revalidate_secret,
        }
        self.wordpress_url = normalize_base_url(resolve_env("WORDPRESS_URL", "WP_URL", raw)) or ""
        self.wordpress_revalidate_secret = resolve_env("WORDPRESS_REVALIDATE_SECRET", "REVALIDATE_SECRET", raw) or ""
        return self

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()

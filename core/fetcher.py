"""
fetcher.py -- WordPress REST API client.

The CMS is an external HTTP content source. Two reads are supported:
  GET {base}/wp-json/wp/v2/posts?_embed=1&per_page=..&page=..   (list)
  GET {base}/wp-json/wp/v2/posts?_embed=1&slug=..               (0 or 1 element)

Two failure modes, chosen by the caller:
  strict=False (public pages): unconfigured CMS, network errors, non-2xx and
      bad JSON all degrade to [] / None with a logged warning. Public pages
      render an empty state instead of crashing.
  strict=True (authenticated pages): the same conditions raise
      ContentUnavailable. Content there is required, not decoration.

Caching of fetched content is the caller's concern (see cache/store.py and
web/routes.py). This module holds no state beyond the HTTP session.
"""

import logging
from typing import Any, Optional

import requests

from core.config import get_settings
from core.models import Post, post_from_wp

logger = logging.getLogger("soloshe.fetcher")

_POSTS_PATH = "/wp-json/wp/v2/posts"

# Module-level session shared across all fetcher calls for connection pooling.
# max_redirects=3 replaces the requests default of 30 -- a CMS behind a CDN
# needs one or two hops at most.
_session = requests.Session()
_session.max_redirects = 3


class ContentUnavailable(Exception):
    """Raised by strict fetches when the CMS cannot supply content."""


def cms_base_url() -> Optional[str]:
    return get_settings().wordpress_url or None


def is_cms_configured() -> bool:
    return cms_base_url() is not None


def _get_json(params: dict[str, str], strict: bool) -> Optional[Any]:
    base = cms_base_url()
    if base is None:
        logger.warning("CMS not configured: WORDPRESS_URL/WP_URL environment variable is missing")
        if strict:
            raise ContentUnavailable("CMS is not configured.")
        return None
    try:
        resp = _session.get(f"{base}{_POSTS_PATH}", params=params, timeout=10)
        resp.raise_for_status()
        return resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning("CMS fetch failed (%s): %s", params, e)
        if strict:
            raise ContentUnavailable("CMS request failed.") from e
        return None


def fetch_posts(
    page: int = 1,
    per_page: int = 10,
    category: Optional[int] = None,
    tag: Optional[int] = None,
    search: Optional[str] = None,
    strict: bool = False,
) -> list[Post]:
    """Fetch one page of published posts with embedded media and author."""
    params: dict[str, str] = {
        "_embed": "1",
        "per_page": str(per_page),
        "page": str(page),
    }
    if category:
        params["categories"] = str(category)
    if tag:
        params["tags"] = str(tag)
    if search:
        params["search"] = search

    data = _get_json(params, strict)
    if not isinstance(data, list):
        if strict and data is not None:
            raise ContentUnavailable("CMS returned an unexpected payload.")
        return []
    return [post_from_wp(item) for item in data if isinstance(item, dict)]


def fetch_post_by_slug(slug: str, strict: bool = False) -> Optional[Post]:
    """Fetch a single post by slug. None when the CMS has no such post."""
    data = _get_json({"_embed": "1", "slug": slug}, strict)
    if not isinstance(data, list) or not data or not isinstance(data[0], dict):
        return None
    return post_from_wp(data[0])

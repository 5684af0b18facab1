from dataclasses import dataclass
from typing import Any, Optional

from core.sanitize import sanitize_html, strip_tags

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

# Cache tag namespaces emitted by content pages. The revalidation webhook only
# accepts tags equal to, or prefixed by, one of these.
TAG_POSTS = "posts"
TAG_POST_PREFIX = "post:"
TAG_POSTS_PAGE_PREFIX = "posts:page:"
ALLOWED_TAG_NAMESPACES = (TAG_POSTS, TAG_POST_PREFIX, TAG_POSTS_PAGE_PREFIX)

# Signed-session key set by /api/preview. While true, content pages skip the
# page cache.
DRAFT_MODE_SESSION_KEY = "draft_mode"


def post_tags(slug: str) -> list[str]:
    return [TAG_POSTS, f"{TAG_POST_PREFIX}{slug}"]


def post_list_tags(page: int) -> list[str]:
    return [TAG_POSTS, f"{TAG_POSTS_PAGE_PREFIX}{page}"]


@dataclass
class FeaturedMedia:
    source_url: str
    alt_text: str = ""
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass
class Post:
    """A CMS post as the site renders it.

    title_html / excerpt_html / content_html are the CMS "rendered" fields
    after allow-list sanitization. title_text is the tag-free title used in
    <title> and link text.
    """

    id: int
    slug: str
    date: str
    title_html: str
    title_text: str
    excerpt_html: str
    content_html: str
    status: str = "publish"
    link: str = ""
    featured_media: Optional[FeaturedMedia] = None
    author_name: Optional[str] = None


def _rendered(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key) or {}
    if isinstance(value, dict):
        return value.get("rendered") or ""
    return ""


def post_from_wp(payload: dict[str, Any]) -> Post:
    """Map a WordPress REST post object (fetched with _embed=1) to a Post."""
    embedded = payload.get("_embedded") or {}

    media: Optional[FeaturedMedia] = None
    media_list = embedded.get("wp:featuredmedia") or []
    if media_list and isinstance(media_list[0], dict) and media_list[0].get("source_url"):
        first = media_list[0]
        details = first.get("media_details") or {}
        media = FeaturedMedia(
            source_url=first["source_url"],
            alt_text=first.get("alt_text") or "",
            width=details.get("width"),
            height=details.get("height"),
        )

    author_name: Optional[str] = None
    authors = embedded.get("author") or []
    if authors and isinstance(authors[0], dict):
        author_name = authors[0].get("name")

    title = _rendered(payload, "title")
    return Post(
        id=int(payload.get("id", 0)),
        slug=str(payload.get("slug", "")),
        date=str(payload.get("date", "")),
        title_html=sanitize_html(title),
        title_text=strip_tags(title),
        excerpt_html=sanitize_html(_rendered(payload, "excerpt")),
        content_html=sanitize_html(_rendered(payload, "content")),
        status=str(payload.get("status", "publish")),
        link=str(payload.get("link", "")),
        featured_media=media,
        author_name=author_name,
    )

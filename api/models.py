"""
API request and response models for the site's JSON endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
core/models.py, which own the internal domain representation.

Separation of concerns: core/ + auth/ models = domain truth; api/ models = API contract.
"""

from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, StrictStr, field_validator

from core.models import ALLOWED_TAG_NAMESPACES, TAG_POST_PREFIX, TAG_POSTS, TAG_POSTS_PAGE_PREFIX

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_REVALIDATE_BODY_BYTES = 10 * 1024  # 10 KiB
MAX_REVALIDATE_ITEMS = 25
MAX_REVALIDATE_ITEM_LENGTH = 200


# ---------------------------------------------------------------------------
# Revalidation webhook
# ---------------------------------------------------------------------------


def _relative_path(value: str) -> str:
    """Only server-local paths may be purged; absolute URLs are rejected."""
    if not value.startswith("/"):
        raise ValueError("path must start with '/'")
    if "://" in value or "http" in value.lower():
        raise ValueError("path must be relative, not a URL")
    return value


def _namespaced_tag(value: str) -> str:
    if value == TAG_POSTS or value.startswith((TAG_POST_PREFIX, TAG_POSTS_PAGE_PREFIX)):
        return value
    raise ValueError(f"tag must be one of {', '.join(ALLOWED_TAG_NAMESPACES)} or start with a namespace prefix")


_PathItem = Annotated[StrictStr, Field(max_length=MAX_REVALIDATE_ITEM_LENGTH), AfterValidator(_relative_path)]
_TagItem = Annotated[StrictStr, Field(max_length=MAX_REVALIDATE_ITEM_LENGTH), AfterValidator(_namespaced_tag)]


class RevalidateTargets(BaseModel):
    """The paths/tags half of a POST /api/revalidate body.

    The secret is checked by the route BEFORE this model runs, so an
    unauthorized caller never learns which field rules exist. Absent or null
    fields mean "nothing to purge". Any invalid item rejects the whole
    request; nothing is partially applied.
    """

    model_config = ConfigDict(extra="ignore")

    paths: list[_PathItem] = Field(default_factory=list, max_length=MAX_REVALIDATE_ITEMS)
    tags: list[_TagItem] = Field(default_factory=list, max_length=MAX_REVALIDATE_ITEMS)

    @field_validator("paths", "tags", mode="before")
    @classmethod
    def null_is_empty(cls, value):
        return [] if value is None else value


class RevalidateResponse(BaseModel):
    """200 body for POST /api/revalidate. now is epoch milliseconds."""

    revalidated: bool = True
    paths: list[str]
    tags: list[str]
    now: int


class WebhookError(BaseModel):
    """Flat error body used by the webhook endpoints."""

    error: str


# ---------------------------------------------------------------------------
# Shared envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)

"""
api/routes/revalidate.py -- CMS cache-invalidation webhook.

POST /api/revalidate
  body: {"secret": str, "paths"?: [str], "tags"?: [str]}   (<= 10 KiB)

Validation order -- each step short-circuits with its own status:
  1. body size        > 10 KiB by Content-Length OR by bytes received -> 413
  2. JSON parse       not JSON, or not an object                      -> 400
  3. secret           not exactly the server's secret                 -> 401
  4. paths            <= 25 relative paths, each <= 200 chars         -> 400
  5. tags             <= 25 namespaced tags, each <= 200 chars        -> 400
  6. apply            purge every path, then every tag
  7. respond          200 {revalidated, paths, tags, now}

Nothing is purged until every rule has passed. Purging is idempotent, so a
CMS that retries a delivery does no harm.

The body is read incrementally and reading stops one byte past the limit, so
a lying Content-Length header cannot make the server buffer a large body.

Unexpected errors return 500 with the exception message. No secret material
ever reaches an exception message in this module.
"""

from __future__ import annotations

import hmac
import json
import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from api.models import MAX_REVALIDATE_BODY_BYTES, RevalidateResponse, RevalidateTargets, WebhookError
from core.config import get_settings

logger = logging.getLogger("soloshe.revalidate")

router = APIRouter()


class BodyTooLarge(Exception):
    pass


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=WebhookError(error=message).model_dump())


async def _read_capped_body(request: Request, limit: int) -> bytes:
    """Read the request body, raising BodyTooLarge past limit bytes."""
    declared = request.headers.get("content-length")
    if declared is not None:
        try:
            if int(declared) > limit:
                raise BodyTooLarge()
        except ValueError:
            pass  # malformed header; the byte count below still applies
    chunks: list[bytes] = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > limit:
            raise BodyTooLarge()
        chunks.append(chunk)
    return b"".join(chunks)


def _first_validation_message(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(part) for part in err.get("loc", ()))
    ctx_error = (err.get("ctx") or {}).get("error")
    message = str(ctx_error) if ctx_error else err.get("msg", "invalid value")
    return f"{loc}: {message}" if loc else message


def _secret_matches(candidate: object, expected: str) -> bool:
    if not isinstance(candidate, str) or not candidate:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


@router.post("/revalidate", response_model=RevalidateResponse)
async def revalidate(request: Request) -> JSONResponse:
    """Purge cached pages named by path or tag after a CMS publish event."""
    try:
        return await _handle(request)
    except Exception as exc:
        logger.exception("Revalidation failed")
        return _error(500, str(exc) or "Internal server error")


async def _handle(request: Request) -> JSONResponse:
    expected_secret = get_settings().wordpress_revalidate_secret
    if not expected_secret:
        raise RuntimeError("REVALIDATE_SECRET environment variable is not set")

    # 1. size
    try:
        raw = await _read_capped_body(request, MAX_REVALIDATE_BODY_BYTES)
    except BodyTooLarge:
        return _error(413, f"Request body exceeds {MAX_REVALIDATE_BODY_BYTES} bytes")

    # 2. parse
    try:
        body = json.loads(raw)
    except ValueError:
        return _error(400, "Invalid JSON body")
    if not isinstance(body, dict):
        return _error(400, "Request body must be a JSON object")

    # 3. authorize
    if not _secret_matches(body.get("secret"), expected_secret):
        logger.warning("Revalidation rejected: invalid secret from %s", request.client.host if request.client else "unknown")
        return _error(401, "Invalid secret")

    # 4 + 5. field-validate, all or nothing
    try:
        targets = RevalidateTargets.model_validate(body)
    except ValidationError as exc:
        return _error(400, _first_validation_message(exc))

    # 6. apply
    cache = request.app.state.cache
    for path in targets.paths:
        cache.invalidate_path(path)
    for tag in targets.tags:
        cache.invalidate_tag(tag)
    logger.info("Revalidated %d path(s), %d tag(s)", len(targets.paths), len(targets.tags))

    # 7. respond
    return JSONResponse(
        content=RevalidateResponse(
            paths=targets.paths,
            tags=targets.tags,
            now=int(time.time() * 1000),
        ).model_dump()
    )

import logging
from typing import Awaitable, Callable

from fastapi import Request, Response
from pydantic import BaseModel

from atelier.infra.cache import ResponseCache

logger = logging.getLogger(__name__)


def listing_key(request: Request, user_id: str) -> str:
    return f"{request.url.path}|{request.url.query}|{user_id}"


async def cached_listing(
    cache: ResponseCache,
    key: str,
    build: Callable[[], Awaitable[BaseModel]],
) -> Response:
    cached = await cache.get(key)
    if cached is not None:
        return Response(content=cached, media_type="application/json", headers={"X-Cache": "hit"})
    body = (await build()).model_dump_json()
    await cache.set(key, body)
    return Response(content=body, media_type="application/json", headers={"X-Cache": "miss"})


async def invalidate_request_views(cache: ResponseCache, request_id: str | None = None) -> None:
    """Drop cached listings a write may have changed; called after the commit succeeds."""
    patterns = ["/v1/requests|*", "/v1/proposals|*"]
    if request_id:
        patterns.append(f"/v1/requests/{request_id}/*")
    removed = 0
    for pattern in patterns:
        removed += await cache.invalidate(pattern)
    if removed:
        logger.debug("response_cache_invalidated", extra={"extra": {"request_id": request_id, "removed": removed}})

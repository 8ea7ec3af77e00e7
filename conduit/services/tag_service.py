"""
Tag service — the tag vocabulary, served cache-aside from Redis.

Tags are append-only, so a short TTL plus invalidation on creation
(``article_service._resolve_tag_ids``) keeps the cached list fresh.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.cache import TAGS_KEY, cache
from conduit.config import settings
from conduit.models import Tag


async def list_tags(db: AsyncSession) -> list[str]:
    """Return every tag name, sorted ascending."""
    cached = await cache.get(TAGS_KEY)
    if cached is not None:
        return cached

    result = await db.execute(select(Tag.name).order_by(Tag.name.asc()))
    tags = list(result.scalars().all())

    await cache.set(TAGS_KEY, tags, ttl=settings.CACHE_TTL_TAGS)
    return tags

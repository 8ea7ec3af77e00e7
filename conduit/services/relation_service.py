"""
Relation service — favorite and follow edges.

Both edges are boolean state keyed by a composite primary key.  A
favorite also drives ``Article.favorites_count``; the edge row and the
counter are always written in the same savepoint, so no reader sees one
without the other.

Toggles are check-then-act: two concurrent callers can both see "absent"
and both insert.  The primary key rejects the loser, whose savepoint is
rolled back, leaving the state exactly as the winner left it.  That
rejection is the idempotent no-op path, never an error.
"""
import logging

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.errors import NotFoundError, ValidationError
from conduit.models import Article, Favorite, Follow, User
from conduit.services import article_service, profile_service

logger = logging.getLogger(__name__)


async def _favorite_exists(db: AsyncSession, user_id: int, article_id: int) -> bool:
    result = await db.execute(
        select(Favorite.user_id).where(
            Favorite.user_id == user_id, Favorite.article_id == article_id
        )
    )
    return result.scalar_one_or_none() is not None


async def _follow_exists(db: AsyncSession, follower_id: int, followed_id: int) -> bool:
    result = await db.execute(
        select(Follow.follower_id).where(
            Follow.follower_id == follower_id, Follow.followed_id == followed_id
        )
    )
    return result.scalar_one_or_none() is not None


def _bump_favorites(article_id: int, delta):
    return (
        update(Article)
        .where(Article.id == article_id)
        .values(favorites_count=Article.favorites_count + delta)
        .execution_options(synchronize_session=False)
    )


# ---------------------------------------------------------------------------
# Favorites
# ---------------------------------------------------------------------------

async def favorite_article(db: AsyncSession, slug: str, user_id: int) -> dict:
    """
    Mark *slug* as favorited by *user_id* and return the article view.

    Idempotent: the counter moves by one only on the Absent -> Present
    transition.
    """
    article_id = await article_service.article_id_for_slug(db, slug)

    if not await _favorite_exists(db, user_id, article_id):
        try:
            async with db.begin_nested():
                await db.execute(insert(Favorite).values(user_id=user_id, article_id=article_id))
                await db.execute(_bump_favorites(article_id, 1))
        except IntegrityError:
            if not await _favorite_exists(db, user_id, article_id):
                raise
            logger.info(
                "Concurrent favorite of article %s by user %s; keeping existing edge",
                article_id,
                user_id,
            )

    return await article_service.get_article(db, slug, user_id)


async def unfavorite_article(db: AsyncSession, slug: str, user_id: int) -> dict:
    """
    Remove the favorite edge, if any, and return the article view.

    The counter is decremented by the number of rows actually deleted, so
    a repeated or concurrent unfavorite leaves it untouched.
    """
    article_id = await article_service.article_id_for_slug(db, slug)

    async with db.begin_nested():
        result = await db.execute(
            delete(Favorite)
            .where(Favorite.user_id == user_id, Favorite.article_id == article_id)
            .execution_options(synchronize_session=False)
        )
        removed = result.rowcount
        if removed:
            await db.execute(_bump_favorites(article_id, -removed))

    return await article_service.get_article(db, slug, user_id)


async def repair_favorites_count(db: AsyncSession, slug: str | None = None) -> list[str]:
    """
    Recompute ``favorites_count`` from the favorites table.

    Only rows whose stored value has drifted are rewritten.  Returns the
    slugs that were repaired.  With *slug* the check is limited to that
    article (``NotFoundError`` if it does not exist).
    """
    live_count = (
        select(func.count())
        .select_from(Favorite)
        .where(Favorite.article_id == Article.id)
        .scalar_subquery()
    )

    q = select(Article.id, Article.slug).where(Article.favorites_count != live_count)
    if slug is not None:
        await article_service.article_id_for_slug(db, slug)
        q = q.where(Article.slug == slug)

    drifted = (await db.execute(q)).all()
    for article_id, drifted_slug in drifted:
        await db.execute(
            update(Article)
            .where(Article.id == article_id)
            .values(favorites_count=live_count)
            .execution_options(synchronize_session=False)
        )
        logger.warning("favorites_count drift repaired for article %r", drifted_slug)

    return [drifted_slug for _, drifted_slug in drifted]


# ---------------------------------------------------------------------------
# Follows
# ---------------------------------------------------------------------------

async def _follow_target(db: AsyncSession, username: str, follower_id: int, verb: str) -> User:
    result = await db.execute(select(User).where(User.username == username))
    target = result.scalar_one_or_none()
    if target is None:
        raise NotFoundError("Profile not found")
    if target.id == follower_id:
        raise ValidationError(f"Cannot {verb} yourself")
    return target


async def follow_user(db: AsyncSession, username: str, follower_id: int) -> dict:
    """Create the follower -> *username* edge if absent; return the profile."""
    target = await _follow_target(db, username, follower_id, "follow")

    if not await _follow_exists(db, follower_id, target.id):
        try:
            async with db.begin_nested():
                await db.execute(insert(Follow).values(follower_id=follower_id, followed_id=target.id))
        except IntegrityError:
            if not await _follow_exists(db, follower_id, target.id):
                raise
            logger.info("Concurrent follow of user %s by %s; edge already present", target.id, follower_id)

    return profile_service.build_profile(target.username, target.bio, target.image, True)


async def unfollow_user(db: AsyncSession, username: str, follower_id: int) -> dict:
    """Delete any follower -> *username* edge; the flag is re-read afterwards."""
    target = await _follow_target(db, username, follower_id, "unfollow")

    await db.execute(
        delete(Follow)
        .where(Follow.follower_id == follower_id, Follow.followed_id == target.id)
        .execution_options(synchronize_session=False)
    )
    following = await _follow_exists(db, follower_id, target.id)
    return profile_service.build_profile(target.username, target.bio, target.image, following)

"""
Article service — listing, feed and CRUD for the Article aggregate.

Design notes
------------
- Every read goes through ``_article_view_query``, which selects the
  Article together with two correlated ``EXISTS`` columns (``favorited``
  and ``following``) for the viewer.  The author is ``joinedload``-ed and
  tags ``selectinload``-ed, so a page costs two statements no matter how
  many items it holds.
- List pages carry ``COUNT(*) OVER ()`` so the rows and ``articlesCount``
  come from one statement and therefore one snapshot.  A separate COUNT
  runs only when the requested page is empty.
- Writes use Core ``insert``/``update`` inside ``begin_nested`` so a
  unique-slug violation rolls back just the failing write; the slug is
  regenerated and the write retried.
- Service functions flush but do not commit; the transaction boundary
  is owned by the ``get_db`` dependency in the router layer.
"""
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from sqlalchemy import delete, func, insert, literal, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from conduit.cache import cache
from conduit.config import settings
from conduit.database import after_commit
from conduit.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from conduit.models import Article, Favorite, Follow, Tag, User, article_tags
from conduit.schemas import ArticleCreate, ArticleFilter, ArticleUpdate
from conduit.services import profile_service, slug_service

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _article_to_dict(article: Article, favorited, following) -> dict:
    """Serialise an Article with its viewer-relative flags."""
    return {
        "slug": article.slug,
        "title": article.title,
        "description": article.description,
        "body": article.body,
        "tagList": sorted(t.name for t in article.tags),
        "createdAt": _iso(article.created_at),
        "updatedAt": _iso(article.updated_at),
        "favorited": bool(favorited),
        "favoritesCount": article.favorites_count,
        "author": profile_service.user_to_profile(article.author, following),
    }


# ---------------------------------------------------------------------------
# Query builders
# ---------------------------------------------------------------------------

def _favorited_column(viewer_id: int | None):
    if viewer_id is None:
        return literal(False).label("favorited")
    return (
        select(Favorite.user_id)
        .where(Favorite.user_id == viewer_id, Favorite.article_id == Article.id)
        .exists()
        .label("favorited")
    )


def _article_view_query(viewer_id: int | None):
    return (
        select(
            Article,
            _favorited_column(viewer_id),
            profile_service.following_column(viewer_id, Article.author_id),
        )
        .options(joinedload(Article.author), selectinload(Article.tags))
        .execution_options(populate_existing=True)
    )


def _filter_conditions(filters: ArticleFilter) -> list:
    """AND-combined WHERE clauses for the list endpoint; absent filters add nothing."""
    conditions = []
    if filters.tag:
        conditions.append(Article.tags.any(Tag.name == filters.tag))
    if filters.author:
        conditions.append(Article.author.has(User.username == filters.author))
    if filters.favorited:
        conditions.append(
            Article.id.in_(
                select(Favorite.article_id)
                .join(User, User.id == Favorite.user_id)
                .where(User.username == filters.favorited)
            )
        )
    return conditions


def _feed_conditions(viewer_id: int) -> list:
    return [
        Article.author_id.in_(
            select(Follow.followed_id).where(Follow.follower_id == viewer_id)
        )
    ]


def _check_pagination(limit: int, offset: int) -> None:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValidationError("limit must be a positive integer")
    if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
        raise ValidationError("offset must be a non-negative integer")
    if offset > settings.MAX_OFFSET:
        raise ValidationError(f"offset must not exceed {settings.MAX_OFFSET}")


async def _page(
    db: AsyncSession,
    conditions: list,
    viewer_id: int | None,
    limit: int,
    offset: int,
) -> dict:
    _check_pagination(limit, offset)

    q = (
        _article_view_query(viewer_id)
        .add_columns(func.count().over().label("total"))
        .where(*conditions)
        .order_by(Article.created_at.desc(), Article.id.desc())
        .offset(offset)
        .limit(limit)
    )
    rows = (await db.execute(q)).all()

    if rows:
        total = rows[0].total
    elif offset == 0:
        total = 0
    else:
        count_q = select(func.count()).select_from(Article).where(*conditions)
        total = (await db.execute(count_q)).scalar_one()

    return {
        "articles": [
            _article_to_dict(row.Article, row.favorited, row.following) for row in rows
        ],
        "articlesCount": total,
    }


# ---------------------------------------------------------------------------
# Tag helpers
# ---------------------------------------------------------------------------

def sanitize_tag_list(tag_list: list[str] | None) -> list[str]:
    """Trim, drop blanks and de-duplicate (case-sensitive), keeping first-seen order."""
    if not tag_list:
        return []
    seen: dict[str, None] = {}
    for tag in tag_list:
        name = tag.strip()
        if name:
            seen.setdefault(name, None)
    return list(seen)


async def _resolve_tag_ids(db: AsyncSession, names: list[str]) -> list[int]:
    """
    Return tag ids for *names*, creating the missing ones.

    A concurrent request may create the same tag between our SELECT and
    INSERT; the savepoint absorbs the unique violation and the id is
    re-read.
    """
    if not names:
        return []

    result = await db.execute(select(Tag.name, Tag.id).where(Tag.name.in_(names)))
    ids = dict(result.all())

    created = False
    for name in names:
        if name in ids:
            continue
        try:
            async with db.begin_nested():
                inserted = await db.execute(insert(Tag).values(name=name).returning(Tag.id))
                ids[name] = inserted.scalar_one()
            created = True
        except IntegrityError:
            logger.info("Tag %r created concurrently; reusing it", name)
            existing = await db.execute(select(Tag.id).where(Tag.name == name))
            ids[name] = existing.scalar_one()

    if created:
        after_commit(db, cache.invalidate_tags)
    return [ids[name] for name in names]


async def _link_tags(db: AsyncSession, article_id: int, tag_ids: list[int]) -> None:
    if tag_ids:
        await db.execute(
            insert(article_tags),
            [{"article_id": article_id, "tag_id": tag_id} for tag_id in tag_ids],
        )


async def _write_with_unique_slug(
    db: AsyncSession,
    title: str,
    write: Callable[[str], Awaitable[None]],
) -> str:
    """
    Run ``write(slug)`` in a savepoint with a freshly generated slug,
    retrying when the slug was claimed between the check and the write.
    """
    for _ in range(settings.SLUG_MAX_ATTEMPTS):
        slug = await slug_service.generate_unique_slug(db, title)
        try:
            async with db.begin_nested():
                await write(slug)
        except IntegrityError:
            if not await slug_service.slug_exists(db, slug):
                raise
            logger.info("Slug %r was taken concurrently; regenerating", slug)
            continue
        return slug

    raise ConflictError("Could not allocate a unique slug for this title")


async def article_id_for_slug(db: AsyncSession, slug: str) -> int:
    """Resolve *slug* to the article id; raises ``NotFoundError``."""
    result = await db.execute(select(Article.id).where(Article.slug == slug))
    article_id = result.scalar_one_or_none()
    if article_id is None:
        raise NotFoundError("Article not found")
    return article_id


async def _get_owned(db: AsyncSession, slug: str, user_id: int, action: str) -> Article:
    result = await db.execute(select(Article).where(Article.slug == slug))
    article = result.scalar_one_or_none()
    if article is None:
        raise NotFoundError("Article not found")
    if article.author_id != user_id:
        raise ForbiddenError(f"Cannot {action} article")
    return article


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def list_articles(
    db: AsyncSession,
    filters: ArticleFilter | None = None,
    viewer_id: int | None = None,
    limit: int = settings.DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> dict:
    """
    Return ``{"articles": [...], "articlesCount": n}`` for articles matching
    every supplied filter, newest first.
    """
    return await _page(db, _filter_conditions(filters or ArticleFilter()), viewer_id, limit, offset)


async def list_feed(
    db: AsyncSession,
    viewer_id: int,
    limit: int = settings.DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> dict:
    """Articles written by authors *viewer_id* follows, newest first."""
    return await _page(db, _feed_conditions(viewer_id), viewer_id, limit, offset)


async def get_article(db: AsyncSession, slug: str, viewer_id: int | None = None) -> dict:
    """Return the article view for *slug*; raises ``NotFoundError``."""
    row = (await db.execute(_article_view_query(viewer_id).where(Article.slug == slug))).one_or_none()
    if row is None:
        raise NotFoundError("Article not found")
    return _article_to_dict(row.Article, row.favorited, row.following)


async def create_article(db: AsyncSession, author_id: int, data: ArticleCreate) -> dict:
    """
    Create an article owned by *author_id* and return its view.

    Missing tags are created on the fly; the slug is unique even when
    another request races us for the same title.
    """
    tag_ids = await _resolve_tag_ids(db, sanitize_tag_list(data.tag_list))

    async def write(slug: str) -> None:
        inserted = await db.execute(
            insert(Article)
            .values(
                slug=slug,
                title=data.title,
                description=data.description,
                body=data.body,
                author_id=author_id,
                favorites_count=0,
            )
            .returning(Article.id)
        )
        await _link_tags(db, inserted.scalar_one(), tag_ids)

    slug = await _write_with_unique_slug(db, data.title, write)
    logger.debug("Article %r created by user %s", slug, author_id)
    return await get_article(db, slug, author_id)


async def update_article(db: AsyncSession, slug: str, user_id: int, data: ArticleUpdate) -> dict:
    """
    Apply the fields present in *data* to the article at *slug*.

    Only the author may update.  The slug is regenerated only when the
    title actually changes; ``tagList`` replaces the tag set when given.
    """
    article = await _get_owned(db, slug, user_id, "update")
    article_id = article.id

    changes = data.model_dump(exclude_unset=True)
    tag_names = changes.pop("tag_list", None)
    values = {k: v for k, v in changes.items() if v is not None and k != "title"}

    new_title = changes.get("title")
    retitle = new_title is not None and new_title != article.title

    if not values and not retitle and tag_names is None:
        return await get_article(db, slug, user_id)

    tag_ids = None
    if tag_names is not None:
        tag_ids = await _resolve_tag_ids(db, sanitize_tag_list(tag_names))

    async def write(new_slug: str) -> None:
        row_values = dict(values, updated_at=func.now())
        if retitle:
            row_values.update(title=new_title, slug=new_slug)
        await db.execute(
            update(Article)
            .where(Article.id == article_id)
            .values(**row_values)
            .execution_options(synchronize_session=False)
        )
        if tag_ids is not None:
            await db.execute(delete(article_tags).where(article_tags.c.article_id == article_id))
            await _link_tags(db, article_id, tag_ids)

    if retitle:
        slug = await _write_with_unique_slug(db, new_title, write)
    else:
        async with db.begin_nested():
            await write(slug)

    return await get_article(db, slug, user_id)


async def delete_article(db: AsyncSession, slug: str, user_id: int) -> None:
    """
    Hard-delete the article at *slug*.  Comments, tag links and favorites
    go with it through ``ON DELETE CASCADE``.
    """
    article = await _get_owned(db, slug, user_id, "delete")
    await db.execute(
        delete(Article)
        .where(Article.id == article.id)
        .execution_options(synchronize_session=False)
    )
    db.expunge(article)

"""
Comment service — comments on an article.

Comments are listed newest first with the same viewer-relative author
projection articles use.  Only the comment's author may delete it.
"""
from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from conduit.errors import ForbiddenError, NotFoundError
from conduit.models import Comment
from conduit.schemas import CommentCreate
from conduit.services import article_service, profile_service


def _comment_to_dict(comment: Comment, following) -> dict:
    return {
        "id": comment.id,
        "createdAt": comment.created_at.isoformat() if comment.created_at else None,
        "updatedAt": comment.updated_at.isoformat() if comment.updated_at else None,
        "body": comment.body,
        "author": profile_service.user_to_profile(comment.author, following),
    }


def _comment_view_query(viewer_id: int | None):
    return (
        select(Comment, profile_service.following_column(viewer_id, Comment.author_id))
        .options(joinedload(Comment.author))
        .execution_options(populate_existing=True)
    )


async def list_comments(db: AsyncSession, slug: str, viewer_id: int | None = None) -> list[dict]:
    article_id = await article_service.article_id_for_slug(db, slug)
    q = (
        _comment_view_query(viewer_id)
        .where(Comment.article_id == article_id)
        .order_by(Comment.created_at.desc(), Comment.id.desc())
    )
    rows = (await db.execute(q)).all()
    return [_comment_to_dict(comment, following) for comment, following in rows]


async def add_comment(
    db: AsyncSession,
    slug: str,
    author_id: int,
    data: CommentCreate,
) -> dict:
    """Attach a comment by *author_id* to the article at *slug*."""
    article_id = await article_service.article_id_for_slug(db, slug)

    inserted = await db.execute(
        insert(Comment)
        .values(body=data.body, article_id=article_id, author_id=author_id)
        .returning(Comment.id)
    )
    comment_id = inserted.scalar_one()

    comment, following = (
        await db.execute(_comment_view_query(author_id).where(Comment.id == comment_id))
    ).one()
    return _comment_to_dict(comment, following)


async def delete_comment(db: AsyncSession, slug: str, comment_id: int, user_id: int) -> None:
    """
    Delete comment *comment_id* from the article at *slug*.

    A comment that exists but belongs to another article is reported as
    not found.
    """
    article_id = await article_service.article_id_for_slug(db, slug)

    result = await db.execute(
        select(Comment.author_id).where(
            Comment.id == comment_id, Comment.article_id == article_id
        )
    )
    author_id = result.scalar_one_or_none()
    if author_id is None:
        raise NotFoundError("Comment not found")
    if author_id != user_id:
        raise ForbiddenError("Cannot delete comment")

    await db.execute(
        delete(Comment)
        .where(Comment.id == comment_id)
        .execution_options(synchronize_session=False)
    )

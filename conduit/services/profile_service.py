"""
Profile service — viewer-relative author projections.

``build_profile`` is the single place the profile shape is assembled;
article and comment serialisers call it with a ``following`` flag that
was computed inside the same SELECT that loaded the row (see
``following_column``), so projecting a page of N items never costs N
extra queries.
"""
from sqlalchemy import ColumnElement, literal, select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.errors import NotFoundError
from conduit.models import Follow, User


def build_profile(
    username: str,
    bio: str | None,
    image: str | None,
    following: bool,
) -> dict:
    return {
        "username": username,
        "bio": bio,
        "image": image,
        "following": following,
    }


def following_column(viewer_id: int | None, author_id_col) -> ColumnElement:
    """
    Correlated ``EXISTS`` telling whether *viewer_id* follows the user in
    *author_id_col*.  Anonymous viewers get a constant false.
    """
    if viewer_id is None:
        return literal(False).label("following")
    return (
        select(Follow.follower_id)
        .where(Follow.follower_id == viewer_id, Follow.followed_id == author_id_col)
        .exists()
        .label("following")
    )


def user_to_profile(user: User, following) -> dict:
    return build_profile(user.username, user.bio, user.image, bool(following))


async def get_profile(db: AsyncSession, username: str, viewer_id: int | None) -> dict:
    """Return the profile of *username* as seen by *viewer_id*."""
    q = select(User, following_column(viewer_id, User.id)).where(User.username == username)
    row = (await db.execute(q)).one_or_none()
    if row is None:
        raise NotFoundError("Profile not found")

    user, following = row
    return user_to_profile(user, following)

from fastapi import Depends, Query, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.config import settings
from conduit.database import get_db
from conduit.errors import UnauthenticatedError
from conduit.models import User


class PaginationParams:
    """
    Reusable FastAPI dependency that parses ``limit`` / ``offset`` query
    parameters.

    Attributes
    ----------
    limit:
        Page size (minimum 1), clamped to ``settings.MAX_PAGE_SIZE``
        regardless of the value supplied by the caller.
    offset:
        Number of matching rows to skip (0 to ``settings.MAX_OFFSET``).
    """

    def __init__(
        self,
        limit: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            description="Number of articles returned per page.",
        ),
        offset: int = Query(
            0,
            ge=0,
            le=settings.MAX_OFFSET,
            description="Number of articles to skip.",
        ),
    ) -> None:
        self.limit = min(limit, settings.MAX_PAGE_SIZE)
        self.offset = offset


# ---------------------------------------------------------------------------
# Viewer identity
#
# Credentials are verified upstream; the gateway forwards the authenticated
# user id in ``settings.VIEWER_HEADER``.  Ids that do not parse or do not
# match a user are treated as anonymous.
# ---------------------------------------------------------------------------

async def get_optional_viewer(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> int | None:
    raw = request.headers.get(settings.VIEWER_HEADER)
    if not raw:
        return None
    try:
        viewer_id = int(raw)
    except ValueError:
        return None
    if viewer_id <= 0:
        return None

    exists = await db.execute(select(User.id).where(User.id == viewer_id))
    return exists.scalar_one_or_none()


async def get_viewer(viewer_id: int | None = Depends(get_optional_viewer)) -> int:
    if viewer_id is None:
        raise UnauthenticatedError("Authentication required")
    return viewer_id

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.config import settings
from conduit.database import get_db
from conduit.dependencies import get_optional_viewer, get_viewer
from conduit.services import profile_service, relation_service

router = APIRouter(prefix=f"{settings.API_PREFIX}/profiles", tags=["profiles"])

@router.get("/{username}")
async def get_profile(
    username: str,
    viewer_id: int | None = Depends(get_optional_viewer),
    db: AsyncSession = Depends(get_db),
):
    return {"profile": await profile_service.get_profile(db, username, viewer_id)}

@router.post("/{username}/follow")
async def follow(
    username: str,
    viewer_id: int = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return {"profile": await relation_service.follow_user(db, username, viewer_id)}

@router.delete("/{username}/follow")
async def unfollow(
    username: str,
    viewer_id: int = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return {"profile": await relation_service.unfollow_user(db, username, viewer_id)}

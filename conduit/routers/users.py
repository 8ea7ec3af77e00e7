from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.config import settings
from conduit.database import get_db
from conduit.dependencies import get_viewer
from conduit.schemas import UserCreateRequest, UserUpdateRequest
from conduit.services import user_service

router = APIRouter(prefix=settings.API_PREFIX, tags=["users"])

@router.post("/users", status_code=201)
async def register_user(payload: UserCreateRequest, db: AsyncSession = Depends(get_db)):
    return {"user": await user_service.register_user(db, payload.user)}

@router.get("/user")
async def current_user(viewer_id: int = Depends(get_viewer), db: AsyncSession = Depends(get_db)):
    return {"user": await user_service.get_user(db, viewer_id)}

@router.put("/user")
async def update_current_user(
    payload: UserUpdateRequest,
    viewer_id: int = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return {"user": await user_service.update_user(db, viewer_id, payload.user)}

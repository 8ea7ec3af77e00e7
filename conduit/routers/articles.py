from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.config import settings
from conduit.database import get_db
from conduit.dependencies import PaginationParams, get_optional_viewer, get_viewer
from conduit.schemas import ArticleCreateRequest, ArticleFilter, ArticleUpdateRequest, CommentCreateRequest
from conduit.services import article_service, comment_service, relation_service

router = APIRouter(prefix=f"{settings.API_PREFIX}/articles", tags=["articles"])

@router.get("")
async def list_articles(
    tag: str | None = Query(None),
    author: str | None = Query(None),
    favorited: str | None = Query(None),
    pagination: PaginationParams = Depends(),
    viewer_id: int | None = Depends(get_optional_viewer),
    db: AsyncSession = Depends(get_db),
):
    filters = ArticleFilter(tag=tag, author=author, favorited=favorited)
    return await article_service.list_articles(
        db, filters, viewer_id, pagination.limit, pagination.offset
    )

@router.get("/feed")
async def feed(
    pagination: PaginationParams = Depends(),
    viewer_id: int = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.list_feed(db, viewer_id, pagination.limit, pagination.offset)

@router.get("/{slug}")
async def get_article(
    slug: str,
    viewer_id: int | None = Depends(get_optional_viewer),
    db: AsyncSession = Depends(get_db),
):
    return {"article": await article_service.get_article(db, slug, viewer_id)}

@router.post("", status_code=201)
async def create_article(
    payload: ArticleCreateRequest,
    viewer_id: int = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return {"article": await article_service.create_article(db, viewer_id, payload.article)}

@router.put("/{slug}")
async def update_article(
    slug: str,
    payload: ArticleUpdateRequest,
    viewer_id: int = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return {"article": await article_service.update_article(db, slug, viewer_id, payload.article)}

@router.delete("/{slug}", status_code=204)
async def delete_article(
    slug: str,
    viewer_id: int = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    await article_service.delete_article(db, slug, viewer_id)
    return Response(status_code=204)

@router.post("/{slug}/favorite")
async def favorite_article(
    slug: str,
    viewer_id: int = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return {"article": await relation_service.favorite_article(db, slug, viewer_id)}

@router.delete("/{slug}/favorite")
async def unfavorite_article(
    slug: str,
    viewer_id: int = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return {"article": await relation_service.unfavorite_article(db, slug, viewer_id)}

@router.get("/{slug}/comments")
async def list_comments(
    slug: str,
    viewer_id: int | None = Depends(get_optional_viewer),
    db: AsyncSession = Depends(get_db),
):
    return {"comments": await comment_service.list_comments(db, slug, viewer_id)}

@router.post("/{slug}/comments", status_code=201)
async def add_comment(
    slug: str,
    payload: CommentCreateRequest,
    viewer_id: int = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    return {"comment": await comment_service.add_comment(db, slug, viewer_id, payload.comment)}

@router.delete("/{slug}/comments/{comment_id}", status_code=204)
async def delete_comment(
    slug: str,
    comment_id: int,
    viewer_id: int = Depends(get_viewer),
    db: AsyncSession = Depends(get_db),
):
    await comment_service.delete_comment(db, slug, comment_id, viewer_id)
    return Response(status_code=204)

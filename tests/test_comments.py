"""
Comment endpoint tests — adding, listing and deleting comments, plus the
ownership and not-found rules for deletion.
"""
import pytest
from httpx import AsyncClient

from tests.conftest import auth


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _user_and_article(client: AsyncClient, api: str, suffix: str) -> tuple[int, str]:
    """Register ``user_<suffix>`` and publish one article; return (user_id, slug)."""
    user_resp = await client.post(f"{api}/users", json={
        "user": {"username": f"user_{suffix}", "email": f"user_{suffix}@example.com"},
    })
    assert user_resp.status_code == 201
    user_id = user_resp.json()["user"]["id"]

    article_resp = await client.post(
        f"{api}/articles",
        json={"article": {"title": f"Article for {suffix}", "description": "d", "body": "b"}},
        headers=auth(user_id),
    )
    assert article_resp.status_code == 201
    return user_id, article_resp.json()["article"]["slug"]


async def _comment(client: AsyncClient, api: str, slug: str, user_id: int, body: str) -> dict:
    resp = await client.post(
        f"{api}/articles/{slug}/comments",
        json={"comment": {"body": body}},
        headers=auth(user_id),
    )
    assert resp.status_code == 201
    return resp.json()["comment"]


# ---------------------------------------------------------------------------
# Add / list
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_add_comment(async_client: AsyncClient, api: str):
    user_id, slug = await _user_and_article(async_client, api, "add")

    comment = await _comment(async_client, api, slug, user_id, "Great article!")

    assert comment["body"] == "Great article!"
    assert comment["author"]["username"] == "user_add"
    assert comment["author"]["following"] is False
    assert isinstance(comment["id"], int)
    assert comment["createdAt"] is not None


@pytest.mark.asyncio
async def test_list_comments_newest_first(async_client: AsyncClient, api: str):
    user_id, slug = await _user_and_article(async_client, api, "many")
    for i in range(3):
        await _comment(async_client, api, slug, user_id, f"Comment {i}")

    resp = await async_client.get(f"{api}/articles/{slug}/comments")
    assert resp.status_code == 200
    bodies = [c["body"] for c in resp.json()["comments"]]
    assert bodies == ["Comment 2", "Comment 1", "Comment 0"]


@pytest.mark.asyncio
async def test_list_comments_following_flag(async_client: AsyncClient, api: str):
    author_id, slug = await _user_and_article(async_client, api, "talker")
    reader_id, _ = await _user_and_article(async_client, api, "listener")
    await _comment(async_client, api, slug, author_id, "Hello")
    await async_client.post(f"{api}/profiles/user_talker/follow", headers=auth(reader_id))

    as_reader = (await async_client.get(f"{api}/articles/{slug}/comments", headers=auth(reader_id))).json()
    anonymous = (await async_client.get(f"{api}/articles/{slug}/comments")).json()

    assert as_reader["comments"][0]["author"]["following"] is True
    assert anonymous["comments"][0]["author"]["following"] is False


@pytest.mark.asyncio
async def test_comment_on_nonexistent_article(async_client: AsyncClient, api: str):
    user_id, _ = await _user_and_article(async_client, api, "ghost")
    resp = await async_client.post(
        f"{api}/articles/missing/comments",
        json={"comment": {"body": "Ghost comment"}},
        headers=auth(user_id),
    )
    assert resp.status_code == 404
    assert (await async_client.get(f"{api}/articles/missing/comments")).status_code == 404


@pytest.mark.asyncio
async def test_comment_requires_viewer(async_client: AsyncClient, api: str):
    _, slug = await _user_and_article(async_client, api, "anon")
    resp = await async_client.post(
        f"{api}/articles/{slug}/comments", json={"comment": {"body": "hi"}}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_comment_missing_body_returns_422(async_client: AsyncClient, api: str):
    user_id, slug = await _user_and_article(async_client, api, "empty")
    resp = await async_client.post(
        f"{api}/articles/{slug}/comments", json={"comment": {}}, headers=auth(user_id)
    )
    assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_own_comment(async_client: AsyncClient, api: str):
    user_id, slug = await _user_and_article(async_client, api, "tidy")
    comment = await _comment(async_client, api, slug, user_id, "Oops")

    resp = await async_client.delete(
        f"{api}/articles/{slug}/comments/{comment['id']}", headers=auth(user_id)
    )
    assert resp.status_code == 204
    listed = (await async_client.get(f"{api}/articles/{slug}/comments")).json()
    assert listed["comments"] == []


@pytest.mark.asyncio
async def test_delete_comment_by_non_author_forbidden(async_client: AsyncClient, api: str):
    author_id, slug = await _user_and_article(async_client, api, "keeper")
    other_id, _ = await _user_and_article(async_client, api, "meddler")
    comment = await _comment(async_client, api, slug, author_id, "Mine")

    resp = await async_client.delete(
        f"{api}/articles/{slug}/comments/{comment['id']}", headers=auth(other_id)
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_delete_comment_wrong_article_404(async_client: AsyncClient, api: str):
    user_id, slug = await _user_and_article(async_client, api, "home")
    _, other_slug = await _user_and_article(async_client, api, "away")
    comment = await _comment(async_client, api, slug, user_id, "Here")

    resp = await async_client.delete(
        f"{api}/articles/{other_slug}/comments/{comment['id']}", headers=auth(user_id)
    )
    assert resp.status_code == 404
    assert resp.json() == {"errors": {"body": ["Comment not found"]}}

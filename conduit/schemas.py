from pydantic import BaseModel, ConfigDict, Field


# --- User ---

class UserCreate(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255)
    bio: str | None = None
    image: str | None = Field(None, max_length=500)


class UserUpdate(BaseModel):
    username: str | None = Field(None, min_length=1, max_length=100)
    email: str | None = Field(None, min_length=3, max_length=255)
    bio: str | None = None
    image: str | None = Field(None, max_length=500)


class UserCreateRequest(BaseModel):
    user: UserCreate


class UserUpdateRequest(BaseModel):
    user: UserUpdate


# --- Article ---

class ArticleCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    description: str = Field(min_length=1)
    body: str = Field(min_length=1)
    tag_list: list[str] | None = Field(None, alias="tagList")

    model_config = ConfigDict(populate_by_name=True)


class ArticleUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=300)
    description: str | None = None
    body: str | None = None
    tag_list: list[str] | None = Field(None, alias="tagList")

    model_config = ConfigDict(populate_by_name=True)


class ArticleCreateRequest(BaseModel):
    article: ArticleCreate


class ArticleUpdateRequest(BaseModel):
    article: ArticleUpdate


# --- Comment ---

class CommentCreate(BaseModel):
    body: str = Field(min_length=1)


class CommentCreateRequest(BaseModel):
    comment: CommentCreate


# --- Query filters ---

class ArticleFilter(BaseModel):
    tag: str | None = None
    author: str | None = None
    favorited: str | None = None

"""
User service — registration and profile updates for the User aggregate.

Credentials live outside this service: the password hash column is
written by the authentication collaborator and never read here.
Email and username uniqueness is checked up front for a precise error
message; the unique constraints remain the backstop and a violation that
slips through a race is reported as the same ``ConflictError``.
"""
from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.errors import ConflictError, NotFoundError
from conduit.models import User
from conduit.schemas import UserCreate, UserUpdate


def _user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "bio": user.bio,
        "image": user.image,
    }


async def _load(db: AsyncSession, user_id: int) -> User:
    q = select(User).where(User.id == user_id).execution_options(populate_existing=True)
    user = (await db.execute(q)).scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")
    return user


async def _ensure_available(
    db: AsyncSession,
    email: str | None,
    username: str | None,
    exclude_id: int | None = None,
) -> None:
    if email is not None:
        q = select(User.id).where(User.email == email)
        owner = (await db.execute(q)).scalar_one_or_none()
        if owner is not None and owner != exclude_id:
            raise ConflictError("Email already registered")
    if username is not None:
        q = select(User.id).where(User.username == username)
        owner = (await db.execute(q)).scalar_one_or_none()
        if owner is not None and owner != exclude_id:
            raise ConflictError("Username already taken")


async def register_user(db: AsyncSession, data: UserCreate) -> dict:
    await _ensure_available(db, data.email, data.username)
    try:
        async with db.begin_nested():
            inserted = await db.execute(
                insert(User)
                .values(
                    email=data.email,
                    username=data.username,
                    bio=data.bio,
                    image=data.image,
                )
                .returning(User.id)
            )
            user_id = inserted.scalar_one()
    except IntegrityError:
        raise ConflictError("A user with this username or email already exists")
    return _user_to_dict(await _load(db, user_id))


async def get_user(db: AsyncSession, user_id: int) -> dict:
    return _user_to_dict(await _load(db, user_id))


async def update_user(db: AsyncSession, user_id: int, data: UserUpdate) -> dict:
    """
    Apply the fields present in *data* to *user_id*.

    ``bio`` and ``image`` may be set to null to clear them; email and
    username are ignored when null.
    """
    current = await _load(db, user_id)
    changes = data.model_dump(exclude_unset=True)

    values = {}
    for field in ("email", "username"):
        value = changes.get(field)
        if value is not None and value != getattr(current, field):
            values[field] = value
    for field in ("bio", "image"):
        if field in changes:
            values[field] = changes[field]

    if values:
        await _ensure_available(db, values.get("email"), values.get("username"), user_id)
        try:
            async with db.begin_nested():
                await db.execute(
                    update(User)
                    .where(User.id == user_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
        except IntegrityError:
            raise ConflictError("A user with this username or email already exists")

    return _user_to_dict(await _load(db, user_id))

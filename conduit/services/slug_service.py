"""
Slug service — turns article titles into unique, URL-safe identifiers.

The existence check here is advisory only: two writers can pass it with
the same candidate.  The unique index on ``articles.slug`` is the final
arbiter, and ``article_service`` retries with a fresh slug when an
insert or update trips it.
"""
import secrets
import string

from slugify import slugify
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.config import settings
from conduit.errors import ConflictError
from conduit.models import Article

_TOKEN_ALPHABET = string.ascii_lowercase + string.digits

SHORT_SUFFIX = 6
WIDE_SUFFIX = 12

# Leaves room for "-" plus the wide suffix inside articles.slug (String(350)).
_BASE_MAX_LENGTH = 320


def random_token(length: int = SHORT_SUFFIX) -> str:
    """Return *length* random lowercase alphanumerics."""
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


def slug_base(title: str) -> str:
    """
    Lowercase, hyphenated ASCII form of *title*.

    Diacritics are transliterated and punctuation dropped; the result may
    be empty for titles made only of symbols.
    """
    return slugify(title, max_length=_BASE_MAX_LENGTH)


async def slug_exists(db: AsyncSession, slug: str) -> bool:
    result = await db.execute(select(Article.id).where(Article.slug == slug))
    return result.scalar_one_or_none() is not None


async def generate_unique_slug(db: AsyncSession, title: str) -> str:
    """
    Return a slug derived from *title* that no article currently uses.

    The bare base is tried first, then ``<base>-<6 chars>``; once
    ``SLUG_WIDEN_AFTER`` candidates have collided the suffix grows to
    12 characters.  Raises ``ConflictError`` after ``SLUG_MAX_ATTEMPTS``
    candidates.
    """
    base = slug_base(title)
    candidate = base or random_token()

    for attempt in range(1, settings.SLUG_MAX_ATTEMPTS + 1):
        if not await slug_exists(db, candidate):
            return candidate

        width = WIDE_SUFFIX if attempt >= settings.SLUG_WIDEN_AFTER else SHORT_SUFFIX
        suffix = random_token(width)
        candidate = f"{base}-{suffix}" if base else suffix

    raise ConflictError("Could not allocate a unique slug for this title")

"""Link service: short link persistence, status changes and the redirect lookup store."""

import secrets
import string
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clicktrail.core.config import get_settings
from clicktrail.core.database import async_session_factory
from clicktrail.core.redis import cache_link, get_cached_link, invalidate_link_cache
from clicktrail.core.security import hash_password
from clicktrail.exceptions import NotFoundError, PersistenceError, ValidationError
from clicktrail.models.link import LinkStatus, ShortLink
from clicktrail.schemas.link import LinkRecord

logger = structlog.get_logger()

# Characters for random short code generation (base62)
SHORT_CODE_CHARS = string.ascii_lowercase + string.ascii_uppercase + string.digits
SHORT_CODE_LENGTH = 6
SHORT_CODE_MIN_LENGTH = 6
SHORT_CODE_MAX_LENGTH = 50

# Status changes a link may go through; everything else is rejected
ALLOWED_TRANSITIONS: dict[LinkStatus, frozenset[LinkStatus]] = {
    LinkStatus.ACTIVE: frozenset({LinkStatus.DISABLED, LinkStatus.EXPIRED, LinkStatus.DELETED}),
    LinkStatus.DISABLED: frozenset({LinkStatus.ACTIVE, LinkStatus.DELETED}),
    LinkStatus.EXPIRED: frozenset({LinkStatus.DELETED}),
    LinkStatus.DELETED: frozenset(),
}


def generate_short_code(length: int = SHORT_CODE_LENGTH) -> str:
    """Generate a random short code using base62 characters."""
    return "".join(secrets.choice(SHORT_CODE_CHARS) for _ in range(length))


async def is_short_code_available(session: AsyncSession, short_code: str) -> bool:
    """Check if a short code is available (not already used)."""
    result = await session.execute(
        select(ShortLink.id).where(ShortLink.short_code == short_code)
    )
    return result.scalar_one_or_none() is None


async def generate_unique_short_code(
    session: AsyncSession,
    max_attempts: int = 10,
) -> str:
    """Generate a unique short code with collision detection.

    Raises ValidationError if unable to generate unique code after max_attempts.
    """
    for _ in range(max_attempts):
        code = generate_short_code()
        if await is_short_code_available(session, code):
            return code
    raise ValidationError("Unable to generate unique short code")


async def create_link(
    session: AsyncSession,
    owner_id: UUID,
    original_url: str,
    short_code: str | None = None,
    title: str | None = None,
    password: str | None = None,
    expires_at: datetime | None = None,
) -> ShortLink:
    """Create a new short link.

    A custom ``short_code`` must be 6-50 characters and unused; otherwise
    a random one is generated.
    """
    if short_code is not None:
        if not SHORT_CODE_MIN_LENGTH <= len(short_code) <= SHORT_CODE_MAX_LENGTH:
            raise ValidationError(
                f"Short code must be {SHORT_CODE_MIN_LENGTH}-{SHORT_CODE_MAX_LENGTH} characters"
            )
        if not await is_short_code_available(session, short_code):
            raise ValidationError(f"Short code '{short_code}' is already taken")
    else:
        short_code = await generate_unique_short_code(session)

    link = ShortLink(
        owner_id=owner_id,
        short_code=short_code,
        original_url=original_url,
        title=title,
        password_hash=hash_password(password) if password else None,
        expires_at=expires_at,
    )
    session.add(link)
    await session.flush()
    await session.refresh(link)
    return link


async def get_link_by_short_code(
    session: AsyncSession,
    short_code: str,
) -> ShortLink | None:
    """Get a link by its short code."""
    result = await session.execute(
        select(ShortLink).where(ShortLink.short_code == short_code)
    )
    return result.scalar_one_or_none()


async def get_owner_links(
    session: AsyncSession,
    owner_id: UUID,
    include_deleted: bool = False,
) -> list[ShortLink]:
    """Get all links of an owner, newest first."""
    query = select(ShortLink).where(ShortLink.owner_id == owner_id)
    if not include_deleted:
        query = query.where(ShortLink.status != LinkStatus.DELETED)
    result = await session.execute(query.order_by(ShortLink.created_at.desc()))
    return list(result.scalars().all())


async def change_status(
    session: AsyncSession,
    link: ShortLink,
    new_status: LinkStatus,
    reason: str | None = None,
) -> ShortLink:
    """Move a link to a new lifecycle status.

    Raises:
        ValidationError: If the transition is not allowed.
    """
    if new_status not in ALLOWED_TRANSITIONS[link.status]:
        raise ValidationError(
            f"Cannot change link status from {link.status.value} to {new_status.value}"
        )

    link.status = new_status
    link.disabled_reason = reason if new_status == LinkStatus.DISABLED else None
    await session.flush()
    await session.refresh(link)
    return link


async def increment_click_count(session: AsyncSession, short_code: str) -> None:
    """Atomically increment the click count for a link."""
    await session.execute(
        update(ShortLink)
        .where(ShortLink.short_code == short_code)
        .values(click_count=ShortLink.click_count + 1)
    )


async def mark_last_clicked(session: AsyncSession, short_code: str, clicked_at: datetime) -> None:
    """Advance ``last_clicked_at``; older timestamps never move it back."""
    await session.execute(
        update(ShortLink)
        .where(
            ShortLink.short_code == short_code,
            or_(ShortLink.last_clicked_at.is_(None), ShortLink.last_clicked_at < clicked_at),
        )
        .values(last_clicked_at=clicked_at)
    )


class LinkStore:
    """URL store used by the redirect path and the click recorder.

    Lookups go through the Redis link cache when ``cache_ttl`` is positive;
    status changes invalidate the cached entry.

    Usage:
        store = LinkStore(async_session_factory, cache_ttl=3600)
        link = await store.find_link("abc123")
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache_ttl: int = 0,
    ):
        self._session_factory = session_factory
        self._cache_ttl = cache_ttl

    @property
    def cache_enabled(self) -> bool:
        return self._cache_ttl > 0

    async def find_link(self, short_code: str) -> LinkRecord | None:
        """Resolve a short code, cache first."""
        if self.cache_enabled:
            cached = await get_cached_link(short_code)
            if cached:
                return LinkRecord.model_validate_json(cached)

        try:
            async with self._session_factory() as session:
                link = await get_link_by_short_code(session, short_code)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Link lookup failed for {short_code}") from e

        if link is None:
            return None

        record = LinkRecord.model_validate(link)
        if self.cache_enabled:
            await cache_link(short_code, record.model_dump_json(), ttl=self._cache_ttl)
        return record

    async def increment_click_count(self, short_code: str) -> None:
        try:
            async with self._session_factory() as session:
                await increment_click_count(session, short_code)
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Click count update failed for {short_code}") from e

    async def mark_last_clicked(self, short_code: str, clicked_at: datetime) -> None:
        try:
            async with self._session_factory() as session:
                await mark_last_clicked(session, short_code, clicked_at)
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Last-click update failed for {short_code}") from e

    async def change_status(
        self,
        short_code: str,
        new_status: LinkStatus,
        reason: str | None = None,
    ) -> LinkRecord:
        """Change a link's status and drop it from the cache.

        Raises:
            NotFoundError: If the short code is unknown.
            ValidationError: If the transition is not allowed.
        """
        async with self._session_factory() as session:
            link = await get_link_by_short_code(session, short_code)
            if link is None:
                raise NotFoundError(f"Short link {short_code} not found")
            link = await change_status(session, link, new_status, reason)
            await session.commit()
            record = LinkRecord.model_validate(link)

        if self.cache_enabled:
            await invalidate_link_cache(short_code)
        logger.info(
            "Link status changed",
            short_code=short_code,
            status=new_status.value,
            reason=reason,
        )
        return record


# Global store instance
_link_store: LinkStore | None = None


def get_link_store() -> LinkStore:
    """Get the global link store, bound to the application database."""
    global _link_store
    if _link_store is None:
        _link_store = LinkStore(async_session_factory, cache_ttl=get_settings().link_cache_ttl)
    return _link_store

"""Click ledger: the per-short-code time series of click events.

Plain query functions over an ``AsyncSession``; callers own the
transaction and translate database errors.
"""

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from clicktrail.models.click import ClickEvent


async def has_recent_visit(
    session: AsyncSession,
    short_code: str,
    hashed_ip: str,
    since: datetime,
    until: datetime,
) -> bool:
    """Check for a click by the same visitor with ``since < clicked_at <= until``."""
    result = await session.execute(
        select(ClickEvent.id)
        .where(
            ClickEvent.short_code == short_code,
            ClickEvent.hashed_ip == hashed_ip,
            ClickEvent.clicked_at > since,
            ClickEvent.clicked_at <= until,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def append_click(session: AsyncSession, event: ClickEvent) -> ClickEvent:
    """Append an event to the ledger and assign its id."""
    session.add(event)
    await session.flush()
    return event


async def trim_ledger(session: AsyncSession, short_code: str, keep: int) -> int:
    """Delete all but the ``keep`` newest events of a short code.

    Insertion order (``id``) decides age. Every row at or below the first
    id past the cap goes, so concurrent trims converge on the same result.

    Returns:
        Number of rows deleted.
    """
    result = await session.execute(
        select(ClickEvent.id)
        .where(ClickEvent.short_code == short_code)
        .order_by(ClickEvent.id.desc())
        .offset(keep)
        .limit(1)
    )
    cutoff = result.scalar_one_or_none()
    if cutoff is None:
        return 0

    deleted = await session.execute(
        delete(ClickEvent).where(
            ClickEvent.short_code == short_code,
            ClickEvent.id <= cutoff,
        )
    )
    return deleted.rowcount or 0


async def fetch_clicks(
    session: AsyncSession,
    short_codes: str | Sequence[str],
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[ClickEvent]:
    """Load the events of one or more short codes in ``[start, end]``, oldest first.

    ``start=None`` leaves the window unbounded below.
    """
    if isinstance(short_codes, str):
        query = select(ClickEvent).where(ClickEvent.short_code == short_codes)
    else:
        query = select(ClickEvent).where(ClickEvent.short_code.in_(list(short_codes)))
    if start is not None:
        query = query.where(ClickEvent.clicked_at >= start)
    if end is not None:
        query = query.where(ClickEvent.clicked_at <= end)

    result = await session.execute(query.order_by(ClickEvent.id.asc()))
    return list(result.scalars().all())


async def purge_clicks(
    session: AsyncSession,
    short_code: str | None = None,
    before: datetime | None = None,
) -> int:
    """Delete events, optionally limited to one short code and/or older than ``before``.

    Returns:
        Number of rows deleted.
    """
    query = delete(ClickEvent)
    if short_code is not None:
        query = query.where(ClickEvent.short_code == short_code)
    if before is not None:
        query = query.where(ClickEvent.clicked_at < before)

    result = await session.execute(query)
    return result.rowcount or 0

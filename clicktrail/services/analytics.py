"""Analytics service: stats queries over the click ledger."""

import csv
import io
import json
import time
from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clicktrail.aggregators.stats_aggregator import (
    StatsAggregator,
    TimeWindow,
    click_rate,
    newest_first,
    percentage,
    resolve_time_window,
)
from clicktrail.core.clock import utcnow
from clicktrail.core.config import get_settings
from clicktrail.core.database import async_session_factory
from clicktrail.core.observability import record_stats_query
from clicktrail.exceptions import NotFoundError, PersistenceError, ValidationError
from clicktrail.models.click import ClickEvent
from clicktrail.models.link import ShortLink
from clicktrail.schemas.analytics import (
    AggregateStats,
    LinkActivity,
    LinkSummary,
    OwnerSummary,
    RawClick,
    RealtimeStats,
)
from clicktrail.services.click_ledger import fetch_clicks
from clicktrail.services.link import get_link_by_short_code, get_owner_links

logger = structlog.get_logger()

EXPORT_FIELDS = list(RawClick.model_fields)
OWNER_TOP_LINKS = 10


class AnalyticsService:
    """Read side of the click ledger.

    Every query loads the matching events and aggregates them on the spot;
    nothing is cached between calls.

    Usage:
        service = AnalyticsService(async_session_factory)
        stats = await service.get_stats("abc123", time_range="24h")
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        aggregator: StatsAggregator | None = None,
        recent_limit: int = 50,
    ):
        self._session_factory = session_factory
        self._aggregator = aggregator or StatsAggregator()
        self._recent_limit = recent_limit

    async def _load(
        self,
        short_code: str,
        window: TimeWindow | None,
    ) -> tuple[ShortLink, list[ClickEvent]]:
        try:
            async with self._session_factory() as session:
                link = await get_link_by_short_code(session, short_code)
                if link is None:
                    raise NotFoundError(f"Short link {short_code} not found")
                events = await fetch_clicks(
                    session,
                    short_code,
                    start=window.start if window else None,
                    end=window.end if window else None,
                )
        except SQLAlchemyError as e:
            logger.error("Click ledger read failed", short_code=short_code, error=str(e))
            raise PersistenceError(f"Failed to read clicks for {short_code}") from e
        return link, events

    async def get_stats(
        self,
        short_code: str,
        time_range: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        include_raw_data: bool = False,
        exclude_bots: bool = False,
        now: datetime | None = None,
    ) -> AggregateStats:
        """Faceted statistics for one short code.

        Raises:
            ValidationError: For an unknown preset or an inverted date range.
            NotFoundError: If the short code is unknown.
            PersistenceError: If the ledger cannot be read.
        """
        start_time = time.perf_counter()
        now = now or utcnow()
        window = resolve_time_window(time_range, start_date, end_date, now=now)

        link, events = await self._load(short_code, window)
        stats = self._aggregator.aggregate(
            short_code,
            events,
            window,
            include_raw_data=include_raw_data,
            link_created_at=link.created_at,
            exclude_bots=exclude_bots,
            now=now,
        )

        duration = time.perf_counter() - start_time
        record_stats_query("stats", duration)
        logger.debug(
            "Stats fetched",
            short_code=short_code,
            time_range=window.time_range,
            total_clicks=stats.total_clicks,
            duration_ms=round(duration * 1000, 2),
        )
        return stats

    async def get_realtime_stats(
        self,
        short_code: str,
        now: datetime | None = None,
    ) -> RealtimeStats:
        """Activity over the trailing hour.

        Raises:
            NotFoundError: If the short code is unknown.
            PersistenceError: If the ledger cannot be read.
        """
        start_time = time.perf_counter()
        now = now or utcnow()
        window = resolve_time_window("1h", now=now)

        _, events = await self._load(short_code, window)
        stats = self._aggregator.realtime(short_code, events, now=now)

        record_stats_query("realtime", time.perf_counter() - start_time)
        return stats

    async def export_clicks(
        self,
        short_code: str,
        time_range: str | None = None,
        fmt: str = "csv",
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        exclude_bots: bool = False,
        now: datetime | None = None,
    ) -> str:
        """Export the events of a window as CSV or a JSON array, oldest first.

        Raises:
            ValidationError: For an unknown format, preset or date range.
            NotFoundError: If the short code is unknown.
            PersistenceError: If the ledger cannot be read.
        """
        if fmt not in ("csv", "json"):
            raise ValidationError(f"Unsupported export format '{fmt}', expected csv or json")
        window = resolve_time_window(time_range, start_date, end_date, now=now)

        _, events = await self._load(short_code, window)
        rows = [
            RawClick.model_validate(e).model_dump(mode="json")
            for e in events
            if not (exclude_bots and e.is_bot)
        ]
        logger.info("Clicks exported", short_code=short_code, format=fmt, rows=len(rows))

        if fmt == "json":
            return json.dumps(rows)

        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=EXPORT_FIELDS)
        writer.writeheader()
        writer.writerows(rows)
        return buffer.getvalue()

    async def get_owner_summary(
        self,
        owner_id: UUID,
        time_range: str | None = None,
        now: datetime | None = None,
    ) -> OwnerSummary:
        """Totals across all links of an owner, with top links and recent activity.

        An owner without links gets an all-zero summary.

        Raises:
            ValidationError: For an unknown preset.
            PersistenceError: If the ledger cannot be read.
        """
        start_time = time.perf_counter()
        now = now or utcnow()
        window = resolve_time_window(time_range, now=now)

        try:
            async with self._session_factory() as session:
                links = await get_owner_links(session, owner_id)
                events = (
                    await fetch_clicks(
                        session,
                        [link.short_code for link in links],
                        start=window.start,
                        end=window.end,
                    )
                    if links
                    else []
                )
        except SQLAlchemyError as e:
            logger.error("Owner summary read failed", owner_id=str(owner_id), error=str(e))
            raise PersistenceError(f"Failed to read clicks for owner {owner_id}") from e

        summaries = _link_summaries(links, events, now)
        total_clicks = len(events)
        total_unique = sum(s.unique_visitors for s in summaries)
        since = window.start or min((link.created_at for link in links), default=now)
        by_code = {link.short_code: link for link in links}

        summary = OwnerSummary(
            owner_id=owner_id,
            time_range=window.time_range,
            total_links=len(links),
            total_clicks=total_clicks,
            total_unique_visitors=total_unique,
            click_rate=click_rate(total_clicks, since, now),
            engagement_rate=percentage(total_unique, total_clicks),
            top_links=sorted(summaries, key=lambda s: s.clicks, reverse=True)[:OWNER_TOP_LINKS],
            recent_activity=[
                LinkActivity(
                    short_code=e.short_code,
                    original_url=by_code[e.short_code].original_url,
                    timestamp=e.clicked_at,
                    country=e.country,
                    city=e.city,
                    device=e.device,
                    browser=e.browser,
                    os=e.os,
                    referrer=e.referrer,
                    referrer_category=e.referrer_category,
                    is_bot=e.is_bot,
                )
                for e in newest_first(events)[: self._recent_limit]
            ],
            generated_at=now,
        )

        record_stats_query("owner_summary", time.perf_counter() - start_time)
        return summary


def _link_summaries(
    links: Sequence[ShortLink],
    events: Sequence[ClickEvent],
    now: datetime,
) -> list[LinkSummary]:
    clicks: dict[str, int] = {}
    visitors: dict[str, set[str]] = {}
    for event in events:
        clicks[event.short_code] = clicks.get(event.short_code, 0) + 1
        visitors.setdefault(event.short_code, set()).add(event.hashed_ip)

    return [
        LinkSummary(
            short_code=link.short_code,
            original_url=link.original_url,
            created_at=link.created_at,
            clicks=clicks.get(link.short_code, 0),
            unique_visitors=len(visitors.get(link.short_code, ())),
            click_rate=click_rate(clicks.get(link.short_code, 0), link.created_at, now),
        )
        for link in links
    ]


# Global service instance
_analytics_service: AnalyticsService | None = None


def get_analytics_service() -> AnalyticsService:
    """Get the global analytics service instance."""
    global _analytics_service
    if _analytics_service is None:
        settings = get_settings()
        _analytics_service = AnalyticsService(
            async_session_factory,
            StatsAggregator(
                recent_limit=settings.recent_clicks_limit,
                top_countries_limit=settings.top_countries_limit,
            ),
            recent_limit=settings.recent_clicks_limit,
        )
    return _analytics_service

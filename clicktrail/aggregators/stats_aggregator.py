"""Statistics aggregation over click ledger events.

Everything here is pure: events are loaded by the caller and passed in, so
the same input always yields the same output apart from ``generated_at``.
All bucketing is done in UTC.
"""

import math
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from clicktrail.core.clock import to_naive_utc, utcnow
from clicktrail.exceptions import ValidationError
from clicktrail.models.click import ClickEvent
from clicktrail.schemas.analytics import (
    AggregateStats,
    CountryCount,
    CountryTally,
    DailyStat,
    DayBucket,
    FacetCount,
    HourBucket,
    IntervalBucket,
    RawClick,
    RealtimeStats,
    RecentClick,
)

# Look-back of each time range preset; "all" has no lower bound
TIME_RANGES: dict[str, timedelta | None] = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "1y": timedelta(days=365),
    "all": None,
}
DEFAULT_TIME_RANGE = "7d"
CUSTOM_TIME_RANGE = "custom"

REALTIME_WINDOW = timedelta(hours=1)
REALTIME_BUCKET_MINUTES = 5
REALTIME_TOP_COUNTRIES = 5


@dataclass(frozen=True)
class TimeWindow:
    """Resolved query window. ``start=None`` means unbounded."""

    time_range: str
    start: datetime | None
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return (self.start is None or moment >= self.start) and moment <= self.end


def resolve_time_window(
    time_range: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    now: datetime | None = None,
) -> TimeWindow:
    """Turn a preset or an explicit start/end pair into a window.

    Explicit dates win over the preset: a missing start is unbounded and a
    missing end is ``now``.

    Raises:
        ValidationError: For an unknown preset or an end before the start.
    """
    now = now or utcnow()

    if start_date is not None or end_date is not None:
        start = to_naive_utc(start_date) if start_date is not None else None
        end = to_naive_utc(end_date) if end_date is not None else now
        if start is not None and end < start:
            raise ValidationError("end_date must not be before start_date")
        return TimeWindow(CUSTOM_TIME_RANGE, start, end)

    time_range = time_range or DEFAULT_TIME_RANGE
    if time_range not in TIME_RANGES:
        raise ValidationError(
            f"Unknown time range '{time_range}', expected one of {', '.join(TIME_RANGES)}"
        )
    look_back = TIME_RANGES[time_range]
    return TimeWindow(time_range, now - look_back if look_back else None, now)


def percentage(count: int, total: int) -> int:
    """Share of ``total`` as a whole percent, rounding halves up; 0 when total is 0."""
    if total <= 0:
        return 0
    return math.floor(count / total * 100 + 0.5)


def click_rate(clicks: int, since: datetime, now: datetime) -> float:
    """Clicks per day since ``since``, counting at least one day."""
    days = max((now - since).total_seconds() / 86400, 1.0)
    return round(clicks / days, 2)


def tally(events: Iterable[ClickEvent], key: Callable[[ClickEvent], str]) -> list[tuple[str, int]]:
    """Count events per key, most frequent first.

    The sort is stable, so ties keep the order in which keys were first seen.
    """
    counts: dict[str, int] = {}
    for event in events:
        value = key(event)
        counts[value] = counts.get(value, 0) + 1
    return sorted(counts.items(), key=lambda item: item[1], reverse=True)


def _weekday(moment: datetime) -> int:
    """Day of week with 0 = Sunday."""
    return (moment.weekday() + 1) % 7


def _bucket_start(moment: datetime, minutes: int) -> datetime:
    return moment.replace(minute=moment.minute - moment.minute % minutes, second=0, microsecond=0)


def _recent_click(event: ClickEvent) -> RecentClick:
    return RecentClick(
        timestamp=event.clicked_at,
        country=event.country,
        city=event.city,
        device=event.device,
        browser=event.browser,
        os=event.os,
        referrer=event.referrer,
        referrer_category=event.referrer_category,
        is_bot=event.is_bot,
    )


def newest_first(events: Iterable[ClickEvent]) -> list[ClickEvent]:
    """Order events newest first, by timestamp and then insertion order."""
    return sorted(events, key=lambda e: (e.clicked_at, e.id or 0), reverse=True)


class StatsAggregator:
    """Build faceted statistics from click events.

    Usage:
        aggregator = StatsAggregator()
        window = resolve_time_window("24h")
        stats = aggregator.aggregate("abc123", events, window)
    """

    def __init__(self, recent_limit: int = 50, top_countries_limit: int = 10):
        """Initialize the aggregator.

        Args:
            recent_limit: Size of the recent clicks feed.
            top_countries_limit: Number of countries in the breakdown.
        """
        self._recent_limit = recent_limit
        self._top_countries_limit = top_countries_limit

    def aggregate(
        self,
        short_code: str,
        events: Sequence[ClickEvent],
        window: TimeWindow,
        include_raw_data: bool = False,
        link_created_at: datetime | None = None,
        exclude_bots: bool = False,
        now: datetime | None = None,
    ) -> AggregateStats:
        """Aggregate the events of one short code that fall inside ``window``.

        Args:
            short_code: Short code the events belong to.
            events: Ledger events, in insertion order.
            window: Resolved time window.
            include_raw_data: Attach every matching event to the result.
            link_created_at: Link creation time, the base of ``click_rate``.
            exclude_bots: Drop bot traffic before aggregating.
            now: Reference time for ``click_rate`` and ``generated_at``.

        Returns:
            AggregateStats for the window.
        """
        now = now or utcnow()
        selected = [
            e for e in events
            if window.contains(e.clicked_at) and not (exclude_bots and e.is_bot)
        ]
        total = len(selected)
        unique_visitors = len({e.hashed_ip for e in selected})

        return AggregateStats(
            short_code=short_code,
            time_range=window.time_range,
            start_date=window.start,
            end_date=window.end,
            total_clicks=total,
            unique_visitors=unique_visitors,
            click_rate=click_rate(total, link_created_at or window.start or now, now),
            engagement_rate=percentage(unique_visitors, total),
            daily_stats=self._daily_stats(selected),
            top_countries=self._top_countries(selected, total),
            device_stats=self._facet(selected, total, lambda e: e.device),
            browser_stats=self._facet(selected, total, lambda e: e.browser),
            os_stats=self._facet(selected, total, lambda e: e.os),
            referrer_stats=self._facet(selected, total, lambda e: e.referrer_category),
            hourly_pattern=self._hourly_pattern(selected),
            weekly_pattern=self._weekly_pattern(selected),
            recent_clicks=[_recent_click(e) for e in newest_first(selected)[: self._recent_limit]],
            raw_clicks=[RawClick.model_validate(e) for e in selected] if include_raw_data else None,
            generated_at=now,
        )

    def realtime(
        self,
        short_code: str,
        events: Sequence[ClickEvent],
        now: datetime | None = None,
    ) -> RealtimeStats:
        """Summarize the trailing hour in 5-minute buckets.

        Only buckets with at least one click are returned, oldest first.
        """
        now = now or utcnow()
        since = now - REALTIME_WINDOW
        recent = [e for e in events if since <= e.clicked_at <= now]

        buckets: dict[datetime, int] = {}
        for event in recent:
            start = _bucket_start(event.clicked_at, REALTIME_BUCKET_MINUTES)
            buckets[start] = buckets.get(start, 0) + 1

        return RealtimeStats(
            short_code=short_code,
            recent_clicks=len(recent),
            active_visitors=len({e.hashed_ip for e in recent}),
            clicks_last_5min_buckets=[
                IntervalBucket(timestamp=start, count=count)
                for start, count in sorted(buckets.items())
            ],
            top_countries_last_hour=[
                CountryTally(country=country, count=count)
                for country, count in tally(recent, lambda e: e.country)[:REALTIME_TOP_COUNTRIES]
            ],
            last_updated=now,
        )

    def _facet(
        self,
        events: Sequence[ClickEvent],
        total: int,
        key: Callable[[ClickEvent], str],
    ) -> list[FacetCount]:
        return [
            FacetCount(value=value, count=count, percentage=percentage(count, total))
            for value, count in tally(events, key)
        ]

    def _top_countries(self, events: Sequence[ClickEvent], total: int) -> list[CountryCount]:
        codes: dict[str, str] = {}
        for event in events:
            codes.setdefault(event.country, event.country_code)

        return [
            CountryCount(
                value=country,
                country_code=codes[country],
                count=count,
                percentage=percentage(count, total),
            )
            for country, count in tally(events, lambda e: e.country)[: self._top_countries_limit]
        ]

    def _daily_stats(self, events: Sequence[ClickEvent]) -> list[DailyStat]:
        clicks: dict[date, int] = {}
        visitors: dict[date, set[str]] = {}
        for event in events:
            day = event.clicked_at.date()
            clicks[day] = clicks.get(day, 0) + 1
            visitors.setdefault(day, set()).add(event.hashed_ip)

        return [
            DailyStat(date=day, clicks=clicks[day], unique_visitors=len(visitors[day]))
            for day in sorted(clicks)
        ]

    def _hourly_pattern(self, events: Sequence[ClickEvent]) -> list[HourBucket]:
        counts = [0] * 24
        for event in events:
            counts[event.clicked_at.hour] += 1
        return [HourBucket(hour=hour, count=count) for hour, count in enumerate(counts)]

    def _weekly_pattern(self, events: Sequence[ClickEvent]) -> list[DayBucket]:
        counts = [0] * 7
        for event in events:
            counts[_weekday(event.clicked_at)] += 1
        return [DayBucket(day=day, count=count) for day, count in enumerate(counts)]

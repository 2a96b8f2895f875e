"""Integration tests for stats queries over a populated ledger."""

import csv
import io
import json
from datetime import datetime, timedelta
from uuid import uuid4

import pytest

from clicktrail.core.clock import utcnow
from clicktrail.exceptions import NotFoundError, ValidationError
from clicktrail.models import LinkStatus
from clicktrail.services.analytics import EXPORT_FIELDS


@pytest.fixture
def now(link):
    # Taken after the link exists so created_at is never in the future
    return utcnow().replace(microsecond=0) + timedelta(seconds=1)


@pytest.fixture
async def populate(session_factory, link):
    async def _populate(*events):
        async with session_factory() as session:
            session.add_all(events)
            await session.commit()

    return _populate


async def test_unknown_short_code(analytics_service):
    with pytest.raises(NotFoundError):
        await analytics_service.get_stats("nope42")
    with pytest.raises(NotFoundError):
        await analytics_service.get_realtime_stats("nope42")


async def test_invalid_range(analytics_service, link, now):
    with pytest.raises(ValidationError):
        await analytics_service.get_stats("abc123", time_range="2w", now=now)
    with pytest.raises(ValidationError):
        await analytics_service.get_stats(
            "abc123", start_date=now, end_date=now - timedelta(days=1), now=now
        )


async def test_stats_for_link_without_clicks(analytics_service, link, now):
    stats = await analytics_service.get_stats("abc123", time_range="24h", now=now)

    assert stats.total_clicks == 0
    assert stats.unique_visitors == 0
    assert stats.engagement_rate == 0
    assert stats.daily_stats == []
    assert len(stats.hourly_pattern) == 24
    assert len(stats.weekly_pattern) == 7


async def test_stats_window_and_facets(analytics_service, link, now, make_event, populate):
    await populate(
        make_event(now - timedelta(hours=2), "v1", link_id=link.id, country="Norway", country_code="NO"),
        make_event(now - timedelta(hours=1), "v1", link_id=link.id, country="Norway", country_code="NO"),
        make_event(now - timedelta(minutes=30), "v2", link_id=link.id, device="mobile", browser="Safari"),
        make_event(now - timedelta(days=3), "v3", link_id=link.id),
    )

    stats = await analytics_service.get_stats("abc123", time_range="24h", now=now)

    assert stats.total_clicks == 3
    assert stats.unique_visitors == 2
    assert stats.engagement_rate == 67
    assert stats.top_countries[0].value == "Norway"
    assert stats.top_countries[0].country_code == "NO"
    assert stats.top_countries[0].count == 2
    assert stats.top_countries[0].percentage == 67
    assert [(f.value, f.count) for f in stats.device_stats] == [("desktop", 2), ("mobile", 1)]
    assert stats.recent_clicks[0].timestamp == now - timedelta(minutes=30)
    assert stats.raw_clicks is None

    everything = await analytics_service.get_stats("abc123", time_range="all", now=now)
    assert everything.total_clicks == 4
    assert everything.start_date is None


async def test_stats_are_repeatable(analytics_service, link, now, make_event, populate):
    await populate(*(make_event(now - timedelta(hours=i), f"v{i % 3}", link_id=link.id) for i in range(6)))

    first = await analytics_service.get_stats("abc123", time_range="7d", include_raw_data=True, now=now)
    second = await analytics_service.get_stats("abc123", time_range="7d", include_raw_data=True, now=now)

    assert first == second
    assert len(first.raw_clicks) == 6


async def test_exclude_bots(analytics_service, link, now, make_event, populate):
    await populate(
        make_event(now - timedelta(hours=1), "human", link_id=link.id),
        make_event(now - timedelta(hours=1), "crawler", link_id=link.id, is_bot=True, bot_type="search-engine"),
    )

    with_bots = await analytics_service.get_stats("abc123", time_range="24h", now=now)
    without_bots = await analytics_service.get_stats(
        "abc123", time_range="24h", exclude_bots=True, now=now
    )

    assert with_bots.total_clicks == 2
    assert without_bots.total_clicks == 1


async def test_custom_window(analytics_service, link, now, make_event, populate):
    await populate(
        make_event(now - timedelta(days=5), "v1", link_id=link.id),
        make_event(now - timedelta(days=3), "v2", link_id=link.id),
        make_event(now - timedelta(days=1), "v3", link_id=link.id),
    )

    stats = await analytics_service.get_stats(
        "abc123",
        start_date=now - timedelta(days=4),
        end_date=now - timedelta(days=2),
        now=now,
    )

    assert stats.time_range == "custom"
    assert stats.total_clicks == 1


async def test_realtime(analytics_service, link, make_event, populate):
    now = datetime(2024, 1, 15, 12, 0, 0)
    await populate(
        make_event(datetime(2024, 1, 15, 11, 1), "v1", link_id=link.id, country="Norway"),
        make_event(datetime(2024, 1, 15, 11, 3), "v2", link_id=link.id, country="Norway"),
        make_event(datetime(2024, 1, 15, 11, 52), "v1", link_id=link.id),
        make_event(datetime(2024, 1, 15, 10, 30), "v3", link_id=link.id),
    )

    stats = await analytics_service.get_realtime_stats("abc123", now=now)

    assert stats.recent_clicks == 3
    assert stats.active_visitors == 2
    assert [(b.timestamp, b.count) for b in stats.clicks_last_5min_buckets] == [
        (datetime(2024, 1, 15, 11, 0), 2),
        (datetime(2024, 1, 15, 11, 50), 1),
    ]
    assert stats.top_countries_last_hour[0].country == "Norway"
    assert stats.last_updated == now


async def test_export_csv(analytics_service, link, now, make_event, populate):
    await populate(
        make_event(now - timedelta(hours=2), "v1", link_id=link.id, utm_source="newsletter"),
        make_event(now - timedelta(hours=1), "v2", link_id=link.id),
    )

    body = await analytics_service.export_clicks("abc123", time_range="24h", fmt="csv", now=now)
    rows = list(csv.DictReader(io.StringIO(body)))

    assert body.splitlines()[0] == ",".join(EXPORT_FIELDS)
    assert [row["hashed_ip"] for row in rows] == ["v1", "v2"]
    assert rows[0]["utm_source"] == "newsletter"
    assert "link_id" not in rows[0]


async def test_export_json(analytics_service, link, now, make_event, populate):
    await populate(make_event(now - timedelta(hours=1), "v1", link_id=link.id))

    rows = json.loads(await analytics_service.export_clicks("abc123", fmt="json", now=now))

    assert len(rows) == 1
    assert rows[0]["short_code"] == "abc123"
    assert set(rows[0]) == set(EXPORT_FIELDS)


async def test_export_unknown_format(analytics_service, link):
    with pytest.raises(ValidationError):
        await analytics_service.export_clicks("abc123", fmt="xml")


async def test_owner_summary(analytics_service, make_link, link_store, make_event, populate):
    first = await make_link("first1")
    second = await make_link("second")
    gone = await make_link("gone12")
    await link_store.change_status("gone12", LinkStatus.DELETED)
    now = utcnow().replace(microsecond=0) + timedelta(seconds=1)

    await populate(
        make_event(now - timedelta(hours=3), "v1", link_id=first.id, short_code="first1"),
        make_event(now - timedelta(hours=2), "v1", link_id=second.id, short_code="second"),
        make_event(now - timedelta(hours=1), "v2", link_id=second.id, short_code="second"),
        make_event(now - timedelta(minutes=5), "v3", link_id=gone.id, short_code="gone12"),
    )

    summary = await analytics_service.get_owner_summary(first.owner_id, time_range="7d", now=now)

    # 3 links: the fixture link, first1 and second
    assert summary.total_links == 3
    assert summary.total_clicks == 3
    assert summary.total_unique_visitors == 3
    assert summary.top_links[0].short_code == "second"
    assert summary.top_links[0].clicks == 2
    assert [a.short_code for a in summary.recent_activity] == ["second", "second", "first1"]
    assert summary.recent_activity[0].original_url == "https://example.com/landing"


async def test_owner_summary_without_links(analytics_service):
    summary = await analytics_service.get_owner_summary(uuid4())

    assert summary.total_links == 0
    assert summary.total_clicks == 0
    assert summary.top_links == []
    assert summary.recent_activity == []

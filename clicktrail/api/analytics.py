"""Analytics API endpoints."""

from datetime import datetime
from typing import Annotated, Literal
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from clicktrail.schemas import AggregateStats, OwnerSummary, RealtimeStats
from clicktrail.services.analytics import AnalyticsService, get_analytics_service

logger = structlog.get_logger()

router = APIRouter(prefix="/analytics", tags=["analytics"])

AnalyticsServiceDep = Annotated[AnalyticsService, Depends(get_analytics_service)]
TimeRangeQuery = Annotated[
    str | None,
    Query(description="Preset: 1h, 24h, 7d, 30d, 90d, 1y or all (default: 7d)"),
]
StartDateQuery = Annotated[
    datetime | None,
    Query(description="Inclusive start (UTC); overrides time_range"),
]
EndDateQuery = Annotated[
    datetime | None,
    Query(description="Inclusive end (UTC, default: now); overrides time_range"),
]

EXPORT_MEDIA_TYPES = {"csv": "text/csv; charset=utf-8", "json": "application/json"}


@router.get("/owners/{owner_id}/summary", response_model=OwnerSummary)
async def get_owner_summary(
    owner_id: UUID,
    service: AnalyticsServiceDep,
    time_range: TimeRangeQuery = None,
) -> OwnerSummary:
    """Get totals, top links and recent activity across an owner's links."""
    return await service.get_owner_summary(owner_id, time_range=time_range)


@router.get("/{short_code}", response_model=AggregateStats)
async def get_link_stats(
    short_code: str,
    service: AnalyticsServiceDep,
    time_range: TimeRangeQuery = None,
    start_date: StartDateQuery = None,
    end_date: EndDateQuery = None,
    include_raw_data: Annotated[bool, Query(description="Attach every matching click")] = False,
    exclude_bots: Annotated[bool, Query(description="Drop bot traffic")] = False,
) -> AggregateStats:
    """Get faceted click statistics for a short link.

    Returns totals, unique visitors, daily series, country/device/browser/OS/
    referrer breakdowns, hourly and weekly patterns and the most recent clicks.
    """
    return await service.get_stats(
        short_code,
        time_range=time_range,
        start_date=start_date,
        end_date=end_date,
        include_raw_data=include_raw_data,
        exclude_bots=exclude_bots,
    )


@router.get("/{short_code}/realtime", response_model=RealtimeStats)
async def get_link_realtime_stats(
    short_code: str,
    service: AnalyticsServiceDep,
) -> RealtimeStats:
    """Get click activity for the trailing hour in 5-minute buckets."""
    return await service.get_realtime_stats(short_code)


@router.get("/{short_code}/export")
async def export_link_clicks(
    short_code: str,
    service: AnalyticsServiceDep,
    time_range: TimeRangeQuery = None,
    start_date: StartDateQuery = None,
    end_date: EndDateQuery = None,
    fmt: Annotated[Literal["csv", "json"], Query(alias="format")] = "csv",
    exclude_bots: Annotated[bool, Query(description="Drop bot traffic")] = False,
) -> Response:
    """Download the clicks of a window as CSV or JSON."""
    content = await service.export_clicks(
        short_code,
        time_range=time_range,
        fmt=fmt,
        start_date=start_date,
        end_date=end_date,
        exclude_bots=exclude_bots,
    )
    return Response(
        content=content,
        media_type=EXPORT_MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="{short_code}-clicks.{fmt}"'},
    )

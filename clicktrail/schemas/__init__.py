"""Pydantic schemas."""

from clicktrail.schemas.analytics import (
    AggregateStats,
    CountryCount,
    CountryTally,
    DailyStat,
    DayBucket,
    FacetCount,
    HourBucket,
    IntervalBucket,
    LinkActivity,
    LinkSummary,
    OwnerSummary,
    RawClick,
    RealtimeStats,
    RecentClick,
)
from clicktrail.schemas.events import UTM_KEYS, RedirectContext
from clicktrail.schemas.link import LinkRecord

__all__ = [
    # Analytics
    "AggregateStats",
    "CountryCount",
    "CountryTally",
    "DailyStat",
    "DayBucket",
    "FacetCount",
    "HourBucket",
    "IntervalBucket",
    "LinkActivity",
    "LinkSummary",
    "OwnerSummary",
    "RawClick",
    "RealtimeStats",
    "RecentClick",
    # Events
    "UTM_KEYS",
    "RedirectContext",
    # Links
    "LinkRecord",
]

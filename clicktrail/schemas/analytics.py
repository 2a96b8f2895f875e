"""Pydantic schemas for analytics API responses."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class FacetCount(BaseModel):
    """Clicks sharing one value of a dimension (device, browser, ...)."""

    value: str
    count: int
    percentage: int = Field(description="Rounded share of total clicks, 0-100")


class CountryCount(FacetCount):
    """Clicks from a single country."""

    country_code: str = Field(description="ISO 3166-1 alpha-2 country code")


class DailyStat(BaseModel):
    """Clicks on a single UTC day."""

    date: date
    clicks: int
    unique_visitors: int


class HourBucket(BaseModel):
    hour: int = Field(ge=0, le=23)
    count: int


class DayBucket(BaseModel):
    day: int = Field(ge=0, le=6, description="0 = Sunday")
    count: int


class RecentClick(BaseModel):
    """Excerpt of a click for activity feeds."""

    timestamp: datetime
    country: str
    city: str
    device: str
    browser: str
    os: str
    referrer: str | None
    referrer_category: str
    is_bot: bool


class RawClick(BaseModel):
    """A stored click event, without internal identifiers."""

    model_config = ConfigDict(from_attributes=True)

    short_code: str
    clicked_at: datetime
    hashed_ip: str
    user_agent: str | None
    referrer: str | None
    referrer_category: str
    country: str
    country_code: str
    region: str
    city: str
    timezone: str
    latitude: float | None
    longitude: float | None
    device: str
    browser: str
    browser_version: str
    os: str
    os_version: str
    is_bot: bool
    bot_type: str | None
    utm_source: str | None
    utm_medium: str | None
    utm_campaign: str | None
    utm_term: str | None
    utm_content: str | None
    is_unique_visitor: bool
    session_id: str | None


class AggregateStats(BaseModel):
    """Faceted statistics for one short code over one time window."""

    short_code: str
    time_range: str
    start_date: datetime | None = Field(description="Inclusive lower bound; None is unbounded")
    end_date: datetime
    total_clicks: int
    unique_visitors: int = Field(description="Distinct hashed IPs in the window")
    click_rate: float = Field(description="Clicks per day since the link was created")
    engagement_rate: int = Field(description="Unique visitors as a share of clicks, 0-100")
    daily_stats: list[DailyStat]
    top_countries: list[CountryCount]
    device_stats: list[FacetCount]
    browser_stats: list[FacetCount]
    os_stats: list[FacetCount]
    referrer_stats: list[FacetCount]
    hourly_pattern: list[HourBucket]
    weekly_pattern: list[DayBucket]
    recent_clicks: list[RecentClick]
    raw_clicks: list[RawClick] | None = None
    generated_at: datetime


class IntervalBucket(BaseModel):
    """Clicks in one 5-minute interval."""

    timestamp: datetime
    count: int


class CountryTally(BaseModel):
    country: str
    count: int


class RealtimeStats(BaseModel):
    """Activity for one short code over the trailing hour."""

    short_code: str
    recent_clicks: int = Field(description="Clicks in the trailing hour")
    active_visitors: int = Field(description="Distinct hashed IPs in the trailing hour")
    clicks_last_5min_buckets: list[IntervalBucket]
    top_countries_last_hour: list[CountryTally]
    last_updated: datetime


class LinkActivity(RecentClick):
    """Recent click tagged with the link it belongs to."""

    short_code: str
    original_url: str


class LinkSummary(BaseModel):
    """Per-link totals inside an owner summary."""

    short_code: str
    original_url: str
    created_at: datetime
    clicks: int
    unique_visitors: int
    click_rate: float


class OwnerSummary(BaseModel):
    """Totals across every link of one owner."""

    owner_id: UUID
    time_range: str
    total_links: int
    total_clicks: int
    total_unique_visitors: int = Field(description="Sum of per-link distinct visitors")
    click_rate: float = Field(description="Clicks per day over the window")
    engagement_rate: int
    top_links: list[LinkSummary]
    recent_activity: list[LinkActivity]
    generated_at: datetime

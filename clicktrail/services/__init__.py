"""Click pipeline and analytics business logic services."""

from clicktrail.services.analytics import AnalyticsService, get_analytics_service
from clicktrail.services.click_recorder import ClickEventRecorder, get_click_recorder
from clicktrail.services.dispatch import ClickDispatcher, get_dispatcher
from clicktrail.services.geoip import (
    GeoIPService,
    GeoLocation,
    close_geoip_service,
    get_geoip_service,
)
from clicktrail.services.ip_hasher import IPPrivacyHasher, get_ip_hasher
from clicktrail.services.link import LinkStore, get_link_store
from clicktrail.services.retention import (
    RetentionSweeper,
    get_retention_sweeper,
    start_retention_sweeper,
    stop_retention_sweeper,
)

__all__ = [
    # Analytics
    "AnalyticsService",
    "get_analytics_service",
    # Click recording
    "ClickDispatcher",
    "ClickEventRecorder",
    "get_click_recorder",
    "get_dispatcher",
    # GeoIP
    "GeoIPService",
    "GeoLocation",
    "close_geoip_service",
    "get_geoip_service",
    # IP hashing
    "IPPrivacyHasher",
    "get_ip_hasher",
    # Links
    "LinkStore",
    "get_link_store",
    # Retention
    "RetentionSweeper",
    "get_retention_sweeper",
    "start_retention_sweeper",
    "stop_retention_sweeper",
]

"""Click recorder: turns a redirect into a classified, deduplicated ledger entry."""

import time
from datetime import timedelta

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clicktrail.classifiers import categorize_referrer, classify_user_agent
from clicktrail.core.config import get_settings
from clicktrail.core.database import async_session_factory
from clicktrail.core.observability import (
    record_click_failed,
    record_click_recorded,
    record_retention_deleted,
)
from clicktrail.exceptions import NotFoundError, PersistenceError, UpstreamUnavailable
from clicktrail.models.click import ClickEvent
from clicktrail.schemas.events import RedirectContext
from clicktrail.services.click_ledger import append_click, has_recent_visit, trim_ledger
from clicktrail.services.geoip import (
    UNKNOWN_LOCATION,
    GeoIPService,
    GeoLocation,
    get_geoip_service,
    is_public_ip,
)
from clicktrail.services.ip_hasher import IPPrivacyHasher, get_ip_hasher
from clicktrail.services.link import LinkStore, get_link_store

logger = structlog.get_logger()


def fit_to_columns(event: ClickEvent) -> None:
    """Cut request-derived strings down to their column length.

    Cookies, campaign tags and parsed versions are client controlled and
    unbounded; PostgreSQL rejects a whole row for one over-long value.
    """
    for column in ClickEvent.__table__.columns:
        length = getattr(column.type, "length", None)
        value = getattr(event, column.key)
        if length and isinstance(value, str) and len(value) > length:
            setattr(event, column.key, value[:length])


class ClickEventRecorder:
    """Record redirect events into the click ledger.

    Each event is enriched (hashed IP, user agent, referrer category,
    geography), checked against the visitor's clicks in the trailing
    window, appended, and the link's ledger is trimmed back to its cap.

    Usage:
        recorder = ClickEventRecorder(link_store, geoip, hasher, async_session_factory)
        await recorder.record_click(ctx)  # never raises
    """

    def __init__(
        self,
        link_store: LinkStore,
        geoip: GeoIPService,
        hasher: IPPrivacyHasher,
        session_factory: async_sessionmaker[AsyncSession],
        max_events_per_link: int = 1000,
        unique_window: timedelta = timedelta(hours=24),
    ):
        """Initialize the recorder.

        Args:
            link_store: URL store used to resolve short codes and bump counters.
            geoip: Geo resolver for public client IPs.
            hasher: Salted IP hasher.
            session_factory: Session factory for the click ledger.
            max_events_per_link: Ledger cap per short code.
            unique_window: Trailing window for unique-visitor dedup.
        """
        self._links = link_store
        self._geoip = geoip
        self._hasher = hasher
        self._session_factory = session_factory
        self._max_events = max_events_per_link
        self._unique_window = unique_window
        self._clicks_recorded = 0
        self._clicks_failed = 0
        self._events_trimmed = 0
        self._counter_failures = 0

    async def record(self, ctx: RedirectContext) -> ClickEvent:
        """Record one redirect.

        Returns:
            The stored click event.

        Raises:
            NotFoundError: If the short code does not resolve to a link.
            PersistenceError: If the ledger cannot be written. A failed link
                counter update after the event is stored is logged, not raised.
        """
        start_time = time.perf_counter()

        link = await self._links.find_link(ctx.short_code)
        if link is None:
            raise NotFoundError(f"Short link {ctx.short_code} not found")

        hashed_ip = self._hasher.hash(ctx.client_ip)
        agent = classify_user_agent(ctx.user_agent)
        location = await self._resolve_location(ctx.client_ip)

        event = ClickEvent(
            link_id=link.id,
            short_code=link.short_code,
            clicked_at=ctx.timestamp,
            hashed_ip=hashed_ip,
            user_agent=ctx.user_agent,
            referrer=ctx.referrer,
            referrer_category=categorize_referrer(ctx.referrer).value,
            country=location.country,
            country_code=location.country_code,
            region=location.region,
            city=location.city,
            timezone=location.timezone,
            latitude=location.latitude,
            longitude=location.longitude,
            device=agent.device.value,
            browser=agent.browser,
            browser_version=agent.browser_version,
            os=agent.os,
            os_version=agent.os_version,
            is_bot=agent.is_bot,
            bot_type=agent.bot_type.value if agent.bot_type else None,
            utm_source=ctx.utm("utm_source"),
            utm_medium=ctx.utm("utm_medium"),
            utm_campaign=ctx.utm("utm_campaign"),
            utm_term=ctx.utm("utm_term"),
            utm_content=ctx.utm("utm_content"),
            session_id=ctx.session_id,
        )
        fit_to_columns(event)

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    seen = await has_recent_visit(
                        session,
                        link.short_code,
                        hashed_ip,
                        since=ctx.timestamp - self._unique_window,
                        until=ctx.timestamp,
                    )
                    event.is_unique_visitor = not seen
                    await append_click(session, event)
                    trimmed = await trim_ledger(session, link.short_code, self._max_events)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to record click for {link.short_code}") from e

        self._events_trimmed += trimmed
        record_retention_deleted("cap", trimmed)

        try:
            await self._links.increment_click_count(link.short_code)
            await self._links.mark_last_clicked(link.short_code, ctx.timestamp)
        except PersistenceError as e:
            self._counter_failures += 1
            logger.error(
                "Link counters drifted - click stored",
                short_code=link.short_code,
                click_id=event.id,
                error=str(e),
            )

        self._clicks_recorded += 1
        duration = time.perf_counter() - start_time
        record_click_recorded(duration)

        logger.debug(
            "Click recorded",
            short_code=link.short_code,
            unique=event.is_unique_visitor,
            is_bot=event.is_bot,
            trimmed=trimmed,
            duration_ms=round(duration * 1000, 2),
        )
        return event

    async def record_click(self, ctx: RedirectContext) -> ClickEvent | None:
        """Record one redirect, logging and dropping any failure.

        This is the fire-and-forget entry point used after a redirect has
        already been answered.
        """
        try:
            return await self.record(ctx)
        except NotFoundError:
            logger.warning("Click dropped - link not found", short_code=ctx.short_code)
            self._fail("not_found")
        except PersistenceError as e:
            logger.error("Click dropped - storage failure", short_code=ctx.short_code, error=str(e))
            self._fail("persistence")
        except Exception:
            logger.exception("Click dropped - unexpected error", short_code=ctx.short_code)
            self._fail("unexpected_error")
        return None

    async def _resolve_location(self, client_ip: str | None) -> GeoLocation:
        """Geo lookup for public IPs; failures degrade to an Unknown location."""
        if not is_public_ip(client_ip):
            return UNKNOWN_LOCATION
        try:
            return await self._geoip.lookup(client_ip)
        except UpstreamUnavailable as e:
            logger.warning("Geo lookup unavailable", error=str(e))
            return UNKNOWN_LOCATION

    def _fail(self, reason: str) -> None:
        self._clicks_failed += 1
        record_click_failed(reason)

    @property
    def stats(self) -> dict:
        """Get recorder statistics."""
        return {
            "clicks_recorded": self._clicks_recorded,
            "clicks_failed": self._clicks_failed,
            "events_trimmed": self._events_trimmed,
            "counter_failures": self._counter_failures,
            "max_events_per_link": self._max_events,
        }


# Global recorder instance
_recorder: ClickEventRecorder | None = None


def get_click_recorder() -> ClickEventRecorder:
    """Get the global recorder instance, creating it if necessary."""
    global _recorder
    if _recorder is None:
        settings = get_settings()
        _recorder = ClickEventRecorder(
            link_store=get_link_store(),
            geoip=get_geoip_service(),
            hasher=get_ip_hasher(),
            session_factory=async_session_factory,
            max_events_per_link=settings.max_clicks_per_link,
            unique_window=timedelta(hours=settings.unique_visitor_window_hours),
        )
    return _recorder

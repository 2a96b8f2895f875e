"""Shared fixtures: a throwaway SQLite ledger per test, fakes for geo lookup."""

from datetime import datetime
from uuid import UUID

import pytest
from httpx import ASGITransport, AsyncClient

from clicktrail.core.database import build_engine, build_session_factory, init_db
from clicktrail.exceptions import UpstreamUnavailable
from clicktrail.main import app
from clicktrail.models import ClickEvent, ShortLink
from clicktrail.services.analytics import AnalyticsService, get_analytics_service
from clicktrail.services.click_recorder import ClickEventRecorder
from clicktrail.services.dispatch import ClickDispatcher, get_dispatcher
from clicktrail.services.geoip import UNKNOWN_LOCATION, GeoLocation
from clicktrail.services.ip_hasher import IPPrivacyHasher
from clicktrail.services.link import LinkStore, create_link, get_link_store

OWNER_ID = UUID("5f0c6a4e-2b1d-4c3e-9f8a-7b6c5d4e3f21")
TEST_SALT = "test-salt"


class FakeGeoIP:
    """Stands in for GeoIPService; records every address it was asked about."""

    def __init__(self, locations: dict[str, GeoLocation] | None = None, fail: bool = False):
        self.locations = locations or {}
        self.fail = fail
        self.calls: list[str | None] = []

    async def lookup(self, ip_address: str | None) -> GeoLocation:
        self.calls.append(ip_address)
        if self.fail:
            raise UpstreamUnavailable("geo backend down")
        return self.locations.get(ip_address, UNKNOWN_LOCATION)


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'clicktrail.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def geoip():
    return FakeGeoIP(
        {
            "8.8.8.8": GeoLocation(
                country="United States",
                country_code="US",
                region="California",
                city="Mountain View",
                timezone="America/Los_Angeles",
                latitude=37.386,
                longitude=-122.0838,
            ),
            "81.2.69.142": GeoLocation(
                country="United Kingdom",
                country_code="GB",
                region="England",
                city="London",
                timezone="Europe/London",
            ),
        }
    )


@pytest.fixture
def hasher():
    return IPPrivacyHasher(TEST_SALT)


@pytest.fixture
def link_store(session_factory):
    return LinkStore(session_factory)


@pytest.fixture
def make_link(session_factory):
    async def _make(short_code: str = "abc123", **kwargs) -> ShortLink:
        kwargs.setdefault("owner_id", OWNER_ID)
        kwargs.setdefault("original_url", "https://example.com/landing")
        async with session_factory() as session:
            link = await create_link(session, short_code=short_code, **kwargs)
            await session.commit()
            return link

    return _make


@pytest.fixture
async def link(make_link):
    return await make_link()


@pytest.fixture
def recorder(link_store, geoip, hasher, session_factory):
    return ClickEventRecorder(link_store, geoip, hasher, session_factory, max_events_per_link=1000)


@pytest.fixture
def dispatcher(recorder):
    return ClickDispatcher(recorder, transport="inline", channel="clicktrail:test")


@pytest.fixture
def analytics_service(session_factory):
    return AnalyticsService(session_factory)


@pytest.fixture
def make_event():
    """Build an unsaved ClickEvent with every column filled in."""

    def _make(clicked_at: datetime, hashed_ip: str = "visitor-1", **overrides) -> ClickEvent:
        fields = {
            "link_id": OWNER_ID,
            "short_code": "abc123",
            "clicked_at": clicked_at,
            "hashed_ip": hashed_ip,
            "user_agent": None,
            "referrer": None,
            "referrer_category": "direct",
            "country": "Unknown",
            "country_code": "XX",
            "region": "Unknown",
            "city": "Unknown",
            "timezone": "UTC",
            "latitude": None,
            "longitude": None,
            "device": "desktop",
            "browser": "Chrome",
            "browser_version": "120.0",
            "os": "Windows",
            "os_version": "10",
            "is_bot": False,
            "bot_type": None,
            "utm_source": None,
            "utm_medium": None,
            "utm_campaign": None,
            "utm_term": None,
            "utm_content": None,
            "is_unique_visitor": True,
            "session_id": None,
        }
        fields.update(overrides)
        return ClickEvent(**fields)

    return _make


@pytest.fixture
async def client(link_store, dispatcher, analytics_service):
    app.dependency_overrides[get_link_store] = lambda: link_store
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_analytics_service] = lambda: analytics_service
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()

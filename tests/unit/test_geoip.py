"""Tests for the GeoIP service (IP-API backend via a mock transport)."""

import httpx
import pytest

from clicktrail.exceptions import UpstreamUnavailable
from clicktrail.services.geoip import UNKNOWN_LOCATION, GeoIPService, is_public_ip


def make_service(handler, fallback_enabled: bool = True) -> GeoIPService:
    return GeoIPService(
        geoip_database_path="",
        api_url="http://ip-api.test/json/",
        fallback_enabled=fallback_enabled,
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.parametrize(
    "ip, expected",
    [
        ("8.8.8.8", True),
        ("2001:4860:4860::8888", True),
        ("10.0.0.1", False),
        ("192.168.1.20", False),
        ("172.16.5.4", False),
        ("127.0.0.1", False),
        ("::1", False),
        ("fe80::1", False),
        ("169.254.1.1", False),
        ("0.0.0.0", False),
        ("224.0.0.1", False),
        ("not-an-ip", False),
        ("", False),
        (None, False),
    ],
)
def test_is_public_ip(ip, expected):
    assert is_public_ip(ip) is expected


async def test_lookup_maps_ip_api_response():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "status": "success",
                "country": "United States",
                "countryCode": "US",
                "regionName": "California",
                "city": "Mountain View",
                "timezone": "America/Los_Angeles",
                "lat": 37.386,
                "lon": -122.0838,
            },
        )

    service = make_service(handler)
    location = await service.lookup("8.8.8.8")
    await service.close()

    assert location.country == "United States"
    assert location.country_code == "US"
    assert location.region == "California"
    assert location.city == "Mountain View"
    assert location.timezone == "America/Los_Angeles"
    assert location.latitude == pytest.approx(37.386)
    assert location.longitude == pytest.approx(-122.0838)
    assert seen[0].url.path == "/json/8.8.8.8"
    assert "countryCode" in seen[0].url.params["fields"]


async def test_unsuccessful_lookup_is_unknown():
    service = make_service(
        lambda request: httpx.Response(200, json={"status": "fail", "message": "reserved range"})
    )
    assert await service.lookup("8.8.4.4") == UNKNOWN_LOCATION
    await service.close()


async def test_missing_fields_fall_back_to_defaults():
    service = make_service(
        lambda request: httpx.Response(200, json={"status": "success", "countryCode": "DE"})
    )
    location = await service.lookup("8.8.4.4")
    await service.close()

    assert location.country_code == "DE"
    assert location.country == "Unknown"
    assert location.timezone == "UTC"


async def test_http_error_raises_upstream_unavailable():
    service = make_service(lambda request: httpx.Response(503))
    with pytest.raises(UpstreamUnavailable):
        await service.lookup("8.8.8.8")
    await service.close()


async def test_transport_error_raises_upstream_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    service = make_service(handler)
    with pytest.raises(UpstreamUnavailable):
        await service.lookup("8.8.8.8")
    await service.close()


async def test_private_addresses_are_not_looked_up():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500)

    service = make_service(handler)
    assert await service.lookup("192.168.0.10") == UNKNOWN_LOCATION
    assert await service.lookup(None) == UNKNOWN_LOCATION
    await service.close()
    assert calls == []


async def test_disabled_fallback_returns_unknown():
    service = make_service(lambda request: httpx.Response(500), fallback_enabled=False)
    assert service.backend == "none"
    assert await service.lookup("8.8.8.8") == UNKNOWN_LOCATION
    await service.close()

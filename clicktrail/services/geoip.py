"""GeoIP service for IP to location lookup."""

import ipaddress
from dataclasses import dataclass
from pathlib import Path

import geoip2.database
import geoip2.errors
import httpx
import structlog

from clicktrail.core.config import get_settings
from clicktrail.exceptions import UpstreamUnavailable

logger = structlog.get_logger()

IP_API_FIELDS = "status,message,country,countryCode,regionName,city,timezone,lat,lon"


@dataclass(frozen=True)
class GeoLocation:
    """Geographic location data from IP lookup."""

    country: str = "Unknown"
    country_code: str = "XX"  # ISO 3166-1 alpha-2
    region: str = "Unknown"
    city: str = "Unknown"
    timezone: str = "UTC"
    latitude: float | None = None
    longitude: float | None = None


UNKNOWN_LOCATION = GeoLocation()


def is_public_ip(ip_address: str | None) -> bool:
    """Check whether an address is worth resolving.

    Private, loopback, link-local, reserved, unspecified, multicast and
    malformed addresses are not public.
    """
    if not ip_address:
        return False
    try:
        ip = ipaddress.ip_address(ip_address.strip())
    except ValueError:
        return False
    return not (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_unspecified
        or ip.is_multicast
    )


class GeoIPService:
    """Service for looking up geographic location from IP addresses.

    Supports two backends:
    1. GeoIP2 database (MaxMind) - for production use
    2. IP-API.com - free API fallback for development

    Usage:
        service = GeoIPService()
        location = await service.lookup("8.8.8.8")
        print(location.country, location.city)
    """

    def __init__(
        self,
        geoip_database_path: str | None = None,
        api_url: str | None = None,
        fallback_enabled: bool | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the GeoIP service.

        Args:
            geoip_database_path: Path to GeoIP2 database file.
                If not provided, falls back to IP-API.com.
            api_url: Base URL of the IP-API JSON endpoint.
            fallback_enabled: Whether IP-API may be used without a database.
            timeout: HTTP timeout in seconds for the fallback.
            transport: Optional httpx transport, used by tests.
        """
        settings = get_settings()
        self._geoip_reader: geoip2.database.Reader | None = None
        self._database_path = geoip_database_path or settings.geoip_database_path
        self._api_url = api_url or settings.geoip_api_url
        self._fallback_enabled = (
            settings.geoip_fallback_enabled if fallback_enabled is None else fallback_enabled
        )
        self._timeout = timeout or settings.geoip_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        if self._database_path:
            self._init_geoip2()

    def _init_geoip2(self) -> None:
        """Initialize GeoIP2 database reader."""
        path = Path(self._database_path)
        if not path.exists():
            logger.warning("GeoIP2 database not found", path=str(path))
            return
        try:
            self._geoip_reader = geoip2.database.Reader(str(path))
            logger.info("GeoIP2 database loaded", path=str(path))
        except (OSError, ValueError) as e:
            logger.error("Failed to load GeoIP2 database", path=str(path), error=str(e))

    @property
    def backend(self) -> str:
        """Name of the active lookup backend."""
        if self._geoip_reader is not None:
            return "geoip2"
        if self._fallback_enabled:
            return "ip-api"
        return "none"

    async def lookup(self, ip_address: str | None) -> GeoLocation:
        """Look up geographic location for an IP address.

        Args:
            ip_address: IP address to look up.

        Returns:
            GeoLocation, with Unknown fields when the address is not public
            or not known to the backend.

        Raises:
            UpstreamUnavailable: If the backend could not be queried.
        """
        if not is_public_ip(ip_address):
            return UNKNOWN_LOCATION

        # Try GeoIP2 database first
        if self._geoip_reader is not None:
            return self._lookup_geoip2(ip_address)

        # Fall back to IP-API
        if self._fallback_enabled:
            return await self._lookup_ip_api(ip_address)

        return UNKNOWN_LOCATION

    def _lookup_geoip2(self, ip_address: str) -> GeoLocation:
        """Look up location using GeoIP2 database."""
        try:
            response = self._geoip_reader.city(ip_address)
        except geoip2.errors.AddressNotFoundError:
            logger.debug("GeoIP2 address not found", ip=ip_address)
            return UNKNOWN_LOCATION
        except (geoip2.errors.GeoIP2Error, OSError, ValueError) as e:
            raise UpstreamUnavailable(f"GeoIP2 lookup failed: {e}") from e

        subdivision = response.subdivisions.most_specific
        return GeoLocation(
            country=response.country.name or UNKNOWN_LOCATION.country,
            country_code=response.country.iso_code or UNKNOWN_LOCATION.country_code,
            region=subdivision.name or UNKNOWN_LOCATION.region,
            city=response.city.name or UNKNOWN_LOCATION.city,
            timezone=response.location.time_zone or UNKNOWN_LOCATION.timezone,
            latitude=response.location.latitude,
            longitude=response.location.longitude,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def _lookup_ip_api(self, ip_address: str) -> GeoLocation:
        """Look up location using IP-API.com (free tier).

        Note: IP-API has rate limits (45 requests/minute for free tier).
        Use GeoIP2 database for production.
        """
        try:
            response = await self._get_client().get(
                f"{self._api_url.rstrip('/')}/{ip_address}",
                params={"fields": IP_API_FIELDS},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamUnavailable(f"IP-API lookup failed: {e}") from e

        if data.get("status") != "success":
            logger.debug("IP-API lookup unsuccessful", ip=ip_address, message=data.get("message"))
            return UNKNOWN_LOCATION

        return GeoLocation(
            country=data.get("country") or UNKNOWN_LOCATION.country,
            country_code=data.get("countryCode") or UNKNOWN_LOCATION.country_code,
            region=data.get("regionName") or UNKNOWN_LOCATION.region,
            city=data.get("city") or UNKNOWN_LOCATION.city,
            timezone=data.get("timezone") or UNKNOWN_LOCATION.timezone,
            latitude=data.get("lat"),
            longitude=data.get("lon"),
        )

    async def close(self) -> None:
        """Close the GeoIP2 database reader and the HTTP client."""
        if self._geoip_reader:
            self._geoip_reader.close()
            self._geoip_reader = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# Global service instance
_geoip_service: GeoIPService | None = None


def get_geoip_service() -> GeoIPService:
    """Get the global GeoIP service instance."""
    global _geoip_service
    if _geoip_service is None:
        _geoip_service = GeoIPService()
    return _geoip_service


async def close_geoip_service() -> None:
    """Close the global GeoIP service."""
    global _geoip_service
    if _geoip_service:
        await _geoip_service.close()
        _geoip_service = None

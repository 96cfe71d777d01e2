"""
Geocoding collaborator — Nominatim-compatible HTTP client (httpx).

Reverse geocoding feeds the area fallback of the location validator;
forward geocoding is used when an admin assigns a location by text.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Protocol

import httpx

from staffclock.core.config import settings

logger = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6_371_000

_EXACT_TYPES = {"house", "building", "residential", "yes", "commercial", "apartments"}
_STREET_TYPES = {"street", "road", "pedestrian"}
_NEIGHBOURHOOD_TYPES = {"neighbourhood", "suburb", "quarter"}
_CITY_TYPES = {"city", "town", "village", "municipality"}
_REGION_TYPES = {"state", "region", "province", "county"}
COARSE_GRANULARITIES = {"city", "region", "country"}


class GeocodingError(Exception):
    """The upstream geocoding service failed or answered garbage."""


@dataclass
class ReverseGeocodeResult:
    address: str
    city: str = ""
    state: str = ""


@dataclass
class ForwardGeocodeResult:
    latitude: float
    longitude: float
    display_name: str = ""
    granularity: str = "unknown"
    estimated_radius_meters: int | None = None


class Geocoder(Protocol):
    async def reverse(self, latitude: float, longitude: float) -> ReverseGeocodeResult | None: ...

    async def forward(self, text: str) -> ForwardGeocodeResult | None: ...


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two WGS84 points, in metres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _granularity(result_type: str | None) -> str:
    if result_type in _EXACT_TYPES:
        return "exact"
    if result_type in _STREET_TYPES:
        return "street"
    if result_type in _NEIGHBOURHOOD_TYPES:
        return "neighbourhood"
    if result_type in _CITY_TYPES:
        return "city"
    if result_type in _REGION_TYPES:
        return "region"
    if result_type == "country":
        return "country"
    return "unknown"


class NominatimGeocoder:
    """Thin async client for the Nominatim ``/reverse`` and ``/search`` APIs."""

    def __init__(
        self,
        base_url: str | None = None,
        user_agent: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.GEOCODER_BASE_URL).rstrip("/")
        self.user_agent = user_agent or settings.GEOCODER_USER_AGENT
        self.timeout = timeout or settings.GEOCODER_TIMEOUT_SECONDS
        self._transport = transport

    async def _get(self, path: str, params: dict) -> object:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers={"User-Agent": self.user_agent},
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                resp = await client.get(path, params=params)
                resp.raise_for_status()
                return resp.json()
            except httpx.HTTPError as exc:
                logger.error("Geocoder request %s failed: %s", path, exc)
                raise GeocodingError(str(exc)) from exc
            except ValueError as exc:
                logger.error("Geocoder returned invalid JSON for %s", path)
                raise GeocodingError("Invalid geocoder response") from exc

    async def reverse(self, latitude: float, longitude: float) -> ReverseGeocodeResult | None:
        data = await self._get(
            "/reverse",
            {"format": "json", "lat": latitude, "lon": longitude, "addressdetails": 1},
        )
        if not isinstance(data, dict) or not data.get("address"):
            return None
        address = data["address"]
        try:
            return ReverseGeocodeResult(
                address=data.get("display_name") or "",
                city=address.get("city")
                or address.get("town")
                or address.get("village")
                or address.get("municipality")
                or "",
                state=address.get("state") or address.get("region") or address.get("province") or "",
            )
        except (AttributeError, TypeError, ValueError) as exc:
            logger.error("Geocoder returned a malformed address for %s,%s", latitude, longitude)
            raise GeocodingError("Malformed reverse geocoding result") from exc

    async def forward(self, text: str) -> ForwardGeocodeResult | None:
        data = await self._get(
            "/search",
            {"format": "json", "q": text, "limit": 1, "addressdetails": 1},
        )
        if not isinstance(data, list) or not data:
            return None
        hit = data[0]
        try:
            lat, lon = float(hit["lat"]), float(hit["lon"])
        except (KeyError, TypeError, ValueError) as exc:
            raise GeocodingError("Geocoder result without coordinates") from exc

        try:
            estimated_radius = None
            bbox = hit.get("boundingbox")
            if bbox and len(bbox) == 4:
                lat_min, lat_max, lon_min, lon_max = (float(v) for v in bbox)
                # half the bounding-box diagonal
                estimated_radius = round(haversine_meters(lat_min, lon_min, lat_max, lon_max) / 2)

            return ForwardGeocodeResult(
                latitude=lat,
                longitude=lon,
                display_name=hit.get("display_name") or "",
                granularity=_granularity(hit.get("type")),
                estimated_radius_meters=estimated_radius,
            )
        except (AttributeError, TypeError, ValueError) as exc:
            logger.error("Geocoder returned a malformed search hit for %r", text)
            raise GeocodingError("Malformed forward geocoding result") from exc


async def human_readable_location(geocoder: Geocoder, latitude: float, longitude: float) -> str:
    """Best-effort address string for stored evidence; never raises."""
    fallback = f"Coordinates: {latitude:.6f}, {longitude:.6f}"
    try:
        location = await geocoder.reverse(latitude, longitude)
    except GeocodingError:
        return fallback
    if location is None:
        return fallback
    parts = [p for p in (location.address, location.city, location.state) if p]
    return ", ".join(parts) or fallback

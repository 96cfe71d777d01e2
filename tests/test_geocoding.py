"""Tests for the Nominatim client against canned upstream payloads."""

import httpx
import pytest

from staffclock.core.exceptions import ErrorCode
from staffclock.services.geocoding import GeocodingError, NominatimGeocoder
from staffclock.services.location import Coordinates, LocationValidator

from conftest import PINNED_NOW


def _geocoder(payload) -> NominatimGeocoder:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    return NominatimGeocoder(base_url="https://geo.test", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_reverse_reads_city_and_state():
    geocoder = _geocoder({
        "display_name": "100 Feet Road, Indiranagar, Bengaluru",
        "address": {"town": "Bengaluru", "state": "Karnataka"},
    })
    result = await geocoder.reverse(12.97, 77.64)
    assert result.address == "100 Feet Road, Indiranagar, Bengaluru"
    assert result.city == "Bengaluru"
    assert result.state == "Karnataka"


@pytest.mark.asyncio
async def test_forward_estimates_radius_from_bounding_box():
    geocoder = _geocoder([{
        "lat": "12.9716",
        "lon": "77.6412",
        "type": "suburb",
        "boundingbox": ["12.9616", "12.9816", "77.6312", "77.6512"],
    }])
    result = await geocoder.forward("Indiranagar")
    assert result.granularity == "neighbourhood"
    assert 1500 < result.estimated_radius_meters < 1600


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    {"display_name": "x", "address": ["not", "a", "mapping"]},
    {"display_name": "x", "address": "Bengaluru"},
])
async def test_reverse_malformed_address_is_a_geocoding_error(payload):
    with pytest.raises(GeocodingError):
        await _geocoder(payload).reverse(12.97, 77.64)


@pytest.mark.asyncio
@pytest.mark.parametrize("hit", [
    {"lat": "12.9", "lon": "77.6", "boundingbox": ["north", "south", "east", "west"]},
    {"lat": "12.9", "lon": "77.6", "boundingbox": [None, 1, 2, 3]},
    {"lat": "12.9", "lon": "77.6", "type": ["suburb"]},
    {"lon": "77.6"},
])
async def test_forward_malformed_hit_is_a_geocoding_error(hit):
    with pytest.raises(GeocodingError):
        await _geocoder([hit]).forward("Indiranagar")


@pytest.mark.asyncio
async def test_malformed_upstream_becomes_location_service_error(
    db_session, make_employee, make_assignment
):
    """A garbage reverse lookup surfaces as a service error, not a crash."""
    validator = LocationValidator(_geocoder({"address": "Bengaluru"}))
    emp = await make_employee()
    await make_assignment(emp, address="Indiranagar")
    result = await validator.validate(
        db_session, emp.employee_code, Coordinates(12.9716, 77.6412), now=PINNED_NOW
    )
    assert result.is_valid is False
    assert result.code is ErrorCode.LOCATION_SERVICE_ERROR

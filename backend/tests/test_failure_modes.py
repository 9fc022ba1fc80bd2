"""
Failure Injection Tests.

Validates resilience against geocoding, distance and email provider failures.
"""

import asyncio
import time

import httpx
import pytest
from sqlalchemy import select

from backend.app.core.exceptions import GeocodingError, DistanceError, NotificationError, BadRequestError
from backend.app.core.reliability import CircuitBreaker, CircuitOpenError, run_critical, run_advisory
from backend.app.domain.geo import Coordinates
from backend.app.models.notification import NotificationLog, NotificationKind, NotificationStatus
from backend.app.services.geocoding import (
    GoogleGeocoder, NominatimGeocoder, FallbackGeocoder, GoogleDistanceMatrix, FallbackDistanceProvider
)
from backend.tests.conftest import FakeGeocoder, FakeDistanceProvider, PLACES

GEOCODE_URL = "https://maps.example.com/geocode/json"
MATRIX_URL = "https://maps.example.com/distancematrix/json"
NOMINATIM_URL = "https://osm.example.com/search"


def google_geocoder(handler, api_key="test-key"):
    return GoogleGeocoder(
        api_key=api_key, url=GEOCODE_URL, region="Kenya", timeout=5,
        transport=httpx.MockTransport(handler)
    )


def geocode_result(lat, lng):
    return {"status": "OK", "results": [{"geometry": {"location": {"lat": lat, "lng": lng}}}]}


# Circuit breaker

@pytest.mark.asyncio
async def test_circuit_breaker_activates():
    """Test that circuit breaker opens after threshold failures."""
    cb = CircuitBreaker(failure_threshold=2, reset_timeout=60)

    async def failing_func():
        raise ValueError("Boom")

    for _ in range(2):
        with pytest.raises(ValueError):
            await cb.call(failing_func)

    assert cb.state == "OPEN"
    with pytest.raises(CircuitOpenError):
        await cb.call(failing_func)


@pytest.mark.asyncio
async def test_circuit_breaker_recovers_after_reset_timeout():
    cb = CircuitBreaker(failure_threshold=1, reset_timeout=60)

    async def failing_func():
        raise ValueError("Boom")

    async def healthy_func():
        return "ok"

    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert cb.state == "OPEN"

    cb.last_failure_time = time.time() - 61
    assert await cb.call(healthy_func) == "ok"
    assert cb.state == "CLOSED"
    assert cb.failures == 0


# Critical and advisory calls

@pytest.mark.asyncio
async def test_critical_call_timeout_raises():
    async def slow():
        await asyncio.sleep(1)

    with pytest.raises(GeocodingError) as exc:
        await run_critical("Geocoding origin", slow, timeout=0.01, error_cls=GeocodingError)
    assert "timed out" in exc.value.message


@pytest.mark.asyncio
async def test_critical_call_wraps_unexpected_errors():
    async def broken():
        raise RuntimeError("socket closed")

    with pytest.raises(DistanceError) as exc:
        await run_critical("Distance", broken, timeout=1, error_cls=DistanceError)
    assert "socket closed" in exc.value.message


@pytest.mark.asyncio
async def test_critical_call_keeps_application_errors():
    async def rejected():
        raise BadRequestError("nope")

    with pytest.raises(BadRequestError):
        await run_critical("Geocoding", rejected, timeout=1, error_cls=GeocodingError)


@pytest.mark.asyncio
async def test_advisory_call_never_raises():
    async def slow():
        await asyncio.sleep(1)

    async def broken():
        raise NotificationError("smtp down")

    async def fine():
        return None

    assert await run_advisory("Email", slow, timeout=0.01) is False
    assert await run_advisory("Email", broken, timeout=1) is False
    assert await run_advisory("Email", fine, timeout=1) is True


# Google geocoding

@pytest.mark.asyncio
async def test_google_geocoder_appends_region():
    seen = []

    def handler(request):
        seen.append(request.url.params["address"])
        return httpx.Response(200, json=geocode_result(-1.2676, 36.8108))

    coords = await google_geocoder(handler).geocode("  Westlands ")

    assert coords == Coordinates(-1.2676, 36.8108)
    assert seen == ["Westlands, Kenya"]


@pytest.mark.asyncio
async def test_google_geocoder_retries_without_region():
    seen = []

    def handler(request):
        address = request.url.params["address"]
        seen.append(address)
        if address.endswith("Kenya"):
            return httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []})
        return httpx.Response(200, json=geocode_result(-4.0435, 39.6682))

    coords = await google_geocoder(handler).geocode("Mombasa")

    assert coords.lat == -4.0435
    assert seen == ["Mombasa, Kenya", "Mombasa"]


@pytest.mark.asyncio
async def test_google_geocoder_request_denied():
    def handler(request):
        return httpx.Response(200, json={"status": "REQUEST_DENIED", "error_message": "Billing disabled"})

    with pytest.raises(GeocodingError) as exc:
        await google_geocoder(handler).geocode("Westlands")
    assert "request denied" in exc.value.message
    assert "Billing disabled" in exc.value.message


@pytest.mark.asyncio
async def test_google_geocoder_rejects_bad_payloads():
    def no_geometry(request):
        return httpx.Response(200, json={"status": "OK", "results": [{}]})

    def text_coordinates(request):
        return httpx.Response(200, json=geocode_result("-1.2", "36.8"))

    with pytest.raises(GeocodingError, match="missing geometry"):
        await google_geocoder(no_geometry).geocode("Westlands")

    with pytest.raises(GeocodingError, match="not numbers"):
        await google_geocoder(text_coordinates).geocode("Westlands")


@pytest.mark.asyncio
async def test_google_geocoder_without_key_or_place():
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(GeocodingError, match="API key"):
        await google_geocoder(handler, api_key=None).geocode("Westlands")

    with pytest.raises(GeocodingError, match="empty"):
        await google_geocoder(handler).geocode("   ")


@pytest.mark.asyncio
async def test_google_geocoder_http_error():
    def handler(request):
        return httpx.Response(503)

    with pytest.raises(GeocodingError, match="Failed to geocode"):
        await google_geocoder(handler).geocode("Westlands")


# Nominatim

@pytest.mark.asyncio
async def test_nominatim_geocoder():
    def handler(request):
        assert request.headers["User-Agent"] == "parcel-tests"
        assert request.url.params["q"] == "Thika, Kenya"
        return httpx.Response(200, json=[{"lat": "-1.0333", "lon": "37.0693"}])

    geocoder = NominatimGeocoder(
        url=NOMINATIM_URL, user_agent="parcel-tests", region="Kenya", timeout=5,
        transport=httpx.MockTransport(handler)
    )

    assert await geocoder.geocode("Thika") == Coordinates(-1.0333, 37.0693)


@pytest.mark.asyncio
async def test_nominatim_no_results():
    geocoder = NominatimGeocoder(
        url=NOMINATIM_URL, user_agent="parcel-tests", region="Kenya", timeout=5,
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json=[]))
    )

    with pytest.raises(GeocodingError, match="No geocoding results"):
        await geocoder.geocode("Atlantis")


# Fallback geocoding

@pytest.mark.asyncio
async def test_fallback_geocoder_uses_secondary_provider():
    primary = FakeGeocoder(places={})
    secondary = FakeGeocoder()
    geocoder = FallbackGeocoder(primary, secondary, CircuitBreaker(failure_threshold=5, reset_timeout=60))

    coords = await geocoder.geocode("Westlands")

    assert coords == PLACES["westlands"]
    assert primary.calls == ["Westlands"]
    assert secondary.calls == ["Westlands"]


@pytest.mark.asyncio
async def test_fallback_geocoder_reports_both_failures():
    geocoder = FallbackGeocoder(
        FakeGeocoder(places={}), FakeGeocoder(places={}), CircuitBreaker(failure_threshold=5, reset_timeout=60)
    )

    with pytest.raises(GeocodingError) as exc:
        await geocoder.geocode("Atlantis")
    assert "All geocoding services failed" in exc.value.message


@pytest.mark.asyncio
async def test_fallback_geocoder_skips_primary_when_circuit_open():
    primary = FakeGeocoder(places={})
    secondary = FakeGeocoder()
    breaker = CircuitBreaker(failure_threshold=1, reset_timeout=60)
    geocoder = FallbackGeocoder(primary, secondary, breaker)

    await geocoder.geocode("Westlands")
    await geocoder.geocode("Thika")

    assert breaker.state == "OPEN"
    assert primary.calls == ["Westlands"]
    assert secondary.calls == ["Westlands", "Thika"]


# Distance

def distance_matrix(handler, api_key="test-key"):
    return GoogleDistanceMatrix(api_key=api_key, url=MATRIX_URL, timeout=5, transport=httpx.MockTransport(handler))


def matrix_result(meters, status="OK"):
    element = {"status": status}
    if meters is not None:
        element["distance"] = {"value": meters, "text": f"{meters / 1000} km"}
    return {"status": "OK", "rows": [{"elements": [element]}]}


@pytest.mark.asyncio
@pytest.mark.parametrize("meters,expected", [(12345, 12.0), (12500, 13.0), (400, 0.0)])
async def test_distance_matrix_rounds_to_whole_km(meters, expected):
    provider = distance_matrix(lambda request: httpx.Response(200, json=matrix_result(meters)))

    assert await provider.distance_km("Nairobi CBD", "Thika") == expected


@pytest.mark.asyncio
async def test_distance_matrix_without_route():
    provider = distance_matrix(lambda request: httpx.Response(200, json=matrix_result(None, status="ZERO_RESULTS")))

    with pytest.raises(DistanceError, match="no valid distance"):
        await provider.distance_km("Nairobi CBD", "Atlantis")


@pytest.mark.asyncio
async def test_distance_falls_back_to_great_circle():
    primary = FakeDistanceProvider()
    primary.error = DistanceError("Distance calculation failed: no valid distance returned")
    provider = FallbackDistanceProvider(primary)

    distance = await provider.distance_km(
        "Nairobi CBD", "Mombasa", PLACES["nairobi cbd"], PLACES["mombasa"]
    )

    assert 430 <= distance <= 450
    assert distance == int(distance)

    with pytest.raises(DistanceError):
        await provider.distance_km("Nairobi CBD", "Mombasa")


# Email

@pytest.mark.asyncio
async def test_failed_email_is_logged_and_raised(notifier, email_transport, make_parcel, db_session):
    parcel = await make_parcel()
    email_transport.fail = True

    with pytest.raises(NotificationError):
        await notifier.send_location_update_notification(parcel, "Parklands", "Parcel in transit")

    entry = (await db_session.execute(select(NotificationLog))).scalar_one()
    assert entry.kind == NotificationKind.LOCATION_UPDATE
    assert entry.status == NotificationStatus.FAILED
    assert entry.recipient_email == "bob@example.com"


@pytest.mark.asyncio
async def test_sent_email_is_logged(notifier, email_transport, make_parcel, db_session):
    parcel = await make_parcel()

    await notifier.send_parcel_registered_notification(parcel)

    logs = (await db_session.execute(select(NotificationLog))).scalars().all()
    assert {entry.recipient_email for entry in logs} == {"alice@example.com", "bob@example.com"}
    assert all(entry.status == NotificationStatus.SENT for entry in logs)
    assert len(email_transport.sent) == 2

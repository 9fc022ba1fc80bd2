"""
Geocoding and Distance Providers.

Resolves place names to coordinates and road distances through the Google
Maps APIs, with OpenStreetMap Nominatim and great-circle distance as
fallbacks. Every provider failure surfaces as GeocodingError or
DistanceError with a descriptive message.
"""

import math
import logging
from typing import Optional

import httpx

from backend.app.core.config import settings
from backend.app.core.exceptions import GeocodingError, DistanceError
from backend.app.core.reliability import CircuitBreaker, CircuitOpenError, geocoding_circuit_breaker
from backend.app.domain.geo import Coordinates, haversine_km

logger = logging.getLogger(__name__)


def clean_place_name(place: Optional[str]) -> str:
    if not place or not place.strip():
        raise GeocodingError("Location is empty")
    return place.strip()


def with_region(place: str, region: str) -> str:
    """Append the service region unless the place already names it."""
    if not region or region.lower() in place.lower():
        return place
    return f"{place}, {region}"


class Geocoder:
    """Resolves a place name to coordinates."""

    name = "geocoder"

    async def geocode(self, place: str) -> Coordinates:
        raise NotImplementedError


class DistanceProvider:
    """Resolves the travel distance in kilometres between two places."""

    async def distance_km(
        self,
        origin: str,
        destination: str,
        origin_coords: Optional[Coordinates] = None,
        destination_coords: Optional[Coordinates] = None
    ) -> float:
        raise NotImplementedError


class GoogleGeocoder(Geocoder):
    """Google Maps Geocoding API."""

    name = "Google Maps"

    def __init__(
        self,
        api_key: Optional[str],
        url: str,
        region: str,
        timeout: float,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self.url = url
        self.region = region
        self.timeout = timeout
        self.transport = transport

    async def geocode(self, place: str) -> Coordinates:
        place = clean_place_name(place)
        if not self.api_key:
            raise GeocodingError("Google Maps API key is not configured")

        query = with_region(place, self.region)
        candidates = [query] + ([place] if place != query else [])

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                for candidate in candidates:
                    coords = await self._lookup(client, candidate)
                    if coords:
                        return coords
                    logger.info("No Google geocoding results for %r", candidate)
        except httpx.HTTPError as e:
            raise GeocodingError(f'Failed to geocode location "{query}": {e}')

        raise GeocodingError(f'No geocoding results found for location: "{query}" or its alternatives')

    async def _lookup(self, client: httpx.AsyncClient, address: str) -> Optional[Coordinates]:
        response = await client.get(self.url, params={"address": address, "key": self.api_key})
        response.raise_for_status()
        data = response.json()
        status = data.get("status")

        if status == "REQUEST_DENIED":
            raise GeocodingError(
                "Google Maps API request denied. Check your API key and billing setup. "
                f"Error: {data.get('error_message') or 'Unknown error'}"
            )
        if status == "OVER_QUERY_LIMIT":
            raise GeocodingError("Google Maps API quota exceeded. Check your billing and usage limits.")
        if status == "ZERO_RESULTS" or not data.get("results"):
            return None

        location = (data["results"][0].get("geometry") or {}).get("location")
        if not location:
            raise GeocodingError("Invalid geocoding response: missing geometry data")

        lat, lng = location.get("lat"), location.get("lng")
        if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
            raise GeocodingError("Invalid geocoding response: coordinates are not numbers")
        return Coordinates(lat=float(lat), lng=float(lng))


class NominatimGeocoder(Geocoder):
    """OpenStreetMap Nominatim search API."""

    name = "Nominatim"

    def __init__(
        self,
        url: str,
        user_agent: str,
        region: str,
        timeout: float,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.url = url
        self.user_agent = user_agent
        self.region = region
        self.timeout = timeout
        self.transport = transport

    async def geocode(self, place: str) -> Coordinates:
        query = with_region(clean_place_name(place), self.region)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, headers={"User-Agent": self.user_agent},
                                         transport=self.transport) as client:
                response = await client.get(self.url, params={"q": query, "format": "json", "limit": 1})
                response.raise_for_status()
                results = response.json()
        except httpx.HTTPError as e:
            raise GeocodingError(f"Failed to geocode location with Nominatim: {e}")

        if not results:
            raise GeocodingError(f'No geocoding results for location: "{query}"')

        try:
            return Coordinates(lat=float(results[0]["lat"]), lng=float(results[0]["lon"]))
        except (KeyError, TypeError, ValueError):
            raise GeocodingError("Invalid coordinates received from Nominatim")


class FallbackGeocoder(Geocoder):
    """
    Tries the primary provider behind a circuit breaker, then the fallback.

    The caller sees a single geocoder; it only fails when both providers do.
    """

    name = "fallback"

    def __init__(self, primary: Geocoder, fallback: Geocoder, breaker: CircuitBreaker):
        self.primary = primary
        self.fallback = fallback
        self.breaker = breaker

    async def geocode(self, place: str) -> Coordinates:
        place = clean_place_name(place)

        try:
            return await self.breaker.call(self.primary.geocode, place)
        except (GeocodingError, CircuitOpenError) as primary_error:
            logger.info("%s geocoding failed for %r, trying %s: %s",
                        self.primary.name, place, self.fallback.name, primary_error)
            try:
                return await self.fallback.geocode(place)
            except GeocodingError as fallback_error:
                raise GeocodingError(
                    f'All geocoding services failed for location "{place}". '
                    f"{self.primary.name}: {primary_error}. {self.fallback.name}: {fallback_error.message}"
                )


class GoogleDistanceMatrix(DistanceProvider):
    """Google Maps Distance Matrix API, rounded to whole kilometres."""

    def __init__(
        self,
        api_key: Optional[str],
        url: str,
        timeout: float,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def distance_km(self, origin, destination, origin_coords=None, destination_coords=None) -> float:
        if not self.api_key:
            raise DistanceError("Google Maps API key is not configured")

        params = {"origins": origin, "destinations": destination, "key": self.api_key}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(self.url, params=params)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            raise DistanceError(f"Distance calculation failed: {e}")

        element = ((data.get("rows") or [{}])[0].get("elements") or [{}])[0]
        if element.get("status") != "OK" or not element.get("distance"):
            raise DistanceError("Distance calculation failed: no valid distance returned")

        meters = element["distance"]["value"]
        return float(math.floor(meters / 1000 + 0.5))


class FallbackDistanceProvider(DistanceProvider):
    """
    Road distance from the primary provider, or the great-circle distance
    between the resolved coordinates when the primary fails.
    """

    def __init__(self, primary: DistanceProvider):
        self.primary = primary

    async def distance_km(self, origin, destination, origin_coords=None, destination_coords=None) -> float:
        try:
            return await self.primary.distance_km(origin, destination, origin_coords, destination_coords)
        except DistanceError as e:
            if origin_coords is None or destination_coords is None:
                raise
            logger.info("Road distance unavailable (%s), using great-circle distance", e.message)
            return float(math.floor(haversine_km(origin_coords, destination_coords) + 0.5))


def build_geocoder() -> Geocoder:
    return FallbackGeocoder(
        primary=GoogleGeocoder(
            api_key=settings.google_maps_api_key,
            url=settings.google_geocode_url,
            region=settings.geocode_region_suffix,
            timeout=settings.geocode_timeout_seconds,
        ),
        fallback=NominatimGeocoder(
            url=settings.nominatim_url,
            user_agent=settings.nominatim_user_agent,
            region=settings.geocode_region_suffix,
            timeout=settings.geocode_timeout_seconds,
        ),
        breaker=geocoding_circuit_breaker,
    )


def build_distance_provider() -> DistanceProvider:
    return FallbackDistanceProvider(
        GoogleDistanceMatrix(
            api_key=settings.google_maps_api_key,
            url=settings.google_distance_matrix_url,
            timeout=settings.geocode_timeout_seconds,
        )
    )

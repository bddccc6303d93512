from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
from loguru import logger
from pydantic import ValidationError

from opera.config import Settings, settings as default_settings
from opera.models.project import Coordinates


@dataclass(slots=True)
class GeocodeResult:
    coords: Coordinates
    address: str
    city: str | None = None
    state: str | None = None
    country: str | None = None
    postcode: str | None = None
    bbox: list[float] | None = None
    extra: dict[str, Any] = field(default_factory=dict)


class Geocoder(Protocol):
    async def geocode(self, address: str) -> list[GeocodeResult]: ...

    async def reverse_geocode(self, lat: float, lng: float) -> str | None: ...


def select_best(candidates: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Prefer landmarks/POIs, then the most important non-road, non-boundary hit."""
    if not candidates:
        return None
    for candidate in candidates:
        osm_class = candidate.get("class")
        osm_type = candidate.get("type")
        if (
            osm_class in ("tourism", "amenity")
            or (osm_class == "building" and osm_type != "yes")
            or osm_type == "attraction"
        ):
            return candidate
    places = [c for c in candidates if c.get("class") not in ("highway", "boundary")]
    if places:
        return max(places, key=lambda c: float(c.get("importance") or 0))
    return candidates[0]


def _to_result(raw: dict[str, Any], query: str) -> GeocodeResult:
    addr = raw.get("address") or {}
    bbox = raw.get("boundingbox")
    return GeocodeResult(
        coords=Coordinates(lat=float(raw["lat"]), lng=float(raw["lon"])),
        address=raw.get("display_name") or query,
        city=addr.get("city") or addr.get("town") or addr.get("village"),
        state=addr.get("state"),
        country=addr.get("country"),
        postcode=addr.get("postcode"),
        bbox=[float(v) for v in bbox] if bbox else None,
        extra={
            "osm_type": raw.get("osm_type"),
            "osm_id": raw.get("osm_id"),
            "class": raw.get("class"),
            "type": raw.get("type"),
            "importance": raw.get("importance"),
        },
    )


class NominatimGeocoder:
    """OpenStreetMap Nominatim client. Failures are logged and read as "no result"."""

    def __init__(
        self,
        config: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or default_settings
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.geocoder_base_url,
            timeout=self.config.geocoder_timeout_seconds,
            headers={"User-Agent": self.config.geocoder_user_agent},
            transport=self._transport,
        )

    async def geocode(self, address: str) -> list[GeocodeResult]:
        """Geocode ``address``; the preferred match comes first."""
        address = " ".join((address or "").split())
        if not address:
            return []
        try:
            async with self._client() as client:
                response = await client.get(
                    "/search",
                    params={"q": address, "format": "json", "limit": 10, "addressdetails": 1},
                )
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Geocoding failed for {address!r}: {e}")
            return []

        if not isinstance(payload, list) or not payload:
            logger.warning(f"Geocoding found no results for {address!r}")
            return []

        best = select_best(payload)
        ordered = [best] + [c for c in payload if c is not best]
        results: list[GeocodeResult] = []
        for raw in ordered:
            try:
                results.append(_to_result(raw, address))
            except (KeyError, TypeError, ValueError, ValidationError) as e:
                logger.debug(f"Skipping malformed geocode candidate: {e}")
        if results:
            logger.info(f"Geocoded {address!r} -> {results[0].address}")
        return results

    async def reverse_geocode(self, lat: float, lng: float) -> str | None:
        try:
            async with self._client() as client:
                response = await client.get(
                    "/reverse",
                    params={"lat": lat, "lon": lng, "format": "json"},
                )
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Reverse geocoding failed for ({lat}, {lng}): {e}")
            return None
        if not isinstance(payload, dict):
            return None
        return payload.get("display_name")

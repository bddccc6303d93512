from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from loguru import logger

from opera.config import Settings, settings as default_settings
from opera.models.project import Coordinates
from opera.models.research import LocationFinding
from opera.research_core.extract.entities import PLACE_LABELS, dedupe_preserving_order, load_nlp
from opera.tools.geocoder import Geocoder

US_STATES = {
    "al": "alabama", "ak": "alaska", "az": "arizona", "ar": "arkansas",
    "ca": "california", "co": "colorado", "ct": "connecticut", "de": "delaware",
    "fl": "florida", "ga": "georgia", "hi": "hawaii", "id": "idaho",
    "il": "illinois", "in": "indiana", "ia": "iowa", "ks": "kansas",
    "ky": "kentucky", "la": "louisiana", "me": "maine", "md": "maryland",
    "ma": "massachusetts", "mi": "michigan", "mn": "minnesota", "ms": "mississippi",
    "mo": "missouri", "mt": "montana", "ne": "nebraska", "nv": "nevada",
    "nh": "new hampshire", "nj": "new jersey", "nm": "new mexico", "ny": "new york",
    "nc": "north carolina", "nd": "north dakota", "oh": "ohio", "ok": "oklahoma",
    "or": "oregon", "pa": "pennsylvania", "ri": "rhode island", "sc": "south carolina",
    "sd": "south dakota", "tn": "tennessee", "tx": "texas", "ut": "utah",
    "vt": "vermont", "va": "virginia", "wa": "washington", "wv": "west virginia",
    "wi": "wisconsin", "wy": "wyoming", "dc": "district of columbia",
}

COMMON_ABBREVIATIONS = {
    "ny": {"new york"},
    "nyc": {"new york city", "new york"},
    "la": {"los angeles"},
    "sf": {"san francisco"},
    "dc": {"washington dc", "washington"},
    "uk": {"united kingdom"},
    "us": {"united states"},
    "usa": {"united states", "united states of america"},
}

COUNTRIES = (
    "United States", "USA", "US",
    "United Kingdom", "UK",
    "Canada", "France", "Germany", "Italy", "Spain",
    "Australia", "New Zealand", "Japan", "China", "India",
    "Brazil", "Mexico", "Argentina", "South Africa",
    "Russia", "South Korea", "North Korea",
)

_CITY_TAIL = r"(?:,[ \t]*[A-Z][\w]*(?:[ \t]+[A-Z][\w]*){0,3})?(?:,[ \t]*[A-Z]{2}(?:[ \t]+\d{5})?)?"

STREET_PATTERN = re.compile(
    r"\b\d{1,6}[ \t]+(?:[A-Z0-9][\w.]*[ \t]+){0,4}"
    r"(?:Street|St|Avenue|Ave|Road|Rd|Boulevard|Blvd|Drive|Dr|Lane|Ln|Circle|Cir|Court|Ct|Way|Place|Pl)\b\.?"
    + _CITY_TAIL
)
PO_BOX_PATTERN = re.compile(r"\b(?i:P\.?[ \t]?O\.?[ \t]+Box)[ \t]+\d+" + _CITY_TAIL)
CITY_STATE_PATTERN = re.compile(r"\b([A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+)*),[ \t]+([A-Z]{2})\b")

STREET_WORDS = ("street", "avenue", "road")

Sleep = Callable[[float], Awaitable[None]]


def extract_addresses(text: str) -> list[str]:
    """Street addresses, PO boxes and "City, ST" pairs, in order of appearance."""
    addresses: list[str] = []
    addresses.extend(m.group(0).strip() for m in STREET_PATTERN.finditer(text))
    addresses.extend(m.group(0).strip() for m in PO_BOX_PATTERN.finditer(text))
    for match in CITY_STATE_PATTERN.finditer(text):
        if match.group(2).lower() in US_STATES:
            addresses.append(match.group(0).strip())
    return dedupe_preserving_order(addresses)


def extract_countries(text: str) -> list[str]:
    found: list[str] = []
    for country in COUNTRIES:
        if re.search(rf"\b{re.escape(country)}\b", text):
            found.append(country)
    return found


def normalize_location(name: str) -> str:
    if not name:
        return ""
    name = re.sub(r"\s+", " ", name.lower().strip())
    name = re.sub(r"^the\s+", "", name)
    name = name.replace(".", "")
    return name.rstrip(",").strip()


def _contains_phrase(haystack: str, needle: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(needle)}(?!\w)", haystack) is not None


def is_abbreviation_of(short: str, long: str) -> bool:
    if len(short) >= len(long):
        return False
    if long in COMMON_ABBREVIATIONS.get(short, ()):
        return True
    return US_STATES.get(short) == long


def are_locations_same(a: str, b: str) -> bool:
    """Exact, whole-word containment or known abbreviation ("NY" == "New York")."""
    norm_a = normalize_location(a)
    norm_b = normalize_location(b)
    if not norm_a or not norm_b:
        return False
    if norm_a == norm_b:
        return True
    if _contains_phrase(norm_a, norm_b) or _contains_phrase(norm_b, norm_a):
        return True
    return is_abbreviation_of(norm_a, norm_b) or is_abbreviation_of(norm_b, norm_a)


@dataclass(slots=True)
class LocationCandidate:
    name: str
    address: str
    coordinates: Coordinates | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    bbox: list[float] | None = None
    confidence: str = "low"  # "high" iff geocoded

    def to_finding(self, *, source_url: str = "", context: str = "") -> LocationFinding:
        return LocationFinding(
            name=self.name,
            address=self.address,
            coordinates=self.coordinates,
            city=self.city,
            state=self.state,
            country=self.country,
            bbox=self.bbox,
            source_url=source_url,
            context=context,
        )


class LocationExtractor:
    """Finds place names and addresses in text and geocodes each one.

    Geocoding calls are made one at a time with ``geocode_delay_seconds``
    between them.
    """

    def __init__(
        self,
        geocoder: Geocoder,
        *,
        nlp: Any = None,
        config: Settings | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.geocoder = geocoder
        self.config = config or default_settings
        self._nlp = nlp
        self._sleep = sleep

    @property
    def nlp(self):
        if self._nlp is None:
            self._nlp = load_nlp(self.config.spacy_model)
        return self._nlp

    def extract_places(self, text: str) -> list[str]:
        try:
            doc = self.nlp(text)
        except ValueError as e:
            logger.error(f"NLP parsing failed: {e}")
            return []
        return dedupe_preserving_order(
            ent.text.strip() for ent in doc.ents if ent.label_ in PLACE_LABELS and len(ent.text.strip()) > 1
        )

    def extract_cities(self, text: str) -> list[str]:
        cities: list[str] = []
        for place in self.extract_places(text):
            lowered = place.lower()
            if len(place.split()) > 3 or len(place) <= 3:
                continue
            if any(word in lowered for word in STREET_WORDS):
                continue
            cities.append(place)
        return cities

    def extract_candidates(self, text: str) -> list[str]:
        return dedupe_preserving_order(self.extract_places(text) + extract_addresses(text))

    async def geocode_candidate(self, candidate: str) -> LocationCandidate:
        results = await self.geocoder.geocode(candidate)
        if not results:
            logger.warning(f"Location could not be geocoded: {candidate!r}")
            return LocationCandidate(name=candidate.lower(), address=candidate)
        best = results[0]
        return LocationCandidate(
            name=candidate.lower(),
            address=best.address or candidate,
            coordinates=best.coords,
            city=best.city,
            state=best.state,
            country=best.country,
            bbox=best.bbox,
            confidence="high",
        )

    async def extract_and_geocode(self, text: str, source_url: str | None = None) -> list[LocationCandidate]:
        if not text or not text.strip():
            return []

        candidates = self.extract_candidates(text)
        logger.info(
            f"Extracted {len(candidates)} location candidates from {source_url or 'text'}: "
            f"{candidates[:5]}"
        )

        locations: list[LocationCandidate] = []
        for index, candidate in enumerate(candidates):
            if index:
                await self._sleep(self.config.geocode_delay_seconds)
            locations.append(await self.geocode_candidate(candidate))

        geocoded = sum(1 for loc in locations if loc.confidence == "high")
        logger.info(
            f"Location extraction complete for {source_url or 'text'}: "
            f"{len(locations)} found, {geocoded} geocoded"
        )
        return locations

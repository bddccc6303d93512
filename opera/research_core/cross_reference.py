from __future__ import annotations

import math
from dataclasses import replace

from loguru import logger
from rapidfuzz import fuzz

from opera.config import Settings, settings as default_settings
from opera.models.project import ItemType, ProjectItem
from opera.models.research import (
    CrossReferenceResult,
    EntityFinding,
    Finding,
    KeywordFinding,
    LocationFinding,
    OrganizationFinding,
    SourceRecord,
)
from opera.research_core.extract.entities import are_entities_same
from opera.research_core.extract.locations import are_locations_same

EARTH_RADIUS_M = 6_371_000

SAME_LOCATION_SCORE = 0.95
SAME_ENTITY_SCORE = 0.95
ADDRESS_MATCH_SCORE = 0.9
NEAR_DISTANCE_M = 100
NEAR_SCORE = 0.95
CLOSE_DISTANCE_M = 1000
CLOSE_SCORE = 0.85
DUPLICATE_CONFIDENCE = 0.3

SOURCE_TYPE_BOOST = {
    "news": 0.15,
    "public_record": 0.10,
    "web": 0.05,
}

ENTITY_ITEM_TYPES = (ItemType.ENTITY, ItemType.ORGANIZATION)


def string_similarity(a: str, b: str) -> float:
    a = (a or "").lower().strip()
    b = (b or "").lower().strip()
    if not a or not b:
        return 0.0
    return fuzz.ratio(a, b) / 100.0


def calculate_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters (Haversine)."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _location_score(finding: LocationFinding, item: ProjectItem) -> float:
    name = finding.name or finding.address or ""
    if are_locations_same(name, item.name):
        score = SAME_LOCATION_SCORE
    else:
        score = string_similarity(name, item.name)

    item_address = item.data.get("address")
    if finding.address and isinstance(item_address, str):
        if finding.address.lower().strip() == item_address.lower().strip():
            score = max(score, ADDRESS_MATCH_SCORE)

    if finding.coordinates is not None and item.coords is not None:
        distance = calculate_distance(
            finding.coordinates.lat,
            finding.coordinates.lng,
            item.coords.lat,
            item.coords.lng,
        )
        if distance < NEAR_DISTANCE_M:
            score = max(score, NEAR_SCORE)
        elif distance < CLOSE_DISTANCE_M:
            score = max(score, CLOSE_SCORE)
    return score


def _entity_score(name: str, item: ProjectItem) -> float:
    if are_entities_same(name, item.name, 0.85):
        return SAME_ENTITY_SCORE
    return string_similarity(name, item.name)


def calculate_match_score(finding: Finding, item: ProjectItem) -> float:
    """Similarity in [0, 1] between a finding and an item of the same kind."""
    match finding:
        case LocationFinding():
            if item.type != ItemType.LOCATION or not (finding.name or finding.address):
                return 0.0
            return _location_score(finding, item)
        case EntityFinding() | OrganizationFinding():
            if item.type not in ENTITY_ITEM_TYPES or not finding.name:
                return 0.0
            return _entity_score(finding.name, item)
        case KeywordFinding():
            if item.type != ItemType.KEYWORD:
                return 0.0
            return string_similarity(finding.name, item.name)
    return 0.0


def find_best_match(
    finding: Finding,
    items: list[ProjectItem],
    threshold: float = 0.7,
) -> tuple[ProjectItem, float] | None:
    best: tuple[ProjectItem, float] | None = None
    for item in items:
        score = calculate_match_score(finding, item)
        if score >= threshold and (best is None or score > best[1]):
            best = (item, score)
    return best


def cross_reference(
    findings: list[Finding],
    items: list[ProjectItem],
    threshold: float = 0.7,
) -> list[CrossReferenceResult]:
    results: list[CrossReferenceResult] = []
    for finding in findings:
        match = find_best_match(finding, items, threshold)
        if match is None:
            results.append(CrossReferenceResult(finding, None, 1.0, True))
        else:
            item, score = match
            results.append(CrossReferenceResult(finding, item, score, False))
    return results


def generate_confidence_score(
    source: SourceRecord | None,
    *,
    mention_count: int = 1,
    novelty: float = 1.0,
) -> float:
    """Blend novelty, source credibility, repeat mentions and source type; capped at 1.0."""
    score = 0.5 * novelty
    if source is not None and source.credibility_score:
        score += source.credibility_score / 10 * 0.3
    else:
        score += 0.15
    if mention_count > 1:
        score += min(mention_count * 0.05, 0.2)
    if source is not None:
        score += SOURCE_TYPE_BOOST.get(source.source_type, 0.0)
    return min(score, 1.0)


def filter_by_confidence(
    results: list[CrossReferenceResult],
    min_confidence: float = 0.5,
) -> list[CrossReferenceResult]:
    return [r for r in results if r.confidence >= min_confidence]


def _finding_key(finding: Finding) -> str:
    if isinstance(finding, LocationFinding):
        return (finding.name or finding.address or "").lower().strip()
    return finding.name.lower().strip()


def deduplicate_findings(findings: list[Finding]) -> list[Finding]:
    """Collapse findings with the same kind and normalized name; the higher confidence wins."""
    kept: dict[tuple[str, str], Finding] = {}
    for finding in findings:
        key = (finding.kind.value, _finding_key(finding))
        if not key[1]:
            continue
        existing = kept.get(key)
        if existing is None or finding.confidence > existing.confidence:
            kept[key] = finding
    return list(kept.values())


def count_mentions(text: str, name: str) -> int:
    if not text or not name:
        return 0
    return text.lower().count(name.lower())


class CrossReferencer:
    """Matches findings against project items and assigns final confidences."""

    def __init__(self, config: Settings | None = None):
        self.config = config or default_settings

    def run(
        self,
        findings: list[Finding],
        items: list[ProjectItem],
        *,
        sources: dict[str, SourceRecord] | None = None,
        texts: dict[str, str] | None = None,
    ) -> list[CrossReferenceResult]:
        sources = sources or {}
        texts = texts or {}
        results = cross_reference(findings, items, self.config.match_threshold)
        scored: list[CrossReferenceResult] = []
        for result in results:
            if result.is_new:
                finding = result.finding
                confidence = generate_confidence_score(
                    sources.get(finding.source_url),
                    mention_count=count_mentions(texts.get(finding.source_url, ""), finding.name),
                )
            else:
                confidence = DUPLICATE_CONFIDENCE
            scored.append(
                replace(
                    result,
                    confidence=confidence,
                    finding=replace(result.finding, confidence=confidence),
                )
            )
        new_count = sum(1 for r in scored if r.is_new)
        logger.info(
            f"Cross-referenced {len(findings)} findings against {len(items)} items: "
            f"{new_count} new, {len(scored) - new_count} duplicates"
        )
        return scored

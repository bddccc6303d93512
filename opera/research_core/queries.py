from __future__ import annotations

from itertools import combinations

from loguru import logger

from opera.config import Settings, settings as default_settings
from opera.models.project import ItemType, ProjectItem
from opera.models.research import SearchQuery
from opera.research_core.extract.entities import calculate_similarity

INVESTIGATION_TYPES = ("general", "person", "organization", "location", "keyword")

_TYPE_FOR_INVESTIGATION = {
    "person": ItemType.ENTITY,
    "organization": ItemType.ORGANIZATION,
    "location": ItemType.LOCATION,
    "keyword": ItemType.KEYWORD,
}


def format_term(term: str) -> str:
    return term.strip().strip("\"'").strip()


def quote(term: str) -> str:
    return f'"{format_term(term)}"'


def generate_pairwise_queries(items: list[ProjectItem], *, max_queries: int = 20) -> list[SearchQuery]:
    """Every unordered pair of items as ``a AND b``, in index order."""
    queries: list[SearchQuery] = []
    for first, second in combinations(items, 2):
        if first.id == second.id:
            continue
        queries.append(
            SearchQuery(
                query=f"{format_term(first.name)} AND {format_term(second.name)}",
                items=[first, second],
                priority=1,
                strategy="pairwise",
            )
        )
    if len(queries) > max_queries:
        logger.info(f"Capping pairwise queries at {max_queries} (generated {len(queries)})")
    return queries[:max_queries]


def generate_queries(
    items: list[ProjectItem],
    *,
    max_queries: int = 50,
    max_combinations: int = 3,
) -> list[SearchQuery]:
    """Type-aware strategies: singles, pairs and triples, ranked by priority."""
    entities = [i for i in items if i.type == ItemType.ENTITY]
    organizations = [i for i in items if i.type == ItemType.ORGANIZATION]
    keywords = [i for i in items if i.type == ItemType.KEYWORD]
    locations = [i for i in items if i.type == ItemType.LOCATION]

    queries: list[SearchQuery] = []

    def add(query: str, group: list[ProjectItem], priority: int) -> None:
        queries.append(SearchQuery(query=query, items=group, priority=priority, strategy="smart"))

    for item in entities + organizations + keywords:
        add(format_term(item.name), [item], 1)

    for entity in entities[:10]:
        for keyword in keywords[:10]:
            add(f"{quote(entity.name)} {format_term(keyword.name)}", [entity, keyword], 2)

    for entity in entities[:10]:
        for location in locations[:10]:
            add(f"{quote(entity.name)} {quote(location.name)}", [entity, location], 3)

    for org in organizations[:5]:
        for location in locations[:10]:
            add(f"{quote(org.name)} {quote(location.name)}", [org, location], 2)

    if max_combinations >= 3:
        for entity in entities[:5]:
            for keyword in keywords[:5]:
                for location in locations[:5]:
                    add(
                        f"{quote(entity.name)} {format_term(keyword.name)} {quote(location.name)}",
                        [entity, keyword, location],
                        3,
                    )

    for entity in entities[:10]:
        for org in organizations[:5]:
            add(f"{quote(entity.name)} {quote(org.name)}", [entity, org], 2)

    # sorted() is stable, so strategy order is kept within a priority
    queries = sorted(queries, key=lambda q: q.priority)
    final = queries[:max_queries]
    logger.info(
        f"Generated search queries: total={len(queries)} final={len(final)} "
        f"entities={len(entities)} orgs={len(organizations)} "
        f"keywords={len(keywords)} locations={len(locations)}"
    )
    return final


def generate_smart_queries(
    items: list[ProjectItem],
    investigation_type: str = "general",
    *,
    max_queries: int = 50,
) -> list[SearchQuery]:
    base = generate_queries(items, max_queries=100)
    focus = _TYPE_FOR_INVESTIGATION.get(investigation_type)
    if focus is None:
        return base[:max_queries]

    filtered = [q for q in base if any(i.type == focus for i in q.items)]
    if investigation_type == "person":
        # single-entity queries lead, the rest keep priority order
        filtered.sort(key=lambda q: (not (len(q.items) == 1 and q.items[0].type == focus), q.priority))
    return filtered[:max_queries]


def deduplicate_queries(queries: list[SearchQuery], threshold: float = 0.9) -> list[SearchQuery]:
    """Drop queries whose token overlap with an earlier one reaches ``threshold``."""
    kept: list[SearchQuery] = []
    seen: list[str] = []
    for query in queries:
        normalized = query.query.lower().strip()
        if any(calculate_similarity(normalized, prior) >= threshold for prior in seen):
            continue
        seen.append(normalized)
        kept.append(query)
    return kept


def expand_query(query: str, related_terms: list[str]) -> list[str]:
    return [query] + [f"{query} {term}" for term in related_terms[:3]]


class QueryGenerator:
    """Turns a project's items into a bounded, ordered list of search queries."""

    def __init__(self, config: Settings | None = None):
        self.config = config or default_settings

    def generate(self, items: list[ProjectItem], *, investigation_type: str = "general") -> list[SearchQuery]:
        if len(items) < 2:
            return []
        if self.config.query_strategy == "smart":
            queries = generate_smart_queries(
                items,
                investigation_type,
                max_queries=self.config.max_search_queries,
            )
            return deduplicate_queries(queries)
        return generate_pairwise_queries(items, max_queries=self.config.max_queries)

"""Tests for search query generation."""
from opera.config import Settings
from opera.models.project import ItemType, ProjectItem
from opera.models.research import SearchQuery
from opera.research_core.queries import (
    QueryGenerator,
    deduplicate_queries,
    expand_query,
    generate_pairwise_queries,
    generate_queries,
    generate_smart_queries,
)


def _items(*specs: tuple[str, ItemType]) -> list[ProjectItem]:
    return [ProjectItem(name=name, type=kind) for name, kind in specs]


def test_pairwise_produces_every_unordered_pair():
    items = _items(*[(f"item {i}", ItemType.KEYWORD) for i in range(5)])
    queries = generate_pairwise_queries(items, max_queries=100)

    assert len(queries) == 5 * 4 // 2
    for query in queries:
        first, second = query.items
        assert first.id != second.id
        assert query.query == f"{first.name} AND {second.name}"


def test_pairwise_respects_cap():
    items = _items(*[(f"item {i}", ItemType.KEYWORD) for i in range(10)])
    assert len(generate_pairwise_queries(items, max_queries=20)) == 20


def test_generator_returns_nothing_for_fewer_than_two_items():
    generator = QueryGenerator(Settings(log_to_file=False))
    assert generator.generate([]) == []
    assert generator.generate(_items(("acme corp", ItemType.ORGANIZATION))) == []

    smart = QueryGenerator(Settings(log_to_file=False, query_strategy="smart"))
    assert smart.generate(_items(("acme corp", ItemType.ORGANIZATION))) == []


def test_generator_pairs_two_items():
    items = _items(("acme corp", ItemType.KEYWORD), ("springfield", ItemType.KEYWORD))
    queries = QueryGenerator(Settings(log_to_file=False)).generate(items)

    assert [q.query for q in queries] == ["acme corp AND springfield"]
    assert queries[0].items == items


def test_smart_queries_are_ordered_by_priority():
    items = _items(
        ("jane doe", ItemType.ENTITY),
        ("acme corp", ItemType.ORGANIZATION),
        ("springfield", ItemType.LOCATION),
        ("fraud", ItemType.KEYWORD),
    )
    queries = generate_queries(items)

    priorities = [q.priority for q in queries]
    assert priorities == sorted(priorities)
    texts = [q.query for q in queries]
    assert "jane doe" in texts
    assert '"acme corp" "springfield"' in texts
    assert '"jane doe" fraud "springfield"' in texts
    # locations are never searched alone
    assert "springfield" not in texts


def test_smart_queries_filter_by_investigation_type():
    items = _items(
        ("jane doe", ItemType.ENTITY),
        ("acme corp", ItemType.ORGANIZATION),
        ("springfield", ItemType.LOCATION),
    )
    queries = generate_smart_queries(items, "location")
    assert queries
    assert all(any(i.type == ItemType.LOCATION for i in q.items) for q in queries)

    person = generate_smart_queries(items, "person")
    assert person[0].query == "jane doe"


def test_deduplicate_queries_drops_near_duplicates():
    item = ProjectItem(name="x", type=ItemType.KEYWORD)
    queries = [
        SearchQuery(query="acme corp springfield", items=[item]),
        SearchQuery(query="Acme Corp Springfield", items=[item]),
        SearchQuery(query="acme corp chicago", items=[item]),
    ]
    kept = deduplicate_queries(queries)
    assert [q.query for q in kept] == ["acme corp springfield", "acme corp chicago"]


def test_expand_query_adds_up_to_three_terms():
    assert expand_query("acme", ["a", "b", "c", "d"]) == ["acme", "acme a", "acme b", "acme c"]

from __future__ import annotations

import hashlib
import json

from opera.models.research import SourceRecord
from opera.research_core.repository import ResearchRepository


def test_cycle_numbers_are_per_project():
    repo = ResearchRepository()
    first = repo.create_cycle("p1")
    second = repo.create_cycle("p1")
    other = repo.create_cycle("p2")

    assert (first.cycle_number, second.cycle_number, other.cycle_number) == (1, 2, 1)
    assert repo.latest_cycle("p1") is second
    assert repo.get_cycle(first.id) is first
    assert repo.latest_cycle("missing") is None
    assert [c.id for c in repo.list_cycles("p1")] == [first.id, second.id]


def test_query_log_lifecycle():
    repo = ResearchRepository()
    entry = repo.log_query("p1", "c1", "acme AND springfield", ["acme", "springfield"])
    assert entry.status == "searching"

    repo.complete_query(entry, results_count=4, providers=["bing", "duckduckgo"])
    assert entry.status == "completed"
    assert entry.results_count == 4
    assert entry.completed_at is not None

    failed = repo.log_query("p1", "c1", "acme", ["acme"])
    repo.fail_query(failed, "search down")
    assert failed.error_message == "search down"
    assert len(repo.list_queries("c1")) == 2


def test_records_are_written_as_json(tmp_path):
    repo = ResearchRepository(base_dir=str(tmp_path))
    cycle = repo.create_cycle("p1")
    source = SourceRecord(url="https://news.example.com/a", title="A", cycle_id=cycle.id)

    path = repo.save_source(source)

    assert path == tmp_path / "sources" / f"{hashlib.sha1(source.url.encode()).hexdigest()}.json"
    assert json.loads(path.read_text(encoding="utf-8"))["title"] == "A"
    cycle_file = json.loads((tmp_path / "cycles" / f"{cycle.id}.json").read_text(encoding="utf-8"))
    assert cycle_file["cycleNumber"] == 1
    assert repo.list_sources(cycle.id) == [source]

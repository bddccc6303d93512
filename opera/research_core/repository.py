from __future__ import annotations

import hashlib
import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

from loguru import logger

from opera.models.research import ResearchCycle, SearchQueryLog, SourceRecord, utc_now


class ResearchRepository:
    """Records research cycles, search-query logs and discovered sources.

    Everything is kept in memory; when ``base_dir`` is given each record is
    also written as JSON (sources keyed by sha1 of the URL).
    """

    def __init__(self, *, base_dir: str | None = None):
        self._cycles: dict[str, ResearchCycle] = {}
        self._cycle_numbers: dict[str, int] = {}
        self._queries: dict[str, SearchQueryLog] = {}
        self._sources: dict[str, SourceRecord] = {}
        self.base_dir = Path(base_dir) if base_dir else None
        if self.base_dir is not None:
            for sub in ("cycles", "queries", "sources"):
                (self.base_dir / sub).mkdir(parents=True, exist_ok=True)

    def _write(self, kind: str, key: str, payload: dict[str, Any]) -> Path | None:
        if self.base_dir is None:
            return None
        path = self.base_dir / kind / f"{key}.json"
        path.write_text(json.dumps(payload, ensure_ascii=False, indent=2, default=str), encoding="utf-8")
        return path

    # --- cycles ---

    def create_cycle(self, project_id: str, *, started_by: str | None = None) -> ResearchCycle:
        number = self._cycle_numbers.get(project_id, 0) + 1
        self._cycle_numbers[project_id] = number
        cycle = ResearchCycle(project_id=project_id, cycle_number=number, started_by=started_by)
        self.save_cycle(cycle)
        return cycle

    def save_cycle(self, cycle: ResearchCycle) -> None:
        self._cycles[cycle.id] = cycle
        self._write("cycles", cycle.id, cycle.to_dict())

    def get_cycle(self, cycle_id: str) -> ResearchCycle | None:
        return self._cycles.get(cycle_id)

    def list_cycles(self, project_id: str) -> list[ResearchCycle]:
        cycles = [c for c in self._cycles.values() if c.project_id == project_id]
        return sorted(cycles, key=lambda c: c.cycle_number)

    def latest_cycle(self, project_id: str) -> ResearchCycle | None:
        cycles = self.list_cycles(project_id)
        return cycles[-1] if cycles else None

    # --- search queries ---

    def log_query(self, project_id: str, cycle_id: str, query: str, item_names: list[str]) -> SearchQueryLog:
        entry = SearchQueryLog(
            project_id=project_id,
            cycle_id=cycle_id,
            query_string=query,
            item_names=item_names,
        )
        self._queries[entry.id] = entry
        self._write("queries", entry.id, asdict(entry))
        return entry

    def complete_query(self, entry: SearchQueryLog, *, results_count: int, providers: list[str]) -> None:
        entry.status = "completed"
        entry.results_count = results_count
        entry.providers = providers
        entry.completed_at = utc_now()
        self._write("queries", entry.id, asdict(entry))

    def fail_query(self, entry: SearchQueryLog, error: str) -> None:
        entry.status = "failed"
        entry.error_message = error
        entry.completed_at = utc_now()
        self._write("queries", entry.id, asdict(entry))

    def list_queries(self, cycle_id: str) -> list[SearchQueryLog]:
        return [q for q in self._queries.values() if q.cycle_id == cycle_id]

    # --- sources ---

    def save_source(self, source: SourceRecord) -> Path | None:
        self._sources[source.id] = source
        key = hashlib.sha1(source.url.encode("utf-8")).hexdigest()
        path = self._write("sources", key, source.to_dict())
        logger.debug(f"Source recorded: {source.url}")
        return path

    def list_sources(self, cycle_id: str) -> list[SourceRecord]:
        return [s for s in self._sources.values() if s.cycle_id == cycle_id]

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventType(str, Enum):
    CHAT = "chat"
    NOTIF = "notif"
    PROJECT = "project"
    REVIEW_QUEUE = "reviewQueue"
    REVIEW_UPDATED = "reviewUpdated"
    CYCLE_STARTED = "research:cycle_started"
    QUERY_GENERATION_COMPLETE = "research:query_generation_complete"
    SEARCHING = "research:searching"
    EXTRACTION_COMPLETE = "research:extraction_complete"
    CYCLE_COMPLETE = "research:cycle_complete"
    CYCLE_FAILED = "research:cycle_failed"
    JOB_STARTED = "job:started"
    JOB_COMPLETED = "job:completed"
    JOB_RETRYING = "job:retrying"
    JOB_FAILED = "job:failed"


@dataclass
class SSEEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)
    # Delivery scope: a project room, a single user, or both (None = broadcast)
    project_id: str | None = None
    user_id: str | None = None

    def format(self) -> str:
        return f"event: {self.event.value}\ndata: {json.dumps(self.data, default=str)}\n\n"

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


class ItemType(str, Enum):
    ENTITY = "entity"
    ORGANIZATION = "organization"
    LOCATION = "location"
    KEYWORD = "keyword"


class Coordinates(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProjectItem(BaseModel):
    """A named point of interest inside a project."""
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str  # lowercased natural key within a project
    type: ItemType
    description: str | None = None
    coords: Coordinates | None = None  # locations only
    bbox: list[float] | None = None  # [south, north, west, east]
    data: dict[str, Any] = {}
    added_by: str | None = None
    created_at: str = Field(default_factory=_utc_now)

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        value = " ".join(value.split()).lower()
        if not value:
            raise ValueError("item name must not be empty")
        return value


class Project(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    created_by: str | None = None
    created_at: str = Field(default_factory=_utc_now)

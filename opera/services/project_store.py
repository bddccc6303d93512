from __future__ import annotations

from typing import Protocol

from loguru import logger

from opera.models.project import ItemType, Project, ProjectItem


class ProjectStore(Protocol):
    async def get_items(self, project_id: str) -> list[ProjectItem]: ...

    async def add_item(self, project_id: str, item: ProjectItem) -> ProjectItem: ...


class InMemoryProjectStore:
    """Process-local project and item storage.

    Items are append-only; ``add_item`` returns the existing item when one with
    the same type and name is already present.
    """

    def __init__(self):
        self._projects: dict[str, Project] = {}
        self._items: dict[str, list[ProjectItem]] = {}

    def create_project(self, name: str, *, created_by: str | None = None) -> Project:
        project = Project(name=name.strip().lower(), created_by=created_by)
        self._projects[project.id] = project
        self._items[project.id] = []
        logger.info(f"Project created: {project.name} ({project.id})")
        return project

    def get_project(self, project_id: str) -> Project | None:
        return self._projects.get(project_id)

    def find_project(self, name: str) -> Project | None:
        key = name.strip().lower()
        return next((p for p in self._projects.values() if p.name == key), None)

    def list_projects(self) -> list[Project]:
        return list(self._projects.values())

    async def get_items(self, project_id: str) -> list[ProjectItem]:
        return list(self._items.get(project_id, []))

    def find_item(self, project_id: str, item_type: ItemType, name: str) -> ProjectItem | None:
        key = " ".join(name.split()).lower()
        for item in self._items.get(project_id, []):
            if item.type == item_type and item.name == key:
                return item
        return None

    async def add_item(self, project_id: str, item: ProjectItem) -> ProjectItem:
        if project_id not in self._items:
            raise KeyError(f"unknown project: {project_id}")
        existing = self.find_item(project_id, item.type, item.name)
        if existing is not None:
            logger.info(f"{item.type.value} already exists: {item.name}")
            return existing
        self._items[project_id].append(item)
        logger.info(f"Item added to {project_id}: {item.type.value} {item.name}")
        return item

"""Project context resolution for generation requests.

Authorization and membership checks happen before this service is reached;
the resolver only supplies the project's briefing text, which is stored user
content and is framed as untrusted context by the prompt builder.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from core.exceptions import ProjectNotFound


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProjectContext:
    id: str
    name: str = ""
    briefing: str = ""


class ProjectResolver(Protocol):
    def resolve(self, project_id: str) -> ProjectContext:
        """Return the project's context or raise ProjectNotFound."""
        ...


class InMemoryProjectResolver:
    """Resolve projects from a fixed mapping.

    With `strict=False` (no projects file configured) any id resolves to a
    context with an empty briefing.
    """

    def __init__(
        self, projects: list[ProjectContext] | None = None, strict: bool = True
    ) -> None:
        self._projects = {p.id: p for p in projects or []}
        self._strict = strict

    def resolve(self, project_id: str) -> ProjectContext:
        project = self._projects.get(project_id)
        if project is not None:
            return project
        if self._strict:
            raise ProjectNotFound()
        return ProjectContext(id=project_id)

    @classmethod
    def from_file(cls, path: str | Path) -> InMemoryProjectResolver:
        raw: Any = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise ValueError(f"Projects file {path} must contain a JSON list")
        projects = [
            ProjectContext(
                id=str(item["id"]),
                name=str(item.get("name") or ""),
                briefing=str(item.get("briefing") or ""),
            )
            for item in raw
            if isinstance(item, dict) and item.get("id")
        ]
        logger.info("Loaded %d projects from %s", len(projects), path)
        return cls(projects)

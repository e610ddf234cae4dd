"""Read-only access to administrator-defined instruction templates ("skills").

The catalog is owned by an administrative surface outside this service; here
it is only looked up by id and listed for pickers. The in-memory catalog can
be seeded from a JSON file (a list of skill objects) via `SKILLS_FILE`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, Protocol


logger = logging.getLogger(__name__)

SkillScope = Literal["card", "board"]
SKILL_SCOPES: frozenset[str] = frozenset({"card", "board"})


@dataclass(frozen=True, slots=True)
class Skill:
    id: str
    name: str
    prompt: str
    scope: SkillScope = "card"
    position: int = 0


class SkillCatalog(Protocol):
    """Protocol for instruction-template lookup."""

    def get(self, skill_id: str) -> Skill | None:
        """Return the skill with this id, or None."""
        ...

    def list(self, scope: SkillScope | None = None) -> list[Skill]:
        """Return skills ordered by position, optionally filtered by scope."""
        ...


class InMemorySkillCatalog:
    def __init__(self, skills: list[Skill] | None = None) -> None:
        self._skills: dict[str, Skill] = {s.id: s for s in skills or []}

    def get(self, skill_id: str) -> Skill | None:
        return self._skills.get(skill_id)

    def list(self, scope: SkillScope | None = None) -> list[Skill]:
        skills = [s for s in self._skills.values() if scope is None or s.scope == scope]
        return sorted(skills, key=lambda s: s.position)

    @classmethod
    def from_file(cls, path: str | Path) -> InMemorySkillCatalog:
        """Load skills from a JSON list; entries missing id/name/prompt are skipped."""
        raw: Any = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise ValueError(f"Skills file {path} must contain a JSON list")

        skills: list[Skill] = []
        for index, item in enumerate(raw):
            if not isinstance(item, dict) or not all(
                isinstance(item.get(k), str) and item[k].strip()
                for k in ("id", "name", "prompt")
            ):
                logger.warning("Skipping invalid skill entry #%d in %s", index, path)
                continue
            scope = item.get("scope") or "card"
            if scope not in SKILL_SCOPES:
                logger.warning("Skipping skill %s with scope %r", item["id"], scope)
                continue
            skills.append(
                Skill(
                    id=item["id"],
                    name=item["name"].strip(),
                    prompt=item["prompt"].strip(),
                    scope=scope,
                    position=int(item.get("position", index)),
                )
            )
        logger.info("Loaded %d skills from %s", len(skills), path)
        return cls(skills)

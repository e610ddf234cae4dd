"""Domain models for AI description generation.

This module introduces the explicit, typed contract objects passed between
the generation service, the prompt builder and the provider adapters:

* Message           - one role-tagged turn sent to a provider.
* GenerationRequest - validated caller input (card context + instruction).
* PromptPair        - system and user instruction produced by the builder.
* ProviderConfig    - immutable provider selection resolved from settings.

Keeping these as small frozen dataclasses prevents ad hoc dict construction
from drifting between the API layer and the adapters.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


Role = Literal["system", "user", "assistant"]
LegacyMode = Literal["generate", "improve"]
LEGACY_MODES: frozenset[str] = frozenset({"generate", "improve"})


@dataclass(frozen=True, slots=True)
class Message:
    role: Role
    content: str

    def to_wire(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """Card context plus at most one effective instruction source.

    Precedence when several are present: `skill_id`, then `free_instruction`,
    then `legacy_mode`. With none present the legacy mode is derived from
    whether `current_text` has content.
    """

    title: str
    current_text: str = ""
    tags: tuple[str, ...] = ()
    priority: str | None = None
    project_briefing: str = ""
    skill_id: str | None = None
    free_instruction: str | None = None
    legacy_mode: LegacyMode | None = None

    @property
    def effective_mode(self) -> LegacyMode:
        if self.legacy_mode is not None:
            return self.legacy_mode
        return "improve" if self.current_text.strip() else "generate"

    @property
    def prompt_source(self) -> str:
        """Opaque label for audit logs; never the full prompt."""
        if self.free_instruction and self.free_instruction.strip():
            return self.free_instruction.strip()
        if self.skill_id:
            return f"[skill:{self.skill_id}]"
        return f"[mode:{self.legacy_mode or 'auto'}]"


@dataclass(frozen=True, slots=True)
class PromptPair:
    system: str
    user: str

    def as_messages(self) -> list[Message]:
        return [
            Message(role="system", content=self.system),
            Message(role="user", content=self.user),
        ]


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    provider_kind: str
    api_key: str = field(repr=False)
    model: str
    base_url: str

"""Schemas for AI description generation requests and SSE frames."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


# Terminal frame; always the last frame of a successful stream.
DONE_SENTINEL: str = "[DONE]"
DONE_FRAME: str = f"data: {DONE_SENTINEL}\n\n"


class GenerateDescriptionRequest(BaseModel):
    """Body of `POST /projects/{id}/ai/generate-description`.

    `title` and `mode` accept any JSON value; the generation service checks
    them so that a missing, blank or non-string title is reported as a 400
    client input error instead of a schema validation failure.
    """

    title: Any | None = None
    description: str | None = None
    tags: list[str] | None = None
    priority: str | None = None
    skill_id: str | None = Field(default=None, alias="skillId")
    user_prompt: str | None = Field(default=None, alias="userPrompt")
    mode: Any | None = Field(
        default=None, description='Legacy mode: "generate" or "improve"'
    )
    page_url: str | None = Field(
        default=None,
        alias="pageUrl",
        description="Client page the request came from; informational only.",
    )

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class DescriptionStreamEvent(BaseModel):
    """One outbound SSE frame: exactly one of `text` or `error` is set."""

    text: str | None = None
    error: str | None = None

    model_config = ConfigDict(extra="forbid")

    def to_sse(self) -> str:
        return f"data: {self.model_dump_json(exclude_none=True)}\n\n"

    @classmethod
    def delta(cls, text: str) -> DescriptionStreamEvent:
        return cls(text=text)

    @classmethod
    def failure(cls, message: str) -> DescriptionStreamEvent:
        return cls(error=message)


class SkillSummary(BaseModel):
    """Public listing entry for an instruction template (prompt body omitted)."""

    id: str
    name: str
    scope: Literal["card", "board"]
    position: int

    model_config = ConfigDict(from_attributes=True)

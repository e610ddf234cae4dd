"""Client-side consumer for the generate-description event stream.

`DescriptionDraftSession` drives one draft field: it posts the generation
request, renders streamed text into the field as it arrives and leaves the
result pending review. The text that was in the field before generation is
kept until the user accepts or declines, so cancelling, failing or receiving
an off-topic refusal always puts the original text back.

    session = DescriptionDraftSession(client, DraftField(card.description))
    await session.generate(DescriptionContext(project_slug="web", title="Fix login"))
    if session.pending_review:
        session.accept()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from services.ai.exceptions import StreamError
from services.ai.models import LegacyMode
from services.ai.prompts import is_refusal
from services.ai.sse import iter_sse_json


logger = logging.getLogger(__name__)

REFUSAL_WARNING = "Please provide a prompt related to this card"
GENERIC_FAILURE_MESSAGE = "AI generation failed"

# notify(level, message); level is "warning" or "error".
Notifier = Callable[[str, str], None]


class DraftState(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    REVIEWING = "reviewing"
    DECLINED = "declined"


@dataclass(slots=True)
class DraftField:
    """Mutable holder for the text being edited."""

    value: str = ""


@dataclass(frozen=True, slots=True)
class DescriptionContext:
    project_slug: str
    title: str
    description: str | None = None
    tags: tuple[str, ...] | None = None
    priority: str | None = None
    page_url: str | None = None


@dataclass(frozen=True, slots=True)
class GeneratePayload:
    skill_id: str | None = None
    user_prompt: str | None = None


def _log_notifier(level: str, message: str) -> None:
    logger.log(logging.getLevelName(level.upper()), "AI description: %s", message)


def build_request_body(
    context: DescriptionContext,
    payload: GeneratePayload | LegacyMode | None = None,
) -> dict[str, Any]:
    """JSON body for the generate-description endpoint.

    A bare mode string selects legacy mode explicitly. Without any
    instruction the mode is derived from whether the card already has a
    description.
    """
    mode: str | None = None
    skill_id: str | None = None
    user_prompt: str | None = None
    if isinstance(payload, str):
        mode = payload
    elif payload is not None:
        skill_id = payload.skill_id
        user_prompt = payload.user_prompt

    if not mode and not skill_id and not user_prompt:
        mode = "improve" if (context.description or "").strip() else "generate"

    body: dict[str, Any] = {
        "title": context.title,
        "description": context.description,
        "tags": list(context.tags) if context.tags is not None else None,
        "priority": context.priority,
        "mode": mode,
        "skillId": skill_id,
        "userPrompt": user_prompt,
        "pageUrl": context.page_url,
    }
    return {key: value for key, value in body.items() if value is not None}


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and isinstance(data.get("message"), str):
        return data["message"]
    return f"AI request failed ({response.status_code})"


class DescriptionDraftSession:
    """At most one in-flight generation for a single draft field."""

    endpoint = "/api/v1/projects/{slug}/ai/generate-description"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        draft: DraftField,
        notify: Notifier | None = None,
    ) -> None:
        self.http_client = http_client
        self.draft = draft
        self.notify = notify or _log_notifier
        self.previous_text = draft.value
        self._state = DraftState.IDLE
        self._error: str | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> DraftState:
        return self._state

    @property
    def is_generating(self) -> bool:
        return self._state is DraftState.GENERATING

    @property
    def pending_review(self) -> bool:
        return self._state is DraftState.REVIEWING

    @property
    def error(self) -> str | None:
        return self._error

    async def generate(
        self,
        context: DescriptionContext,
        payload: GeneratePayload | LegacyMode | None = None,
    ) -> None:
        """Stream a generated description into the draft field.

        Returns once the stream has ended, failed or been cancelled. Failures
        are reported through `notify` and `error`, never raised.
        """
        if self.is_generating:
            return
        self._state = DraftState.GENERATING
        self._error = None
        self.previous_text = self.draft.value

        self._task = asyncio.create_task(self._run(context, payload))
        try:
            await self._task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            logger.debug("AI description generation cancelled")
        finally:
            self._task = None
            # Still generating here means the run was torn down from outside.
            if self._state is DraftState.GENERATING:
                self.draft.value = self.previous_text
                self._state = DraftState.IDLE

    async def _run(
        self,
        context: DescriptionContext,
        payload: GeneratePayload | LegacyMode | None,
    ) -> None:
        url = self.endpoint.format(slug=context.project_slug)
        body = build_request_body(context, payload)
        try:
            async with self.http_client.stream("POST", url, json=body) as response:
                if not response.is_success:
                    await response.aread()
                    raise StreamError(
                        _error_message(response), status_code=response.status_code
                    )

                self.draft.value = ""
                async for frame in iter_sse_json(response.aiter_bytes()):
                    if frame.get("error"):
                        raise StreamError(str(frame["error"]))
                    text = frame.get("text")
                    if isinstance(text, str):
                        self.draft.value += text
        except StreamError as exc:
            self._fail(exc.message)
            return
        except httpx.HTTPError as exc:
            logger.warning("AI description request failed: %s", exc)
            self._fail(GENERIC_FAILURE_MESSAGE)
            return

        if is_refusal(self.draft.value):
            self.draft.value = self.previous_text
            self._error = REFUSAL_WARNING
            self._state = DraftState.DECLINED
            self.notify("warning", REFUSAL_WARNING)
        else:
            self._state = DraftState.REVIEWING

    def _fail(self, message: str) -> None:
        self._error = message
        self._state = DraftState.IDLE
        self.notify("error", message)

    def cancel(self) -> None:
        """Abort the in-flight generation and put the original text back."""
        if not self.is_generating:
            return
        if self._task is not None:
            self._task.cancel()
        self.draft.value = self.previous_text
        self._state = DraftState.IDLE

    def accept(self) -> None:
        """Keep the generated text."""
        if self.is_generating:
            return
        self.previous_text = self.draft.value
        self._state = DraftState.IDLE

    def decline(self) -> None:
        """Discard the generated text and restore what was there before."""
        if self.is_generating:
            return
        self.draft.value = self.previous_text
        self._state = DraftState.IDLE

"""AI card-description generation service.

Request lifecycle:

1. validate   - title present, legacy mode known, skill resolvable
2. prompt     - build system/user instructions (services.ai.prompts)
3. handshake  - open the upstream provider stream
4. stream     - relay each text fragment as an SSE frame, then `[DONE]`

Steps 1-3 run before the HTTP response starts, so their failures are plain
HTTP errors (400/404/501/502). Once step 4 begins nothing propagates to the
transport: failures become a single `{"error": ...}` frame and the stream
ends.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from dataclasses import dataclass

import httpx

from core.error_handler import StructuredLogger
from core.exceptions import InvalidRequest, TemplateNotFound
from schemas.ai import DONE_FRAME, DescriptionStreamEvent, GenerateDescriptionRequest
from services.ai.audit import AuditLog, NullAuditLog
from services.ai.exceptions import AIGenerationError, GenerationTimeout
from services.ai.models import LEGACY_MODES, GenerationRequest, Message, ProviderConfig
from services.ai.projects import ProjectContext
from services.ai.prompts import build_prompt, is_refusal
from services.ai.providers import DeltaStream, open_provider_stream
from services.ai.skills import SkillCatalog


logger = logging.getLogger(__name__)

__all__ = [
    "DescriptionGenerationService",
    "GenerationOptions",
    "GenerationStream",
    "sse_response_headers",
    "to_generation_request",
]

structured_logger = StructuredLogger(__name__)

GENERIC_FAILURE_MESSAGE = "AI generation failed"

StreamOpener = Callable[..., Awaitable[DeltaStream]]


@dataclass(frozen=True, slots=True)
class GenerationOptions:
    max_tokens: int = 1500
    temperature: float | None = 0.7
    timeout_seconds: float = 120.0


def to_generation_request(
    body: GenerateDescriptionRequest | None, project: ProjectContext
) -> GenerationRequest:
    """Validate the raw body and convert it into a GenerationRequest.

    Raises:
        InvalidRequest: missing, blank or non-string title, or a mode other
            than the legacy ones.
    """
    body = body or GenerateDescriptionRequest()
    title = body.title.strip() if isinstance(body.title, str) else ""
    if not title:
        raise InvalidRequest("Title is required")
    mode = None if body.mode in (None, "") else body.mode
    if mode is not None and (not isinstance(mode, str) or mode not in LEGACY_MODES):
        raise InvalidRequest('Mode must be "generate" or "improve"')

    return GenerationRequest(
        title=title,
        current_text=(body.description or "").strip(),
        tags=tuple(body.tags or ()),
        priority=body.priority or None,
        project_briefing=project.briefing,
        skill_id=body.skill_id or None,
        free_instruction=body.user_prompt,
        legacy_mode=mode,  # type: ignore[arg-type]
    )


class DescriptionGenerationService:
    """Turns one validated request into one streamed provider completion."""

    def __init__(
        self,
        *,
        skills: SkillCatalog,
        provider_config: ProviderConfig | None,
        http_client: httpx.AsyncClient,
        options: GenerationOptions | None = None,
        debug_log: AuditLog | None = None,
        rejected_log: AuditLog | None = None,
        stream_opener: StreamOpener = open_provider_stream,
    ) -> None:
        self.skills = skills
        self.provider_config = provider_config
        self.http_client = http_client
        self.options = options or GenerationOptions()
        self.debug_log = debug_log or NullAuditLog()
        self.rejected_log = rejected_log or NullAuditLog()
        self._open_stream = stream_opener

    def prepare_messages(self, request: GenerationRequest) -> list[Message]:
        """Resolve the skill (if any) and build the provider messages.

        Raises:
            TemplateNotFound: `request.skill_id` does not resolve.
        """
        template: str | None = None
        if request.skill_id:
            skill = self.skills.get(request.skill_id)
            if skill is None:
                raise TemplateNotFound()
            template = skill.prompt
        return build_prompt(request, template).as_messages()

    async def start(self, request: GenerationRequest) -> GenerationStream:
        """Run every pre-stream step and return the stream to relay.

        Raises:
            TemplateNotFound: unknown skill id.
            ProviderUnavailable: no usable provider configuration.
            ProviderHTTPError: upstream handshake failed.
        """
        messages = self.prepare_messages(request)
        deltas = await self._open_stream(
            self.provider_config,
            messages,
            self.options.max_tokens,
            self.options.temperature,
            http_client=self.http_client,
            debug_log=self.debug_log,
        )
        return GenerationStream(
            deltas,
            request=request,
            timeout_seconds=self.options.timeout_seconds,
            rejected_log=self.rejected_log,
        )


class GenerationStream:
    """Re-encodes provider text deltas as outbound SSE frames.

    Owns the upstream stream: it is closed exactly once whether the relay
    completes, fails, times out or the client disconnects.
    """

    def __init__(
        self,
        deltas: DeltaStream,
        *,
        request: GenerationRequest,
        timeout_seconds: float,
        rejected_log: AuditLog,
    ) -> None:
        self._deltas = deltas
        self._request = request
        self._timeout_seconds = timeout_seconds
        self._rejected_log = rejected_log
        self.text = ""

    async def _relay(self) -> AsyncIterator[str]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout_seconds
        collected: list[str] = []
        async with aclosing(self._deltas):
            iterator = aiter(self._deltas)
            while True:
                try:
                    async with asyncio.timeout_at(deadline):
                        fragment = await anext(iterator)
                except StopAsyncIteration:
                    break
                except TimeoutError:
                    raise GenerationTimeout() from None
                collected.append(fragment)
                yield fragment
        self.text = "".join(collected)

    async def events(self) -> AsyncIterator[str]:
        """Yield wire-ready SSE frames; the last one is `[DONE]` or an error."""
        fragments = 0
        try:
            async with aclosing(self._relay()) as relay:
                async for fragment in relay:
                    fragments += 1
                    yield DescriptionStreamEvent.delta(fragment).to_sse()
        except AIGenerationError as exc:
            structured_logger.warning(
                "AI stream failed after opening",
                error_code=exc.error_code,
                fragments=fragments,
            )
            yield DescriptionStreamEvent.failure(exc.message).to_sse()
            return
        except Exception:
            structured_logger.exception(
                "Unexpected error while relaying AI stream", fragments=fragments
            )
            yield DescriptionStreamEvent.failure(GENERIC_FAILURE_MESSAGE).to_sse()
            return

        yield DONE_FRAME
        self._record_refusal()

    def _record_refusal(self) -> None:
        if not is_refusal(self.text):
            return
        structured_logger.info(
            "AI declined off-topic prompt", prompt_kind=self._prompt_kind()
        )
        self._rejected_log.write(self._request.prompt_source, "")

    def _prompt_kind(self) -> str:
        if self._request.free_instruction:
            return "free_instruction"
        if self._request.skill_id:
            return "skill"
        return "legacy"


def sse_response_headers() -> dict[str, str]:
    return {
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",
    }

"""Domain exceptions for the AI description generation pipeline.

These exceptions provide a taxonomy for deterministic error handling across
provider configuration, the upstream HTTP handshake and the streamed body.
Before the outbound stream opens the API layer maps them to HTTP status codes;
afterwards the orchestrator renders them as in-band `{"error": ...}` frames.
Each exception carries a stable `error_code` property for analytics / log
tagging.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import status


@dataclass(slots=True)
class AIGenerationError(Exception):
    """Base class for AI generation domain errors."""

    message: str
    error_code: str
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.error_code}: {self.message}"


class ProviderUnavailable(AIGenerationError):
    def __init__(
        self,
        message: str = (
            "AI not configured. Set AI_PROVIDER and the corresponding API key."
        ),
    ) -> None:
        super().__init__(
            message=message,
            error_code="not_configured",
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
        )


class ProviderHTTPError(AIGenerationError):
    def __init__(
        self,
        message: str = "AI generation failed. Please try again later.",
        upstream_status: int | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_code="upstream_failed",
            status_code=status.HTTP_502_BAD_GATEWAY,
        )
        self.upstream_status = upstream_status


class GenerationTimeout(AIGenerationError):
    def __init__(self, message: str = "AI generation timed out") -> None:
        super().__init__(
            message=message,
            error_code="timeout",
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
        )


class StreamError(AIGenerationError):
    """Raised by the client consumer for error frames or rejected requests."""

    def __init__(
        self,
        message: str = "AI generation failed",
        status_code: int = status.HTTP_502_BAD_GATEWAY,
    ) -> None:
        super().__init__(
            message=message, error_code="stream_error", status_code=status_code
        )

"""Init file for AI services."""

from .exceptions import (
    AIGenerationError,
    GenerationTimeout,
    ProviderHTTPError,
    ProviderUnavailable,
    StreamError,
)


__all__ = [
    "AIGenerationError",
    "GenerationTimeout",
    "ProviderHTTPError",
    "ProviderUnavailable",
    "StreamError",
]

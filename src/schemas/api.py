"""API response schemas.

This module defines the common API response formats used across the application.
Streamed generation responses do not use these envelopes; they only apply to
plain JSON endpoints and to errors raised before a stream opens.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Standard API response wrapper.

    Attributes:
        success: Whether the request was successful.
        data: The actual response data (when success is True).
        message: A human-readable message about the response.
        error: Error details (when success is False).
    """

    success: bool = True
    data: T | None = None
    message: str = "Operation completed successfully"
    error: dict[str, Any] | None = None


class ErrorResponse(ApiResponse[None]):
    """Error API response.

    A specialized API response for error conditions with a predefined
    success value of False.
    """

    success: bool = False
    message: str = "An error occurred"
    error: dict[str, Any] | None = None

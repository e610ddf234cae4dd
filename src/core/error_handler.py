"""Error responses and structured logging for the Completo AI API.

Everything that fails before a generation stream opens ends up in
`global_exception_handler`, which turns the exception into the shared
`ErrorResponse` envelope. Logging goes through `StructuredLogger`, which tags
each record with the request's correlation ID and masks provider credentials.
"""

import logging
import sys
import traceback
import uuid
from collections.abc import Mapping
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pythonjsonlogger.json import JsonFormatter
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from core.config import get_settings
from core.exceptions import DomainError
from core.security_config import (
    REDACTED,
    get_allowed_error_fields,
    is_sensitive_key,
    mask_secrets,
)
from schemas.api import ErrorResponse
from services.ai.exceptions import AIGenerationError


_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_HANDLER_NAME = "completo-ai"


def get_correlation_id() -> str:
    """Return the current correlation ID, minting one if none is bound."""
    correlation_id = _correlation_id_var.get()
    if not correlation_id:
        correlation_id = str(uuid.uuid4())
        _correlation_id_var.set(correlation_id)
    return correlation_id


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id_var.set(correlation_id)


def redact(value: Any) -> Any:
    """Return a copy of `value` that is safe to log.

    Mapping keys that look like credentials have their values replaced, and
    `{"name": <header>, "value": ...}` pairs are treated as headers. Strings
    are scanned for bearer tokens and provider keys.
    """
    if isinstance(value, Mapping):
        header = value.get("name", value.get("key"))
        hide_value = isinstance(header, str) and is_sensitive_key(header)
        cleaned: dict[str, Any] = {}
        for key, item in value.items():
            key_str = str(key)
            if is_sensitive_key(key_str) or (hide_value and key_str == "value"):
                cleaned[key_str] = REDACTED
            else:
                cleaned[key_str] = redact(item)
        return cleaned
    if isinstance(value, list | tuple):
        return [redact(item) for item in value]
    if isinstance(value, str):
        return mask_secrets(value)
    return value


class StructuredLogger:
    """Logger wrapper that attaches correlation IDs and redacted fields.

    Keyword arguments passed to the level methods become `structured_data`
    on the log record; `JsonFormatter` emits them as part of the JSON line in
    production.
    """

    def __init__(self, logger_name: str):
        self.logger = logging.getLogger(logger_name)

    def log(
        self, level: int, message: str, exc_info: bool = False, **fields: Any
    ) -> None:
        if not self.logger.isEnabledFor(level):
            return
        correlation_id = get_correlation_id()
        message = mask_secrets(message)
        structured = {
            "correlation_id": correlation_id,
            "message": message,
            **redact(fields),
        }
        if get_settings().ENVIRONMENT != "production":
            message = f"[{correlation_id}] {message}"
        self.logger.log(
            level, message, extra={"structured_data": structured}, exc_info=exc_info
        )

    def debug(self, message: str, **fields: Any) -> None:
        self.log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self.log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields: Any) -> None:
        self.log(logging.WARNING, message, **fields)

    def error(self, message: str, **fields: Any) -> None:
        self.log(logging.ERROR, message, **fields)

    def exception(self, message: str, **fields: Any) -> None:
        self.log(logging.ERROR, message, exc_info=True, **fields)


structured_logger = StructuredLogger(__name__)


@dataclass(slots=True)
class ErrorDescription:
    """How an exception is reported to the caller and to the log."""

    status_code: int
    error_type: str
    message: str
    log_level: int | None = None
    log_fields: dict[str, Any] = field(default_factory=dict)
    details: dict[str, Any] | None = None
    validation_errors: Any | None = None
    unexpected: bool = False


def describe_exception(exc: Exception) -> ErrorDescription:
    """Map an exception onto its public status, type and message."""
    if isinstance(exc, StarletteHTTPException):
        detail = exc.detail
        return ErrorDescription(
            status_code=exc.status_code,
            error_type="http_error",
            message=detail if isinstance(detail, str) else "An HTTP error occurred",
            details={"detail": detail},
        )

    if isinstance(exc, RequestValidationError | ValidationError):
        errors = jsonable_encoder(exc.errors())
        return ErrorDescription(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_type="validation_error",
            message="Invalid request data provided",
            log_level=logging.WARNING,
            log_fields={"validation_errors": errors},
            validation_errors=errors,
        )

    if isinstance(exc, DomainError):
        return ErrorDescription(
            status_code=exc.status_code,
            error_type=exc.error_type,
            message=exc.message,
            log_level=logging.WARNING,
        )

    if isinstance(exc, AIGenerationError):
        # Upstream status stays in the log; the caller only sees the code.
        return ErrorDescription(
            status_code=exc.status_code,
            error_type=exc.error_code,
            message=exc.message,
            log_level=logging.ERROR,
            log_fields={"upstream_status": getattr(exc, "upstream_status", None)},
        )

    return ErrorDescription(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_type="internal_server_error",
        message="An internal error occurred",
        log_level=logging.ERROR,
        log_fields={"error": str(exc)},
        unexpected=True,
    )


def _error_body(
    exc: Exception, description: ErrorDescription, environment: str
) -> dict[str, Any]:
    allowed = get_allowed_error_fields(environment)
    body: dict[str, Any] = {
        "correlation_id": get_correlation_id(),
        "type": description.error_type,
    }
    if "details" in allowed and description.details:
        body["details"] = description.details
    if "validation_errors" in allowed and description.validation_errors is not None:
        body["validation_errors"] = description.validation_errors
    if "exception_type" in allowed and (description.unexpected or description.details):
        body["exception_type"] = exc.__class__.__name__
    if "traceback" in allowed and description.unexpected:
        body["traceback"] = mask_secrets("".join(traceback.format_exception(exc)).strip())
    return body


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render any exception as a sanitized `ErrorResponse`.

    Registered for HTTP, validation, domain and AI errors as well as bare
    `Exception`. Production responses carry only the correlation ID and
    error type; other environments add diagnostics.
    """
    description = describe_exception(exc)
    environment = get_settings().ENVIRONMENT

    if description.log_level is not None:
        structured_logger.log(
            description.log_level,
            "Unhandled exception" if description.unexpected else "Request failed",
            exc_info=description.unexpected,
            path=request.url.path,
            error_type=description.error_type,
            exception_type=exc.__class__.__name__,
            **description.log_fields,
        )

    return JSONResponse(
        status_code=description.status_code,
        content=ErrorResponse(
            message=description.message,
            error=_error_body(exc, description, environment),
        ).model_dump(),
    )


class ExceptionNormalizationMiddleware(BaseHTTPMiddleware):
    """Route exceptions that escape the router through `global_exception_handler`."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:  # noqa: BLE001
            return await global_exception_handler(request, exc)


def setup_logging() -> None:
    """Install the service's stdout handler on the root logger once.

    Production logs are single-line JSON; other environments get a readable
    text format at DEBUG (development) or INFO level.
    """
    environment = get_settings().ENVIRONMENT
    root_logger = logging.getLogger()
    if any(h.get_name() == _HANDLER_NAME for h in root_logger.handlers):
        return

    level = logging.DEBUG if environment == "development" else logging.INFO
    formatter: logging.Formatter
    if environment == "production":
        formatter = JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "name": "logger"},
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(formatter)
    handler.setLevel(level)
    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    # Upstream request lines would repeat every provider call
    if environment != "development":
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

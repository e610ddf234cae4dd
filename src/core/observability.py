"""Tracing helpers built on the OpenTelemetry API.

Only the API package is a dependency: spans are no-ops until a deployment
installs and configures an OpenTelemetry SDK/exporter (for example via
`opentelemetry-instrument`). Nothing here changes control flow.

PII and Sensitive Data Guidance:
--------------------------------
- NEVER put prompt text, card titles/descriptions, project briefings or
  generated content in span attributes
- NEVER put provider API keys or request headers in span attributes
- Safe attributes: provider kind, model name, message counts, fragment counts,
  byte counts, outcome labels
- Use correlation IDs (core/error_handler.py) to link traces with logs
"""

from __future__ import annotations

import logging

from opentelemetry import trace


logger = logging.getLogger(__name__)

# Default instrumentation scope name for spans emitted by this service
SERVICE_TRACER_NAME = "completo-ai"


def get_tracer(name: str = SERVICE_TRACER_NAME) -> trace.Tracer:
    """Get an OpenTelemetry tracer for custom instrumentation.

    Example:
        from core.observability import get_tracer

        tracer = get_tracer(__name__)

        async def open_stream(...):
            with tracer.start_as_current_span("ai.provider.stream") as span:
                span.set_attribute("ai.provider", "anthropic")
                ...

    WARNING: Never add user content or PII to span attributes!
    """
    return trace.get_tracer(name)

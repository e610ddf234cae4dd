"""Append-only diagnostic logs for AI generation.

Two sinks exist: the debug log (full request and response of every call, when
`DEBUG_AI_LOG` is on) and the refusal audit log (one JSON line per off-topic
refusal, when `LOG_REJECTED_PROMPTS` is on). Writes never raise; a failing
disk must not break a generation that already succeeded.

Each entry is written with a single `write()` on a file opened in append
mode, so concurrent requests interleave whole entries rather than bytes.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol


logger = logging.getLogger(__name__)

_SEPARATOR = "─" * 60


class AuditLog(Protocol):
    def write(self, label: str, data: str) -> None: ...


class NullAuditLog:
    """Audit sink used when a log is disabled."""

    def write(self, label: str, data: str) -> None:
        return None


class FileAuditLog:
    """Block-formatted append log used for request/response debugging."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _format(self, label: str, data: str) -> str:
        timestamp = datetime.now(UTC).isoformat()
        return f"\n{_SEPARATOR}\n[{timestamp}] {label}\n{_SEPARATOR}\n{data}\n"

    def write(self, label: str, data: str) -> None:
        entry = self._format(label, data)
        try:
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(entry)
        except OSError as exc:
            logger.debug("AI audit log write to %s failed: %s", self.path, exc)


class JsonLinesAuditLog(FileAuditLog):
    """One JSON object per line; `label` is stored as the `prompt` field."""

    def _format(self, label: str, data: str) -> str:
        entry = {"timestamp": datetime.now(UTC).isoformat(), "prompt": label}
        if data:
            entry["detail"] = data
        return json.dumps(entry) + "\n"

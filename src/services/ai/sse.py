"""Incremental decoding of `text/event-stream` bodies into JSON frames.

Both upstream providers and our own generate-description endpoint speak the
same subset of SSE: newline-delimited `data: <json>` lines, blank separator
lines, `:` comment lines and a literal `data: [DONE]` terminator. This module
is shared by the provider adapters and the client stream consumer.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from schemas.ai import DONE_SENTINEL


logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"


class SSELineBuffer:
    """Reassemble complete lines from arbitrarily split byte chunks.

    The trailing partial line of each chunk is held back until a later chunk
    completes it, and UTF-8 sequences split across chunks are decoded
    correctly, so the lines produced do not depend on read boundaries.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> list[str]:
        self._pending += self._decoder.decode(chunk)
        *lines, self._pending = self._pending.split("\n")
        return [line.rstrip("\r") for line in lines]

    @property
    def pending(self) -> str:
        return self._pending


def parse_data_line(line: str) -> str | None:
    """Return the payload of a `data:` line, or None for anything else.

    Blank lines, `:` comments and other SSE fields (`event:`, `id:`) carry no
    payload for our purposes.
    """
    stripped = line.strip()
    if not stripped or stripped.startswith(":"):
        return None
    if not stripped.startswith(DATA_PREFIX):
        return None
    return stripped[len(DATA_PREFIX) :].strip()


async def iter_sse_json(
    chunks: AsyncIterable[bytes],
) -> AsyncIterator[dict[str, Any]]:
    """Yield each JSON object carried by `data:` lines of an SSE byte stream.

    Iteration ends at the `[DONE]` terminator or when the byte stream ends.
    Payloads that are not valid JSON objects are skipped. The byte source is
    closed on every exit path, including early exit by the consumer.
    """
    buffer = SSELineBuffer()
    iterator = aiter(chunks)
    try:
        async for chunk in iterator:
            for line in buffer.feed(chunk):
                payload = parse_data_line(line)
                if payload is None:
                    continue
                if payload == DONE_SENTINEL:
                    return
                try:
                    frame = json.loads(payload)
                except json.JSONDecodeError:
                    logger.debug("Skipping malformed SSE frame (%d chars)", len(payload))
                    continue
                if isinstance(frame, dict):
                    yield frame
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()

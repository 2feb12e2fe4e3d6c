from __future__ import annotations

import json
from typing import AsyncIterable, AsyncIterator

import httpx

from .exceptions import StreamDecodeFailure, StreamReadFailure
from .logging_config import logger

DATA_PREFIX = "data: "
DONE_SENTINEL = "data: [DONE]"


async def iter_lines(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """
    Re-split an arbitrary chunked byte stream into text lines.
    A trailing line without newline is still yielded.
    """
    buffer = b""
    async for chunk in chunks:
        if not chunk:
            continue
        buffer += chunk
        while True:
            newline = buffer.find(b"\n")
            if newline < 0:
                break
            line, buffer = buffer[:newline], buffer[newline + 1 :]
            yield line.rstrip(b"\r").decode("utf-8", errors="replace")
    if buffer:
        yield buffer.rstrip(b"\r").decode("utf-8", errors="replace")


class StreamDecoder:
    """
    Turns the upstream event stream into answer fragments.

    Each `data: {...}` event carries one `message` fragment; the stream
    ends with `data: [DONE]` or when the body runs out. Fragments are
    accumulated in `text` so the caller can record the whole answer.
    One decoder handles exactly one response.
    """

    def __init__(self) -> None:
        self._parts: list[str] = []
        self._started = False
        self.done = False
        self.skipped_events = 0

    @property
    def text(self) -> str:
        return "".join(self._parts)

    async def decode(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
        if self._started:
            raise RuntimeError("StreamDecoder instances are single-use")
        self._started = True

        try:
            async for line in iter_lines(chunks):
                if line == DONE_SENTINEL:
                    self.done = True
                    return
                if not line.startswith(DATA_PREFIX):
                    continue
                fragment = self._parse_event(line[len(DATA_PREFIX) :])
                if fragment:
                    self._parts.append(fragment)
                    yield fragment
        except (httpx.HTTPError, OSError) as exc:
            raise StreamReadFailure(f"error reading answer stream: {exc}") from exc
        self.done = True

    def _parse_event(self, data: str) -> str:
        try:
            event = json.loads(data)
        except json.JSONDecodeError as exc:
            self.skipped_events += 1
            logger.warning("skipping malformed stream event %r: %s", data[:200], exc)
            return ""
        if not isinstance(event, dict):
            self.skipped_events += 1
            logger.warning("skipping non-object stream event %r", data[:200])
            return ""

        if event.get("action") == "error":
            # In-band error frame, e.g. {"action":"error","status":429,"type":"ERR_..."}
            raise StreamDecodeFailure(
                f"upstream aborted the answer: {event.get('type') or 'unknown error'}"
                f" (status {event.get('status')})"
            )

        message = event.get("message")
        return message if isinstance(message, str) else ""


__all__ = ["DATA_PREFIX", "DONE_SENTINEL", "StreamDecoder", "iter_lines"]

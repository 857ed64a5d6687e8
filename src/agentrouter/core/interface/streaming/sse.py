"""Server-Sent-Events framing shared by every provider stream parser.

:func:`iter_sse_data` turns an async iterable of raw byte reads into the
payload strings of complete ``data:`` lines. :func:`iter_json_frames`
decodes those payloads, skipping frames that are not valid JSON objects.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from contextlib import aclosing
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_DATA_PREFIX = "data: "
DEFAULT_DONE_MARKER = "[DONE]"


async def iter_sse_data(
    source: AsyncIterable[bytes],
    *,
    data_prefix: str = DEFAULT_DATA_PREFIX,
    done_marker: str = DEFAULT_DONE_MARKER,
) -> AsyncIterator[str]:
    """Yield the payload of each complete ``data:`` line in *source*.

    Partial lines are buffered across reads and flushed at EOF. Blank lines,
    ``:`` comments and other fields (``event:``, ``id:``) are skipped, as is
    the *done_marker* sentinel. *source* is closed when iteration ends for
    any reason, including cancellation of the consumer.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    try:
        async for raw in source:
            buffer += decoder.decode(raw)
            *lines, buffer = buffer.split("\n")
            for line in lines:
                data = _extract_data(line, data_prefix, done_marker)
                if data is not None:
                    yield data

        buffer += decoder.decode(b"", final=True)
        data = _extract_data(buffer, data_prefix, done_marker)
        if data is not None:
            yield data
    finally:
        await _aclose(source)


def _extract_data(line: str, data_prefix: str, done_marker: str) -> str | None:
    stripped = line.strip()
    if not stripped or stripped.startswith(":"):
        return None
    if not stripped.startswith(data_prefix):
        return None
    data = stripped[len(data_prefix) :]
    if data == done_marker:
        return None
    return data


async def _aclose(source: AsyncIterable[bytes]) -> None:
    aclose = getattr(source, "aclose", None)
    if aclose is not None:
        await aclose()


async def iter_json_frames(
    source: AsyncIterable[bytes],
    *,
    data_prefix: str = DEFAULT_DATA_PREFIX,
    done_marker: str = DEFAULT_DONE_MARKER,
) -> AsyncIterator[dict[str, Any]]:
    """Yield each SSE payload decoded as a JSON object.

    A corrupt frame is logged and skipped; it never aborts the stream.
    """
    payloads = iter_sse_data(source, data_prefix=data_prefix, done_marker=done_marker)
    async with aclosing(payloads):
        async for data in payloads:
            frame = decode_frame(data)
            if frame is not None:
                yield frame


def decode_frame(data: str) -> dict[str, Any] | None:
    """Decode one SSE payload, returning ``None`` for anything but a JSON object."""
    try:
        frame = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("Skipping malformed SSE frame: %.200s", data)
        return None
    if not isinstance(frame, dict):
        logger.debug("Skipping non-object SSE frame: %.200s", data)
        return None
    return frame

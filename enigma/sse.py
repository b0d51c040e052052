"""
Incremental Server-Sent-Events decoding for chat completion streams.

The decoder is a small state machine with no I/O of its own: the transport
pushes raw chunks in with `feed`, calls `finish` when the body ends, and
`fail` when the connection breaks. That keeps it testable without a server.
"""

from __future__ import annotations

import codecs
import enum
import json

from .errors import StreamInterruptedError

DATA_PREFIX = "data: "
DONE_MARKER = "[DONE]"


class Signal(enum.Enum):
    DONE = "done"


DONE = Signal.DONE


def parse_line(line: str) -> str | Signal | None:
    """
    Interpret one complete SSE line.

    Returns the content delta as a string, DONE for the terminal frame, or
    None for anything to skip (blank, comment, non-data, malformed JSON,
    chunks without text).
    """
    if not line.strip():
        return None
    if line.startswith(":") or not line.startswith(DATA_PREFIX):
        return None

    data = line[len(DATA_PREFIX):]
    if data.strip() == DONE_MARKER:
        return DONE

    try:
        chunk = json.loads(data)
        content = chunk["choices"][0]["delta"]["content"]
    except (json.JSONDecodeError, KeyError, IndexError, TypeError):
        return None
    return content if isinstance(content, str) else None


class SSEDecoder:
    """Line assembly over a chunked body, one buffer for the unterminated tail."""

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.done = False

    def feed(self, data: bytes | str) -> list[str]:
        """Append a chunk and return the fragments of every line it completed."""
        if self.done:
            return []
        text = self._utf8.decode(data) if isinstance(data, bytes) else data
        self._buffer += text

        *lines, self._buffer = self._buffer.split("\n")
        fragments: list[str] = []
        for line in lines:
            result = parse_line(line)
            if result is DONE:
                self.done = True
                self._buffer = ""
                break
            if result is not None:
                fragments.append(result)
        return fragments

    def finish(self) -> str | None:
        """End of input: parse a non-blank trailing line once."""
        if self.done:
            return None
        tail = self._buffer + self._utf8.decode(b"", final=True)
        self._buffer = ""
        self.done = True
        if not tail.strip():
            return None
        result = parse_line(tail)
        return result if isinstance(result, str) else None

    def fail(self, exc: BaseException) -> StreamInterruptedError:
        """Discard state and wrap the transport error."""
        self._buffer = ""
        self.done = True
        return StreamInterruptedError(str(exc))

"""Incremental SSE line parser.

Turns arbitrarily fragmented ``text/event-stream`` bytes into classified
lines. A line may end in ``\\n``, ``\\r`` or ``\\r\\n``; a ``\\r\\n`` pair split
across two chunks counts as a single terminator.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass

from ..errors import ProtocolError

_LINE_END = re.compile(rb"[\r\n]")
_COLON = 0x3A
_SPACE = 0x20
_CR = 0x0D
_LF = 0x0A


@dataclass(frozen=True, slots=True)
class Line:
    """One decoded line: a field/value pair, or the blank record terminator."""

    field: str = ""
    value: str = ""
    blank: bool = False


BLANK_LINE = Line(blank=True)


def classify_line(raw: bytes) -> Line | None:
    """Split a single unterminated line into field and value.

    Returns None for comment lines (leading colon).
    """
    if not raw:
        return BLANK_LINE
    if raw[0] == _COLON:
        return None

    colon = raw.find(b":")
    if colon < 0:
        return Line(field=_decode(raw), value="")

    start = colon + 1
    if start < len(raw) and raw[start] == _SPACE:
        start += 1
    return Line(field=_decode(raw[:colon]), value=_decode(raw[start:]))


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


class LineParser:
    """Buffers partial lines between chunk deliveries and yields complete ones."""

    def __init__(self, max_line_bytes: int | None = None) -> None:
        self.max_line_bytes = max_line_bytes
        self._buffer = bytearray()
        self._position = 0
        # Offset already searched for a terminator without finding one
        self._scanned = 0
        self._discard_lf = False

    @property
    def buffered(self) -> int:
        """Number of received bytes not yet consumed as complete lines."""
        return len(self._buffer) - self._position

    def reset(self) -> None:
        """Drop all buffered state (connection teardown)."""
        self._buffer.clear()
        self._position = 0
        self._scanned = 0
        self._discard_lf = False

    def feed(self, chunk: bytes) -> Iterator[Line]:
        """Append a chunk and lazily yield every line it completes.

        The read position is committed before each yield, so an abandoned
        iterator leaves the remaining lines for the next ``feed()`` call.
        """
        if self._position:
            del self._buffer[: self._position]
            self._scanned = max(self._scanned - self._position, 0)
            self._position = 0
        self._buffer += chunk
        return self._lines()

    def _lines(self) -> Iterator[Line]:
        buffer = self._buffer
        while self._position < len(buffer):
            if self._discard_lf:
                self._discard_lf = False
                if buffer[self._position] == _LF:
                    self._position += 1
                    self._scanned = max(self._scanned, self._position)
                    continue

            match = _LINE_END.search(buffer, max(self._position, self._scanned))
            if match is None:
                self._scanned = len(buffer)
                self._check_overflow()
                return

            end = match.start()
            if buffer[end] == _CR:
                self._discard_lf = True
            raw = bytes(buffer[self._position:end])
            self._position = end + 1
            self._scanned = self._position

            line = classify_line(raw)
            if line is not None:
                yield line

    def _check_overflow(self) -> None:
        if self.max_line_bytes is not None and self.buffered > self.max_line_bytes:
            raise ProtocolError(
                f"SSE line exceeds {self.max_line_bytes} bytes without a terminator"
            )

"""Offset to line-number index for source text."""

from __future__ import annotations

import re
from bisect import bisect_right
from typing import List, Tuple

_LINE_BREAK = re.compile(rb"\r\n|\r|\n")


class LineIndex:
    """Start offsets of every line in a UTF-8 encoded source.

    ``\\n``, ``\\r\\n`` and a lone ``\\r`` all end a line, so files with mixed
    line endings number their lines the way editors do.
    """

    def __init__(self, data: bytes):
        starts = [0]
        starts.extend(match.end() for match in _LINE_BREAK.finditer(data))
        self._starts: List[int] = starts

    @classmethod
    def from_text(cls, text: str) -> "LineIndex":
        return cls(text.encode("utf-8"))

    @property
    def lines(self) -> List[Tuple[int, int]]:
        """``(line, start_offset)`` pairs, 1-based, increasing offsets."""
        return [(number, start) for number, start in enumerate(self._starts, 1)]

    def __len__(self) -> int:
        return len(self._starts)

    def line_for(self, offset: int) -> int:
        """Greatest line whose start is <= *offset*; 0 if *offset* precedes line 1."""
        return bisect_right(self._starts, offset)

    def position(self, offset: int) -> Tuple[int, int]:
        """1-based ``(line, column)`` for *offset*, column counted in bytes."""
        line = self.line_for(offset)
        if line == 0:
            return 0, 0
        return line, offset - self._starts[line - 1] + 1

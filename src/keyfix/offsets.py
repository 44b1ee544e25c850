"""Conversion of libcst line/column positions into byte offsets."""

from __future__ import annotations

import codecs
import re
from typing import List

_LINE_END_RE = re.compile(r"\r\n|\r|\n")


class ByteOffsetCalculator:
    """Utility that converts libcst line/column data into byte offsets.

    Offsets are measured in the original encoded file, so ``base`` accounts
    for a byte-order mark that decoding has already stripped from ``source``.
    """

    def __init__(self, source: str, encoding: str = "utf-8", base: int = 0) -> None:
        codec = codecs.lookup(encoding).name
        if codec == "utf-8-sig":
            codec = "utf-8"

        self._char_offsets: List[int] = [0]
        for match in _LINE_END_RE.finditer(source):
            self._char_offsets.append(match.end())

        self._byte_offsets: List[int] = [0] * (len(source) + 1)
        running_bytes = base
        self._byte_offsets[0] = base
        for index, char in enumerate(source):
            running_bytes += len(char.encode(codec))
            self._byte_offsets[index + 1] = running_bytes

    def offset(self, line: int, column: int) -> int:
        if line < 1 or line > len(self._char_offsets):
            raise ValueError(f"Line out of range: {line}")
        char_index = self._char_offsets[line - 1] + column
        if char_index < 0 or char_index >= len(self._byte_offsets):
            raise ValueError(f"Column out of range: {column}")
        return self._byte_offsets[char_index]

from __future__ import annotations

import zlib
from typing import Optional

from .constants import DEFAULT_COMPRESSION_LEVEL
from .errors import FormatError


class Codec:
    """Whole-buffer DEFLATE (zlib stream) codec for loose objects."""

    def __init__(self, level: Optional[int] = None):
        self.level = level if level is not None else DEFAULT_COMPRESSION_LEVEL
        if not -1 <= self.level <= 9:
            raise ValueError(f"compression level out of range: {self.level}")

    def compress(self, data: bytes) -> bytes:
        return zlib.compress(data, self.level)

    def decompress(self, data: bytes) -> bytes:
        try:
            return zlib.decompress(data)
        except zlib.error as e:
            raise FormatError(f"corrupt deflate stream: {e}") from e

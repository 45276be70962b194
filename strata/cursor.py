from __future__ import annotations

from .errors import FormatError, ShortReadError


class ByteCursor:
    """Position-tracking reader over an owned byte buffer.

    All parsing in strata goes through this type: object headers, tree
    entries, commit lines and index records. It never touches a stream, so
    callers read a whole file (or inflate a whole object) first.
    """

    __slots__ = ("data", "pos")

    def __init__(self, data: bytes, pos: int = 0):
        self.data = bytes(data)
        self.pos = pos

    def __len__(self) -> int:
        return len(self.data) - self.pos

    def at_end(self) -> bool:
        return self.pos >= len(self.data)

    def remaining(self) -> int:
        return len(self.data) - self.pos

    def peek(self, n: int = 1) -> bytes:
        return self.data[self.pos : self.pos + n]

    def read_exact(self, n: int) -> bytes:
        if n < 0:
            raise ValueError("read length must be non-negative")
        end = self.pos + n
        if end > len(self.data):
            raise ShortReadError(f"unexpected end of input: wanted {n} bytes at offset {self.pos}, have {self.remaining()}")
        b = self.data[self.pos : end]
        self.pos = end
        return b

    def read_until(self, delim: bytes) -> bytes:
        """Return bytes up to ``delim`` and move past the delimiter."""
        idx = self.data.find(delim, self.pos)
        if idx < 0:
            raise FormatError(f"missing delimiter {delim!r} after offset {self.pos}")
        b = self.data[self.pos : idx]
        self.pos = idx + len(delim)
        return b

    def read_rest(self) -> bytes:
        b = self.data[self.pos :]
        self.pos = len(self.data)
        return b

    def skip(self, n: int) -> None:
        self.read_exact(n)

    def expect(self, literal: bytes) -> None:
        got = self.data[self.pos : self.pos + len(literal)]
        if got != literal:
            raise FormatError(f"expected {literal!r} at offset {self.pos}, found {got!r}")
        self.pos += len(literal)


def parse_decimal(raw: bytes, what: str) -> int:
    """Parse an unsigned ASCII decimal, rejecting signs, blanks and non-digits."""
    if not raw or not raw.isdigit():
        raise FormatError(f"invalid {what}: {raw!r}")
    return int(raw)

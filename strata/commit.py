"""
Commit objects.

Payload grammar (all header lines end with ``\\n``)::

    tree <40-hex>
    parent <40-hex>          (zero or more, order preserved)
    author <name> <<email>> <epoch-seconds> <+|-HHMM>
    committer <name> <<email>> <epoch-seconds> <+|-HHMM>
    <blank separator line>
    <message bytes, verbatim, to end of payload>

Only these header kinds are understood. Any other header (``encoding``,
``gpgsig``, ``mergetag`` ...) is rejected with FormatError rather than being
skipped, so a decoded commit always re-encodes to the same bytes.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Tuple

from .constants import TYPE_COMMIT
from .cursor import ByteCursor, parse_decimal
from .errors import FormatError
from .objects import ShaObject
from .oid import Oid


def format_tz(offset_minutes: int) -> bytes:
    sign = "-" if offset_minutes < 0 else "+"
    hours, minutes = divmod(abs(offset_minutes), 60)
    return f"{sign}{hours:02d}{minutes:02d}".encode("ascii")


def parse_tz(raw: bytes) -> int:
    if len(raw) != 5 or raw[:1] not in (b"+", b"-") or not raw[1:].isdigit():
        raise FormatError(f"invalid timezone offset: {raw!r}")
    hours, minutes = int(raw[1:3]), int(raw[3:5])
    if minutes >= 60:
        raise FormatError(f"invalid timezone offset: {raw!r}")
    total = hours * 60 + minutes
    return -total if raw[:1] == b"-" else total


@dataclass(frozen=True)
class Identity:
    name: bytes
    email: bytes
    timestamp: int
    offset: int = 0  # minutes east of UTC

    def __post_init__(self):
        if b"<" in self.name or b">" in self.name or b"\n" in self.name:
            raise FormatError(f"invalid identity name: {self.name!r}")
        if b"<" in self.email or b">" in self.email or b"\n" in self.email:
            raise FormatError(f"invalid identity email: {self.email!r}")
        if self.timestamp < 0:
            raise FormatError("identity timestamp may not be negative")

    @classmethod
    def now(cls, name: bytes, email: bytes) -> "Identity":
        ts = int(time.time())
        local = datetime.fromtimestamp(ts).astimezone()
        offset = int(local.utcoffset().total_seconds() // 60)
        return cls(name, email, ts, offset)

    @property
    def when(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, timezone(timedelta(minutes=self.offset)))

    def serialize(self) -> bytes:
        return (
            self.name
            + b" <"
            + self.email
            + b"> "
            + str(self.timestamp).encode("ascii")
            + b" "
            + format_tz(self.offset)
        )

    @classmethod
    def parse(cls, line: bytes) -> "Identity":
        cur = ByteCursor(line)
        name = cur.read_until(b" <")
        email = cur.read_until(b"> ")
        timestamp = parse_decimal(cur.read_until(b" "), "identity timestamp")
        offset = parse_tz(cur.read_rest())
        return cls(name, email, timestamp, offset)


@dataclass(frozen=True)
class Commit(ShaObject):
    tree: Oid
    parents: Tuple[Oid, ...]
    author: Identity
    committer: Identity
    message: bytes = b""

    type_name = TYPE_COMMIT

    def __post_init__(self):
        object.__setattr__(self, "parents", tuple(self.parents))
        object.__setattr__(self, "message", bytes(self.message))

    def serialize(self) -> bytes:
        out = bytearray()
        out += b"tree " + self.tree.hex().encode("ascii") + b"\n"
        for parent in self.parents:
            out += b"parent " + parent.hex().encode("ascii") + b"\n"
        out += b"author " + self.author.serialize() + b"\n"
        out += b"committer " + self.committer.serialize() + b"\n"
        out += b"\n"
        out += self.message
        return bytes(out)

    @classmethod
    def deserialize(cls, payload: bytes) -> "Commit":
        """Parse a commit payload.

        Exactly one newline after the committer line is consumed as the
        separator when present; everything after it is the message, verbatim.
        A payload ``committer ...\\n\\nfoo`` therefore yields message ``foo``.
        """
        cur = ByteCursor(payload)
        token = cur.read_until(b" ")
        if token != b"tree":
            raise FormatError(f"commit must start with a tree line, found {token!r}")
        tree = Oid.from_hex(cur.read_until(b"\n"))
        parents = []
        while True:
            token = cur.read_until(b" ")
            if token == b"parent":
                parents.append(Oid.from_hex(cur.read_until(b"\n")))
            elif token == b"author":
                break
            else:
                raise FormatError(f"unexpected commit header: {token!r}")
        author = Identity.parse(cur.read_until(b"\n"))
        token = cur.read_until(b" ")
        if token != b"committer":
            raise FormatError(f"expected committer line, found {token!r}")
        committer = Identity.parse(cur.read_until(b"\n"))
        if cur.peek() == b"\n":
            cur.skip(1)
        return cls(tree, tuple(parents), author, committer, cur.read_rest())

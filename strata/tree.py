from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Mapping, Tuple, Union

from .constants import TYPE_TREE
from .cursor import ByteCursor
from .errors import FormatError, ShortReadError
from .objects import ShaObject
from .oid import Oid


@dataclass(frozen=True)
class TreeEntry:
    mode: bytes
    oid: Oid

    def __post_init__(self):
        if not self.mode or not self.mode.isdigit():
            raise FormatError(f"invalid tree entry mode: {self.mode!r}")

    @property
    def kind(self) -> str:
        """Coarse entry kind taken from the first mode digit.

        Modes starting with ``1`` (regular file, executable, symlink) are
        reported as ``"blob"``; everything else as ``"tree"``. This is an
        approximation: it does not tell symlinks from files and would report a
        submodule link (``160000``) as a blob.
        """
        return "blob" if self.mode[:1] == b"1" else "tree"


def _check_name(name: bytes) -> None:
    if not name:
        raise FormatError("tree entry name may not be empty")
    if b"/" in name or b"\x00" in name:
        raise FormatError(f"invalid tree entry name: {name!r}")


TreeItems = Union[Mapping[bytes, TreeEntry], Iterable[Tuple[bytes, TreeEntry]]]


@dataclass(frozen=True)
class Tree(ShaObject):
    """Directory snapshot: unique names mapped to entries, kept in byte order.

    The canonical encoding (and so the id) depends only on the name->entry
    mapping, never on the order entries were supplied in.
    """

    entries: Tuple[Tuple[bytes, TreeEntry], ...] = ()

    type_name = TYPE_TREE

    def __post_init__(self):
        items = self.entries.items() if isinstance(self.entries, Mapping) else self.entries
        seen = {}
        for name, entry in items:
            name = bytes(name)
            _check_name(name)
            if name in seen:
                raise FormatError(f"duplicate tree entry name: {name!r}")
            seen[name] = entry
        object.__setattr__(self, "entries", tuple(sorted(seen.items())))

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[bytes]:
        return (name for name, _ in self.entries)

    def __contains__(self, name: bytes) -> bool:
        return any(n == name for n, _ in self.entries)

    def __getitem__(self, name: bytes) -> TreeEntry:
        for n, entry in self.entries:
            if n == name:
                return entry
        raise KeyError(name)

    def items(self) -> Iterator[Tuple[bytes, TreeEntry]]:
        return iter(self.entries)

    def with_entry(self, name: bytes, mode: bytes, oid: Oid) -> "Tree":
        updated = dict(self.entries)
        updated[name] = TreeEntry(mode, oid)
        return Tree(updated)

    def without_entry(self, name: bytes) -> "Tree":
        if name not in self:
            raise KeyError(name)
        return Tree((n, e) for n, e in self.entries if n != name)

    def serialize(self) -> bytes:
        out = bytearray()
        # entries are already sorted by raw name bytes
        for name, entry in self.entries:
            out += entry.mode
            out += b" "
            out += name
            out += b"\x00"
            out += entry.oid.raw
        return bytes(out)

    @classmethod
    def deserialize(cls, payload: bytes) -> "Tree":
        cur = ByteCursor(payload)
        items = []
        while not cur.at_end():
            mode = cur.read_until(b" ")
            name = cur.read_until(b"\x00")
            try:
                oid = Oid.read_from(cur)
            except ShortReadError as e:
                raise FormatError(f"truncated tree entry {name!r}: {e}") from e
            items.append((name, TreeEntry(mode, oid)))
        return cls(tuple(items))

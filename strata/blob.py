from __future__ import annotations

from dataclasses import dataclass

from .constants import TYPE_BLOB
from .objects import ShaObject, hash_object
from .oid import Oid


@dataclass(frozen=True)
class Blob(ShaObject):
    content: bytes

    type_name = TYPE_BLOB

    def __post_init__(self):
        object.__setattr__(self, "content", bytes(self.content))

    def serialize(self) -> bytes:
        return self.content

    @classmethod
    def deserialize(cls, payload: bytes) -> "Blob":
        return cls(payload)

    @classmethod
    def from_path(cls, path: str) -> "Blob":
        with open(path, "rb") as fh:
            return cls(fh.read())

    def __len__(self) -> int:
        return len(self.content)


def hash_blob(content: bytes) -> Oid:
    """Id the object store assigns to ``content`` stored as a blob."""
    return hash_object(TYPE_BLOB, content)

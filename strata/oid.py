from __future__ import annotations

import binascii
from dataclasses import dataclass
from typing import Union

from Cryptodome.Hash import SHA1, SHA256

from .constants import DEFAULT_HASH_ALGORITHM, OID_HEXSZ, OID_RAWSZ
from .cursor import ByteCursor
from .errors import FormatError


# Digest used to name objects. The reference format uses SHA-1; other entries
# only become usable once OID_RAWSZ matches their digest width.
HASH_ALGORITHMS = {
    "sha1": SHA1,
    "sha256": SHA256,
}


def digest(data: bytes, algorithm: str = DEFAULT_HASH_ALGORITHM) -> bytes:
    try:
        mod = HASH_ALGORITHMS[algorithm]
    except KeyError:
        raise ValueError(f"unknown hash algorithm: {algorithm}") from None
    return mod.new(data).digest()


@dataclass(frozen=True)
class Oid:
    """Object identifier: the raw digest of an object's framed encoding."""

    raw: bytes

    def __post_init__(self):
        if not isinstance(self.raw, (bytes, bytearray)):
            raise TypeError("Oid expects raw bytes")
        if len(self.raw) != OID_RAWSZ:
            raise FormatError(f"object id must be {OID_RAWSZ} bytes, got {len(self.raw)}")
        object.__setattr__(self, "raw", bytes(self.raw))

    @classmethod
    def from_data(cls, data: bytes, algorithm: str = DEFAULT_HASH_ALGORITHM) -> "Oid":
        d = digest(data, algorithm)
        if len(d) != OID_RAWSZ:
            raise ValueError(f"{algorithm} digest is {len(d)} bytes; object ids are {OID_RAWSZ}")
        return cls(d)

    @classmethod
    def from_hex(cls, text: Union[str, bytes]) -> "Oid":
        if isinstance(text, bytes):
            try:
                text = text.decode("ascii")
            except UnicodeDecodeError:
                raise FormatError(f"object id is not ASCII hex: {text!r}") from None
        if len(text) != OID_HEXSZ:
            raise FormatError(f"object id must be {OID_HEXSZ} hex characters, got {len(text)}")
        try:
            return cls(binascii.unhexlify(text))
        except (binascii.Error, ValueError):
            raise FormatError(f"invalid hex object id: {text!r}") from None

    @classmethod
    def read_from(cls, cursor: ByteCursor) -> "Oid":
        return cls(cursor.read_exact(OID_RAWSZ))

    def hex(self) -> str:
        return self.raw.hex()

    def __str__(self) -> str:
        return self.hex()

    def __repr__(self) -> str:
        return f"Oid('{self.hex()}')"

    def __bytes__(self) -> bytes:
        return self.raw

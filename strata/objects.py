"""
Object framing and type dispatch.

Every stored object is framed as ``<type> <decimal payload size>\\0<payload>``.
The framed bytes are what gets deflated into a loose object file and what gets
digested to produce the object's id, so ``encode_object`` must stay
byte-exact with the reference tool.

Concrete kinds (blob, tree, commit) subclass ``ShaObject`` and register their
type token automatically; ``decode_object`` dispatches on that token.
"""

from __future__ import annotations

from typing import Dict, Tuple, Type

from .constants import DEFAULT_HASH_ALGORITHM
from .cursor import ByteCursor, parse_decimal
from .errors import SizeMismatchError, UnsupportedObjectType
from .oid import Oid


_TYPES: Dict[bytes, Type["ShaObject"]] = {}


class ShaObject:
    type_name: bytes = b""

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if cls.type_name:
            _TYPES[cls.type_name] = cls

    def serialize(self) -> bytes:
        raise NotImplementedError

    @classmethod
    def deserialize(cls, payload: bytes) -> "ShaObject":
        raise NotImplementedError

    def encode(self) -> bytes:
        return encode_object(self)

    @property
    def id(self) -> Oid:
        return object_id(self)


def frame(type_name: bytes, payload: bytes) -> bytes:
    return type_name + b" " + str(len(payload)).encode("ascii") + b"\x00" + payload


def encode_object(obj: ShaObject) -> bytes:
    return frame(obj.type_name, obj.serialize())


def hash_object(type_name: bytes, payload: bytes, algorithm: str = DEFAULT_HASH_ALGORITHM) -> Oid:
    return Oid.from_data(frame(type_name, payload), algorithm)


def object_id(obj: ShaObject, algorithm: str = DEFAULT_HASH_ALGORITHM) -> Oid:
    return Oid.from_data(encode_object(obj), algorithm)


def split_header(data: bytes, *, strict: bool = False) -> Tuple[bytes, int, bytes]:
    """
    Returns: (type_name, declared_size, payload)

    The declared size is advisory; with ``strict`` it must equal the payload
    length.
    """
    cur = ByteCursor(data)
    type_name = cur.read_until(b" ")
    size = parse_decimal(cur.read_until(b"\x00"), "object size")
    payload = cur.read_rest()
    if strict and size != len(payload):
        raise SizeMismatchError(f"declared size {size} but payload is {len(payload)} bytes")
    return type_name, size, payload


def object_class(type_name: bytes) -> Type[ShaObject]:
    try:
        return _TYPES[type_name]
    except KeyError:
        raise UnsupportedObjectType(type_name) from None


def decode_object(data: bytes, *, strict: bool = False) -> ShaObject:
    type_name, _size, payload = split_header(data, strict=strict)
    return object_class(type_name).deserialize(payload)

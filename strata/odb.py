"""
Object database: maps object ids to stored, deflated, framed objects.

``ObjectStore`` is the capability every caller codes against. Two backends
implement it:

- ``FileObjectStore`` reads and writes the loose-object layout
  ``<root>/<first 2 hex chars>/<remaining 38 hex chars>``, each file a single
  zlib stream of ``<type> <size>\\0<payload>``.
- ``MemoryObjectStore`` keeps the same deflated bytes in a dict; it is meant
  for tests and for callers that stage objects before deciding to persist.

Objects are immutable and write-once, so stores do not cache and writers do
not coordinate: writing the same content twice yields the same path and the
same bytes.
"""

from __future__ import annotations

import logging
import os
import tempfile
from typing import Dict, Iterator, Optional, Tuple, Union

from .blob import Blob
from .codec import Codec
from .constants import OBJECT_DIR_PREFIX_LEN, OID_HEXSZ
from .errors import ObjectNotFound, StorageError
from .objects import ShaObject, decode_object, encode_object, split_header
from .oid import Oid


logger = logging.getLogger(__name__)


class ObjectStore:
    """Content-addressed storage for blob, tree and commit objects."""

    def __init__(self, *, compression_level: Optional[int] = None, strict: bool = False):
        self.codec = Codec(compression_level)
        self.strict = strict

    # -- backend hooks --

    def _read(self, oid: Oid) -> bytes:
        """Return the stored (deflated) bytes for ``oid`` or raise ObjectNotFound."""
        raise NotImplementedError

    def _write(self, oid: Oid, stored: bytes) -> None:
        raise NotImplementedError

    def contains(self, oid: Oid) -> bool:
        raise NotImplementedError

    def iter_oids(self) -> Iterator[Oid]:
        raise NotImplementedError

    # -- public API --

    def __contains__(self, oid: Oid) -> bool:
        return self.contains(oid)

    def __iter__(self) -> Iterator[Oid]:
        return self.iter_oids()

    def get_raw(self, oid: Oid) -> bytes:
        """Inflated framed bytes: ``<type> <size>\\0<payload>``."""
        return self.codec.decompress(self._read(oid))

    def get_header(self, oid: Oid) -> Tuple[bytes, int]:
        type_name, size, _payload = split_header(self.get_raw(oid), strict=self.strict)
        return type_name, size

    def get(self, oid: Oid) -> ShaObject:
        return decode_object(self.get_raw(oid), strict=self.strict)

    def put(self, obj: Union[ShaObject, bytes, bytearray]) -> Oid:
        """Store ``obj`` (raw bytes are stored as a blob) and return its id."""
        if isinstance(obj, (bytes, bytearray)):
            obj = Blob(obj)
        framed = encode_object(obj)
        oid = Oid.from_data(framed)
        if self.contains(oid):
            return oid
        self._write(oid, self.codec.compress(framed))
        return oid


class FileObjectStore(ObjectStore):
    def __init__(self, root: str, *, compression_level: Optional[int] = None, strict: bool = False):
        super().__init__(compression_level=compression_level, strict=strict)
        self.root = os.fspath(root)

    def __repr__(self) -> str:
        return f"FileObjectStore({self.root!r})"

    def object_path(self, oid: Oid) -> str:
        h = oid.hex()
        return os.path.join(self.root, h[:OBJECT_DIR_PREFIX_LEN], h[OBJECT_DIR_PREFIX_LEN:])

    def contains(self, oid: Oid) -> bool:
        return os.path.isfile(self.object_path(oid))

    def _read(self, oid: Oid) -> bytes:
        path = self.object_path(oid)
        logger.debug("reading object %s from %s", oid, path)
        try:
            with open(path, "rb") as fh:
                return fh.read()
        except FileNotFoundError:
            raise ObjectNotFound(f"object {oid} not found in {self.root}") from None
        except OSError as e:
            raise StorageError(f"cannot read object {oid}: {e}") from e

    def _write(self, oid: Oid, stored: bytes) -> None:
        path = self.object_path(oid)
        obj_dir = os.path.dirname(path)
        tmp_path = None
        try:
            os.makedirs(obj_dir, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix="tmp_obj_", dir=obj_dir)
            with os.fdopen(fd, "wb") as fh:
                fh.write(stored)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_path, 0o444)
            os.replace(tmp_path, path)
        except OSError as e:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StorageError(f"cannot write object {oid}: {e}") from e
        logger.debug("wrote object %s to %s", oid, path)

    def iter_oids(self) -> Iterator[Oid]:
        if not os.path.isdir(self.root):
            return
        for prefix in sorted(os.listdir(self.root)):
            subdir = os.path.join(self.root, prefix)
            if len(prefix) != OBJECT_DIR_PREFIX_LEN or not os.path.isdir(subdir):
                continue
            for rest in sorted(os.listdir(subdir)):
                name = prefix + rest
                if len(name) != OID_HEXSZ:
                    continue
                try:
                    yield Oid.from_hex(name)
                except ValueError:
                    continue


class MemoryObjectStore(ObjectStore):
    def __init__(self, *, compression_level: Optional[int] = None, strict: bool = False):
        super().__init__(compression_level=compression_level, strict=strict)
        self.objects: Dict[Oid, bytes] = {}

    def __repr__(self) -> str:
        return f"MemoryObjectStore({len(self.objects)} objects)"

    def __len__(self) -> int:
        return len(self.objects)

    def contains(self, oid: Oid) -> bool:
        return oid in self.objects

    def _read(self, oid: Oid) -> bytes:
        try:
            return self.objects[oid]
        except KeyError:
            raise ObjectNotFound(f"object {oid} not found") from None

    def _write(self, oid: Oid, stored: bytes) -> None:
        self.objects[oid] = stored

    def iter_oids(self) -> Iterator[Oid]:
        return iter(sorted(self.objects, key=lambda o: o.raw))

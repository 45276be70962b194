from __future__ import annotations

import logging
import os
import stat
import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Iterator, List, Optional, Union

from .blob import hash_blob
from .constants import (
    IFLAG_ASSUME_VALID,
    IFLAG_EXTENDED,
    IFLAG_NAME_MASK,
    IFLAG_STAGE_MASK,
    IFLAG_STAGE_SHIFT,
    INDEX_ENTRY_ALIGN,
    INDEX_ENTRY_FIXED_SIZE,
    INDEX_MAGIC,
    INDEX_VERSION,
    OID_RAWSZ,
)
from .cursor import ByteCursor
from .errors import FormatError, ShortReadError, StorageError
from .oid import Oid, digest


logger = logging.getLogger(__name__)


# Index header (12 bytes, big endian)
# struct: >4s I I
#  - magic[4] "DIRC"
#  - version u32
#  - entry count u32
_HEADER_STRUCT = struct.Struct(">4sII")

# Fixed part of an entry (62 bytes, big endian)
# ctime sec i32, ctime nsec u32, mtime sec i32, mtime nsec u32,
# dev, ino, mode, uid, gid, size (u32 each), oid[20], flags u16
_ENTRY_STRUCT = struct.Struct(">iIiIIIIIII20sH")

# Extension block header: signature[4], size u32
_EXT_STRUCT = struct.Struct(">4sI")


def _u32(v: int) -> int:
    return v & 0xFFFFFFFF


def _i32(v: int) -> int:
    return ((v + 0x80000000) & 0xFFFFFFFF) - 0x80000000


def entry_size(path_len: int) -> int:
    """On-disk size of an entry: fixed part + path + 1..8 zero bytes of padding."""
    unpadded = INDEX_ENTRY_FIXED_SIZE + path_len
    return unpadded + (INDEX_ENTRY_ALIGN - unpadded % INDEX_ENTRY_ALIGN)


@dataclass
class IndexTime:
    seconds: int = 0
    nanoseconds: int = 0

    @classmethod
    def from_ns(cls, ns: int) -> "IndexTime":
        sec, nsec = divmod(ns, 1_000_000_000)
        return cls(_i32(sec), _u32(nsec))


@dataclass
class IndexHeader:
    magic: bytes = INDEX_MAGIC
    version: int = INDEX_VERSION
    num_entries: int = 0

    def pack(self) -> bytes:
        return _HEADER_STRUCT.pack(self.magic, self.version, self.num_entries)

    @classmethod
    def read_from(cls, cur: ByteCursor) -> "IndexHeader":
        magic, version, num_entries = _HEADER_STRUCT.unpack(cur.read_exact(_HEADER_STRUCT.size))
        if magic != INDEX_MAGIC:
            raise FormatError(f"bad index magic: {magic!r}")
        if version != INDEX_VERSION:
            raise FormatError(f"unsupported index version: {version}")
        return cls(magic, version, num_entries)


@dataclass
class IndexEntry:
    ctime: IndexTime
    mtime: IndexTime
    dev: int
    ino: int
    mode: int
    uid: int
    gid: int
    size: int
    oid: Oid
    flags: int
    path: bytes

    @classmethod
    def from_path(cls, path: str, *, root: Optional[str] = None, store=None) -> "IndexEntry":
        """Build an entry from a live file.

        ``path`` is recorded relative to ``root`` (when given) with forward
        slashes. The blob id is computed from the file's full content, or the
        link target for symlinks; when ``store`` is given the blob is written
        to it as well.
        """
        fs_path = os.path.join(root, path) if root is not None else path
        try:
            st = os.lstat(fs_path)
            if stat.S_ISLNK(st.st_mode):
                content = os.fsencode(os.readlink(fs_path))
            else:
                with open(fs_path, "rb") as fh:
                    content = fh.read()
        except OSError as e:
            raise StorageError(f"cannot stage {fs_path}: {e}") from e
        oid = store.put(content) if store is not None else hash_blob(content)
        rel = os.path.relpath(fs_path, root) if root is not None else path
        name = os.fsencode(rel).replace(os.fsencode(os.sep), b"/")
        return cls(
            ctime=IndexTime.from_ns(st.st_ctime_ns),
            mtime=IndexTime.from_ns(st.st_mtime_ns),
            dev=_u32(st.st_dev),
            ino=_u32(st.st_ino),
            mode=_u32(st.st_mode),
            uid=_u32(st.st_uid),
            gid=_u32(st.st_gid),
            size=_u32(st.st_size),
            oid=oid,
            flags=min(len(name), IFLAG_NAME_MASK),
            path=name,
        )

    @property
    def name_length(self) -> int:
        return self.flags & IFLAG_NAME_MASK

    @property
    def stage(self) -> int:
        return (self.flags & IFLAG_STAGE_MASK) >> IFLAG_STAGE_SHIFT

    @property
    def assume_valid(self) -> bool:
        return bool(self.flags & IFLAG_ASSUME_VALID)

    def pack(self) -> bytes:
        flags = (self.flags & ~IFLAG_NAME_MASK & 0xFFFF) | min(len(self.path), IFLAG_NAME_MASK)
        try:
            fixed = _ENTRY_STRUCT.pack(
                self.ctime.seconds,
                self.ctime.nanoseconds,
                self.mtime.seconds,
                self.mtime.nanoseconds,
                self.dev,
                self.ino,
                self.mode,
                self.uid,
                self.gid,
                self.size,
                self.oid.raw,
                flags,
            )
        except struct.error as e:
            raise FormatError(f"index entry {self.path!r} has a field out of range: {e}") from e
        pad = entry_size(len(self.path)) - INDEX_ENTRY_FIXED_SIZE - len(self.path)
        return fixed + self.path + b"\x00" * pad

    @classmethod
    def read_from(cls, cur: ByteCursor) -> "IndexEntry":
        (
            ctime_s,
            ctime_ns,
            mtime_s,
            mtime_ns,
            dev,
            ino,
            mode,
            uid,
            gid,
            size,
            raw_oid,
            flags,
        ) = _ENTRY_STRUCT.unpack(cur.read_exact(INDEX_ENTRY_FIXED_SIZE))
        if flags & IFLAG_EXTENDED:
            raise FormatError("extended entry flags are not valid in a version 2 index")
        name_len = flags & IFLAG_NAME_MASK
        if name_len < IFLAG_NAME_MASK:
            path = cur.read_exact(name_len)
            padding = cur.read_exact(entry_size(name_len) - INDEX_ENTRY_FIXED_SIZE - name_len)
        else:
            # over-long name: length field saturates, the first padding NUL terminates it
            path = cur.read_until(b"\x00")
            padding = cur.read_exact(entry_size(len(path)) - INDEX_ENTRY_FIXED_SIZE - len(path) - 1)
        if padding.strip(b"\x00"):
            raise FormatError(f"non-zero padding after index entry {path!r}")
        return cls(
            ctime=IndexTime(ctime_s, ctime_ns),
            mtime=IndexTime(mtime_s, mtime_ns),
            dev=dev,
            ino=ino,
            mode=mode,
            uid=uid,
            gid=gid,
            size=size,
            oid=Oid(raw_oid),
            flags=flags,
            path=path,
        )


@dataclass
class IndexExtension:
    signature: bytes
    data: bytes

    def pack(self) -> bytes:
        return _EXT_STRUCT.pack(self.signature, len(self.data)) + self.data


@dataclass
class Index:
    """In-memory staging index.

    Loaded wholesale, mutated in memory, written back wholesale. The header
    count written out is always the number of entries; ``header.num_entries``
    only reports what was read. There is no lock file and no atomic
    replace on write: callers must serialise any load/modify/store sequence
    themselves.
    """

    header: IndexHeader = field(default_factory=IndexHeader)
    entries: List[IndexEntry] = field(default_factory=list)
    extensions: List[IndexExtension] = field(default_factory=list)
    checksum: bool = True

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[IndexEntry]:
        return iter(self.entries)

    def paths(self) -> List[bytes]:
        return [e.path for e in self.entries]

    def find(self, path: bytes, stage: int = 0) -> Optional[IndexEntry]:
        for e in self.entries:
            if e.path == path and e.stage == stage:
                return e
        return None

    def add(self, entry: IndexEntry) -> None:
        self.entries.append(entry)

    def update(self, entry: IndexEntry) -> None:
        """Replace the entry with the same path and stage, or append it."""
        for i, e in enumerate(self.entries):
            if e.path == entry.path and e.stage == entry.stage:
                self.entries[i] = entry
                return
        self.add(entry)

    def remove(self, path: bytes) -> int:
        before = len(self.entries)
        self.entries = [e for e in self.entries if e.path != path]
        return before - len(self.entries)

    # -- codec --

    def to_bytes(self) -> bytes:
        # the entry count is always taken from the entries themselves
        header = IndexHeader(self.header.magic, self.header.version, len(self.entries))
        out = bytearray(header.pack())
        for e in self.entries:
            out += e.pack()
        for ext in self.extensions:
            out += ext.pack()
        if self.checksum:
            out += digest(bytes(out), "sha1")
        return bytes(out)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Index":
        cur = ByteCursor(data)
        header = IndexHeader.read_from(cur)
        entries = [IndexEntry.read_from(cur) for _ in range(header.num_entries)]
        extensions: List[IndexExtension] = []
        checksum = False
        if not cur.at_end():
            if cur.remaining() < OID_RAWSZ:
                raise FormatError(f"{cur.remaining()} stray bytes after index entries")
            body = data[: len(data) - OID_RAWSZ]
            if digest(body, "sha1") != data[len(body) :]:
                raise FormatError("index checksum mismatch")
            checksum = True
            ext_cur = ByteCursor(data[cur.pos : len(body)])
            try:
                while not ext_cur.at_end():
                    signature, size = _EXT_STRUCT.unpack(ext_cur.read_exact(_EXT_STRUCT.size))
                    extensions.append(IndexExtension(signature, ext_cur.read_exact(size)))
            except ShortReadError as e:
                raise FormatError(f"truncated index extension: {e}") from e
        logger.debug("loaded index: %d entries, %d extensions", len(entries), len(extensions))
        return cls(header, entries, extensions, checksum)

    @classmethod
    def load(cls, source: Union[BinaryIO, bytes, bytearray]) -> "Index":
        if isinstance(source, (bytes, bytearray)):
            return cls.from_bytes(bytes(source))
        try:
            data = source.read()
        except OSError as e:
            raise StorageError(f"cannot read index: {e}") from e
        return cls.from_bytes(data)

    def store(self, sink: BinaryIO) -> None:
        data = self.to_bytes()
        try:
            sink.write(data)
        except OSError as e:
            raise StorageError(f"cannot write index: {e}") from e
        logger.debug("stored index: %d entries, %d bytes", len(self.entries), len(data))

    @classmethod
    def read(cls, path: str) -> "Index":
        try:
            with open(path, "rb") as fh:
                return cls.load(fh)
        except StorageError:
            raise
        except OSError as e:
            raise StorageError(f"cannot open index {path}: {e}") from e

    def write(self, path: str) -> None:
        try:
            with open(path, "wb") as fh:
                self.store(fh)
        except StorageError:
            raise
        except OSError as e:
            raise StorageError(f"cannot open index {path}: {e}") from e

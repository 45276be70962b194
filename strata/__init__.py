"""
strata: content-addressed object store and staging index in the git on-disk format.

Features:

- Blob, tree and commit objects with byte-exact canonical encodings; ids are the
  SHA-1 of the framed encoding, identical to the reference tool's.
- Loose object database (``objects/xx/yyyy...`` zlib files) behind a small
  ``ObjectStore`` capability, with file-backed and in-memory implementations.
- Version 2 staging index reader/writer (``DIRC``), including entry padding,
  name-length flags, extension blocks and the SHA-1 footer.
- A thin ``strata`` CLI (cat-file, hash-object, ls-files, update-index).

Everything raises subclasses of ``strata.errors.StrataError``.
"""

__version__ = "0.1"

from .oid import Oid
from .objects import ShaObject, decode_object, encode_object, object_id
from .blob import Blob, hash_blob
from .tree import Tree, TreeEntry
from .commit import Commit, Identity
from .odb import FileObjectStore, MemoryObjectStore, ObjectStore
from .index import Index, IndexEntry, IndexHeader, IndexTime

__all__ = [
    "Oid",
    "ShaObject",
    "decode_object",
    "encode_object",
    "object_id",
    "Blob",
    "hash_blob",
    "Tree",
    "TreeEntry",
    "Commit",
    "Identity",
    "ObjectStore",
    "FileObjectStore",
    "MemoryObjectStore",
    "Index",
    "IndexEntry",
    "IndexHeader",
    "IndexTime",
]

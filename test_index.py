from __future__ import annotations

import io
import os
import struct
import tempfile
import unittest
from pathlib import Path

from strata.blob import hash_blob
from strata.errors import FormatError, ShortReadError, StorageError
from strata.index import (
    Index,
    IndexEntry,
    IndexExtension,
    IndexHeader,
    IndexTime,
    entry_size,
)
from strata.odb import MemoryObjectStore


HELLO_ID = "3b18e512dba79e4c8300dd08aeb37f8e728b8dad"


def _entry(path: bytes, *, seed: bytes = b"", flags=None, mode: int = 0o100644) -> IndexEntry:
    return IndexEntry(
        ctime=IndexTime(1700000000, 123),
        mtime=IndexTime(-5, 999_999_999),
        dev=0xFFFFFFFF,
        ino=42,
        mode=mode,
        uid=1000,
        gid=1000,
        size=len(seed),
        oid=hash_blob(seed or path),
        flags=min(len(path), 0xFFF) if flags is None else flags,
        path=path,
    )


def _index(*paths: bytes, checksum: bool = True) -> Index:
    index = Index(checksum=checksum)
    for p in paths:
        index.add(_entry(p))
    return index


class EntryLayoutTests(unittest.TestCase):
    def test_padding_to_multiple_of_eight(self):
        for n in (0, 1, 6, 7, 8, 61):
            path = b"p" * n
            packed = _entry(path).pack()
            expected = -(-(62 + n) // 8) * 8
            self.assertEqual(expected, len(packed), n)
            self.assertEqual(expected, entry_size(n))
            self.assertEqual(b"\x00" * (expected - 62 - n), packed[62 + n :])

    def test_aligned_entry_gets_full_padding(self):
        packed = _entry(b"ab").pack()
        self.assertEqual(72, len(packed))
        self.assertEqual(b"\x00" * 8, packed[-8:])

    def test_field_layout(self):
        e = _entry(b"dir/file.txt")
        packed = e.pack()
        self.assertEqual(struct.pack(">iI", 1700000000, 123), packed[0:8])
        self.assertEqual(struct.pack(">iI", -5, 999_999_999), packed[8:16])
        self.assertEqual(struct.pack(">I", 0xFFFFFFFF), packed[16:20])
        self.assertEqual(struct.pack(">I", 0o100644), packed[24:28])
        self.assertEqual(e.oid.raw, packed[40:60])
        self.assertEqual(struct.pack(">H", 12), packed[60:62])
        self.assertEqual(b"dir/file.txt", packed[62:74])

    def test_flags_length_read_back(self):
        index = _index(*(b"x" * n for n in (0, 1, 6, 7, 8, 61)))
        loaded = Index.load(index.to_bytes())
        self.assertEqual([0, 1, 6, 7, 8, 61], [e.name_length for e in loaded])
        self.assertEqual([len(p) for p in index.paths()], [len(p) for p in loaded.paths()])

    def test_flag_accessors(self):
        e = _entry(b"conflict", flags=0x8000 | (2 << 12) | 8)
        self.assertEqual(8, e.name_length)
        self.assertEqual(2, e.stage)
        self.assertTrue(e.assume_valid)
        self.assertFalse(_entry(b"plain").assume_valid)

    def test_flags_length_follows_path(self):
        e = _entry(b"abc", flags=0x8000 | 99)
        self.assertEqual(struct.pack(">H", 0x8000 | 3), e.pack()[60:62])

    def test_long_path(self):
        path = b"d/" * 2500
        index = _index(path, b"after")
        loaded = Index.load(index.to_bytes())
        self.assertEqual(0xFFF, loaded.entries[0].name_length)
        self.assertEqual(path, loaded.entries[0].path)
        self.assertEqual(b"after", loaded.entries[1].path)
        self.assertEqual(entry_size(len(path)), len(index.entries[0].pack()))


class IndexCodecTests(unittest.TestCase):
    def test_header(self):
        data = _index(b"a", b"b", checksum=False).to_bytes()
        self.assertEqual(b"DIRC", data[:4])
        self.assertEqual((2, 2), struct.unpack(">II", data[4:12]))

    def test_empty_index(self):
        data = Index(checksum=False).to_bytes()
        self.assertEqual(b"DIRC\x00\x00\x00\x02\x00\x00\x00\x00", data)
        self.assertEqual(0, len(Index.load(data)))

    def test_roundtrip_with_and_without_checksum(self):
        for checksum in (True, False):
            index = _index(b"README", b"src/main.py", "naïve.txt".encode("utf-8"), checksum=checksum)
            data = index.to_bytes()
            loaded = Index.load(data)
            self.assertEqual(checksum, loaded.checksum)
            self.assertEqual(index.entries, loaded.entries)
            self.assertEqual(data, loaded.to_bytes())

    def test_roundtrip_preserves_extensions(self):
        index = _index(b"a", b"b")
        index.extensions.append(IndexExtension(b"TREE", b"\x00" + b"2 0\n" + os.urandom(20)))
        index.extensions.append(IndexExtension(b"REUC", b""))
        data = index.to_bytes()
        loaded = Index.load(data)
        self.assertEqual(index.extensions, loaded.extensions)
        self.assertEqual(data, loaded.to_bytes())

    def test_stored_order_kept(self):
        paths = [b"zeta", b"alpha", b"mid"]
        loaded = Index.load(_index(*paths).to_bytes())
        self.assertEqual(paths, loaded.paths())

    def test_load_store_streams(self):
        index = _index(b"one", b"two")
        sink = io.BytesIO()
        index.store(sink)
        loaded = Index.load(io.BytesIO(sink.getvalue()))
        self.assertEqual(index.entries, loaded.entries)
        self.assertEqual(sink.getvalue(), loaded.to_bytes())

    def test_read_write_path(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "index")
            index = _index(b"f")
            index.write(path)
            self.assertEqual(index.entries, Index.read(path).entries)
            with self.assertRaises(StorageError):
                Index.read(os.path.join(tmp, "missing"))

    def test_bad_magic(self):
        data = bytearray(_index(b"a", checksum=False).to_bytes())
        data[:4] = b"CRID"
        with self.assertRaises(FormatError):
            Index.load(bytes(data))

    def test_unsupported_version(self):
        data = bytearray(_index(b"a", checksum=False).to_bytes())
        data[4:8] = struct.pack(">I", 4)
        with self.assertRaises(FormatError):
            Index.load(bytes(data))

    def test_extended_flag_rejected(self):
        data = bytearray(_index(b"a", checksum=False).to_bytes())
        data[12 + 60 : 12 + 62] = struct.pack(">H", 0x4000 | 1)
        with self.assertRaises(FormatError):
            Index.load(bytes(data))

    def test_truncated(self):
        data = _index(b"a", b"b", checksum=False).to_bytes()
        for cut in (4, 11, 12 + 30, len(data) - 1):
            with self.assertRaises((ShortReadError, FormatError)):
                Index.load(data[:cut])
        with self.assertRaises(ShortReadError):
            Index.load(data[:40])

    def test_checksum_mismatch(self):
        data = bytearray(_index(b"a").to_bytes())
        data[-1] ^= 0xFF
        with self.assertRaises(FormatError):
            Index.load(bytes(data))

    def test_stray_trailing_bytes(self):
        data = _index(b"a", checksum=False).to_bytes()
        with self.assertRaises(FormatError):
            Index.load(data + b"junk")

    def test_nonzero_padding(self):
        data = bytearray(_index(b"a", checksum=False).to_bytes())
        data[-1] = 1
        with self.assertRaises(FormatError):
            Index.load(bytes(data))


class IndexMutationTests(unittest.TestCase):
    def test_add_counts_entries(self):
        index = Index()
        self.assertEqual(IndexHeader(), index.header)
        index.add(_entry(b"a"))
        index.add(_entry(b"b"))
        self.assertEqual(2, len(index))
        data = index.to_bytes()
        self.assertEqual(2, struct.unpack(">I", data[8:12])[0])
        self.assertEqual(2, Index.load(data).header.num_entries)

    def test_update_replaces_same_path(self):
        index = _index(b"a", b"b")
        index.update(_entry(b"a", seed=b"new content"))
        self.assertEqual(2, len(index))
        self.assertEqual(hash_blob(b"new content"), index.find(b"a").oid)
        index.update(_entry(b"c"))
        self.assertEqual([b"a", b"b", b"c"], index.paths())
        self.assertEqual(3, Index.load(index.to_bytes()).header.num_entries)

    def test_remove(self):
        index = _index(b"a", b"b")
        self.assertEqual(1, index.remove(b"a"))
        self.assertEqual(0, index.remove(b"a"))
        self.assertEqual([b"b"], index.paths())
        self.assertEqual(1, Index.load(index.to_bytes()).header.num_entries)
        self.assertIsNone(index.find(b"a"))

    def test_constructed_from_entry_list(self):
        entries = [_entry(b"a.txt"), _entry(b"dir/b.txt")]
        for checksum in (True, False):
            data = Index(entries=list(entries), checksum=checksum).to_bytes()
            self.assertEqual(2, struct.unpack(">I", data[8:12])[0])
            loaded = Index.load(data)
            self.assertEqual(entries, loaded.entries)
            self.assertEqual(2, loaded.header.num_entries)

    def test_direct_list_edits_are_counted(self):
        index = Index()
        index.entries.append(_entry(b"one"))
        index.entries.append(_entry(b"two"))
        loaded = Index.load(index.to_bytes())
        self.assertEqual([b"one", b"two"], loaded.paths())

        loaded.entries.pop()
        self.assertEqual([b"one"], Index.load(loaded.to_bytes()).paths())

    def test_stale_header_count_is_ignored_on_write(self):
        index = Index(header=IndexHeader(num_entries=7), entries=[_entry(b"x")])
        self.assertEqual([b"x"], Index.load(index.to_bytes()).paths())

    def test_out_of_range_field(self):
        for field_name, value in (("size", 2**32), ("uid", -1), ("ino", 2**40)):
            e = _entry(b"big.bin")
            setattr(e, field_name, value)
            with self.assertRaises(FormatError) as ctx:
                Index(entries=[e]).to_bytes()
            self.assertIn("big.bin", str(ctx.exception))
        e = _entry(b"old")
        e.mtime = IndexTime(-(2**31) - 1, 0)
        with self.assertRaises(FormatError):
            e.pack()
        with self.assertRaises(FormatError):
            Index(entries=[e]).store(io.BytesIO())


class EntryFromPathTests(unittest.TestCase):
    def run_with_tmpdir(self, func):
        with tempfile.TemporaryDirectory() as tmp:
            func(Path(tmp))

    def test_regular_file(self):
        def scenario(tmp_path: Path):
            (tmp_path / "docs").mkdir()
            target = tmp_path / "docs" / "hello.txt"
            target.write_bytes(b"hello world\n")
            os.utime(target, ns=(1_600_000_000_500_000_000, 1_600_000_000_250_000_000))
            entry = IndexEntry.from_path("docs/hello.txt", root=str(tmp_path))
            st = os.stat(target)
            self.assertEqual(HELLO_ID, entry.oid.hex())
            self.assertEqual(b"docs/hello.txt", entry.path)
            self.assertEqual(len(b"docs/hello.txt"), entry.flags)
            self.assertEqual(st.st_mode, entry.mode)
            self.assertEqual(12, entry.size)
            self.assertEqual(st.st_ino & 0xFFFFFFFF, entry.ino)
            self.assertEqual(st.st_uid, entry.uid)
            self.assertEqual(IndexTime(1_600_000_000, 250_000_000), entry.mtime)
            loaded = Index.load(Index(entries=[entry], header=IndexHeader(num_entries=1)).to_bytes())
            self.assertEqual(entry, loaded.entries[0])

        self.run_with_tmpdir(scenario)

    def test_without_root(self):
        def scenario(tmp_path: Path):
            target = tmp_path / "x.bin"
            target.write_bytes(b"\x00\x01")
            entry = IndexEntry.from_path(str(target))
            self.assertEqual(os.fsencode(str(target)).replace(os.fsencode(os.sep), b"/"), entry.path)
            self.assertEqual(hash_blob(b"\x00\x01"), entry.oid)

        self.run_with_tmpdir(scenario)

    def test_writes_blob_to_store(self):
        def scenario(tmp_path: Path):
            (tmp_path / "a.txt").write_bytes(b"hello world\n")
            store = MemoryObjectStore()
            entry = IndexEntry.from_path("a.txt", root=str(tmp_path), store=store)
            self.assertIn(entry.oid, store)
            self.assertEqual(b"hello world\n", store.get(entry.oid).content)

        self.run_with_tmpdir(scenario)

    @unittest.skipUnless(hasattr(os, "symlink"), "symlinks not supported")
    def test_symlink_hashes_target(self):
        def scenario(tmp_path: Path):
            (tmp_path / "real.txt").write_bytes(b"content")
            try:
                os.symlink("real.txt", tmp_path / "link")
            except (OSError, NotImplementedError):
                self.skipTest("cannot create symlink")
            entry = IndexEntry.from_path("link", root=str(tmp_path))
            self.assertEqual(hash_blob(b"real.txt"), entry.oid)
            self.assertEqual(len(b"real.txt"), entry.size)

        self.run_with_tmpdir(scenario)

    def test_missing_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(StorageError):
                IndexEntry.from_path("nope", root=tmp)


if __name__ == "__main__":
    unittest.main()

from __future__ import annotations

import argparse
import os
import sys
from typing import BinaryIO, List, Optional

from strata.blob import Blob
from strata.commit import Commit
from strata.constants import DEFAULT_GIT_DIR, INDEX_FILENAME, OBJECTS_DIRNAME
from strata.errors import StrataError
from strata.index import Index, IndexEntry
from strata.odb import FileObjectStore
from strata.oid import Oid
from strata.tree import Tree


def _out(out: Optional[BinaryIO]) -> BinaryIO:
    return out if out is not None else sys.stdout.buffer


def _objects(git_dir: str) -> FileObjectStore:
    return FileObjectStore(os.path.join(git_dir, OBJECTS_DIRNAME))


def _index_path(git_dir: str) -> str:
    return os.path.join(git_dir, INDEX_FILENAME)


def _load_index(git_dir: str) -> Index:
    path = _index_path(git_dir)
    if not os.path.exists(path):
        return Index()
    return Index.read(path)


def format_tree(tree: Tree) -> bytes:
    """Render a tree the way ``cat-file -p`` does: one ``<mode> <kind> <id>\\t<name>`` line per entry."""
    lines = []
    for name, entry in tree.items():
        mode = entry.mode.rjust(6, b"0")
        lines.append(mode + b" " + entry.kind.encode("ascii") + b" " + entry.oid.hex().encode("ascii") + b"\t" + name + b"\n")
    return b"".join(lines)


def cmd_cat_file(git_dir: str, object_id: str, *, show: str = "pretty", out: Optional[BinaryIO] = None) -> bool:
    """Print an object's type, payload size, or content.

    Args:
        git_dir: Repository metadata directory holding ``objects/``.
        object_id: 40-character hex object id.
        show: One of ``"type"``, ``"size"`` or ``"pretty"``.
        out: Binary stream to write to (defaults to stdout).
    """
    w = _out(out)
    store = _objects(git_dir)
    oid = Oid.from_hex(object_id)
    if show in ("type", "size"):
        type_name, size = store.get_header(oid)
        w.write((type_name if show == "type" else str(size).encode("ascii")) + b"\n")
        return True
    obj = store.get(oid)
    if isinstance(obj, Blob):
        w.write(obj.content)
    elif isinstance(obj, Tree):
        w.write(format_tree(obj))
    elif isinstance(obj, Commit):
        w.write(obj.serialize())
    return True


def cmd_hash_object(git_dir: str, files: List[str], *, write: bool = False, out: Optional[BinaryIO] = None) -> bool:
    """Print the blob id of each file, storing the blobs when ``write`` is set."""
    w = _out(out)
    store = _objects(git_dir) if write else None
    for path in files:
        blob = Blob.from_path(path)
        oid = store.put(blob) if store is not None else blob.id
        w.write(oid.hex().encode("ascii") + b"\n")
    return True


def cmd_ls_files(git_dir: str, *, stage: bool = False, out: Optional[BinaryIO] = None) -> bool:
    """List index paths; with ``stage`` also mode, blob id and merge stage."""
    w = _out(out)
    index = _load_index(git_dir)
    for e in index:
        if stage:
            w.write(f"{e.mode:06o} {e.oid.hex()} {e.stage}\t".encode("ascii") + e.path + b"\n")
        else:
            w.write(e.path + b"\n")
    return True


def cmd_update_index(git_dir: str, paths: List[str], *, add: bool = False, work_tree: Optional[str] = None) -> bool:
    """Refresh (or with ``add``, create) index entries for ``paths`` and store their blobs.

    Paths are interpreted relative to ``work_tree`` (default: the parent of
    ``git_dir``).
    """
    if work_tree is None:
        work_tree = os.path.dirname(os.path.abspath(git_dir))
    store = _objects(git_dir)
    index = _load_index(git_dir)
    for path in paths:
        rel = os.path.relpath(os.path.abspath(path), work_tree) if os.path.isabs(path) else path
        name = os.fsencode(rel).replace(os.fsencode(os.sep), b"/")
        if index.find(name) is None and not add:
            raise StrataError(f"{rel}: cannot add to the index - missing --add option?")
        index.update(IndexEntry.from_path(rel, root=work_tree, store=store))
    index.write(_index_path(git_dir))
    return True


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="strata",
        description="Inspect and update a git-format object database and staging index",
    )
    ap.add_argument(
        "--git-dir",
        default=os.environ.get("GIT_DIR", DEFAULT_GIT_DIR),
        help="Repository metadata directory (default: $GIT_DIR or .git)",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_cat = sub.add_parser("cat-file", help="Show object type, size or content")
    show = ap_cat.add_mutually_exclusive_group(required=True)
    show.add_argument("-t", dest="show", action="store_const", const="type", help="Show object type")
    show.add_argument("-s", dest="show", action="store_const", const="size", help="Show payload size")
    show.add_argument("-p", dest="show", action="store_const", const="pretty", help="Pretty-print content")
    ap_cat.add_argument("object", help="Object id (40 hex characters)")

    ap_hash = sub.add_parser("hash-object", help="Compute blob ids of files")
    ap_hash.add_argument("-w", dest="write", action="store_true", help="Also write the blobs to the object database")
    ap_hash.add_argument("files", nargs="+", help="Files to hash")

    ap_ls = sub.add_parser("ls-files", help="List staged paths")
    ap_ls.add_argument("-s", "--stage", action="store_true", help="Show mode, object id and stage")

    ap_upd = sub.add_parser("update-index", help="Stage files into the index")
    ap_upd.add_argument("--add", action="store_true", help="Allow paths not yet in the index")
    ap_upd.add_argument("--work-tree", help="Working tree root (default: parent of --git-dir)")
    ap_upd.add_argument("paths", nargs="+", help="Paths to stage")

    args = ap.parse_args(argv)
    try:
        if args.cmd == "cat-file":
            cmd_cat_file(args.git_dir, args.object, show=args.show)
        elif args.cmd == "hash-object":
            cmd_hash_object(args.git_dir, args.files, write=args.write)
        elif args.cmd == "ls-files":
            cmd_ls_files(args.git_dir, stage=args.stage)
        elif args.cmd == "update-index":
            cmd_update_index(args.git_dir, args.paths, add=args.add, work_tree=args.work_tree)
        else:
            raise RuntimeError("Unknown command")
    except (StrataError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    return 0


if __name__ == "__main__":
    main()

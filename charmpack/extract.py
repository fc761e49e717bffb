"""Secure materialization of a package onto a filesystem.

Every entry is checked lexically against the destination root before any
filesystem access, symlink targets must be relative and stay inside the root,
directories always get DIR_MODE, and regular files under the hooks directory
are forced executable. Extraction stops at the first failure; nothing is
rolled back.
"""
from __future__ import annotations

import logging
import os
import shutil
import zipfile
import zlib

from .constants import DIR_MODE, HOOK_EXEC_BITS, HOOKS_DIR, REVISION_FILE_MODE, REVISION_NAME
from .entry import Entry, EntryKind
from .errors import AbsoluteSymlink, CorruptArchive, PathEscape, UnsupportedEntry, _quote as _q
from .pathutil import is_hook_path, is_within, real_within, symlink_target_within, to_native


log = logging.getLogger(__name__)


def _remove_existing(dst: str) -> None:
    # Never write through a stale symlink or file left at the target.
    if os.path.islink(dst) or (os.path.lexists(dst) and not os.path.isdir(dst)):
        os.remove(dst)


def _expand_dir(dst: str) -> None:
    if os.path.islink(dst):
        os.remove(dst)
    os.makedirs(dst, mode=DIR_MODE, exist_ok=True)
    os.chmod(dst, DIR_MODE)


def _expand_file(source, entry: Entry, dst: str) -> None:
    mode = entry.mode
    if is_hook_path(entry.path, HOOKS_DIR):
        mode |= HOOK_EXEC_BITS
    _remove_existing(dst)
    try:
        with source.open_entry(entry) as src, open(dst, "wb") as out:
            shutil.copyfileobj(src, out)
    except (zipfile.BadZipFile, zlib.error, EOFError) as exc:
        raise CorruptArchive(f"cannot read {entry.path!r}: {exc}") from exc
    os.chmod(dst, mode)


def _expand_symlink(entry: Entry, dst: str, dest_real: str) -> None:
    target = entry.symlink_target or ""
    if target.startswith("/") or os.path.isabs(target):
        raise AbsoluteSymlink(entry.path, f"symlink {_q(target)} is absolute")
    if not symlink_target_within(entry.path, target):
        raise PathEscape(entry.path, f"symlink {_q(target)} leads out of scope")
    # A target that passes lexically can still climb out through a link
    # materialized earlier (e.g. "l/.." where l points at the root).
    if not real_within(dest_real, os.path.join(os.path.dirname(dst), *target.split("/"))):
        raise PathEscape(entry.path, f"symlink {_q(target)} leads out of scope")
    _remove_existing(dst)
    os.symlink(target, dst)


def expand_entry(source, entry: Entry, dest_root: str, dest_real: str) -> None:
    if not entry.path or not is_within(entry.path):
        raise PathEscape(entry.path, "path leads out of scope")
    dst = to_native(dest_root, entry.path)

    kind = entry.kind
    if kind == EntryKind.DIR:
        _expand_dir(dst)
    elif kind == EntryKind.FILE:
        os.makedirs(os.path.dirname(dst), mode=DIR_MODE, exist_ok=True)
        _expand_file(source, entry, dst)
    elif kind == EntryKind.SYMLINK:
        os.makedirs(os.path.dirname(dst), mode=DIR_MODE, exist_ok=True)
        _expand_symlink(entry, dst, dest_real)
    else:
        raise UnsupportedEntry(f"{entry.path!r}: unknown entry kind {kind!r}")
    log.debug("expanded %s %s", kind.name.lower(), entry.path)


def expand(source, dest_root: str) -> None:
    """Materialize every manifest path of `source` under `dest_root`.

    Paths are processed in sorted order, which places each directory before
    its descendants. Every symlink is then resolved against the finished
    tree; one that leads outside is removed and reported. The source's
    current revision (including any in-memory override) is written to the
    top-level revision file last.
    """
    dest_root = os.path.abspath(os.fspath(dest_root))
    os.makedirs(dest_root, mode=DIR_MODE, exist_ok=True)
    dest_real = os.path.realpath(dest_root)

    stored = {e.path: e for e in source.iter_entries() if e.path != REVISION_NAME}
    for path in sorted(source.manifest()):
        entry = stored.get(path)
        if entry is None:
            entry = Entry(kind=EntryKind.DIR, path=path, mode=DIR_MODE)
        expand_entry(source, entry, dest_root, dest_real)

    # Links created later can redirect ones checked earlier (a -> b/.., b -> .),
    # so re-check every link once the whole tree exists.
    for path in sorted(p for p, e in stored.items() if e.kind == EntryKind.SYMLINK):
        dst = to_native(dest_root, path)
        if not real_within(dest_real, dst):
            os.remove(dst)
            raise PathEscape(path, f"symlink {_q(stored[path].symlink_target or '')} leads out of scope")

    rev_path = to_native(dest_root, REVISION_NAME)
    _remove_existing(rev_path)
    with open(rev_path, "w", encoding="ascii") as f:
        f.write(str(source.revision))
    os.chmod(rev_path, REVISION_FILE_MODE)
    log.debug("wrote revision %d to %s", source.revision, rev_path)

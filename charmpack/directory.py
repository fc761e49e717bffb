from __future__ import annotations

import os
import stat
from typing import BinaryIO, Iterator, Optional

from .constants import REVISION_FILE_MODE, REVISION_NAME
from .entry import Entry, EntryKind
from .errors import UnsupportedEntry
from .pathutil import clean_path, to_native
from .revision import check_revision
from .source import PackageSource


def _raise(exc: OSError):
    raise exc


class CharmDir(PackageSource):
    """A package expanded onto the filesystem.

    Entries are read live from disk, so `manifest()` reflects the tree as it
    is at call time.
    """

    def __init__(self, path: str):
        super().__init__()
        self.path = os.path.abspath(os.fspath(path))

    def open(self):
        if not os.path.isdir(self.path):
            raise NotADirectoryError(f"not a package directory: {self.path}")
        self._load()

    def _entry_for(self, full: str, rel: str) -> Entry:
        st = os.lstat(full)
        mode = st.st_mode
        if stat.S_ISLNK(mode):
            return Entry(kind=EntryKind.SYMLINK, path=rel, mode=stat.S_IMODE(mode), symlink_target=os.readlink(full))
        if stat.S_ISDIR(mode):
            return Entry(kind=EntryKind.DIR, path=rel, mode=stat.S_IMODE(mode))
        if stat.S_ISREG(mode):
            return Entry(kind=EntryKind.FILE, path=rel, mode=stat.S_IMODE(mode), size=st.st_size)
        raise UnsupportedEntry(f"{rel!r}: unsupported file type {stat.filemode(mode)[0]!r}")

    def iter_entries(self) -> Iterator[Entry]:
        """Walk the tree in sorted order without following symlinks."""
        for root, dirnames, filenames in os.walk(self.path, onerror=_raise):
            dirnames.sort()
            rel_root = os.path.relpath(root, self.path)
            names = sorted(dirnames + filenames)
            # symlinked directories are yielded as symlinks; don't walk into them
            dirnames[:] = [d for d in dirnames if not os.path.islink(os.path.join(root, d))]
            for name in names:
                full = os.path.join(root, name)
                rel = clean_path(name if rel_root == "." else os.path.join(rel_root, name).replace(os.sep, "/"))
                yield self._entry_for(full, rel)

    def open_entry(self, entry: Entry) -> BinaryIO:
        return open(to_native(self.path, entry.path), "rb")

    def _read_optional(self, path: str) -> Optional[bytes]:
        full = to_native(self.path, path)
        # links may point outside the package; only plain files count
        if os.path.islink(full) or not os.path.isfile(full):
            return None
        with open(full, "rb") as f:
            return f.read()

    def set_disk_revision(self, revision: int):
        """Write `revision` to the directory's revision file and adopt it in memory."""
        rev = check_revision(revision)
        full = to_native(self.path, REVISION_NAME)
        with open(full, "w", encoding="ascii") as f:
            f.write(str(rev))
        os.chmod(full, REVISION_FILE_MODE)
        self._revision = rev


def read_dir(path: str) -> CharmDir:
    d = CharmDir(path)
    d.open()
    return d

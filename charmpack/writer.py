from __future__ import annotations

import logging
import os
import shutil
import stat
import zipfile
import zlib
from typing import BinaryIO, Optional, Union

from .constants import (
    DEFAULT_FILE_MODE,
    DIR_MODE,
    REVISION_FILE_MODE,
    REVISION_NAME,
    SYMLINK_MODE,
    ZIP_EPOCH,
    ZIP_MSDOS_DIR_FLAG,
    ZIP_UNIX_SYSTEM,
)
from .entry import Entry, EntryKind
from .errors import CorruptArchive, UnsupportedEntry
from .revision import check_revision


log = logging.getLogger(__name__)

Sink = Union[str, "os.PathLike[str]", BinaryIO]


def _zipinfo(name: str, unix_mode: int, compress_type: int) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=ZIP_EPOCH)
    info.create_system = ZIP_UNIX_SYSTEM
    info.external_attr = (unix_mode & 0xFFFF) << 16
    info.compress_type = compress_type
    return info


class ArchiveWriter:
    """Streaming writer producing package containers.

    Entries are written in the order they are added; callers wanting
    byte-identical output for unchanged input must add them in a stable order.
    """

    def __init__(self, sink: Sink, compression: int = zipfile.ZIP_DEFLATED):
        self.sink = sink
        self.compression = compression
        self.zf: Optional[zipfile.ZipFile] = None
        self._names: set[str] = set()

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def open(self):
        if self.zf is not None:
            return
        self.zf = zipfile.ZipFile(self.sink, "w")

    def close(self):
        if self.zf is not None:
            self.zf.close()
            self.zf = None

    def _claim(self, path: str) -> None:
        if self.zf is None:
            raise RuntimeError("Writer not open")
        if path in self._names:
            raise ValueError(f"duplicate entry {path!r}")
        self._names.add(path)

    def add_dir(self, path: str, mode: Optional[int] = None):
        self._claim(path)
        info = _zipinfo(path + "/", stat.S_IFDIR | (DIR_MODE if mode is None else mode), zipfile.ZIP_STORED)
        info.external_attr |= ZIP_MSDOS_DIR_FLAG
        self.zf.writestr(info, b"")

    def add_symlink(self, path: str, target: str):
        self._claim(path)
        info = _zipinfo(path, SYMLINK_MODE, zipfile.ZIP_STORED)
        self.zf.writestr(info, target.encode("utf-8"))

    def add_file(self, path: str, src: BinaryIO, mode: Optional[int] = None, size: int = 0):
        self._claim(path)
        info = _zipinfo(path, stat.S_IFREG | (DEFAULT_FILE_MODE if mode is None else mode), self.compression)
        with self.zf.open(info, "w", force_zip64=size >= zipfile.ZIP64_LIMIT) as dst:
            shutil.copyfileobj(src, dst)

    def add_revision(self, revision: int):
        rev = check_revision(revision)
        self._claim(REVISION_NAME)
        info = _zipinfo(REVISION_NAME, stat.S_IFREG | REVISION_FILE_MODE, zipfile.ZIP_STORED)
        self.zf.writestr(info, str(rev).encode("ascii"))


def write_archive(source, sink: Sink, *, revision: Optional[int] = None) -> None:
    """Serialize `source` (a package directory or archive) into container form.

    One entry is written per manifest path in sorted order, carrying the
    source's own permission bits (hooks are not forced executable here),
    followed by a ``revision`` entry. `revision` overrides the source's
    resolved revision when given.
    """
    rev = source.revision if revision is None else check_revision(revision)
    stored = {e.path: e for e in source.iter_entries() if e.path != REVISION_NAME}
    with ArchiveWriter(sink) as w:
        for path in sorted(source.manifest()):
            e = stored.get(path)
            if e is None:
                e = Entry(kind=EntryKind.DIR, path=path, mode=DIR_MODE)
            kind = e.kind
            if kind == EntryKind.DIR:
                w.add_dir(path, e.mode or DIR_MODE)
            elif kind == EntryKind.FILE:
                try:
                    with source.open_entry(e) as src:
                        w.add_file(path, src, e.mode, e.size)
                except (zipfile.BadZipFile, zlib.error, EOFError) as exc:
                    raise CorruptArchive(f"cannot read {path!r}: {exc}") from exc
            elif kind == EntryKind.SYMLINK:
                w.add_symlink(path, e.symlink_target or "")
            else:
                raise UnsupportedEntry(f"{path!r}: unknown entry kind {kind!r}")
            log.debug("stored %s %s", kind.name.lower(), path)
        w.add_revision(rev)

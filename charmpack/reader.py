from __future__ import annotations

import io
import os
import stat
import zipfile
import zlib
from typing import BinaryIO, Dict, Iterator, List, Optional, Set

from .constants import DEFAULT_FILE_MODE, MAX_PATH_BYTES, MAX_REVISION_BYTES, REVISION_NAME
from .entry import Entry, EntryKind
from .errors import CorruptArchive, InvalidRevision
from .manifest import build_manifest, implied_dirs
from .pathutil import clean_path
from .source import PackageSource


def _entry_from_info(info: zipfile.ZipInfo) -> Entry:
    raw = info.filename
    # Path validation: reject NUL and overly long utf-8
    if "\x00" in raw:
        raise CorruptArchive("Invalid path contains NUL")
    if len(raw.encode("utf-8")) > MAX_PATH_BYTES:
        raise CorruptArchive(f"Path length exceeds {MAX_PATH_BYTES} bytes")
    path = clean_path(raw)
    unix_mode = info.external_attr >> 16
    if stat.S_ISLNK(unix_mode):
        return Entry(kind=EntryKind.SYMLINK, path=path, mode=stat.S_IMODE(unix_mode), size=info.file_size)
    if info.is_dir() or stat.S_ISDIR(unix_mode):
        return Entry(kind=EntryKind.DIR, path=path, mode=stat.S_IMODE(unix_mode))
    mode = stat.S_IMODE(unix_mode) if unix_mode else DEFAULT_FILE_MODE
    return Entry(kind=EntryKind.FILE, path=path, mode=mode, size=info.file_size)


class CharmArchive(PackageSource):
    """A package held in a single container, read from a file or from memory.

    Members are decompressed lazily on access. The archive is immutable once
    opened except for `set_revision`.
    """

    def __init__(self, path: Optional[str] = None, data: Optional[bytes] = None):
        super().__init__()
        if (path is None) == (data is None):
            raise ValueError("exactly one of path or data is required")
        self.path = os.fspath(path) if path is not None else None
        self.data = data
        self.f: Optional[BinaryIO] = None
        self.zf: Optional[zipfile.ZipFile] = None
        self.entries: List[Entry] = []
        self._infos: Dict[str, zipfile.ZipInfo] = {}
        self._manifest: Optional[Set[str]] = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def open(self):
        if self.zf is not None:
            return
        self.f = open(self.path, "rb") if self.path is not None else io.BytesIO(self.data)
        try:
            try:
                self.zf = zipfile.ZipFile(self.f)
            except (zipfile.BadZipFile, zlib.error, EOFError) as exc:
                raise CorruptArchive(f"invalid package archive: {exc}") from exc
            self._load_index()
            self._load()
        except BaseException:
            # Ensure file handle is closed on failure to avoid leaks
            self.close()
            raise

    def close(self):
        if self.zf is not None:
            self.zf.close()
            self.zf = None
        if self.f is not None:
            self.f.close()
            self.f = None

    def _load_index(self):
        self.entries = []
        self._infos = {}
        for info in self.zf.infolist():
            e = _entry_from_info(info)
            if not e.path:
                if e.kind == EntryKind.DIR:
                    continue
                raise CorruptArchive(f"empty member path {info.filename!r}")
            if e.path in self._infos:
                raise CorruptArchive(f"duplicate entry {e.path!r}")
            if e.kind == EntryKind.SYMLINK:
                e.symlink_target = self._read_info(info).decode("utf-8", "surrogateescape")
            self._infos[e.path] = info
            self.entries.append(e)
        kinds = {e.path: e.kind for e in self.entries}
        for d in implied_dirs(kinds):
            if kinds.get(d, EntryKind.DIR) != EntryKind.DIR:
                raise CorruptArchive(f"entry {d!r} is both a file and a directory")

    def _read_info(self, info: zipfile.ZipInfo) -> bytes:
        try:
            return self.zf.read(info)
        except (zipfile.BadZipFile, zlib.error, EOFError) as exc:
            raise CorruptArchive(f"cannot read {info.filename!r}: {exc}") from exc

    def list(self) -> List[Entry]:
        return self.entries

    def iter_entries(self) -> Iterator[Entry]:
        return iter(self.entries)

    def open_entry(self, entry: Entry) -> BinaryIO:
        if self.zf is None:
            raise RuntimeError("Archive not open")
        return self.zf.open(self._infos[entry.path])

    def _read_optional(self, path: str) -> Optional[bytes]:
        if self.zf is None:
            raise RuntimeError("Archive not open")
        info = self._infos.get(path)
        if info is None or info.is_dir():
            return None
        if path == REVISION_NAME and info.file_size > MAX_REVISION_BYTES:
            raise InvalidRevision("invalid revision file")
        return self._read_info(info)

    def manifest(self) -> Set[str]:
        if self._manifest is None:
            self._manifest = build_manifest(self)
        return set(self._manifest)


def read_archive(path: str) -> CharmArchive:
    """Open the package archive at `path`. The caller must close it."""
    archive = CharmArchive(path=path)
    archive.open()
    return archive


def read_archive_bytes(data: bytes) -> CharmArchive:
    archive = CharmArchive(data=bytes(data))
    archive.open()
    return archive

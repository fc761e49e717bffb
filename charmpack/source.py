from __future__ import annotations

from typing import BinaryIO, Iterator, Optional, Set

from .constants import REVISION_NAME
from .entry import Entry
from .errors import NotFound
from .extract import expand
from .manifest import build_manifest
from .metadata import Actions, Config, Meta, load_documents
from .revision import check_revision, resolve_revision
from .writer import Sink, write_archive


class PackageSource:
    """Behaviour shared by expanded directories and archives.

    Subclasses provide `iter_entries`, `open_entry` and `_read_optional`,
    then call `_load` once their backing store is open.
    """

    def __init__(self):
        self._meta: Optional[Meta] = None
        self._config: Optional[Config] = None
        self._actions: Optional[Actions] = None
        self._revision: int = 0

    # backing store
    def iter_entries(self) -> Iterator[Entry]:
        raise NotImplementedError

    def open_entry(self, entry: Entry) -> BinaryIO:
        raise NotImplementedError

    def _read_optional(self, path: str) -> Optional[bytes]:
        raise NotImplementedError

    def read(self, path: str) -> bytes:
        """Return the full content of a member, raising NotFound if absent."""
        data = self._read_optional(path)
        if data is None:
            raise NotFound(path)
        return data

    def _load(self):
        self._meta, self._config, self._actions = load_documents(self._read_optional)
        self._revision = resolve_revision(self._read_optional(REVISION_NAME), self._meta.data)

    # metadata
    @property
    def meta(self) -> Meta:
        return self._meta

    @property
    def config(self) -> Config:
        return self._config

    @property
    def actions(self) -> Actions:
        return self._actions

    @property
    def revision(self) -> int:
        return self._revision

    def set_revision(self, revision: int):
        """Override the revision in memory; the next expand or archive uses it."""
        self._revision = check_revision(revision)

    # operations
    def manifest(self) -> Set[str]:
        return build_manifest(self)

    def expand_to(self, dest: str):
        expand(self, dest)

    def archive_to(self, sink: Sink):
        write_archive(self, sink)

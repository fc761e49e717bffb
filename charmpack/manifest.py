from __future__ import annotations

import posixpath
from typing import Iterable, Set

from .constants import REVISION_NAME
from .pathutil import is_within


def implied_dirs(paths: Iterable[str]) -> Set[str]:
    """Return every proper ancestor of the given paths that stays inside the root."""
    out: Set[str] = set()
    for p in paths:
        parent = posixpath.dirname(p)
        while parent and parent not in out:
            if is_within(parent):
                out.add(parent)
            parent = posixpath.dirname(parent)
    return out


def build_manifest(source) -> Set[str]:
    """Compute the set of paths a full expansion of `source` produces.

    The dedicated revision member is excluded; directories implied by file
    and symlink paths are included whether or not they are stored.
    """
    paths: Set[str] = set()
    for e in source.iter_entries():
        if e.path == REVISION_NAME:
            continue
        paths.add(e.path)
    return paths | implied_dirs(paths)

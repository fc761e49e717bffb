"""Revision resolution.

A package's revision comes from, in priority order:

1. a top-level ``revision`` member holding an ASCII decimal integer,
2. a ``revision`` key inside the metadata document,
3. neither: revision 0.

A revision member that is present but garbled fails the whole load.
"""
from __future__ import annotations

import re
from typing import Any, Mapping, Optional, Union

from .constants import MAX_REVISION_BYTES
from .errors import InvalidRevision


_REVISION_RE = re.compile(r"[0-9]+\n?")


def parse_revision(text: Union[str, bytes]) -> Optional[int]:
    """Parse the content of a revision member.

    Returns None for empty content (treated as absent). Anything else that
    is not a bare non-negative decimal integer, optionally followed by one
    newline, raises InvalidRevision.
    """
    if isinstance(text, bytes):
        if len(text) > MAX_REVISION_BYTES:
            raise InvalidRevision("invalid revision file")
        try:
            text = text.decode("ascii")
        except UnicodeDecodeError:
            raise InvalidRevision("invalid revision file") from None
    if text == "":
        return None
    if not _REVISION_RE.fullmatch(text):
        raise InvalidRevision("invalid revision file")
    return int(text)


def metadata_revision(meta: Optional[Mapping[str, Any]]) -> Optional[int]:
    """Return the legacy ``revision`` field of a metadata document, if any."""
    if not meta or "revision" not in meta:
        return None
    value = meta["revision"]
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidRevision(f"invalid revision in metadata: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise InvalidRevision(f"invalid revision in metadata: {value!r}")
        return value
    if isinstance(value, str) and _REVISION_RE.fullmatch(value):
        return int(value)
    raise InvalidRevision(f"invalid revision in metadata: {value!r}")


def resolve_revision(revision_data: Optional[Union[str, bytes]], meta: Optional[Mapping[str, Any]]) -> int:
    if revision_data is not None:
        rev = parse_revision(revision_data)
        if rev is not None:
            return rev
    rev = metadata_revision(meta)
    return rev if rev is not None else 0


def check_revision(value: Any) -> int:
    """Validate a caller-supplied revision override."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidRevision(f"revision must be a non-negative integer, got {value!r}")
    return value

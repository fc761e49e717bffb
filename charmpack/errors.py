class CharmError(Exception):
    """Base class for charmpack-specific errors."""


# Container structure
class CorruptArchive(CharmError):
    pass


class NotFound(CharmError, KeyError):
    """A requested member is absent from the package."""

    def __init__(self, path: str):
        super().__init__(path)
        self.path = path

    def __str__(self) -> str:
        return f"{self.path!r} not found in package"


class UnsupportedEntry(CharmError):
    pass


# Metadata / revision
class MetadataError(CharmError):
    pass


class InvalidRevision(CharmError, ValueError):
    pass


# Extraction safety
class ExtractError(CharmError):
    """An entry could not be materialized safely.

    The message always names the offending entry path.
    """

    def __init__(self, path: str, reason: str):
        super().__init__(f"cannot extract {_quote(path)}: {reason}")
        self.path = path
        self.reason = reason


class PathEscape(ExtractError):
    pass


class AbsoluteSymlink(ExtractError):
    pass


def _quote(s: str) -> str:
    return '"' + s.replace("\\", "\\\\").replace('"', '\\"') + '"'

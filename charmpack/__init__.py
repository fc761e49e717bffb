"""
charmpack — reader, writer and secure extractor for versioned package archives.

A package is a ZIP container (or an expanded directory) holding:

- ``metadata.yaml`` (required), ``config.yaml`` and ``actions.yaml`` (optional)
- executable hook scripts under ``hooks/``
- arbitrary supporting content
- an optional top-level ``revision`` member with a decimal revision number

Archives can be inspected without extracting them, expanded safely (entries
and symlinks that would escape the destination are rejected, hooks are made
executable) and re-serialized deterministically from a directory.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "errors",
    "reader",
    "directory",
    "writer",
    "extract",
    "manifest",
    "revision",
    "metadata",
]

# Programmatic API: charmpack.reader.read_archive / read_archive_bytes,
# charmpack.directory.read_dir, and the cmd_* functions in charmpack.cli.

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional


class EntryKind(IntEnum):
    FILE = 0
    DIR = 1
    SYMLINK = 2


@dataclass
class Entry:
    kind: EntryKind
    path: str
    mode: int = 0
    size: int = 0
    symlink_target: Optional[str] = None

    def describe(self) -> str:
        if self.kind == EntryKind.FILE:
            return f"file\t{self.size}\t{self.path}"
        if self.kind == EntryKind.SYMLINK:
            return f"symlink\t-> {self.symlink_target}\t{self.path}"
        return f"dir\t{self.path}"

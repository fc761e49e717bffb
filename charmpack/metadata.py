"""Loaders for the package's structured-data documents.

Only the handful of facts the archive engine relies on are interpreted here:
the package name, the hook names it may implement and the optional legacy
``revision`` field. Everything else is carried through as plain mappings.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Set

import yaml

from .constants import ACTIONS_NAME, CONFIG_NAME, METADATA_NAME
from .errors import MetadataError, NotFound


STANDARD_HOOKS = frozenset(
    {
        "install",
        "start",
        "stop",
        "config-changed",
        "upgrade-charm",
        "leader-elected",
        "leader-settings-changed",
        "update-status",
    }
)

RELATION_HOOK_SUFFIXES = ("joined", "changed", "departed", "broken")
RELATION_SECTIONS = ("provides", "requires", "peers")


@dataclass
class Meta:
    data: Dict[str, Any]

    @property
    def name(self) -> str:
        return self.data["name"]

    @property
    def summary(self) -> str:
        return str(self.data.get("summary") or "")

    def relations(self) -> Set[str]:
        names: Set[str] = set()
        for section in RELATION_SECTIONS:
            rels = self.data.get(section) or {}
            if isinstance(rels, dict):
                names.update(str(k) for k in rels)
        return names

    def hooks(self) -> Set[str]:
        """All hook names the package may implement."""
        out = set(STANDARD_HOOKS)
        for rel in self.relations():
            out.update(f"{rel}-relation-{suffix}" for suffix in RELATION_HOOK_SUFFIXES)
        declared = self.data.get("hooks") or {}
        if isinstance(declared, dict):
            out.update(str(k) for k in declared)
        return out


@dataclass
class Config:
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Actions:
    specs: Dict[str, Any] = field(default_factory=dict)


def _load_yaml(data: bytes, name: str) -> Any:
    try:
        return yaml.safe_load(data)
    except yaml.YAMLError as exc:
        raise MetadataError(f"cannot parse {name}: {exc}") from exc


def parse_meta(data: bytes) -> Meta:
    doc = _load_yaml(data, METADATA_NAME)
    if not isinstance(doc, dict):
        raise MetadataError(f"{METADATA_NAME}: expected a mapping at top level")
    name = doc.get("name")
    if not isinstance(name, str) or not name:
        raise MetadataError(f"{METADATA_NAME}: missing or invalid 'name'")
    return Meta(data=doc)


def parse_config(data: Optional[bytes]) -> Config:
    if data is None:
        return Config()
    doc = _load_yaml(data, CONFIG_NAME)
    if doc is None:
        return Config()
    if not isinstance(doc, dict):
        raise MetadataError(f"{CONFIG_NAME}: expected a mapping at top level")
    options = doc.get("options")
    if options is None:
        return Config()
    if not isinstance(options, dict):
        raise MetadataError(f"{CONFIG_NAME}: 'options' must be a mapping")
    return Config(options=options)


def parse_actions(data: Optional[bytes]) -> Actions:
    if data is None:
        return Actions()
    doc = _load_yaml(data, ACTIONS_NAME)
    if doc is None:
        return Actions()
    if not isinstance(doc, dict):
        raise MetadataError(f"{ACTIONS_NAME}: expected a mapping at top level")
    return Actions(specs=doc)


def load_documents(read_optional: Callable[[str], Optional[bytes]]):
    """Load metadata, config and actions through a member lookup callable.

    `read_optional` returns a member's bytes or None when it is absent.
    Metadata is required; the other two degrade to empty values.
    """
    raw_meta = read_optional(METADATA_NAME)
    if raw_meta is None:
        raise NotFound(METADATA_NAME)
    meta = parse_meta(raw_meta)
    config = parse_config(read_optional(CONFIG_NAME))
    actions = parse_actions(read_optional(ACTIONS_NAME))
    return meta, config, actions

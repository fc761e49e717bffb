from __future__ import annotations

import os
import posixpath


def clean_path(p: str) -> str:
    """Lexically normalize a package path to canonical forward-slash form.

    Rules:
    - Convert backslashes to slashes
    - Remove empty and '.' segments
    - Fold 'name/..' pairs; '..' segments that climb above the start are kept
    - A leading slash is kept so absolute paths stay recognizable

    No filesystem access is performed. The root itself cleans to ''.
    """
    p = p.replace("\\", "/")
    absolute = p.startswith("/")
    parts: list[str] = []
    for q in p.split("/"):
        if q in ("", "."):
            continue
        if q == "..":
            if parts and parts[-1] != "..":
                parts.pop()
                continue
            if absolute:
                continue
        parts.append(q)
    out = "/".join(parts)
    return "/" + out if absolute else out


def is_within(rel: str) -> bool:
    """Report whether a cleaned relative path stays inside its root."""
    if rel.startswith("/"):
        return False
    return rel != ".." and not rel.startswith("../")


def symlink_target_within(link_path: str, target: str) -> bool:
    """Check that `target`, read relative to the link's own directory, stays inside the root."""
    if posixpath.isabs(target.replace("\\", "/")):
        return False
    joined = clean_path(posixpath.join(posixpath.dirname(link_path), target.replace("\\", "/")))
    return is_within(joined)


def is_hook_path(rel: str, hooks_dir: str) -> bool:
    return rel.startswith(hooks_dir + "/")


def to_native(root: str, rel: str) -> str:
    """Join a cleaned relative package path onto a filesystem root."""
    if not rel:
        return root
    return os.path.join(root, *rel.split("/"))


def real_within(root_real: str, candidate: str) -> bool:
    """Check that `candidate`, with symlinks followed, resolves inside `root_real`."""
    resolved = os.path.realpath(candidate)
    try:
        return os.path.commonpath([root_real, resolved]) == root_real
    except ValueError:
        # different drives
        return False

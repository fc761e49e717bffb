from __future__ import annotations

import argparse
import json as _json
import os
import sys
import time
from typing import Any, Dict, List, Optional

from charmpack.directory import read_dir
from charmpack.errors import CharmError, CorruptArchive
from charmpack.reader import read_archive
from charmpack.writer import write_archive


def _open_source(path: str):
    """Open `path` as a package directory or a package archive."""
    if os.path.isdir(path):
        return read_dir(path)
    return read_archive(path)


def _close(src) -> None:
    close = getattr(src, "close", None)
    if close is not None:
        close()


def cmd_pack(source: str, output: str, *, revision: Optional[int] = None, quiet: bool = False) -> bool:
    """Pack a package directory into an archive.

    Args:
        source: Path to the expanded package directory.
        output: Path of the archive file to write.
        revision: Optional revision overriding the directory's own.
        quiet: Suppress the per-entry listing.
    """
    t0 = time.time()
    d = read_dir(source)
    if revision is not None:
        d.set_revision(revision)
    paths = sorted(d.manifest())
    if not quiet:
        for p in paths:
            print(f"    packing: {p}")
    write_archive(d, output)
    dt = max(0.000001, time.time() - t0)
    print(f"Done: {len(paths)} entries, revision {d.revision} -> {output} in {dt:.1f}s")
    return True


def cmd_unpack(archive: str, *, outdir: str = ".", quiet: bool = False) -> bool:
    """Securely expand an archive into a directory."""
    t0 = time.time()
    with read_archive(archive) as a:
        if not quiet:
            for e in a.list():
                print(f"  unpacking: {e.path}")
        a.expand_to(outdir)
        n = len(a.manifest())
        rev = a.revision
    dt = max(0.000001, time.time() - t0)
    print(f"Done: expanded {n} entries (revision {rev}) into {outdir} in {dt:.1f}s")
    return True


def cmd_list(archive: str) -> bool:
    with read_archive(archive) as a:
        for e in a.list():
            print(e.describe())
    return True


def cmd_manifest(path: str) -> bool:
    src = _open_source(path)
    try:
        for p in sorted(src.manifest()):
            print(p)
    finally:
        _close(src)
    return True


def cmd_info(path: str, *, as_json: bool = False) -> bool:
    """Show the declared metadata of a package directory or archive."""
    src = _open_source(path)
    try:
        info: Dict[str, Any] = {
            "name": src.meta.name,
            "summary": src.meta.summary,
            "revision": src.revision,
            "hooks": len(src.meta.hooks()),
            "config": sorted(src.config.options),
            "actions": sorted(src.actions.specs),
        }
    finally:
        _close(src)
    if as_json:
        print(_json.dumps(info, indent=2))
        return True
    print(f"name:     {info['name']}")
    if info["summary"]:
        print(f"summary:  {info['summary']}")
    print(f"revision: {info['revision']}")
    print(f"hooks:    {info['hooks']}")
    print(f"config:   {', '.join(info['config']) or '-'}")
    print(f"actions:  {', '.join(info['actions']) or '-'}")
    return True


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="charmpack",
        description="Package archive tool",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_pack = sub.add_parser("pack", help="Pack a package directory into an archive")
    ap_pack.add_argument("source", help="Package directory")
    ap_pack.add_argument("output", help="Output archive path")
    ap_pack.add_argument("--revision", type=int, help="Override the revision stored in the archive")
    ap_pack.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_unpack = sub.add_parser("unpack", help="Expand an archive")
    ap_unpack.add_argument("archive", help="Archive path")
    ap_unpack.add_argument("--outdir", default=".", help="Output directory")
    ap_unpack.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    ap_list = sub.add_parser("list", help="List archive contents")
    ap_list.add_argument("archive", help="Archive path")

    ap_manifest = sub.add_parser("manifest", help="Print the manifest of a package directory or archive")
    ap_manifest.add_argument("path", help="Package directory or archive path")

    ap_info = sub.add_parser("info", help="Show package metadata")
    ap_info.add_argument("path", help="Package directory or archive path")
    ap_info.add_argument("--json", action="store_true", help="Emit JSON")

    args = ap.parse_args(argv)
    try:
        if args.cmd == "pack":
            cmd_pack(args.source, args.output, revision=args.revision, quiet=args.quiet)
        elif args.cmd == "unpack":
            cmd_unpack(args.archive, outdir=args.outdir, quiet=args.quiet)
        elif args.cmd == "list":
            cmd_list(args.archive)
        elif args.cmd == "manifest":
            cmd_manifest(args.path)
        elif args.cmd == "info":
            cmd_info(args.path, as_json=args.json)
        else:
            raise RuntimeError("Unknown command")
    except CorruptArchive as e:
        print(f"Error: archive is corrupt: {e}", file=sys.stderr)
        sys.exit(2)
    except (CharmError, OSError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()

from __future__ import annotations

import io
import os
import stat
import struct
import tempfile
import unittest
import zipfile
from pathlib import Path
from typing import Dict, Optional

from charmpack.directory import read_dir
from charmpack.errors import AbsoluteSymlink, CorruptArchive, PathEscape
from charmpack.reader import read_archive, read_archive_bytes
from charmpack.writer import write_archive


META = b"name: all-hooks\nsummary: hooks everywhere\nrequires:\n    db:\n        interface: mysql\n"


def _build_fixture_tree(root: Path, *, include_symlink: bool = True) -> bool:
    (root / "hooks").mkdir(parents=True)
    (root / "src").mkdir()
    (root / "empty").mkdir()
    (root / "metadata.yaml").write_bytes(META)
    (root / "hooks" / "install").write_text("#!/bin/sh\n")
    os.chmod(root / "hooks" / "install", 0o751)
    (root / "src" / "hello.c").write_text("int main;\n")
    os.chmod(root / "src" / "hello.c", 0o614)
    (root / "src" / "private.key").write_bytes(os.urandom(256))
    os.chmod(root / "src" / "private.key", 0o600)
    os.chmod(root / "empty", 0o750)
    if include_symlink and hasattr(os, "symlink"):
        try:
            os.symlink("../src/hello.c", root / "hooks" / "symlink")
            return True
        except (OSError, NotImplementedError):
            pass
    return False


def _zip_with(members: Dict[str, bytes], modes: Optional[Dict[str, int]] = None) -> bytes:
    modes = modes or {}
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in members.items():
            info = zipfile.ZipInfo(name)
            info.create_system = 3
            info.external_attr = modes.get(name, stat.S_IFREG | 0o644) << 16
            zf.writestr(info, data)
    return buf.getvalue()


def _perm(path: Path) -> int:
    return stat.S_IMODE(os.lstat(path).st_mode)


class ExpandTests(unittest.TestCase):
    def run_with_tmpdir(self, func):
        with tempfile.TemporaryDirectory() as tmp:
            func(Path(tmp))

    def test_expand_sets_hooks_executable(self):
        def scenario(tmp_path: Path):
            hooks = ["install", "start", "db-relation-joined"]
            members = {"revision": b"3", "metadata.yaml": META}
            for name in hooks:
                members["hooks/" + name] = b"not important"
            with read_archive_bytes(_zip_with(members)) as a:
                for name in hooks:
                    self.assertIn(name, a.meta.hooks())
                out = tmp_path / "charm"
                a.expand_to(str(out))
            for name in hooks:
                perm = _perm(out / "hooks" / name)
                self.assertTrue(perm & 0o100, f"hook {name!r} is not executable")
                self.assertEqual(perm, 0o755)
            self.assertEqual(_perm(out / "metadata.yaml"), 0o644)
            self.assertEqual(_perm(out / "hooks"), 0o755)
            self.assertEqual((out / "revision").read_text(), "3")

        self.run_with_tmpdir(scenario)

    def test_file_modes_roundtrip(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            have_symlink = _build_fixture_tree(src)
            buf = io.BytesIO()
            write_archive(read_dir(str(src)), buf)

            with read_archive_bytes(buf.getvalue()) as a:
                stored = {e.path: e for e in a.list()}
                # the writer keeps the source's bits, hooks included
                self.assertEqual(stored["hooks/install"].mode, 0o751)
                self.assertEqual(stored["src/hello.c"].mode, 0o614)
                out = tmp_path / "out"
                a.expand_to(str(out))
                expected = a.manifest()

            self.assertEqual(read_dir(str(out)).manifest(), read_dir(str(src)).manifest())
            self.assertEqual(read_dir(str(out)).manifest(), expected)
            self.assertEqual(_perm(out / "src" / "hello.c"), 0o614)
            self.assertEqual(_perm(out / "src" / "private.key"), 0o600)
            self.assertEqual(_perm(out / "hooks" / "install"), 0o751 | 0o111)
            self.assertEqual(_perm(out / "empty"), 0o755)
            self.assertEqual((out / "src" / "private.key").read_bytes(), (src / "src" / "private.key").read_bytes())
            if have_symlink:
                self.assertEqual(os.readlink(out / "hooks" / "symlink"), "../src/hello.c")

        self.run_with_tmpdir(scenario)

    def test_serialization_is_deterministic(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            _build_fixture_tree(src)
            first, second = io.BytesIO(), io.BytesIO()
            read_dir(str(src)).archive_to(first)
            read_dir(str(src)).archive_to(second)
            self.assertEqual(first.getvalue(), second.getvalue())

            # re-serializing the archive itself yields the same bytes
            third = io.BytesIO()
            with read_archive_bytes(first.getvalue()) as a:
                a.archive_to(third)
            self.assertEqual(first.getvalue(), third.getvalue())

        self.run_with_tmpdir(scenario)

    def test_archive_to_file_path(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            _build_fixture_tree(src, include_symlink=False)
            out = tmp_path / "pkg.charm"
            write_archive(read_dir(str(src)), str(out), revision=9)
            with read_archive(str(out)) as a:
                self.assertEqual(a.revision, 9)
                self.assertEqual(a.meta.name, "all-hooks")

        self.run_with_tmpdir(scenario)

    def test_expand_directory_source(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            _build_fixture_tree(src, include_symlink=False)
            d = read_dir(str(src))
            d.set_revision(5)
            out = tmp_path / "copy"
            d.expand_to(str(out))
            self.assertEqual(read_dir(str(out)).manifest(), d.manifest())
            self.assertEqual(read_dir(str(out)).revision, 5)
            self.assertFalse((src / "revision").exists())

        self.run_with_tmpdir(scenario)

    def test_symlink_escape_rejected(self):
        def scenario(tmp_path: Path):
            data = _zip_with(
                {"metadata.yaml": META, "hooks/badlink": b"../../target"},
                {"hooks/badlink": stat.S_IFLNK | 0o777},
            )
            out = tmp_path / "charm"
            with read_archive_bytes(data) as a:
                with self.assertRaises(PathEscape) as ctx:
                    a.expand_to(str(out))
            self.assertEqual(ctx.exception.path, "hooks/badlink")
            self.assertEqual(
                str(ctx.exception),
                'cannot extract "hooks/badlink": symlink "../../target" leads out of scope',
            )
            self.assertFalse(os.path.lexists(out / "hooks" / "badlink"))
            self.assertFalse(os.path.lexists(tmp_path / "target"))

        self.run_with_tmpdir(scenario)

    def test_absolute_symlink_rejected(self):
        def scenario(tmp_path: Path):
            data = _zip_with(
                {"metadata.yaml": META, "hooks/badlink": b"/etc/passwd"},
                {"hooks/badlink": stat.S_IFLNK | 0o777},
            )
            out = tmp_path / "charm"
            with read_archive_bytes(data) as a:
                with self.assertRaises(AbsoluteSymlink) as ctx:
                    a.expand_to(str(out))
            self.assertEqual(
                str(ctx.exception),
                'cannot extract "hooks/badlink": symlink "/etc/passwd" is absolute',
            )
            self.assertFalse(os.path.lexists(out / "hooks" / "badlink"))

        self.run_with_tmpdir(scenario)

    def test_bad_links_from_directory(self):
        def scenario(tmp_path: Path):
            src = tmp_path / "src"
            _build_fixture_tree(src, include_symlink=False)
            bad = src / "hooks" / "badlink"
            try:
                os.symlink("../../target", bad)
            except (OSError, NotImplementedError):
                self.skipTest("cannot symlink")
            buf = io.BytesIO()
            read_dir(str(src)).archive_to(buf)
            with read_archive_bytes(buf.getvalue()) as a:
                with self.assertRaisesRegex(PathEscape, 'symlink "../../target" leads out of scope'):
                    a.expand_to(str(tmp_path / "one"))

            os.remove(bad)
            os.symlink("/target", bad)
            buf = io.BytesIO()
            read_dir(str(src)).archive_to(buf)
            with read_archive_bytes(buf.getvalue()) as a:
                with self.assertRaisesRegex(AbsoluteSymlink, 'symlink "/target" is absolute'):
                    a.expand_to(str(tmp_path / "two"))

        self.run_with_tmpdir(scenario)

    def test_member_path_escape_rejected(self):
        def scenario(tmp_path: Path):
            data = _zip_with({"metadata.yaml": META, "hooks/../../evil": b"boom"})
            out = tmp_path / "dest" / "charm"
            with read_archive_bytes(data) as a:
                self.assertIn("../evil", a.manifest())
                with self.assertRaises(PathEscape) as ctx:
                    a.expand_to(str(out))
            self.assertEqual(ctx.exception.path, "../evil")
            self.assertFalse((tmp_path / "dest" / "evil").exists())

        self.run_with_tmpdir(scenario)

    def test_symlink_chained_through_earlier_link_rejected(self):
        def scenario(tmp_path: Path):
            # "a/b/l" points back at the root, so "a/b/l/.." is the root's parent.
            data = _zip_with(
                {"metadata.yaml": META, "a/b/l": b"../..", "up": b"a/b/l/.."},
                {"a/b/l": stat.S_IFLNK | 0o777, "up": stat.S_IFLNK | 0o777},
            )
            out = tmp_path / "dest" / "charm"
            with read_archive_bytes(data) as a:
                with self.assertRaises(PathEscape) as ctx:
                    a.expand_to(str(out))
            self.assertEqual(ctx.exception.path, "up")
            self.assertEqual(os.readlink(out / "a" / "b" / "l"), "../..")
            self.assertFalse(os.path.lexists(out / "up"))

        self.run_with_tmpdir(scenario)

    def test_symlink_redirected_by_later_link_rejected(self):
        def scenario(tmp_path: Path):
            # "a" resolves inside until "b" turns "b/.." into the root's parent.
            data = _zip_with(
                {"metadata.yaml": META, "a": b"b/..", "b": b"."},
                {"a": stat.S_IFLNK | 0o777, "b": stat.S_IFLNK | 0o777},
            )
            out = tmp_path / "dest" / "charm"
            with read_archive_bytes(data) as a:
                with self.assertRaises(PathEscape) as ctx:
                    a.expand_to(str(out))
            self.assertEqual(ctx.exception.path, "a")
            self.assertFalse(os.path.lexists(out / "a"))
            self.assertFalse((out / "revision").exists())

        self.run_with_tmpdir(scenario)

    def test_corrupt_member_data_reported(self):
        def scenario(tmp_path: Path):
            buf = io.BytesIO()
            with zipfile.ZipFile(buf, "w") as zf:
                zf.writestr("metadata.yaml", META)
                info = zipfile.ZipInfo("src/data.bin")
                info.create_system = 3
                info.external_attr = (stat.S_IFREG | 0o644) << 16
                info.compress_type = zipfile.ZIP_DEFLATED
                zf.writestr(info, b"hello world\n" * 200)
            raw = bytearray(buf.getvalue())
            with zipfile.ZipFile(io.BytesIO(bytes(raw))) as zf:
                info = zf.getinfo("src/data.bin")
            off = info.header_offset
            name_len, extra_len = struct.unpack("<HH", raw[off + 26:off + 30])
            start = off + 30 + name_len + extra_len
            raw[start + info.compress_size // 2] ^= 0xFF

            with read_archive_bytes(bytes(raw)) as a:
                with self.assertRaises(CorruptArchive):
                    a.expand_to(str(tmp_path / "out"))
                with self.assertRaises(CorruptArchive):
                    a.archive_to(io.BytesIO())

        self.run_with_tmpdir(scenario)

    def test_member_below_symlink_rejected_on_load(self):
        data = _zip_with(
            {"metadata.yaml": META, "up": b"..", "up/evil": b"boom"},
            {"up": stat.S_IFLNK | 0o777},
        )
        with self.assertRaises(CorruptArchive):
            read_archive_bytes(data)

    def test_preexisting_symlink_in_destination_not_followed(self):
        def scenario(tmp_path: Path):
            outside = tmp_path / "outside.txt"
            outside.write_text("keep")
            out = tmp_path / "charm"
            out.mkdir()
            try:
                os.symlink(str(outside), out / "metadata.yaml")
            except (OSError, NotImplementedError):
                self.skipTest("cannot symlink")
            with read_archive_bytes(_zip_with({"metadata.yaml": META})) as a:
                a.expand_to(str(out))
            self.assertEqual(outside.read_text(), "keep")
            self.assertFalse(os.path.islink(out / "metadata.yaml"))
            self.assertEqual((out / "metadata.yaml").read_bytes(), META)

        self.run_with_tmpdir(scenario)


if __name__ == "__main__":
    unittest.main()

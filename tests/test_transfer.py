import os
import tempfile
import unittest
from pathlib import Path

from _support import make_tree

from lft.errors import ProtocolError
from lft.transfer import get_path_info, iter_files, read_exact_chunks, safe_destination, scan_path


class TestWalk(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.root = self.tmp / "project"
        make_tree(self.root, {
            "b.txt": b"bbbb",
            "a/z.bin": b"\x00" * 100,
            "a/deep/y.txt": b"y",
            "empty.dat": b"",
        })

    def tearDown(self):
        self._tmp.cleanup()

    def test_scan_directory(self):
        self.assertEqual(scan_path(self.root), (4, 105))

    def test_scan_single_file(self):
        self.assertEqual(scan_path(self.root / "b.txt"), (1, 4))

    def test_scan_missing_raises(self):
        with self.assertRaises(FileNotFoundError):
            scan_path(self.tmp / "nope")

    def test_iter_files_depth_first_sorted(self):
        entries = list(iter_files(self.root))
        self.assertEqual(
            [e.rel_path for e in entries],
            ["project/a/deep/y.txt", "project/a/z.bin", "project/b.txt", "project/empty.dat"],
        )
        self.assertEqual([e.size for e in entries], [1, 100, 4, 0])

    def test_iter_single_file_uses_bare_name(self):
        (entry,) = list(iter_files(self.root / "a" / "z.bin"))
        self.assertEqual(entry.rel_path, "z.bin")
        self.assertEqual(entry.size, 100)

    def test_read_exact_chunks(self):
        path = self.root / "a" / "z.bin"
        chunks = list(read_exact_chunks(path, 100, chunk_size=30))
        self.assertEqual([len(c) for c in chunks], [30, 30, 30, 10])
        self.assertEqual(list(read_exact_chunks(self.root / "empty.dat", 0)), [])

    def test_read_exact_chunks_stops_at_promised_size(self):
        chunks = list(read_exact_chunks(self.root / "b.txt", 2, chunk_size=10))
        self.assertEqual(chunks, [b"bb"])

    def test_read_exact_chunks_detects_shrunk_file(self):
        with self.assertRaises(OSError):
            list(read_exact_chunks(self.root / "b.txt", 10))


class TestSafeDestination(unittest.TestCase):

    def test_joins_relative_path(self):
        dest = safe_destination("/srv/in", "project/a/z.bin")
        self.assertEqual(dest, Path("/srv/in") / "project" / "a" / "z.bin")

    def test_rejects_escaping_paths(self):
        for rel in ("../etc/passwd", "/etc/passwd", "a/../../x", "C:/win", "\\\\host\\share", ".", ""):
            with self.subTest(rel=rel), self.assertRaises(ProtocolError):
                safe_destination("/srv/in", rel)


class TestPathInfo(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        make_tree(self.tmp / "docs", {"a.txt": b"x" * 1536, "b/c.txt": b"yy"})

    def tearDown(self):
        self._tmp.cleanup()

    def test_file_info(self):
        info = get_path_info(str(self.tmp / "docs" / "a.txt"))
        self.assertIsNone(info.error)
        self.assertEqual(info.name, "a.txt")
        self.assertFalse(info.is_dir)
        self.assertEqual(info.size, 1536)
        self.assertEqual(info.size_display, "1.5 KB")
        self.assertRegex(info.mod_time, r"^\d{4}-\d\d-\d\d \d\d:\d\d:\d\d$")

    def test_directory_info(self):
        info = get_path_info(f"  {self.tmp / 'docs'}  ")
        self.assertTrue(info.is_dir)
        self.assertEqual((info.total_files, info.total_bytes), (2, 1538))
        self.assertEqual(info.size_display, "folder (2 files, 1.5 KB)")
        self.assertIn("total_files", info.to_dict())

    def test_missing_and_empty(self):
        self.assertEqual(get_path_info("   ").error, "Path is empty")
        info = get_path_info(str(self.tmp / "missing"))
        self.assertIn("does not exist", info.error)
        self.assertNotIn("total_files", info.to_dict())

    @unittest.skipIf(os.name == "nt" or os.geteuid() == 0, "permissions not enforced")
    def test_permission_denied(self):
        locked = self.tmp / "locked"
        locked.mkdir()
        (locked / "f").write_bytes(b"1")
        locked.chmod(0)
        try:
            self.assertIn("Permission denied", get_path_info(str(locked / "f")).error)
        finally:
            locked.chmod(0o755)


if __name__ == "__main__":
    unittest.main()

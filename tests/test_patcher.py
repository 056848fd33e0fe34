import os
import stat
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from friendlyamd import patcher
from friendlyamd.applier import PatchedRoutine
from friendlyamd.errors import AttributeClearError, FormatError, PatchIOError, SigningError
from friendlyamd.patcher import PatchOptions, patch_file
from friendlyamd.signatures import Signature

from macho_fixtures import (SCENARIO_MATCH_HEX, SCENARIO_REPLACE_HEX, RecordingTools,
                            make_library)

SCENARIO = Signature("Scenario", SCENARIO_MATCH_HEX, SCENARIO_REPLACE_HEX)


class FailingTools:
    def sign(self, path):
        raise SigningError(path, "code object is not signed at all")

    def clear_xattrs(self, path):
        raise AttributeClearError(path, "exit status 1")


class PatchFileTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.lib = self.root / "libscenario.dylib"
        self.original = make_library(patches=[(4160, bytes.fromhex("3C007505"))])
        self.lib.write_bytes(self.original)
        self.tools = RecordingTools()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def listing(self):
        return sorted(p.name for p in self.root.iterdir())

    def test_sibling_patch_writes_dot_patched_and_reports_routine(self) -> None:
        report = patch_file(self.lib, PatchOptions(), self.tools, catalog=[SCENARIO])

        patched_path = self.root / "libscenario.dylib.patched"
        self.assertEqual(report.original_path, self.lib)
        self.assertEqual(report.patched_path, patched_path)
        self.assertEqual(report.patched_routines,
                         (PatchedRoutine("Scenario", bytes.fromhex("3C00EB05"), 4160),))
        self.assertFalse(report.dry_run)
        self.assertEqual(report.warnings, ())

        self.assertEqual(self.lib.read_bytes(), self.original)
        expected = bytearray(self.original)
        expected[4162] = 0xEB
        self.assertEqual(patched_path.read_bytes(), bytes(expected))
        self.assertEqual(self.listing(), ["libscenario.dylib", "libscenario.dylib.patched"])
        self.assertEqual(self.tools.calls, [("clear_xattrs", patched_path)])

    def test_no_match_is_a_no_op(self) -> None:
        clean = self.root / "libclean.dylib"
        clean.write_bytes(make_library())
        before = self.listing()
        options = PatchOptions(in_place=True, backup=True, sign=True)

        self.assertIsNone(patch_file(clean, options, self.tools, catalog=[SCENARIO]))
        self.assertEqual(self.listing(), before)
        self.assertEqual(self.tools.calls, [])

    def test_dry_run_reports_without_touching_disk(self) -> None:
        for in_place in (False, True):
            with self.subTest(in_place=in_place):
                options = PatchOptions(dry_run=True, in_place=in_place, backup=in_place, sign=True)
                report = patch_file(self.lib, options, self.tools, catalog=[SCENARIO])

                expected_dest = self.lib if in_place else self.root / "libscenario.dylib.patched"
                self.assertTrue(report.dry_run)
                self.assertEqual(report.patched_path, expected_dest)
                self.assertEqual([r.offset for r in report.patched_routines], [4160])
                self.assertEqual(self.listing(), ["libscenario.dylib"])
                self.assertEqual(self.lib.read_bytes(), self.original)
                self.assertEqual(self.tools.calls, [])

    def test_in_place_with_backup(self) -> None:
        bak = self.root / "libscenario.dylib.bak"
        real_write = patcher._write_atomic
        seen_backup = []

        def checked_write(dest, data, mode_from):
            seen_backup.append(bak.read_bytes())
            real_write(dest, data, mode_from)

        with mock.patch.object(patcher, "_write_atomic", side_effect=checked_write):
            report = patch_file(self.lib, PatchOptions(in_place=True, backup=True),
                                self.tools, catalog=[SCENARIO])

        self.assertEqual(seen_backup, [self.original])
        self.assertEqual(bak.read_bytes(), self.original)
        self.assertEqual(report.patched_path, self.lib)
        self.assertEqual(self.lib.read_bytes()[4160:4164], bytes.fromhex("3C00EB05"))
        self.assertEqual(self.listing(), ["libscenario.dylib", "libscenario.dylib.bak"])

    def test_in_place_without_backup_leaves_no_bak(self) -> None:
        patch_file(self.lib, PatchOptions(in_place=True), self.tools, catalog=[SCENARIO])
        self.assertEqual(self.listing(), ["libscenario.dylib"])
        self.assertNotEqual(self.lib.read_bytes(), self.original)

    def test_backup_is_ignored_without_in_place(self) -> None:
        report = patch_file(self.lib, PatchOptions(backup=True), self.tools, catalog=[SCENARIO])
        self.assertEqual(report.patched_path, self.root / "libscenario.dylib.patched")
        self.assertEqual(self.listing(), ["libscenario.dylib", "libscenario.dylib.patched"])
        self.assertEqual(self.lib.read_bytes(), self.original)

    def test_sign_then_clear_attributes(self) -> None:
        report = patch_file(self.lib, PatchOptions(sign=True), self.tools, catalog=[SCENARIO])
        self.assertEqual(self.tools.calls, [("sign", report.patched_path),
                                            ("clear_xattrs", report.patched_path)])

    def test_clear_attributes_can_be_disabled(self) -> None:
        patch_file(self.lib, PatchOptions(clear_xattrs=False), self.tools, catalog=[SCENARIO])
        self.assertEqual(self.tools.calls, [])

    def test_tool_failures_are_warnings(self) -> None:
        with self.assertLogs("friendlyamd.patcher", level="WARNING") as logs:
            report = patch_file(self.lib, PatchOptions(sign=True), FailingTools(), catalog=[SCENARIO])

        self.assertEqual(len(report.warnings), 2)
        self.assertIn("codesign failed", report.warnings[0])
        self.assertIn("xattr failed", report.warnings[1])
        self.assertEqual(len(logs.records), 2)
        self.assertTrue(report.patched_path.exists())

    def test_non_macho_content_is_a_format_error(self) -> None:
        text = self.root / "README"
        text.write_text("nothing to see here\n" * 200)
        with self.assertRaises(FormatError):
            patch_file(text, PatchOptions(), self.tools, catalog=[SCENARIO])
        self.assertNotIn("README.patched", self.listing())

    def test_missing_file_is_an_io_error(self) -> None:
        with self.assertRaises(PatchIOError) as ctx:
            patch_file(self.root / "missing.dylib", PatchOptions(), self.tools)
        self.assertIsInstance(ctx.exception.__cause__, OSError)

    def test_failed_write_leaves_nothing_behind(self) -> None:
        with mock.patch.object(patcher.os, "replace", side_effect=OSError("disk full")):
            with self.assertRaises(PatchIOError):
                patch_file(self.lib, PatchOptions(), self.tools, catalog=[SCENARIO])
        self.assertEqual(self.listing(), ["libscenario.dylib"])
        self.assertEqual(self.tools.calls, [])

    def test_permission_bits_are_preserved(self) -> None:
        os.chmod(self.lib, 0o755)
        report = patch_file(self.lib, PatchOptions(), self.tools, catalog=[SCENARIO])
        self.assertEqual(stat.S_IMODE(os.stat(report.patched_path).st_mode), 0o755)

    def test_default_catalog_patches_every_routine(self) -> None:
        data = make_library(size=16384, patches=[
            (5000, bytes.fromhex("554889E553508B05AABBCCDD83F8FF7520")),
            (100, bytes.fromhex("81FB47656E757522")),
        ])
        self.lib.write_bytes(data)
        report = patch_file(self.lib, PatchOptions(in_place=True), self.tools)

        self.assertEqual([(r.name, r.offset) for r in report.patched_routines],
                         [("GenuineIntelEbxJne8", 100), ("MklServIntelCpuTrue", 5000)])
        written = self.lib.read_bytes()
        self.assertEqual(len(written), len(data))
        self.assertEqual(written[5000:5006], bytes.fromhex("B801000000C3"))
        self.assertEqual(written[106:108], b"\x90\x90")

    def test_report_to_dict(self) -> None:
        report = patch_file(self.lib, PatchOptions(dry_run=True), self.tools, catalog=[SCENARIO])
        self.assertEqual(report.to_dict()["patched_routines"],
                         [{"name": "Scenario", "bytes": "3C 00 EB 05", "offset": "0x1040"}])


if __name__ == "__main__":
    unittest.main()

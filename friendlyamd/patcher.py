"""
File patcher
============
Per-file workflow: read -> container check -> scan -> apply -> write.

    report = patch_file("/Applications/Foo.app/Contents/Frameworks/libmkl_core.dylib",
                        PatchOptions(in_place=True, backup=True), tools=SystemTools())

patch_file() returns None when the file contains no known routine; nothing
is written and no tool runs in that case.  Otherwise it returns a PatchReport,
and unless dry_run is set the patched bytes are on disk by the time it does.

Destination:
  in_place=False  ->  <original>.patched   (original left untouched)
  in_place=True   ->  <original>           (backup=True first copies it to <original>.bak)

Writes go to a temporary file next to the destination which is then renamed
over it, so a crash never leaves a half-written library under the final name.
Signing and attribute clearing happen after the write; their failures are
logged and recorded as report warnings but do not fail the file.
"""

import contextlib
import logging
import os
import shutil
import tempfile
from collections import namedtuple
from pathlib import Path

from .applier import apply_patches
from .errors import PatchIOError, ToolError
from .macho import check_container
from .scanner import scan
from .signatures import SIGNATURES
from .tools import NullTools

logger = logging.getLogger(__name__)

PATCHED_SUFFIX = '.patched'
BACKUP_SUFFIX = '.bak'


# region Options and Report

class PatchOptions:
    """Per-run patch settings.

    dry_run       -- scan and build reports, write nothing, run no tools
    in_place      -- overwrite the original instead of writing <original>.patched
    backup        -- copy the original to <original>.bak first (ignored unless in_place)
    clear_xattrs  -- run `xattr -cr` on the written file
    sign          -- run `codesign --force --sign -` on the written file
    """

    def __init__(self, dry_run=False, in_place=False, backup=False,
                 clear_xattrs=True, sign=False):
        self.dry_run = dry_run
        self.in_place = in_place
        self.backup = backup
        self.clear_xattrs = clear_xattrs
        self.sign = sign

    def __repr__(self):
        return (f"PatchOptions(dry_run={self.dry_run}, in_place={self.in_place}, "
                f"backup={self.backup}, clear_xattrs={self.clear_xattrs}, sign={self.sign})")


class PatchReport(namedtuple('PatchReport', ['original_path', 'patched_path', 'patched_routines',
                                             'dry_run', 'warnings'])):
    """Outcome for one file that had at least one known routine."""

    __slots__ = ()

    def to_dict(self):
        return {
            "original_path": str(self.original_path),
            "patched_path": str(self.patched_path),
            "dry_run": self.dry_run,
            "patched_routines": [
                {"name": r.name, "bytes": r.bytes.hex(' ').upper(), "offset": hex(r.offset)}
                for r in self.patched_routines
            ],
            "warnings": list(self.warnings),
        }

# endregion Options and Report


# region File I/O

def destination_for(path, in_place):
    path = Path(path)
    if in_place:
        return path
    return path.with_name(path.name + PATCHED_SUFFIX)


def backup_path_for(path):
    path = Path(path)
    return path.with_name(path.name + BACKUP_SUFFIX)


def _read(path):
    try:
        return path.read_bytes()
    except OSError as exc:
        raise PatchIOError(path, "read", exc) from exc


def _backup(path):
    bak = backup_path_for(path)
    try:
        shutil.copy2(str(path), str(bak))
    except OSError as exc:
        raise PatchIOError(bak, "back up to", exc) from exc
    logger.info("backed up %s -> %s", path, bak)
    return bak


def _write_atomic(dest, data, mode_from):
    """Write data to dest through a temp file in the same directory + os.replace()."""
    tmp = None
    try:
        fd, tmp = tempfile.mkstemp(prefix=f'.{dest.name}.', suffix='.tmp', dir=str(dest.parent))
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        shutil.copymode(str(mode_from), tmp)
        os.replace(tmp, str(dest))
    except OSError as exc:
        if tmp is not None:
            with contextlib.suppress(OSError):
                os.unlink(tmp)
        raise PatchIOError(dest, "write", exc) from exc
    logger.info("wrote %s (%d bytes)", dest, len(data))

# endregion File I/O


# region Patch Workflow

def _run_tool(action, path, warnings):
    try:
        action(path)
    except ToolError as exc:
        logger.warning("%s", exc)
        warnings.append(str(exc))


def patch_file(path, options=None, tools=None, catalog=SIGNATURES):
    """Patch every known routine in the library at path.

    Returns a PatchReport, or None when no routine was found.
    Raises FormatError for non-Mach-O content and PatchIOError for
    read/write/backup failures.
    """
    if options is None:
        options = PatchOptions()
    if tools is None:
        tools = NullTools()
    path = Path(path)

    data = _read(path)
    check_container(data, path)

    matches = scan(data, catalog)
    if not matches:
        logger.debug("%s: no known routines", path)
        return None

    dest = destination_for(path, options.in_place)
    patched, routines = apply_patches(data, matches)

    if options.dry_run:
        return PatchReport(path, dest, tuple(routines), True, ())

    if options.in_place and options.backup:
        _backup(path)

    _write_atomic(dest, patched, mode_from=path)

    warnings = []
    if options.sign:
        _run_tool(tools.sign, dest, warnings)
    if options.clear_xattrs:
        _run_tool(tools.clear_xattrs, dest, warnings)

    return PatchReport(path, dest, tuple(routines), False, tuple(warnings))

# endregion Patch Workflow

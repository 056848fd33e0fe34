"""
External tools
==============
Thin wrappers around the macOS command-line tools run on patched files.

The patcher only ever calls `sign(path)` and `clear_xattrs(path)`, so any
object with those two methods can stand in for SystemTools (NullTools below,
or recording/failing fakes in tests).
"""

import logging
import subprocess

from .errors import AttributeClearError, SigningError

logger = logging.getLogger(__name__)


class SystemTools:
    """Runs codesign and xattr as subprocesses."""

    def __init__(self, codesign='codesign', xattr='xattr'):
        self.codesign = codesign
        self.xattr = xattr

    def _run(self, argv, error_cls, path):
        logger.debug("running %s", " ".join(argv))
        try:
            proc = subprocess.run(argv, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                                  universal_newlines=True)
        except OSError as exc:
            raise error_cls(path, exc) from exc
        if proc.returncode != 0:
            detail = proc.stderr.strip() or f"exit status {proc.returncode}"
            raise error_cls(path, detail)

    def sign(self, path):
        """Ad-hoc (re-)sign path, replacing any existing signature."""
        self._run([self.codesign, '--force', '--sign', '-', str(path)], SigningError, path)

    def clear_xattrs(self, path):
        """Remove every extended attribute (quarantine, stale signatures) from path."""
        self._run([self.xattr, '-cr', str(path)], AttributeClearError, path)


class NullTools:
    """Does nothing; used when no tools are configured."""

    def sign(self, path):
        pass

    def clear_xattrs(self, path):
        pass

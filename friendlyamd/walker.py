"""Recursive discovery of candidate library files."""

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

# No extension (framework binaries) or .dylib
DEFAULT_EXTENSIONS = ("", ".dylib")
DEFAULT_BLOCKLIST = (".DS_Store",)


def walk_directory(root, extensions=DEFAULT_EXTENSIONS, blocklist=DEFAULT_BLOCKLIST):
    """Yield regular files under root whose suffix is in extensions.

    Lazy: directories are read as the caller iterates.  Symbolic links are
    neither followed nor yielded, so a library reachable through several
    framework symlinks (Versions/Current/...) is seen once.
    Directories that cannot be listed are logged and skipped.
    """
    extensions = {e.lower() for e in extensions}
    blocked = set(blocklist)

    def unreadable(exc):
        logger.warning("cannot read directory %s: %s", exc.filename, exc.strerror)

    for dirpath, dirnames, filenames in os.walk(str(root), onerror=unreadable):
        dirnames.sort()
        for name in sorted(filenames):
            if name in blocked:
                continue
            path = Path(dirpath) / name
            if path.is_symlink() or not path.is_file():
                continue
            if path.suffix.lower() not in extensions:
                continue
            yield path

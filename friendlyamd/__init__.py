"""
friendlyamd
===========
Finds Intel-only CPU checks in macOS libraries and overwrites them in place
with same-length replacements so the libraries run on AMD processors.

    from friendlyamd import PatchOptions, patch_file
    report = patch_file("libmkl_core.dylib", PatchOptions(dry_run=True))
"""

__version__ = "1.0.0"

from .errors import (AttributeClearError, ConfigurationError, FormatError,  # noqa: E402
                     PatcherError, PatchIOError, SigningError, ToolError)
from .patcher import PatchOptions, PatchReport, patch_file  # noqa: E402
from .scanner import Match, scan  # noqa: E402
from .scheduler import JobSummary, run_jobs  # noqa: E402
from .signatures import SIGNATURES, Signature  # noqa: E402

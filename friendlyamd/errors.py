"""Exception hierarchy for friendlyamd.

Per-file errors (FormatError, PatchIOError) fail only the file that raised
them. ToolError subclasses are raised by the external tool wrappers after the
patched file is already on disk and are downgraded to warnings by the patcher.
ConfigurationError stops the whole run before any file is touched.
"""


class PatcherError(Exception):
    """Base class for every error raised by friendlyamd."""


class ConfigurationError(PatcherError):
    """Invalid options, no inputs, or a non-positive job count."""


class FormatError(PatcherError):
    """File content is not a Mach-O or universal binary."""

    def __init__(self, path, reason):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class PatchIOError(PatcherError):
    """Reading, writing or backing up a file failed."""

    def __init__(self, path, action, cause):
        super().__init__(f"could not {action} {path}: {cause}")
        self.path = path
        self.action = action


class ToolError(PatcherError):
    """An external tool (codesign, xattr) failed on a patched file."""

    tool = None

    def __init__(self, path, detail):
        super().__init__(f"{self.tool} failed on {path}: {detail}")
        self.path = path
        self.detail = detail


class SigningError(ToolError):
    tool = "codesign"


class AttributeClearError(ToolError):
    tool = "xattr"

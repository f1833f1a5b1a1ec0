"""Error types raised while exploding and starting an archive."""


class BootstrapError(RuntimeError):
    """Base class for every failure raised by pyexploder."""


class BootstrapIOError(BootstrapError):
    """Raised when the workspace or the archive contents cannot be read or written."""


class ConfigError(BootstrapError):
    """Raised when the manifest does not declare a usable entry point."""


class ResolutionError(BootstrapError):
    """Raised when the entry point cannot be found in the nested archives."""


class SignatureError(BootstrapError):
    """Raised when the entry point exists but cannot be called with the argument list."""


class InvocationFailure(BootstrapError):
    """The entry point raised while running.

    :ivar entry_point: Entry point name that was invoked.
    :ivar trace: Formatted traceback starting in the invoked code.
    """

    entry_point: str
    trace: str

    def __init__(self, entry_point: str, trace: str) -> None:
        super().__init__(f"Entry point {entry_point!r} failed")
        self.entry_point = entry_point
        self.trace = trace


class BuildError(BootstrapError):
    """Raised when an exploding archive cannot be built."""

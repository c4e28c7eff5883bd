"""Domain errors raised by the compile, convert, and render stages"""

from pathlib import Path


class TexpubError(Exception):
    """Base class for all texpub errors."""


class SourceError(TexpubError):
    """A source file could not be read or compiled."""

    def __init__(self, path: Path, message: str):
        super().__init__(f"{message} (path={path})")
        self.path = path
        self.message = message


class ConversionError(TexpubError):
    """The LaTeX to HTML converter failed on one content block."""


class RenderError(TexpubError):
    """A diagram failed to render. `stage` names the failing step (compile, convert, ...)."""

    def __init__(self, message: str, stage: str = "render"):
        super().__init__(message)
        self.stage = stage


class ToolchainUnavailable(TexpubError):
    """No usable TeX compiler or PDF to SVG converter was found."""

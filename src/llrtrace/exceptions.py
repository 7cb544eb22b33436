"""Exception types raised by llrtrace."""

from __future__ import annotations

from pathlib import Path


class LlrTraceError(RuntimeError):
    """Base class for errors that abort an llrtrace operation."""


class ConfigurationError(LlrTraceError):
    """Invalid configuration value (marker syntax, dedupe mode, front-end)."""


class FrontendError(LlrTraceError):
    """The parsing front-end could not produce a translation unit.

    Scans catch this per unit: the failing unit is reported and its siblings
    are still extracted.
    """

    def __init__(self, path: Path | str, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = str(path)
        self.reason = reason

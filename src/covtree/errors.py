"""Exception hierarchy shared across covtree."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class CovtreeError(Exception):
    """Base exception for covtree errors."""


class MalformedCoverageDataError(CovtreeError):
    """Raised when per-file coverage maps are missing or invalid."""

    def __init__(self, message: str, path: str = "") -> None:
        """Initialize with error message and the offending file key.

        Args:
            message: Error description.
            path: Coverage key of the file whose data is malformed.
        """
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path


class FilesystemError(CovtreeError):
    """Raised when a source file or report artifact cannot be read or written."""

    def __init__(self, message: str, path: Path | str) -> None:
        super().__init__(message)
        self.path = path


class ConfigurationError(CovtreeError):
    """Raised when report configuration is invalid."""

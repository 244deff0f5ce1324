from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""


class ParseError(RuntimeError):
    """Raised when an uploaded export does not match any recognized shape."""

    def __init__(self, message: str, *, reason: str = "unrecognized_structure") -> None:
        super().__init__(message)
        self.reason = reason


class StorageUnavailable(RuntimeError):
    """Raised when the snapshot store cannot be opened, read, or written."""


class ValidationError(RuntimeError):
    """Raised when an operation is called without the inputs it requires."""


class ExportError(RuntimeError):
    """Raised when a comparison report cannot be written."""

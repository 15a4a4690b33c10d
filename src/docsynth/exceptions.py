"""Project-specific exceptions."""

from __future__ import annotations

from pathlib import Path


class DocSynthError(Exception):
    """Base exception for the project."""


class InvalidConfigError(DocSynthError):
    """Raised when runtime configuration is missing or invalid."""


class TemplateLoadError(DocSynthError):
    """Raised when a workspace template file cannot be parsed."""


class VariableCoercionError(DocSynthError):
    """Raised when raw text cannot be converted to a variable's declared type."""


class DocumentWriteError(DocSynthError):
    """Raised when an updated document cannot be persisted."""

    def __init__(self, path: str | Path, cause: OSError) -> None:
        super().__init__(f"Failed to write document '{path}': {cause}")
        self.path = str(path)
        self.cause = cause

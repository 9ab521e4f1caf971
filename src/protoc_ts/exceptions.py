from __future__ import annotations

from pathlib import Path
from typing import Union


class ProtocTsError(Exception):
    """Base class for all errors raised by protoc-ts."""


class InputNotFoundError(ProtocTsError):
    """Raised when a path or glob pattern matches no .proto files."""

    def __init__(self, pattern: str):
        super().__init__(f"No proto files found matching pattern: {pattern}")
        self.pattern = pattern


class SchemaLoadError(ProtocTsError):
    """Raised when a schema file cannot be read or parsed."""

    def __init__(self, path: Union[str, Path], reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = str(path)
        self.reason = reason


class OutputWriteError(ProtocTsError):
    """Raised when generated output cannot be written. Fatal for a run."""

    def __init__(self, path: Union[str, Path], reason: str):
        super().__init__(f"Cannot write {path}: {reason}")
        self.path = str(path)
        self.reason = reason

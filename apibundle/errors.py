"""Error types raised while bundling documents and locating findings."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence


class BundleError(Exception):
    """Base class for every error raised by apibundle."""


class ParseError(BundleError):
    """Malformed JSON or YAML source text."""

    def __init__(self, message: str, file: Optional[Path] = None, offset: Optional[int] = None):
        self.message = message
        self.file = file
        self.offset = offset
        super().__init__(str(self))

    def __str__(self) -> str:
        where = f" in {self.file}" if self.file else ""
        at = f" at offset {self.offset}" if self.offset is not None else ""
        return f"Unable to parse document{where}{at}: {self.message}"


class ReferenceResolutionError(BundleError):
    """A reference points to a missing file or a missing node."""

    def __init__(self, ref: str, file: Optional[Path] = None, reason: str = "target not found"):
        self.ref = ref
        self.file = file
        self.reason = reason
        where = f" (referenced from {file})" if file else ""
        super().__init__(f"Unable to resolve reference '{ref}'{where}: {reason}")


class CircularReferenceError(ReferenceResolutionError):
    """An inline dereference would expand into itself."""

    def __init__(self, ref: str, file: Optional[Path] = None):
        super().__init__(ref, file, reason="circular reference cannot be inlined")


class DestinationCollisionError(BundleError):
    """Two different nodes were relocated to the same destination path."""

    def __init__(self, path: Sequence[str]):
        from .pointer import join_pointer

        self.path = tuple(path)
        super().__init__(
            f"Unable to merge, object already exists at path: {join_pointer(self.path, fragment=True)}"
        )


class UnsupportedVersionError(BundleError):
    """Cross-file references in a document whose OpenAPI version is unknown."""

    def __init__(self, file: Path):
        self.file = file
        super().__init__(
            f"Cannot bundle external references in {file}: "
            "the document is neither Swagger 2.0 nor OpenAPI 3.0.x"
        )


class ProvenanceMissing(BundleError):
    """No provenance record covers a pointer into the bundled document."""

    def __init__(self, pointer: str):
        self.pointer = pointer
        super().__init__(f"No provenance recorded for pointer: {pointer}")


class LocationNotFound(BundleError):
    """A reported pointer could not be traced to a source location."""

    def __init__(self, pointer: str, reason: str = ""):
        self.pointer = pointer
        suffix = f" ({reason})" if reason else ""
        super().__init__(f"Cannot find entry for pointer: {pointer}{suffix}")


class ConfigError(BundleError):
    """Invalid project configuration file."""

"""Per-run cache of parsed documents and their line indexes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from .errors import ParseError
from .lines import LineIndex
from .parser import DocumentNode, DocumentParser, format_for, make_parser

logger = logging.getLogger(__name__)


@dataclass
class ParsedDocument:
    path: Path
    format: str
    text: str
    root: DocumentNode
    lines: LineIndex
    _value: Optional[Any] = field(default=None, init=False, repr=False)

    @property
    def value(self) -> Any:
        """Plain data for the whole document, built on first access."""
        if self._value is None:
            self._value = self.root.to_value()
        return self._value

    def line_for(self, node: DocumentNode) -> int:
        return self.lines.line_for(node.line_offset)


class DocumentSession:
    """Owns the parsed-document cache for one bundling / locating run.

    Documents are keyed by their resolved absolute path, parsed once and
    never invalidated while the session is open. Use it as a context manager
    or call :meth:`open` / :meth:`close` explicitly.
    """

    def __init__(self) -> None:
        self._documents: Dict[Path, ParsedDocument] = {}
        self._parsers: Dict[str, DocumentParser] = {}
        self._open = False

    def open(self) -> "DocumentSession":
        self._open = True
        return self

    def close(self) -> None:
        self._documents.clear()
        self._parsers.clear()
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def __enter__(self) -> "DocumentSession":
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __contains__(self, path: Path) -> bool:
        return Path(path).resolve() in self._documents

    def load(self, path: Path) -> ParsedDocument:
        """Read and parse *path*, or return the cached result."""
        if not self._open:
            raise RuntimeError("Document session is not open")

        key = Path(path).resolve()
        cached = self._documents.get(key)
        if cached is not None:
            return cached

        # decoded as-is: line endings and a byte order mark stay in the text so
        # node ranges are offsets into the file's bytes
        text = key.read_bytes().decode("utf-8")
        fmt = format_for(key)
        try:
            root = self._parser(fmt).parse(text)
        except ParseError as exc:
            exc.file = key
            raise
        logger.debug("Parsed %s as %s", key, fmt)

        document = ParsedDocument(
            path=key,
            format=fmt,
            text=text,
            root=root,
            lines=LineIndex.from_text(text),
        )
        self._documents[key] = document
        return document

    def _parser(self, fmt: str) -> DocumentParser:
        if fmt not in self._parsers:
            self._parsers[fmt] = make_parser(fmt)
        return self._parsers[fmt]

"""Resolve pointers into a bundled document back to original source lines."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional

from .errors import LocationNotFound, ProvenanceMissing
from .issues import format_score, rank, severity_for
from .models import Issue, LocatedIssue, SourceLocation
from .pointer import parse_pointer
from .provenance import ProvenanceTree
from .session import DocumentSession, ParsedDocument

logger = logging.getLogger(__name__)


class DiagnosticLocator:
    """Finds the file and line behind a pointer into a bundled document.

    Content that was never relocated is found in the root file's own tree.
    Anything else goes through the provenance tree to the file it was pulled
    from.
    """

    def __init__(self, session: DocumentSession, root_file: Path, provenance: ProvenanceTree):
        self.session = session
        self.root_file = Path(root_file).resolve()
        self.provenance = provenance

    def locate(self, pointer: Optional[str]) -> SourceLocation:
        if pointer is None:
            raise LocationNotFound("<none>", reason="pointer missing from the report index")
        try:
            segments = parse_pointer(pointer)
        except ValueError as exc:
            raise LocationNotFound(pointer, reason="malformed pointer") from exc

        root = self.session.load(self.root_file)
        node = root.root.find_segments(segments)
        if node is not None:
            return _location(root, node)

        try:
            record = self.provenance.resolve_segments(segments, pointer)
        except ProvenanceMissing as exc:
            raise LocationNotFound(pointer, reason="not in the root file and not relocated") from exc

        origin = self.session.load(record.file)
        node = origin.root.find(record.pointer)
        if node is None:
            raise LocationNotFound(pointer, reason=f"{record.pointer} not found in {record.file}")
        return _location(origin, node)

    def resolve(self, issue: Issue) -> LocatedIssue:
        """Locate *issue*; a failure is recorded on the result, not raised."""
        located = LocatedIssue(
            issue=issue,
            severity=severity_for(issue.criticality),
            display_score=format_score(issue.score),
        )
        try:
            located.location = self.locate(issue.pointer)
        except LocationNotFound as exc:
            logger.warning("Issue %s: %s", issue.id, exc)
            located.error = str(exc)
        return located

    def resolve_all(self, issues: Iterable[Issue]) -> List[LocatedIssue]:
        return rank(self.resolve(issue) for issue in issues)


def _location(document: ParsedDocument, node) -> SourceLocation:
    return SourceLocation(
        file=document.path,
        line=document.line_for(node),
        range=node.get_range(),
    )

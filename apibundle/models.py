"""Data models shared by the issue extraction, locator and report layers."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple


@dataclass
class Issue:
    """A finding reported against a pointer into the bundled document."""
    id: str
    description: str
    pointer: Optional[str]
    criticality: int
    score: float = 0.0  # signed, as reported


@dataclass
class SourceLocation:
    file: Path
    line: int
    range: Tuple[int, int]

    def __str__(self) -> str:
        return f"{self.file}:{self.line}"


@dataclass
class LocatedIssue:
    """An issue resolved to its original file, or flagged when it could not be."""
    issue: Issue
    severity: str
    display_score: str
    location: Optional[SourceLocation] = None
    error: Optional[str] = None

    @property
    def id(self) -> str:
        return self.issue.id

    @property
    def score(self) -> float:
        return abs(self.issue.score)

    @property
    def is_located(self) -> bool:
        return self.location is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.issue.id,
            "description": self.issue.description,
            "pointer": self.issue.pointer,
            "file": str(self.location.file) if self.location else None,
            "line": self.location.line if self.location else None,
            "range": list(self.location.range) if self.location else None,
            "criticality": self.issue.criticality,
            "severity": self.severity,
            "score": self.score,
            "displayScore": self.display_score,
            "error": self.error,
        }

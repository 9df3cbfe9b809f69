"""Extract issues from an analysis report and rank them."""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .models import Issue, LocatedIssue

# (category, default criticality) in report order
CATEGORIES = (
    ("data", 5),
    ("security", 5),
    ("warnings", 1),
    ("semanticErrors", 5),
    ("validationErrors", 5),
)

CRITICALITY_TO_SEVERITY: Dict[int, str] = {
    1: "LOW",
    2: "LOW",
    3: "MEDIUM",
    4: "HIGH",
    5: "CRITICAL",
}


def severity_for(criticality: int) -> str:
    """Map a criticality rank (1-5) to its severity label."""
    if isinstance(criticality, bool) or criticality not in CRITICALITY_TO_SEVERITY:
        raise ValueError(f"Invalid criticality: {criticality!r} (expected 1-5)")
    return CRITICALITY_TO_SEVERITY[criticality]


def format_score(score: float) -> str:
    """Human-readable score: ``"0"``, a rounded magnitude, or ``"less than 1"``."""
    if score == 0:
        return "0"
    rounded = abs(math.floor(score + 0.5))
    if rounded >= 1:
        return str(rounded)
    return "less than 1"


def _lookup_pointer(index: Union[Sequence[str], Mapping[Any, str]], key: Any) -> Optional[str]:
    if isinstance(index, Mapping):
        if key in index:
            return index[key]
        return index.get(str(key))
    if isinstance(key, int) and not isinstance(key, bool) and 0 <= key < len(index):
        return index[key]
    return None


def collect_issues(report: Mapping[str, Any]) -> List[Issue]:
    """Flatten every category of *report* into a list of :class:`Issue`.

    Each sub-issue's ``pointer`` is a key into ``report["index"]``; an
    unknown key yields an issue without a pointer, which the locator
    flags instead of dropping.
    """
    index = report.get("index") or []
    result: List[Issue] = []

    for category, default_criticality in CATEGORIES:
        section = report.get(category)
        if not section:
            continue
        for issue_id, entry in (section.get("issues") or {}).items():
            criticality = entry.get("criticality") or default_criticality
            for sub in entry.get("issues", []):
                score = sub.get("score") or 0
                result.append(Issue(
                    id=issue_id,
                    description=sub.get("specificDescription") or entry.get("description", ""),
                    pointer=_lookup_pointer(index, sub.get("pointer")),
                    criticality=criticality,
                    score=score,
                ))
    return result


def rank(located: Iterable[LocatedIssue]) -> List[LocatedIssue]:
    """Sort by descending score; ties keep report order."""
    return sorted(located, key=lambda item: item.score, reverse=True)

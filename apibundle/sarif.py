"""SARIF 2.1.0 output for located issues."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence

from . import __version__
from .models import LocatedIssue

SARIF_SCHEMA = "http://json.schemastore.org/sarif-2.1.0-rtm.4"
TOOL_NAME = "apibundle"
HELP_URI = "https://swagger.io/specification/"

CRITICALITY_TO_LEVEL: Dict[int, str] = {
    1: "note",
    2: "note",
    3: "warning",
    4: "error",
    5: "error",
}


def produce_sarif(results: Mapping[Path, Sequence[LocatedIssue]]) -> Dict[str, Any]:
    """Build a SARIF log from ``{root file: located issues}``.

    An issue that could not be located is attached to its root file without
    a region.
    """
    artifacts: List[Dict[str, Any]] = []
    artifact_index: Dict[Path, int] = {}
    rules: List[Dict[str, Any]] = []
    rule_index: Dict[str, int] = {}
    sarif_results: List[Dict[str, Any]] = []

    def artifact_for(path: Path) -> int:
        path = Path(path).resolve()
        if path not in artifact_index:
            artifact_index[path] = len(artifacts)
            artifacts.append({"location": {"uri": path.as_uri()}})
        return artifact_index[path]

    for root_file, located_issues in results.items():
        for located in located_issues:
            issue = located.issue
            if issue.id not in rule_index:
                rule_index[issue.id] = len(rules)
                rules.append({
                    "id": issue.id,
                    "shortDescription": {"text": issue.description},
                    "helpUri": HELP_URI,
                    "properties": {"category": "Other"},
                })

            file = located.location.file if located.location else root_file
            physical: Dict[str, Any] = {
                "artifactLocation": {
                    "uri": Path(file).resolve().as_uri(),
                    "index": artifact_for(file),
                },
            }
            if located.location:
                physical["region"] = {"startLine": located.location.line, "startColumn": 1}

            sarif_results.append({
                "ruleId": issue.id,
                "ruleIndex": rule_index[issue.id],
                "level": CRITICALITY_TO_LEVEL[issue.criticality],
                "message": {"text": issue.description},
                "locations": [{"physicalLocation": physical}],
            })

    return {
        "version": "2.1.0",
        "$schema": SARIF_SCHEMA,
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": TOOL_NAME,
                        "version": __version__,
                        "informationUri": HELP_URI,
                        "rules": rules,
                    }
                },
                "artifacts": artifacts,
                "results": sarif_results,
            }
        ],
    }

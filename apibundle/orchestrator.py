"""Coordinates bundling, discovery and issue location for one run."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Mapping, Optional

from .bundler import Bundler, BundleResult
from .config_manager import AuditConfig, read_audit_config
from .discovery import Target, discover_targets
from .issues import collect_issues
from .locator import DiagnosticLocator
from .models import LocatedIssue
from .session import DocumentSession

logger = logging.getLogger(__name__)


class AuditOrchestrator:
    """Runs the bundler and the locator against one shared document session.

    The session is opened on construction (or on ``__enter__``) and its
    caches are dropped by :meth:`close`.
    """

    def __init__(self, session: Optional[DocumentSession] = None):
        self.session = (session or DocumentSession()).open()
        self.bundler = Bundler(self.session)

    def __enter__(self) -> "AuditOrchestrator":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def bundle(self, root_file: Path) -> BundleResult:
        return self.bundler.bundle(Path(root_file))

    def locate(self, root_file: Path, report: Mapping[str, Any]) -> List[LocatedIssue]:
        """Bundle *root_file* and map every issue of *report* back to source."""
        result = self.bundle(root_file)
        locator = DiagnosticLocator(self.session, result.root_file, result.provenance)
        issues = collect_issues(report)
        logger.debug("Locating %d issue(s) for %s", len(issues), result.root_file)
        return locator.resolve_all(issues)

    def discover(self, root_dir: Path, audit_config: Optional[AuditConfig] = None) -> List[Target]:
        root_dir = Path(root_dir)
        if audit_config is None:
            audit_config = read_audit_config(root_dir)
        return discover_targets(root_dir, audit_config, self.session)

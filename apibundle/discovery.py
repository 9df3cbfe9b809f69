"""Discover OpenAPI root documents in a directory tree."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from fnmatch import fnmatch
from pathlib import Path
from typing import List, Optional, Sequence, Set

from . import config
from .bundler import detect_version
from .config_manager import AuditConfig
from .errors import ParseError
from .session import DocumentSession

logger = logging.getLogger(__name__)

SKIP_DIRS: Set[str] = {".git", ".hg", ".svn", "__pycache__", ".venv", "venv"}

_NAME_UNSAFE = re.compile(r"[^A-Za-z0-9_\-. ]")


@dataclass
class Target:
    """A root document to bundle, optionally bound to an existing remote API."""
    filename: str
    api_id: Optional[str] = None

    @property
    def name(self) -> str:
        return make_name(self.filename)


def make_name(filename: str) -> str:
    """Remote-safe API name derived from a relative filename."""
    return _NAME_UNSAFE.sub("-", filename)[: config.MAX_NAME_LEN]


def _is_excluded(relative: str, excludes: Sequence[str]) -> bool:
    parts = relative.split("/")
    if any(part in SKIP_DIRS for part in parts[:-1]):
        return True
    for pattern in excludes:
        if pattern.endswith("/"):
            directory = pattern.rstrip("/")
            if any(fnmatch(part, directory) for part in parts[:-1]):
                return True
        elif fnmatch(relative, pattern) or ("/" not in pattern and fnmatch(parts[-1], pattern)):
            return True
    return False


def find_candidate_files(root_dir: Path, patterns: Sequence[str]) -> List[str]:
    """Relative POSIX paths under *root_dir* matching *patterns*.

    Patterns starting with ``!`` exclude; a trailing ``/`` excludes a
    directory wherever it appears.
    """
    includes = [p for p in patterns if not p.startswith("!")]
    excludes = [p[1:] for p in patterns if p.startswith("!")]

    found: Set[str] = set()
    for pattern in includes:
        for path in root_dir.glob(pattern):
            if not path.is_file():
                continue
            relative = path.relative_to(root_dir).as_posix()
            if not _is_excluded(relative, excludes):
                found.add(relative)
    return sorted(found)


def is_openapi(path: Path, session: DocumentSession) -> bool:
    """True when *path* parses and declares Swagger 2.0 or OpenAPI 3.0.x."""
    try:
        document = session.load(path)
    except (ParseError, OSError, UnicodeDecodeError) as exc:
        logger.debug("Skipping %s: %s", path, exc)
        return False
    return detect_version(document.value) is not None


def discover_targets(root_dir: Path, audit_config: AuditConfig, session: DocumentSession) -> List[Target]:
    """Root documents found by discovery, followed by the mapped ones."""
    targets: List[Target] = []

    if audit_config.discovery_patterns is not None:
        logger.debug("Looking for OpenAPI files in: %s", audit_config.discovery_patterns)
        for filename in find_candidate_files(root_dir, audit_config.discovery_patterns):
            if filename in audit_config.mapped_files:
                logger.debug("File is mapped to an existing ID and excluded from discovery: %s", filename)
                continue
            if is_openapi(root_dir / filename, session):
                targets.append(Target(filename))
        logger.debug("Discovered OpenAPI files: %s", [t.filename for t in targets])

    for filename, api_id in audit_config.mapped_files.items():
        targets.append(Target(filename, api_id))
    return targets

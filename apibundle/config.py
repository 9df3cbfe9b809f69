"""Configuration paths and constants for apibundle."""

from __future__ import annotations

import os
import re
from pathlib import Path

BASE_DIR = Path(os.environ.get("APIBUNDLE_HOME", str(Path.home() / ".apibundle"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

# Project-level audit configuration, looked up in the directory being scanned
CONF_FILE = "apibundle-conf.yaml"

DEFAULT_PATTERNS = [
    "**/*.json",
    "**/*.yaml",
    "**/*.yml",
    "!node_modules/",
    "!tsconfig.json",
]
UUID_REGEX = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
MAX_NAME_LEN = 64

DEFAULT_LOG_LEVEL = "WARNING"
DEFAULT_INDENT = 2


def ensure_base_dirs() -> None:
    """Create the base directory for user configuration if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)

"""Configuration manager: user settings (TOML) and project audit config (YAML)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import toml
import yaml

from . import config
from .errors import ConfigError

logger = logging.getLogger(__name__)


DEFAULT_SETTINGS: Dict[str, Dict[str, Any]] = {
    "logging": {"level": config.DEFAULT_LOG_LEVEL},
    "bundle": {"indent": config.DEFAULT_INDENT},
}

_AUDIT_SECTIONS = {"discovery", "mapping", "fail_on"}


# ------------------------------------------------------------------
# User settings (~/.apibundle/config.toml)
# ------------------------------------------------------------------

def load_config() -> Dict[str, Dict[str, Any]]:
    """Load user settings, falling back to defaults for missing sections.

    Returns:
        Dict with ``logging`` and ``bundle`` sections.
    """
    settings = {section: dict(values) for section, values in DEFAULT_SETTINGS.items()}
    if not config.CONFIG_FILE.exists():
        return settings

    try:
        loaded = toml.load(config.CONFIG_FILE)
    except (toml.TomlDecodeError, OSError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", config.CONFIG_FILE, exc)
        return settings

    for section, values in loaded.items():
        if isinstance(values, dict):
            settings.setdefault(section, {}).update(values)
    return settings


def save_config(settings: Dict[str, Dict[str, Any]]) -> Path:
    """Write *settings* to the user config file and return its path."""
    config.ensure_base_dirs()
    with open(config.CONFIG_FILE, "w", encoding="utf-8") as f:
        toml.dump(settings, f)
    return config.CONFIG_FILE


def get_setting(section: str, key: str) -> Any:
    return load_config().get(section, {}).get(key, DEFAULT_SETTINGS.get(section, {}).get(key))


# ------------------------------------------------------------------
# Project audit config (apibundle-conf.yaml)
# ------------------------------------------------------------------

@dataclass
class AuditConfig:
    """Which root documents to bundle in a directory tree.

    ``discovery_patterns`` is ``None`` when discovery is disabled;
    ``mapped_files`` maps a relative filename to its remote API id.
    """
    discovery_patterns: Optional[List[str]] = field(default_factory=lambda: list(config.DEFAULT_PATTERNS))
    mapped_files: Dict[str, str] = field(default_factory=dict)


def read_audit_config(root_dir: Path) -> AuditConfig:
    """Read ``apibundle-conf.yaml`` from *root_dir*, or return defaults.

    Raises:
        ConfigError: if the file is malformed or inconsistent.
    """
    conf_path = root_dir / config.CONF_FILE
    audit_config = AuditConfig()
    if not conf_path.exists():
        return audit_config

    try:
        raw = yaml.safe_load(conf_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Exception when trying to parse the file {conf_path}: {exc}") from exc

    audit = _validate(raw, conf_path)

    discovery = audit.get("discovery")
    if discovery is False:
        audit_config.discovery_patterns = None
    elif isinstance(discovery, dict) and discovery.get("search"):
        audit_config.discovery_patterns = list(discovery["search"])

    if audit.get("mapping"):
        audit_config.mapped_files = check_mapped_files(root_dir, audit["mapping"])

    if "fail_on" in audit:
        logger.debug("Ignoring 'fail_on' section of %s", conf_path)

    return audit_config


def _validate(raw: Any, conf_path: Path) -> Dict[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, dict) or set(raw) - {"audit"}:
        raise ConfigError(f"Invalid configuration file {conf_path}: expected a single 'audit' section")

    audit = raw.get("audit") or {}
    if not isinstance(audit, dict):
        raise ConfigError(f"Invalid configuration file {conf_path}: 'audit' must be a mapping")
    unknown = set(audit) - _AUDIT_SECTIONS
    if unknown:
        raise ConfigError(f"Invalid configuration file {conf_path}: unknown keys {sorted(unknown)}")

    discovery = audit.get("discovery")
    if discovery is not None and discovery is not False:
        if not isinstance(discovery, dict) or set(discovery) - {"search"}:
            raise ConfigError(f"Invalid configuration file {conf_path}: 'discovery' must be false or have 'search'")
        search = discovery.get("search")
        if search is not None and (
            not isinstance(search, list) or not all(isinstance(p, str) for p in search)
        ):
            raise ConfigError(f"Invalid configuration file {conf_path}: 'discovery.search' must be a list of patterns")

    mapping = audit.get("mapping")
    if mapping is not None and (
        not isinstance(mapping, dict)
        or not all(isinstance(k, str) and isinstance(v, str) for k, v in mapping.items())
    ):
        raise ConfigError(f"Invalid configuration file {conf_path}: 'mapping' must map filenames to API ids")

    return audit


def check_mapped_files(root_dir: Path, mapped_files: Dict[str, str]) -> Dict[str, str]:
    """Validate the ``mapping`` section: files exist, ids are UUIDs and unique."""
    file_map: Dict[str, str] = {}
    unique_ids: Dict[str, str] = {}
    for filename, api_id in mapped_files.items():
        if not (root_dir / filename).is_file():
            raise ConfigError(
                f'The file "{filename}" listed in the \'mapping\' section of the config file does not exist.'
            )
        if not config.UUID_REGEX.match(api_id):
            raise ConfigError(
                f'The API ID for the file "{filename}" listed in the \'mapping\' section '
                "of the config file is not a valid UUID."
            )
        if api_id in unique_ids:
            raise ConfigError(
                f'Found duplicate API Id in mappings: "{unique_ids[api_id]}" is mapped '
                f'to the same API Id {api_id} as "{filename}"'
            )
        unique_ids[api_id] = filename
        file_map[filename] = api_id
    return file_map

"""Pytest configuration and fixtures for apibundle tests."""

import shutil
import tempfile
import textwrap
from pathlib import Path
from typing import Callable, Dict, Generator

import pytest

from apibundle.session import DocumentSession


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path: Path, monkeypatch):
    """Keep every test away from the real ~/.apibundle settings."""
    home = tmp_path / "apibundle-home"
    monkeypatch.setattr("apibundle.config.BASE_DIR", home)
    monkeypatch.setattr("apibundle.config.CONFIG_FILE", home / "config.toml")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def write_tree(temp_dir: Path) -> Callable[[Dict[str, str]], Path]:
    """Write ``{relative path: text}`` under ``temp_dir`` and return the directory.

    Texts are dedented so tests can inline indented YAML.
    """

    def _write(files: Dict[str, str]) -> Path:
        for name, text in files.items():
            path = temp_dir / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(textwrap.dedent(text).lstrip("\n"), encoding="utf-8")
        return temp_dir

    return _write


@pytest.fixture
def session() -> Generator[DocumentSession, None, None]:
    with DocumentSession() as s:
        yield s


@pytest.fixture
def petstore_path() -> Path:
    """Multi-file OpenAPI 3 sample split across YAML and JSON files."""
    return Path(__file__).parent / "fixtures" / "petstore"

"""Pytest configuration and fixtures for wikidelta tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Generator, List

import pytest

from wikidelta.models import CodeSymbol, ParsedFile, SourceLocation, SymbolMember
from wikidelta.parser import PythonSymbolParser
from wikidelta.storage import SQLiteArtifactStore


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture(autouse=True)
def wikidelta_home(temp_dir: Path, monkeypatch) -> Path:
    """Point every config path at a throwaway directory.

    Modules import these paths at load time, so each importing module is
    patched as well as ``wikidelta.config``.
    """
    home = temp_dir / "home"
    state_dir = home / "state"
    artifact_db = state_dir / "artifacts.db"
    history_file = state_dir / "threshold_history.json"
    config_file = home / "config.toml"

    monkeypatch.setattr("wikidelta.config.BASE_DIR", home)
    monkeypatch.setattr("wikidelta.config.STATE_DIR", state_dir)
    monkeypatch.setattr("wikidelta.config.ARTIFACT_DB", artifact_db)
    monkeypatch.setattr("wikidelta.config.HISTORY_FILE", history_file)
    monkeypatch.setattr("wikidelta.config.CONFIG_FILE", config_file)
    monkeypatch.setattr("wikidelta.storage.ARTIFACT_DB", artifact_db)
    monkeypatch.setattr("wikidelta.storage.HISTORY_FILE", history_file)
    monkeypatch.setattr("wikidelta.config_manager.BASE_DIR", home)
    monkeypatch.setattr("wikidelta.config_manager.CONFIG_FILE", config_file)
    return home


@pytest.fixture
def sample_project_path() -> Path:
    """Get path to sample test project."""
    return Path(__file__).parent / "fixtures" / "sample_project"


@pytest.fixture
def sample_files(sample_project_path: Path) -> List[ParsedFile]:
    """Parsed files of the sample project."""
    return PythonSymbolParser(sample_project_path).parse_project()


@pytest.fixture
def project_copy(temp_dir: Path, sample_project_path: Path) -> Path:
    """Writable copy of the sample project."""
    target = temp_dir / "project"
    shutil.copytree(sample_project_path, target)
    return target


@pytest.fixture
def artifact_store(temp_dir: Path) -> Generator[SQLiteArtifactStore, None, None]:
    """SQLite artifact store in a temporary file."""
    store = SQLiteArtifactStore(temp_dir / "artifacts.db")
    yield store
    store.close()


def make_symbol(name: str, kind: str = "class", exported: bool = True, uses: List[str] = None, line: int = 1) -> CodeSymbol:
    """Build a symbol whose members reference the type names in *uses*."""
    return CodeSymbol(
        name=name,
        kind=kind,
        signature=f"{kind} {name}",
        modifiers=["export"] if exported else [],
        location=SourceLocation(line=line, end_line=line + 5),
        members=[SymbolMember(name=u.lower(), type=u) for u in (uses or [])],
    )


@pytest.fixture
def symbol_factory():
    """The :func:`make_symbol` builder."""
    return make_symbol


@pytest.fixture
def foo_files() -> List[ParsedFile]:
    """``a.ts`` exports class ``Foo``; ``b.ts`` declares ``Bar`` which uses it."""
    return [
        ParsedFile(path="a.ts", symbols=[make_symbol("Foo")]),
        ParsedFile(path="b.ts", symbols=[make_symbol("Bar", exported=False, uses=["Foo"])]),
    ]

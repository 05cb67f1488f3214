"""Tests for Python symbol extraction."""

from pathlib import Path

from wikidelta.interfaces import ParsedFileProvider
from wikidelta.parser import PythonSymbolParser


def _symbols(parsed):
    return {s.name: s for s in parsed.symbols}


def test_parser_initialization(temp_dir: Path):
    """Test parser can be initialized with a project root."""
    parser = PythonSymbolParser(temp_dir)
    assert parser.project_root == temp_dir
    assert isinstance(parser, ParsedFileProvider)


def test_discover_skips_tooling_dirs(temp_dir: Path):
    """Virtualenvs and caches are never parsed."""
    (temp_dir / "pkg").mkdir()
    (temp_dir / "pkg" / "mod.py").write_text("x = 1\n")
    (temp_dir / ".venv" / "lib").mkdir(parents=True)
    (temp_dir / ".venv" / "lib" / "dep.py").write_text("y = 2\n")
    (temp_dir / "notes.txt").write_text("not python\n")

    assert PythonSymbolParser(temp_dir).discover() == ["pkg/mod.py"]


def test_parse_functions_and_classes(temp_dir: Path):
    """Classes, methods and functions are extracted with their type text."""
    source = '''
class Repo(Base):
    """Stores things."""
    items: List[Item]

    def get(self, key: Key) -> Optional[Item]:
        return Item(key)


def build(config: Config) -> Repo:
    """Create a repo."""
    return Repo()


def _helper():
    pass
'''
    parsed = PythonSymbolParser(temp_dir).parse_source("pkg/repo.py", source)
    symbols = _symbols(parsed)

    repo = symbols["Repo"]
    assert repo.kind == "class"
    assert repo.signature == "class Repo(Base)"
    assert repo.description == "Stores things."
    assert repo.modifiers == ["export"]
    assert {m.type for m in repo.members} == {"Base", "List[Item]"}

    get = symbols["Repo.get"]
    assert get.kind == "method"
    assert get.modifiers == []
    assert [p.name for p in get.parameters] == ["key"]
    assert get.return_type == "Optional[Item]"
    assert [m.type for m in get.members] == ["Item"]

    build = symbols["build"]
    assert build.kind == "function"
    assert build.signature == "def build(config: Config) -> Repo"
    assert build.location.line == 10

    assert symbols["_helper"].modifiers == []


def test_syntax_error_yields_empty_file(temp_dir: Path):
    """A file that does not parse contributes no symbols."""
    parsed = PythonSymbolParser(temp_dir).parse_source("bad.py", "def broken(:\n")
    assert parsed.path == "bad.py"
    assert parsed.symbols == []


def test_parse_files_skips_missing_and_foreign(sample_project_path: Path):
    """Missing files and non-Python files are skipped."""
    parser = PythonSymbolParser(sample_project_path)
    parsed = parser.parse_files(["src/shop/models.py", "src/shop/missing.py", "README.md"])

    assert [p.path for p in parsed] == ["src/shop/models.py"]


def test_parse_sample_project(sample_files):
    """Test parsing the complete sample project."""
    by_path = {p.path: _symbols(p) for p in sample_files}

    assert set(by_path) >= {"src/shop/models.py", "src/shop/processor.py", "src/billing/invoice.py"}
    assert "Order" in by_path["src/shop/models.py"]
    assert "OrderProcessor.place" in by_path["src/shop/processor.py"]
    assert by_path["src/billing/invoice.py"]["create_invoice"].return_type == "Invoice"

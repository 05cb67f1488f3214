"""Python symbol extraction built on the standard ``ast`` module.

Produces :class:`~wikidelta.models.ParsedFile` records whose type text
(annotations, base classes, instantiated classes) feeds the symbol
tracker's dependency scraping.
"""

from __future__ import annotations

import ast
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Set, Union

from .config import SUPPORTED_EXTENSIONS
from .models import CodeSymbol, ParsedFile, SourceLocation, SymbolMember, SymbolParameter

logger = logging.getLogger(__name__)

SKIP_DIRS: Set[str] = {
    ".venv", "venv", "__pycache__", "node_modules", ".git",
    "site-packages", ".tox", ".pytest_cache", "build", "dist",
    ".mypy_cache", ".ruff_cache", "htmlcov", ".eggs",
    "egg-info", ".wikidelta",
}


class PythonSymbolParser:
    """:class:`~wikidelta.interfaces.ParsedFileProvider` for Python sources.

    Paths handed to :meth:`parse_files` are relative to *project_root* and
    are kept relative (POSIX separators) in the resulting records.
    """

    def __init__(self, project_root: Union[str, Path]) -> None:
        self.project_root = Path(project_root)

    def discover(self) -> List[str]:
        paths: List[str] = []
        for fp in sorted(self.project_root.rglob("*")):
            if fp.suffix not in SUPPORTED_EXTENSIONS or not fp.is_file():
                continue
            rel = fp.relative_to(self.project_root)
            if any(part in SKIP_DIRS or part.endswith(".egg-info") for part in rel.parts):
                continue
            paths.append(rel.as_posix())
        return paths

    def parse_project(self) -> List[ParsedFile]:
        return self.parse_files(self.discover())

    def parse_files(self, paths: Sequence[str]) -> List[ParsedFile]:
        parsed: List[ParsedFile] = []
        for rel_path in paths:
            target = self.project_root / rel_path
            if target.suffix not in SUPPORTED_EXTENSIONS:
                continue
            if not target.is_file():
                logger.debug("Skipping missing file %s", rel_path)
                continue
            try:
                source = target.read_text(encoding="utf-8", errors="ignore")
            except OSError as exc:
                logger.warning("Could not read %s: %s", target, exc)
                continue
            parsed.append(self.parse_source(Path(rel_path).as_posix(), source))
        return parsed

    def parse_source(self, rel_path: str, source: str) -> ParsedFile:
        try:
            tree = ast.parse(source)
        except SyntaxError as exc:
            logger.warning("SyntaxError in %s: %s", rel_path, exc)
            return ParsedFile(path=rel_path, symbols=[], raw_content=source)

        visitor = _SymbolVisitor()
        visitor.visit(tree)
        return ParsedFile(path=rel_path, symbols=visitor.symbols, raw_content=source)


class _SymbolVisitor(ast.NodeVisitor):
    """Collects classes, functions and methods with their type text."""

    def __init__(self) -> None:
        self.symbols: List[CodeSymbol] = []
        self.scope_stack: List[str] = []

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        members: List[SymbolMember] = [
            SymbolMember(name="(base)", type=_unparse(base)) for base in node.bases
        ]
        for stmt in node.body:
            if isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
                members.append(SymbolMember(name=stmt.target.id, type=_unparse(stmt.annotation)))

        bases = ", ".join(_unparse(b) or "" for b in node.bases)
        self.symbols.append(CodeSymbol(
            name=self._qualname(node.name),
            kind="class",
            signature=f"class {node.name}({bases})" if bases else f"class {node.name}",
            description=_summary(node),
            modifiers=self._modifiers(node.name),
            location=_location(node),
            members=members,
        ))

        self.scope_stack.append(node.name)
        self.generic_visit(node)
        self.scope_stack.pop()

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._visit_function(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._visit_function(node)

    def _visit_function(self, node: ast.AST) -> None:
        assert isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef))
        args = node.args
        all_args = args.posonlyargs + args.args + args.kwonlyargs
        if args.vararg:
            all_args.append(args.vararg)
        if args.kwarg:
            all_args.append(args.kwarg)

        parameters = [
            SymbolParameter(name=a.arg, type=_unparse(a.annotation))
            for a in all_args
            if a.arg not in ("self", "cls")
        ]
        members = [SymbolMember(name="(call)", type=name) for name in _instantiated_classes(node)]

        prefix = "async def" if isinstance(node, ast.AsyncFunctionDef) else "def"
        returns = _unparse(node.returns)
        signature = f"{prefix} {node.name}({ast.unparse(args)})"
        if returns:
            signature += f" -> {returns}"

        self.symbols.append(CodeSymbol(
            name=self._qualname(node.name),
            kind="method" if self.scope_stack else "function",
            signature=signature,
            description=_summary(node),
            modifiers=self._modifiers(node.name),
            location=_location(node),
            members=members,
            parameters=parameters,
            return_type=returns,
        ))
        # nested functions are part of their parent's body

    def _qualname(self, name: str) -> str:
        return ".".join(self.scope_stack + [name])

    def _modifiers(self, name: str) -> List[str]:
        # module-level names without a leading underscore form the public API
        if not self.scope_stack and not name.startswith("_"):
            return ["export"]
        return []


def _unparse(node: Optional[ast.AST]) -> Optional[str]:
    return ast.unparse(node) if node is not None else None


def _summary(node: ast.AST) -> str:
    doc = ast.get_docstring(node) or ""
    return doc.strip().splitlines()[0] if doc.strip() else ""


def _location(node: ast.AST) -> SourceLocation:
    return SourceLocation(
        line=node.lineno,
        end_line=getattr(node, "end_lineno", node.lineno) or node.lineno,
        column=node.col_offset,
    )


def _instantiated_classes(node: ast.AST) -> List[str]:
    """Capitalised names called inside *node*, e.g. ``Order(...)``."""
    names: List[str] = []
    for child in ast.walk(node):
        if isinstance(child, ast.Call) and isinstance(child.func, ast.Name):
            name = child.func.id
            if name[:1].isupper() and name not in names:
                names.append(name)
    return names

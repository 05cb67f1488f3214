"""Symbol dependency tracking across parsed source files.

The tracker keeps one immutable :class:`SymbolGraph` at a time. A build
assembles a complete new graph off to the side and swaps the reference in
under a lock, so readers holding the previous graph are never blocked and
never observe a half-built state.
"""

from __future__ import annotations

import dataclasses
import hashlib
import logging
import re
import threading
from collections import deque
from typing import Dict, Iterable, List, Optional, Set

from .models import (
    CHANGE_TYPE_ORDER,
    IMPACT_ORDER,
    CodeSymbol,
    ImpactLevel,
    ParsedFile,
    SymbolChange,
    SymbolSnapshot,
)

logger = logging.getLogger(__name__)

TYPE_REFERENCE = re.compile(r"\b([A-Z][a-zA-Z0-9]*)\b")

BUILTIN_TYPE_NAMES: Set[str] = {
    "string", "number", "boolean", "void", "any", "unknown", "null",
    "undefined", "object", "Promise", "Array", "Map", "Set", "Date", "RegExp",
    # typing names that show up in Python annotations
    "List", "Dict", "Tuple", "Optional", "Union", "Any", "None", "Callable",
    "Iterable", "Iterator", "Sequence", "Mapping",
}

CONTAINER_KINDS = {"class", "interface"}


def symbol_id(file_path: str, name: str, kind: str) -> str:
    return f"{file_path}:{name}:{kind}"


def symbol_hash(symbol: CodeSymbol) -> str:
    """First 16 hex chars of the md5 of ``name:kind:signature:description``."""
    data = f"{symbol.name}:{symbol.kind}:{symbol.signature or ''}:{symbol.description or ''}"
    return hashlib.md5(data.encode("utf-8")).hexdigest()[:16]


def extract_type_references(type_text: str) -> List[str]:
    return [m for m in TYPE_REFERENCE.findall(type_text or "") if m not in BUILTIN_TYPE_NAMES]


def extract_dependencies(symbol: CodeSymbol) -> List[str]:
    """Capitalised type names referenced by members, parameters and return type."""
    refs: List[str] = []
    for member in symbol.members:
        if member.type:
            refs.extend(extract_type_references(member.type))
    for param in symbol.parameters:
        if param.type:
            refs.extend(extract_type_references(param.type))
    if symbol.return_type:
        refs.extend(extract_type_references(symbol.return_type))
    # de-duplicate, keep first-seen order
    return list(dict.fromkeys(refs))


def module_name(file_path: str) -> str:
    """``src/<module>/...`` segment, else the parent directory, else ``root``."""
    parts = file_path.replace("\\", "/").split("/")
    if "src" in parts:
        index = parts.index("src")
        if index + 1 < len(parts):
            return parts[index + 1]
    if len(parts) >= 2 and parts[-2]:
        return parts[-2]
    return "root"


class SymbolGraph:
    """Immutable-after-construction symbol map with forward and reverse edges."""

    def __init__(self) -> None:
        self.symbols: Dict[str, SymbolSnapshot] = {}
        self.file_symbols: Dict[str, List[str]] = {}
        self.edges: Dict[str, Set[str]] = {}
        self.reverse_edges: Dict[str, Set[str]] = {}

    def add(self, snapshot: SymbolSnapshot) -> None:
        self.symbols[snapshot.id] = snapshot
        ids = self.file_symbols.setdefault(snapshot.file_path, [])
        if snapshot.id not in ids:
            ids.append(snapshot.id)

    def find_by_name(self, name: str, context_file: str) -> Optional[SymbolSnapshot]:
        exported_match: Optional[SymbolSnapshot] = None
        for snapshot in self.symbols.values():
            if snapshot.name != name:
                continue
            if snapshot.file_path == context_file:
                return snapshot
            if snapshot.exported and exported_match is None:
                exported_match = snapshot
        return exported_match

    def link(self) -> None:
        """Resolve dependency names into edges; unresolved names are dropped."""
        for sid, snapshot in self.symbols.items():
            self.edges.setdefault(sid, set())
            for dep_name in snapshot.dependencies:
                target = self.find_by_name(dep_name, snapshot.file_path)
                if target is None:
                    logger.debug("Unresolved dependency %s referenced by %s", dep_name, sid)
                    continue
                self.edges[sid].add(target.id)
                self.reverse_edges.setdefault(target.id, set()).add(sid)

        for target_id, dependents in self.reverse_edges.items():
            self.symbols[target_id].dependents = sorted(dependents)


class SymbolTracker:
    """Tracks symbol snapshots and the dependency graph between them."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._graph = SymbolGraph()

    @property
    def graph(self) -> SymbolGraph:
        return self._graph

    def _swap(self, graph: SymbolGraph) -> None:
        with self._lock:
            self._graph = graph

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def build_from_files(self, files: Iterable[ParsedFile]) -> None:
        """Replace the whole symbol map with the symbols of *files*."""
        graph = SymbolGraph()

        for parsed in files:
            path = getattr(parsed, "path", None)
            if not path:
                logger.warning("Skipping parsed file without a path: %r", parsed)
                continue
            graph.file_symbols.setdefault(path, [])
            for symbol in parsed.symbols:
                if not symbol.name or not symbol.kind:
                    logger.warning("Skipping malformed symbol in %s: %r", path, symbol)
                    continue
                graph.add(self._snapshot(symbol, path))

        graph.link()
        self._swap(graph)
        logger.debug("Built symbol graph with %d symbols", len(graph.symbols))

    @staticmethod
    def _snapshot(symbol: CodeSymbol, file_path: str) -> SymbolSnapshot:
        modifiers = symbol.modifiers or []
        location = symbol.location
        return SymbolSnapshot(
            id=symbol_id(file_path, symbol.name, symbol.kind),
            name=symbol.name,
            kind=symbol.kind,
            signature=symbol.signature or "",
            description=symbol.description or "",
            hash=symbol_hash(symbol),
            file_path=file_path,
            start_line=location.line if location else 0,
            end_line=location.end_line if location else 0,
            dependencies=extract_dependencies(symbol),
            exported="export" in modifiers or "public" in modifiers,
            imported="import" in modifiers,
        )

    def export_snapshot(self) -> Dict[str, SymbolSnapshot]:
        return dict(self._graph.symbols)

    def import_snapshot(self, snapshots: Dict[str, SymbolSnapshot]) -> None:
        graph = SymbolGraph()
        for snapshot in snapshots.values():
            graph.add(dataclasses.replace(
                snapshot,
                dependencies=list(snapshot.dependencies),
                dependents=[],
            ))
        graph.link()
        self._swap(graph)

    def clear(self) -> None:
        self._swap(SymbolGraph())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def files(self) -> List[str]:
        return list(self._graph.file_symbols)

    def get_symbol(self, sid: str) -> Optional[SymbolSnapshot]:
        return self._graph.symbols.get(sid)

    def get_symbols_by_file(self, file_path: str) -> List[SymbolSnapshot]:
        graph = self._graph
        return [graph.symbols[sid] for sid in graph.file_symbols.get(file_path, []) if sid in graph.symbols]

    def get_symbol_dependencies(self, sid: str) -> List[SymbolSnapshot]:
        graph = self._graph
        return [graph.symbols[d] for d in sorted(graph.edges.get(sid, ())) if d in graph.symbols]

    def get_symbol_dependents(self, sid: str) -> List[SymbolSnapshot]:
        graph = self._graph
        return [graph.symbols[d] for d in sorted(graph.reverse_edges.get(sid, ())) if d in graph.symbols]

    def get_affected_symbols(self, sid: str, depth: int = 2) -> Set[str]:
        """Ids reachable over reverse edges; the start symbol counts as the first level."""
        graph = self._graph
        affected: Set[str] = set()
        if depth <= 0:
            return affected

        frontier = deque([(sid, depth)])
        while frontier:
            current, remaining = frontier.popleft()
            if remaining <= 0 or current in affected:
                continue
            affected.add(current)
            for dependent in graph.reverse_edges.get(current, ()):
                if dependent not in affected:
                    frontier.append((dependent, remaining - 1))

        return affected

    def get_symbol_page_mapping(self) -> Dict[str, List[str]]:
        mapping: Dict[str, List[str]] = {}
        for sid, snapshot in self._graph.symbols.items():
            pages = [f"module-{module_name(snapshot.file_path)}"]
            if snapshot.exported:
                pages.append("api-reference")
            mapping[sid] = pages
        return mapping

    # ------------------------------------------------------------------
    # Change detection
    # ------------------------------------------------------------------

    def detect_changes(self, previous: "SymbolTracker") -> List[SymbolChange]:
        """Compare *previous* against this tracker, most severe changes first."""
        old_symbols = previous.graph.symbols
        new_symbols = self._graph.symbols
        changes: List[SymbolChange] = []

        for sid, old in old_symbols.items():
            new = new_symbols.get(sid)
            if new is None:
                changes.append(SymbolChange(
                    symbol_id=sid,
                    symbol_name=old.name,
                    symbol_kind=old.kind,
                    file_path=old.file_path,
                    change_type="deleted",
                    impact_level=self._assess_impact(old, "deleted", previous.graph),
                    old_snapshot=old,
                ))
            elif old.hash != new.hash:
                changes.append(SymbolChange(
                    symbol_id=sid,
                    symbol_name=new.name,
                    symbol_kind=new.kind,
                    file_path=new.file_path,
                    change_type="modified",
                    impact_level=self._assess_impact(new, "modified"),
                    old_snapshot=old,
                    new_snapshot=new,
                ))

        for sid, new in new_symbols.items():
            if sid not in old_symbols:
                changes.append(SymbolChange(
                    symbol_id=sid,
                    symbol_name=new.name,
                    symbol_kind=new.kind,
                    file_path=new.file_path,
                    change_type="added",
                    impact_level=self._assess_impact(new, "added"),
                    new_snapshot=new,
                ))

        changes.sort(key=lambda c: (IMPACT_ORDER[c.impact_level], CHANGE_TYPE_ORDER[c.change_type]))
        return changes

    def _assess_impact(
        self, snapshot: SymbolSnapshot, change_type: str, graph: Optional[SymbolGraph] = None
    ) -> ImpactLevel:
        if change_type == "deleted":
            # a deleted symbol only has edges in the graph it was deleted from
            graph = graph or self._graph
            dependents = len(graph.reverse_edges.get(snapshot.id, ()))
            if dependents > 5:
                return "high"
            if dependents > 0:
                return "medium"
            return "low"
        if snapshot.exported:
            return "high"
        if snapshot.kind in CONTAINER_KINDS:
            return "medium"
        return "low"

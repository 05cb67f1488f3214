"""Impact propagation from file changes to the artifacts they invalidate."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .models import (
    PRIORITY_NUMBERS,
    AffectedArtifact,
    ChangeInfo,
    ImpactItem,
    ImpactLevel,
    ImpactNode,
    ImpactResult,
    ImpactRisk,
    ParsedFile,
    SymbolSnapshot,
    UpdatePriority,
    UpdatePriorityInfo,
)
from .symbol_tracker import SymbolTracker

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 2

LEVEL_DECAY: Dict[str, ImpactLevel] = {"high": "medium", "medium": "low", "low": "low"}
LEVEL_TO_PRIORITY: Dict[str, UpdatePriority] = {"high": "critical", "medium": "normal", "low": "low"}

FIXED_ARTIFACT_TITLES = {
    "overview": "Project Overview",
    "architecture": "Architecture",
    "api-reference": "API Reference",
}

SYMBOL_KIND_TO_ITEM = {
    "function": "function",
    "method": "function",
    "class": "class",
    "interface": "interface",
}


def artifact_title(artifact_id: str) -> str:
    if artifact_id in FIXED_ARTIFACT_TITLES:
        return FIXED_ARTIFACT_TITLES[artifact_id]
    if artifact_id.startswith("module-"):
        return f"Module: {artifact_id[len('module-'):]}"
    return artifact_id


def file_impact_level(change: ChangeInfo) -> ImpactLevel:
    if change.change_type == "deleted":
        return "high"
    if change.change_type == "added":
        return "low"
    return "medium"


def symbol_impact_level(symbol: SymbolSnapshot, change_type: str) -> ImpactLevel:
    if change_type == "deleted" or symbol.exported:
        return "high"
    if symbol.kind in ("class", "interface"):
        return "medium"
    return "low"


class ArtifactIndex:
    """Symbol → artifact membership plus the artifact dependency map."""

    def __init__(
        self,
        file_symbols: Optional[Dict[str, List[str]]] = None,
        symbol_artifacts: Optional[Dict[str, List[str]]] = None,
    ) -> None:
        self.file_symbols: Dict[str, List[str]] = file_symbols or {}
        self.symbol_artifacts: Dict[str, List[str]] = symbol_artifacts or {}
        self.artifact_dependencies: Dict[str, Set[str]] = {
            "overview": {"architecture"},
            "architecture": set(),
        }
        for artifacts in self.symbol_artifacts.values():
            for artifact_id in artifacts:
                if artifact_id.startswith("module-"):
                    self.artifact_dependencies[artifact_id] = {"api-reference"}
        self.artifact_dependencies["api-reference"] = set()


class ImpactAnalyzer:
    """Propagates file changes through the symbol graph onto artifacts.

    Args:
        tracker: Symbol tracker to build into; a fresh one is created if omitted
        max_depth: Number of reverse-dependency hops followed for indirect impacts
    """

    def __init__(self, tracker: Optional[SymbolTracker] = None, max_depth: int = DEFAULT_MAX_DEPTH):
        self.tracker = tracker or SymbolTracker()
        self.max_depth = max_depth
        self._lock = threading.Lock()
        self._index = ArtifactIndex()

    @property
    def artifact_dependencies(self) -> Dict[str, Set[str]]:
        return self._index.artifact_dependencies

    def initialize(self, files: Iterable[ParsedFile]) -> None:
        """Build the symbol graph and artifact index for *files*."""
        self.tracker.build_from_files(list(files))
        index = ArtifactIndex(
            file_symbols={path: [s.id for s in self.tracker.get_symbols_by_file(path)] for path in self.tracker.files},
            symbol_artifacts=self.tracker.get_symbol_page_mapping(),
        )
        with self._lock:
            self._index = index
        logger.info(
            "Impact index ready: %d file(s), %d artifact(s)",
            len(index.file_symbols),
            len(index.artifact_dependencies),
        )

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def analyze_impact(self, changes: Iterable[ChangeInfo]) -> ImpactResult:
        index = self._index
        changes = [c for c in changes if _valid_change(c)]

        direct = self._direct_impacts(index, changes)
        indirect = self._indirect_impacts(direct)
        artifacts = self._affected_artifacts(index, direct + indirect)
        priorities = self._update_priority(index, artifacts)
        order = self.get_update_order(artifacts)
        effort = self.estimate_effort(direct, indirect, artifacts)
        risk = self.assess_risk(changes, direct, indirect)

        logger.info(
            "Impact analysis: %d direct, %d indirect, %d artifact(s), risk=%s",
            len(direct), len(indirect), len(artifacts), risk.overall_risk,
        )

        return ImpactResult(
            direct_impacts=direct,
            indirect_impacts=indirect,
            affected_artifacts=artifacts,
            update_priority=priorities,
            update_order=order,
            estimated_effort=effort,
            risk=risk,
        )

    def _direct_impacts(self, index: ArtifactIndex, changes: List[ChangeInfo]) -> List[ImpactNode]:
        impacts: List[ImpactNode] = []
        for change in changes:
            file_node = ImpactNode(
                id=f"file:{change.file_path}",
                type="file",
                name=change.file_path,
                impact_level=file_impact_level(change),
                change_type=change.change_type,
            )
            impacts.append(file_node)

            for sid in index.file_symbols.get(change.file_path, []):
                symbol = self.tracker.get_symbol(sid)
                if symbol is None:
                    continue
                impacts.append(ImpactNode(
                    id=f"symbol:{sid}",
                    type="symbol",
                    name=symbol.name,
                    impact_level=symbol_impact_level(symbol, change.change_type),
                    change_type=change.change_type,
                    affected_by=[file_node.id],
                ))
        return impacts

    def _indirect_impacts(self, direct: List[ImpactNode]) -> List[ImpactNode]:
        seen = {node.id for node in direct}
        indirect: List[ImpactNode] = []
        queue = deque(node for node in direct if node.type == "symbol")

        while queue:
            node = queue.popleft()
            if node.depth >= self.max_depth:
                continue
            for dependent in self.tracker.get_symbol_dependents(node.id[len("symbol:"):]):
                node_id = f"symbol:{dependent.id}"
                if node_id in seen:
                    continue
                seen.add(node_id)
                child = ImpactNode(
                    id=node_id,
                    type="symbol",
                    name=dependent.name,
                    impact_level=LEVEL_DECAY[node.impact_level],
                    change_type="modified",
                    affected_by=[node.id],
                    depth=node.depth + 1,
                )
                indirect.append(child)
                queue.append(child)

        return indirect

    @staticmethod
    def _affected_artifacts(index: ArtifactIndex, impacts: List[ImpactNode]) -> List[AffectedArtifact]:
        artifacts: Dict[str, AffectedArtifact] = {}

        for impact in impacts:
            if impact.type != "symbol":
                continue
            sid = impact.id[len("symbol:"):]
            for artifact_id in index.symbol_artifacts.get(sid, []):
                artifact = artifacts.get(artifact_id)
                if artifact is None:
                    artifact = AffectedArtifact(
                        artifact_id=artifact_id,
                        title=artifact_title(artifact_id),
                        priority=LEVEL_TO_PRIORITY[impact.impact_level],
                    )
                    artifacts[artifact_id] = artifact
                artifact.affected_symbols.append(sid)
                artifact.estimated_changes += 1
                if impact.impact_level == "high":
                    artifact.priority = "critical"
                artifact.reason = _reason(artifact)

        return list(artifacts.values())

    @staticmethod
    def _update_priority(index: ArtifactIndex, artifacts: List[AffectedArtifact]) -> List[UpdatePriorityInfo]:
        affected_ids = {a.artifact_id for a in artifacts}
        priorities = [
            UpdatePriorityInfo(
                artifact_id=a.artifact_id,
                priority=PRIORITY_NUMBERS[a.priority],
                dependencies=sorted(d for d in index.artifact_dependencies.get(a.artifact_id, ()) if d in affected_ids),
                estimated_time=a.estimated_changes * 50,
            )
            for a in artifacts
        ]
        priorities.sort(key=lambda p: p.priority)
        return priorities

    def get_update_order(self, artifacts: List[AffectedArtifact]) -> List[str]:
        """Affected artifact ids with dependencies before dependents; cycles are broken."""
        dependencies = self._index.artifact_dependencies
        affected_ids = [a.artifact_id for a in artifacts]
        affected = set(affected_ids)

        def deps_of(artifact_id: str):
            return iter(sorted(d for d in dependencies.get(artifact_id, ()) if d in affected))

        visited: Set[str] = set()
        order: List[str] = []

        for root in affected_ids:
            if root in visited:
                continue
            visiting = {root}
            stack = [(root, deps_of(root))]
            while stack:
                current, pending = stack[-1]
                pushed = False
                for dep in pending:
                    if dep in visited or dep in visiting:
                        continue
                    visiting.add(dep)
                    stack.append((dep, deps_of(dep)))
                    pushed = True
                    break
                if not pushed:
                    stack.pop()
                    visiting.discard(current)
                    visited.add(current)
                    order.append(current)

        return order

    @staticmethod
    def estimate_effort(
        direct: List[ImpactNode],
        indirect: List[ImpactNode],
        artifacts: List[AffectedArtifact],
    ) -> float:
        return 100 * len(direct) + 50 * len(indirect) + 30 * sum(a.estimated_changes for a in artifacts)

    @staticmethod
    def assess_risk(
        changes: List[ChangeInfo],
        direct: List[ImpactNode],
        indirect: List[ImpactNode],
    ) -> ImpactRisk:
        factors: List[str] = []
        suggestions: List[str] = []
        breaking = False

        deleted = sum(1 for c in changes if c.change_type == "deleted")
        if deleted:
            factors.append(f"{deleted} file(s) deleted")
            breaking = True

        high_count = sum(1 for n in direct if n.impact_level == "high")
        if high_count > 5:
            factors.append(f"{high_count} high-impact changes")

        if len(indirect) > 20:
            factors.append(f"{len(indirect)} indirect impacts detected")
            suggestions.append("Consider updating in smaller batches")

        exported = sum(1 for n in direct if n.type == "symbol" and n.impact_level == "high")
        if exported:
            factors.append(f"{exported} exported symbol(s) affected")
            suggestions.append("Review API documentation for breaking changes")

        if breaking or high_count > 10 or len(indirect) > 50:
            overall = "high"
        elif high_count > 3 or len(indirect) > 10:
            overall = "medium"
        else:
            overall = "low"

        if overall == "high":
            suggestions.append("Prefer full regeneration over incremental update")

        return ImpactRisk(
            overall_risk=overall,
            risk_factors=factors,
            mitigation_suggestions=suggestions,
            breaking_changes=breaking,
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_affected_artifacts_for_file(self, file_path: str) -> List[str]:
        index = self._index
        artifacts: List[str] = []
        for sid in index.file_symbols.get(file_path, []):
            for artifact_id in index.symbol_artifacts.get(sid, []):
                if artifact_id not in artifacts:
                    artifacts.append(artifact_id)
        return artifacts

    def get_affected_artifacts_for_symbol(self, sid: str) -> List[str]:
        return list(self._index.symbol_artifacts.get(sid, []))

    def to_impact_items(self, result: ImpactResult) -> Tuple[List[ImpactItem], List[ImpactItem]]:
        """Convert an :class:`ImpactResult` into ``(direct, indirect)`` risk-engine items.

        Affected artifacts are appended to the indirect list as ``document`` items.
        """
        direct = [self._node_to_item(n) for n in result.direct_impacts]
        indirect = [self._node_to_item(n) for n in result.indirect_impacts]
        for artifact in result.affected_artifacts:
            indirect.append(ImpactItem(
                id=artifact.artifact_id,
                type="document",
                name=artifact.title,
                path=artifact.artifact_id,
                impact_level="high" if artifact.priority == "critical" else "medium",
                description=artifact.reason,
                affected_by=[f"symbol:{sid}" for sid in artifact.affected_symbols],
            ))
        return direct, indirect

    def _node_to_item(self, node: ImpactNode) -> ImpactItem:
        if node.type == "file":
            path = node.name
            item_type = "file"
        else:
            symbol = self.tracker.get_symbol(node.id[len("symbol:"):])
            path = symbol.file_path if symbol else ""
            item_type = SYMBOL_KIND_TO_ITEM.get(symbol.kind, "module") if symbol else "module"

        if "test" in path.lower():
            item_type = "test"

        return ImpactItem(
            id=node.id,
            type=item_type,
            name=node.name,
            path=path,
            impact_level=node.impact_level,
            description=f"{node.change_type} ({node.type}, depth {node.depth})",
            affected_by=list(node.affected_by),
        )


def _valid_change(change: ChangeInfo) -> bool:
    if not getattr(change, "file_path", None) or change.change_type not in ("added", "modified", "deleted", "renamed"):
        logger.warning("Skipping malformed change record: %r", change)
        return False
    return True


def _reason(artifact: AffectedArtifact) -> str:
    parts = []
    if artifact.affected_symbols:
        parts.append(f"{len(artifact.affected_symbols)} symbol(s) affected")
    if artifact.priority == "critical":
        parts.append("high impact changes")
    return ", ".join(parts) or "Changes detected"

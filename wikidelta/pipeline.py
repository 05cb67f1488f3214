"""One update cycle: detect → propagate → assess → decide → schedule → execute."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from .config_manager import WikideltaSettings
from .impact import ImpactAnalyzer
from .interfaces import ContentGenerator, ParsedFileProvider, VersionControlSource
from .models import (
    Artifact,
    BatchPlan,
    ChangeInfo,
    CodeSymbol,
    ImpactResult,
    MergeConflict,
    ParsedFile,
    RiskAssessment,
    SourceLocation,
    SuggestedAction,
    SymbolChange,
    SymbolMember,
    SymbolSnapshot,
    UpdateOperation,
    UpdateResult,
    UpdateStrategy,
)
from .reconciler import ArtifactReconciler, ConflictPolicy, ReconcileOutcome
from .risk import RiskAssessmentService, SuggestionGenerator
from .scheduler import UpdateOptimizer
from .storage import SQLiteArtifactStore, load_threshold, save_threshold
from .symbol_tracker import SymbolTracker, module_name
from .threshold import AdaptiveThreshold
from .vcs import NotARepositoryError, content_hash, detect_file_changes, filesystem_reader

logger = logging.getLogger(__name__)

INDEX_ARTIFACT = "index"


@dataclass
class CycleReport:
    changes: List[ChangeInfo]
    symbol_changes: List[SymbolChange]
    impact: ImpactResult
    strategy: UpdateStrategy
    plan: BatchPlan
    risk: RiskAssessment
    suggestions: List[SuggestedAction]
    used_incremental: bool
    result: Optional[UpdateResult] = None
    outcomes: Dict[str, ReconcileOutcome] = field(default_factory=dict)

    @property
    def conflicts(self) -> Dict[str, List[MergeConflict]]:
        return {aid: o.conflicts for aid, o in self.outcomes.items() if o.conflicts}


def snapshot_to_symbol(snapshot: SymbolSnapshot) -> CodeSymbol:
    """Rebuild a :class:`CodeSymbol` from a stored snapshot, keeping its dependency names."""
    return CodeSymbol(
        name=snapshot.name,
        kind=snapshot.kind,
        signature=snapshot.signature,
        description=snapshot.description,
        modifiers=["export"] if snapshot.exported else [],
        location=SourceLocation(line=snapshot.start_line, end_line=snapshot.end_line),
        members=[SymbolMember(name="(dependency)", type=dep) for dep in snapshot.dependencies],
    )


def change_kind(changes: List[ChangeInfo]) -> str:
    """Collapse a change set into the risk engine's ``added/modified/removed`` vocabulary."""
    if any(c.change_type == "deleted" for c in changes):
        return "removed"
    if changes and all(c.change_type == "added" for c in changes):
        return "added"
    return "modified"


class UpdatePipeline:
    """Keeps a project's generated artifacts in sync with its source tree.

    Args:
        project_root: Working tree root; changed paths are relative to it
        source: Version-control collaborator
        parser: Parsed-file collaborator
        store: Artifact, file-hash and sync-state persistence
        generator: Content generator for ``update-artifact`` operations
        settings: Validated configuration
        threshold: Adaptive controller; loaded from its history file if omitted
        on_conflict: What to store when a three-way merge conflicts
    """

    def __init__(
        self,
        project_root: Union[str, Path],
        source: VersionControlSource,
        parser: ParsedFileProvider,
        store: SQLiteArtifactStore,
        generator: Optional[ContentGenerator] = None,
        settings: Optional[WikideltaSettings] = None,
        threshold: Optional[AdaptiveThreshold] = None,
        on_conflict: ConflictPolicy = "keep",
        history_path: Optional[Path] = None,
    ) -> None:
        self.project_root = Path(project_root)
        self.source = source
        self.parser = parser
        self.store = store
        self.settings = settings or WikideltaSettings()
        self.history_path = history_path
        self.threshold = threshold or load_threshold(history_path, self.settings.threshold.to_threshold_config())
        self.reconciler = ArtifactReconciler(store, generator, on_conflict=on_conflict)
        self.risk_service = RiskAssessmentService()
        self.suggestions = SuggestionGenerator()
        self.read_file = filesystem_reader(self.project_root)
        self.tracker = SymbolTracker()
        self._outcome_lock = threading.Lock()
        self._outcomes: Dict[str, ReconcileOutcome] = {}
        self._pending_hashes: Dict[str, Optional[str]] = {}

    def run(
        self,
        since: Optional[str] = None,
        dry_run: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> CycleReport:
        """Run one update cycle.

        Raises:
            NotARepositoryError: If the source reports no repository at the project root
        """
        if not self.source.is_repository(self.project_root):
            raise NotARepositoryError(self.project_root)

        since = since or self.store.get_state("last_revision")
        stored_hashes = self.store.get_file_hashes()
        changes = detect_file_changes(self.source, since, stored_hashes, self.read_file)

        current_paths = [p for p in self.source.changed_files_since(None) if self.read_file(p) is not None]
        current_files = self.parser.parse_files(current_paths)

        previous = SymbolTracker()
        previous.import_snapshot(self.store.load_symbols())
        self.tracker.build_from_files(current_files)
        symbol_changes = self.tracker.detect_changes(previous)

        # Deleted files only exist in the previous snapshot; keep them visible to impact analysis.
        analysis_files = list(current_files)
        for change in changes:
            if change.change_type == "deleted":
                old_symbols = previous.get_symbols_by_file(change.file_path)
                analysis_files.append(ParsedFile(
                    path=change.file_path,
                    symbols=[snapshot_to_symbol(s) for s in old_symbols],
                ))

        analyzer = ImpactAnalyzer(max_depth=self.settings.impact.max_depth)
        analyzer.initialize(analysis_files)

        project_size = max(1, len(current_paths))
        change_percentage = len(changes) / project_size * 100
        breakdown = {
            "added": sum(1 for c in changes if c.change_type == "added"),
            "modified": sum(1 for c in changes if c.change_type in ("modified", "renamed")),
            "deleted": sum(1 for c in changes if c.change_type == "deleted"),
        }
        first_sync = not stored_hashes
        used_incremental = (
            not first_sync
            and bool(changes)
            and self.threshold.should_use_incremental(project_size, change_percentage, breakdown)
        )

        plan_changes = changes
        if not used_incremental and changes:
            # full regeneration touches every current file
            seen = {c.file_path for c in changes}
            plan_changes = list(changes) + [
                ChangeInfo(file_path=p, change_type="modified") for p in current_paths if p not in seen
            ]

        optimizer = UpdateOptimizer(analyzer, self.settings.batch.to_batch_config(), self._execute)
        impact, strategy = optimizer.analyze_changes(plan_changes)
        plan = optimizer.optimize_batch(plan_changes, analysis=(impact, strategy))

        direct_items, indirect_items = analyzer.to_impact_items(impact)
        risk = self.risk_service.assess_risk(direct_items, indirect_items, change_kind(changes))
        suggestions = self.suggestions.generate(direct_items + indirect_items, risk.overall_risk, risk.factors)

        report = CycleReport(
            changes=changes,
            symbol_changes=symbol_changes,
            impact=impact,
            strategy=strategy,
            plan=plan,
            risk=risk,
            suggestions=suggestions,
            used_incremental=used_incremental,
        )

        logger.info(
            "%d change(s), %d symbol change(s), strategy=%s, incremental=%s, risk=%s",
            len(changes), len(symbol_changes), strategy.type, used_incremental, risk.overall_risk,
        )

        if dry_run or not changes:
            return report

        self._outcomes = {}
        self._pending_hashes = {}
        started = time.perf_counter()
        result = optimizer.execute_optimized(plan, cancel_event=cancel_event)
        elapsed_ms = (time.perf_counter() - started) * 1000

        report.result = result
        report.outcomes = dict(self._outcomes)

        self.threshold.record_result(project_size, change_percentage, used_incremental, result.success, elapsed_ms)
        save_threshold(self.threshold, self.history_path)

        if result.success:
            # hashes only advance with a complete cycle so failed files are detected again
            for path, digest in sorted(self._pending_hashes.items()):
                self.store.set_file_hash(path, digest)
            self.store.save_symbols(self.tracker.export_snapshot())
            try:
                self.store.set_state("last_revision", self.source.current_revision())
            except RuntimeError as exc:
                logger.warning("Could not record current revision: %s", exc)

        return report

    # ------------------------------------------------------------------
    # Operation execution
    # ------------------------------------------------------------------

    def _execute(self, operation: UpdateOperation) -> None:
        if operation.type == "parse-file":
            content = self.read_file(operation.target)
            with self._outcome_lock:
                self._pending_hashes[operation.target] = content_hash(content) if content is not None else None
        elif operation.type == "update-artifact":
            symbols = self._symbols_for(operation.target)
            files = sorted({s.file_path for s in symbols})
            outcome = self.reconciler.reconcile(operation.target, symbols, files)
            with self._outcome_lock:
                self._outcomes[operation.target] = outcome
        elif operation.type == "update-index":
            self._write_index()
        else:
            logger.debug("Nothing to do for %s", operation)

    def _symbols_for(self, artifact_id: str) -> List[SymbolSnapshot]:
        snapshots = list(self.tracker.export_snapshot().values())
        if artifact_id == "api-reference":
            return [s for s in snapshots if s.exported]
        if artifact_id.startswith("module-"):
            name = artifact_id[len("module-"):]
            return [s for s in snapshots if module_name(s.file_path) == name]
        return snapshots

    def _write_index(self) -> None:
        # project-wide pages list modules, so they follow the index
        snapshots = list(self.tracker.export_snapshot().values())
        for artifact_id in ("architecture", "overview"):
            outcome = self.reconciler.reconcile(artifact_id, snapshots, self.tracker.files)
            with self._outcome_lock:
                self._outcomes[artifact_id] = outcome

        artifact_ids = [a for a in self.store.list() if a != INDEX_ARTIFACT]
        lines = ["# Index", ""]
        for artifact_id in artifact_ids:
            artifact = self.store.load(artifact_id)
            title = artifact.title if artifact else artifact_id
            lines.append(f"- [{title}]({artifact_id}.md)")
        content = "\n".join(lines) + "\n"
        self.store.save(Artifact(
            artifact_id=INDEX_ARTIFACT,
            title="Index",
            content=content,
            base_content=content,
        ))

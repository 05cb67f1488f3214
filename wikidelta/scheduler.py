"""Batch planning and parallel execution of artifact update operations.

Plans are dependency-aware: ``parse-file`` batches come first and depend on
nothing, ``update-artifact`` batches are layered by the artifact dependency
map, and the single ``update-index`` batch closes the plan. Execution runs
every batch whose dependencies have finished as one wave on a shared
:class:`~concurrent.futures.ThreadPoolExecutor`.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout, as_completed, wait
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from .impact import ImpactAnalyzer
from .models import (
    PRIORITY_NUMBERS,
    BatchPlan,
    ChangeInfo,
    ImpactResult,
    PerformanceMetrics,
    UpdateBatch,
    UpdateError,
    UpdateOperation,
    UpdatePlan,
    UpdatePriority,
    UpdateResult,
    UpdateStrategy,
)

logger = logging.getLogger(__name__)

OperationExecutor = Callable[[UpdateOperation], Any]

CHANGE_PRIORITY: Dict[str, int] = {"deleted": 1, "modified": 2, "renamed": 3, "added": 4}
INDEX_PRIORITY = 10
ESTIMATED_TIME_PER_OPERATION = 100
PRIORITY_TIERS: Tuple[UpdatePriority, ...] = ("critical", "high", "normal", "low")


@dataclass
class BatchConfig:
    batch_size: int = 10
    parallelism: int = 4
    retry_attempts: int = 2
    retry_delay: float = 1.0
    timeout: Optional[float] = 30.0
    stop_on_dependency_failure: bool = False

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if self.parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        if self.retry_attempts < 0:
            raise ValueError("retry_attempts cannot be negative")


def noop_executor(operation: UpdateOperation) -> None:
    logger.debug("No executor configured, skipping %s", operation)


def batch_priority(operations: List[UpdateOperation]) -> UpdatePriority:
    average = sum(op.priority for op in operations) / len(operations)
    if average <= 1.5:
        return "critical"
    if average <= 2.5:
        return "high"
    if average <= 3.5:
        return "normal"
    return "low"


def _chunks(items: List[UpdateOperation], size: int) -> Iterable[List[UpdateOperation]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class UpdateOptimizer:
    """Decides an update strategy, plans batches and executes them.

    Args:
        analyzer: Initialized impact analyzer used to resolve affected artifacts
        config: Default batch configuration
        executor: Callable that performs one :class:`UpdateOperation`
    """

    def __init__(
        self,
        analyzer: ImpactAnalyzer,
        config: Optional[BatchConfig] = None,
        executor: Optional[OperationExecutor] = None,
    ):
        self.analyzer = analyzer
        self.config = config or BatchConfig()
        self.executor = executor or noop_executor
        self._hash_lock = threading.Lock()
        self._file_hashes: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Strategy
    # ------------------------------------------------------------------

    def analyze_changes(self, changes: List[ChangeInfo]) -> Tuple[ImpactResult, UpdateStrategy]:
        impact = self.analyzer.analyze_impact(changes)
        return impact, self.determine_strategy(changes, impact)

    @staticmethod
    def determine_strategy(changes: List[ChangeInfo], impact: ImpactResult) -> UpdateStrategy:
        count = len(changes)
        artifacts = [a.artifact_id for a in impact.affected_artifacts]
        files = [c.file_path for c in changes]

        if count > 100 or len(artifacts) > 50:
            return UpdateStrategy("full", "normal", files, artifacts, count * 200 + 5000)
        if count > 20 or len(artifacts) > 10:
            return UpdateStrategy("incremental", "high", files, artifacts, count * 150 + 2000)
        return UpdateStrategy("selective", "high", files, artifacts, count * 100 + 500)

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def optimize_batch(
        self,
        changes: List[ChangeInfo],
        batch_config: Optional[BatchConfig] = None,
        analysis: Optional[Tuple[ImpactResult, UpdateStrategy]] = None,
    ) -> BatchPlan:
        """Build a dependency-ordered plan; *analysis* reuses an earlier :meth:`analyze_changes` result."""
        config = batch_config or self.config
        impact, strategy = analysis or self.analyze_changes(changes)

        parse_ops = sorted(
            (
                UpdateOperation(
                    type="parse-file",
                    target=c.file_path,
                    priority=CHANGE_PRIORITY[c.change_type],
                    params={"change_type": c.change_type},
                )
                for c in changes
            ),
            key=lambda op: op.priority,
        )

        levels = self._artifact_levels(impact)
        artifact_stages: Dict[int, List[UpdateOperation]] = {}
        for artifact in impact.affected_artifacts:
            artifact_stages.setdefault(levels[artifact.artifact_id], []).append(UpdateOperation(
                type="update-artifact",
                target=artifact.artifact_id,
                priority=PRIORITY_NUMBERS[artifact.priority],
                params={
                    "impact_type": artifact.impact_type,
                    "affected_symbols": list(artifact.affected_symbols),
                },
            ))

        index_op = UpdateOperation(type="update-index", target="global", priority=INDEX_PRIORITY)

        stages: List[List[UpdateOperation]] = [parse_ops]
        for level in sorted(artifact_stages):
            stages.append(sorted(artifact_stages[level], key=lambda op: op.priority))
        stages.append([index_op])

        batches: List[UpdateBatch] = []
        for stage in stages:
            for chunk in _chunks(stage, config.batch_size):
                batches.append(UpdateBatch(
                    id=f"batch-{len(batches)}",
                    operations=chunk,
                    priority=batch_priority(chunk),
                    estimated_time=len(chunk) * ESTIMATED_TIME_PER_OPERATION,
                ))

        self._link_batches(batches, self.analyzer.artifact_dependencies)

        plan = BatchPlan(
            batches=batches,
            total_operations=sum(len(stage) for stage in stages),
            estimated_time=sum(b.estimated_time for b in batches),
            parallel_groups=self.calculate_parallel_groups(batches),
            strategy=strategy,
        )
        logger.info(
            "Planned %d operation(s) in %d batch(es), %d wave(s), strategy=%s",
            plan.total_operations, len(batches), plan.parallel_groups, strategy.type,
        )
        return plan

    @staticmethod
    def _artifact_levels(impact: ImpactResult) -> Dict[str, int]:
        """Level of each affected artifact; ``update_order`` lists dependencies first."""
        deps = {p.artifact_id: p.dependencies for p in impact.update_priority}
        levels: Dict[str, int] = {}
        for artifact_id in impact.update_order:
            known = [levels[d] for d in deps.get(artifact_id, []) if d in levels]
            levels[artifact_id] = max(known) + 1 if known else 0
        for artifact in impact.affected_artifacts:
            levels.setdefault(artifact.artifact_id, 0)
        return levels

    @staticmethod
    def _link_batches(batches: List[UpdateBatch], artifact_dependencies: Dict[str, Set[str]]) -> None:
        parse_batches = [b.id for b in batches if any(op.type == "parse-file" for op in b.operations)]
        artifact_home: Dict[str, str] = {}
        for batch in batches:
            for op in batch.operations:
                if op.type == "update-artifact":
                    artifact_home[op.target] = batch.id

        for batch in batches:
            kinds = {op.type for op in batch.operations}
            if "update-index" in kinds:
                batch.dependencies = [b.id for b in batches if b.id != batch.id]
                continue
            if "update-artifact" not in kinds:
                continue
            deps = list(parse_batches)
            for op in batch.operations:
                for dep_artifact in sorted(artifact_dependencies.get(op.target, ())):
                    home = artifact_home.get(dep_artifact)
                    if home and home != batch.id and home not in deps:
                        deps.append(home)
            batch.dependencies = [d for d in deps if d != batch.id]

    @staticmethod
    def calculate_parallel_groups(batches: List[UpdateBatch]) -> int:
        """Length of the longest dependency chain between batches."""
        if not batches:
            return 0
        by_id = {b.id: b for b in batches}
        depth: Dict[str, int] = {}
        remaining = list(batches)

        while remaining:
            progressed = False
            for batch in list(remaining):
                deps = [d for d in batch.dependencies if d in by_id]
                if all(d in depth for d in deps):
                    depth[batch.id] = 1 + max((depth[d] for d in deps), default=0)
                    remaining.remove(batch)
                    progressed = True
            if not progressed:
                logger.warning("Cyclic batch dependencies among %s", [b.id for b in remaining])
                for batch in remaining:
                    depth[batch.id] = 1
                break

        return max(depth.values())

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute_optimized(
        self,
        plan: BatchPlan,
        executor: Optional[OperationExecutor] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> UpdateResult:
        """Run *plan* wave by wave; a single failing operation never aborts the plan."""
        run = executor or self.executor
        config = self.config
        started = time.perf_counter()

        completed = failed = skipped = 0
        errors: List[UpdateError] = []
        durations: Dict[str, List[float]] = {"parse-file": [], "update-artifact": []}
        finished: Set[str] = set()
        broken: Set[str] = set()
        pending = list(plan.batches)
        cancelled = False

        with ThreadPoolExecutor(max_workers=config.parallelism, thread_name_prefix="wikidelta") as pool:
            while pending:
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    skipped += sum(len(b.operations) for b in pending)
                    logger.info("Update cancelled with %d batch(es) outstanding", len(pending))
                    break

                known = {b.id for b in plan.batches}
                wave = [b for b in pending if all(d in finished or d not in known for d in b.dependencies)]
                if not wave:
                    logger.warning("No runnable batch among %s", [b.id for b in pending])
                    skipped += sum(len(b.operations) for b in pending)
                    break

                runnable: List[UpdateBatch] = []
                for batch in wave:
                    pending.remove(batch)
                    if config.stop_on_dependency_failure and any(d in broken for d in batch.dependencies):
                        skipped += len(batch.operations)
                        broken.add(batch.id)
                        finished.add(batch.id)
                        logger.info("Skipping %s, a dependency failed", batch.id)
                    else:
                        runnable.append(batch)

                futures = {}
                for batch in runnable:
                    for op in batch.operations:
                        futures[pool.submit(self._run_operation, run, op)] = (batch.id, op)

                outcomes: Dict[Any, Tuple[bool, str, int, float]] = {}
                stragglers = []
                try:
                    for future in as_completed(futures, timeout=config.timeout):
                        outcomes[future] = future.result()
                except FutureTimeout:
                    for future in futures:
                        if future in outcomes:
                            continue
                        if future.done():
                            outcomes[future] = future.result()
                            continue
                        if not future.cancel():
                            stragglers.append(future)
                        outcomes[future] = (False, f"Operation timed out after {config.timeout}s", 0, 0.0)

                for future, (ok, error, retries, elapsed) in outcomes.items():
                    batch_id, op = futures[future]
                    if ok:
                        completed += 1
                        if op.type in durations:
                            durations[op.type].append(elapsed)
                    else:
                        failed += 1
                        broken.add(batch_id)
                        errors.append(UpdateError(operation=op, error=error, retry_count=retries))

                if stragglers:
                    # dependents must not start while a timed-out operation is still running
                    logger.warning("Waiting for %d timed-out operation(s) to stop", len(stragglers))
                    wait(stragglers)

                finished.update(b.id for b in runnable)

        total_ms = (time.perf_counter() - started) * 1000
        file_times = durations["parse-file"]
        artifact_times = durations["update-artifact"]
        metrics = PerformanceMetrics(
            total_time=total_ms,
            files_processed=len(file_times),
            artifacts_updated=len(artifact_times),
            average_file_time=sum(file_times) / len(file_times) if file_times else 0.0,
            average_artifact_time=sum(artifact_times) / len(artifact_times) if artifact_times else 0.0,
        )

        result = UpdateResult(
            success=failed == 0 and not cancelled,
            completed_operations=completed,
            failed_operations=failed,
            errors=errors,
            metrics=metrics,
            skipped_operations=skipped,
            cancelled=cancelled,
        )
        logger.info("%s", result)
        return result

    def _run_operation(self, run: OperationExecutor, op: UpdateOperation) -> Tuple[bool, str, int, float]:
        """Run one operation with linear-backoff retries.

        Returns ``(ok, error, retry_count, elapsed_ms)``.
        """
        attempts = self.config.retry_attempts
        last_error = ""
        started = time.perf_counter()

        for attempt in range(attempts + 1):
            try:
                run(op)
                return True, "", attempt, (time.perf_counter() - started) * 1000
            except Exception as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                logger.warning("Operation %s failed (attempt %d/%d): %s", op, attempt + 1, attempts + 1, last_error)
                if attempt < attempts:
                    time.sleep(self.config.retry_delay * (attempt + 1))

        return False, last_error, attempts, (time.perf_counter() - started) * 1000

    # ------------------------------------------------------------------
    # Prioritisation / bookkeeping
    # ------------------------------------------------------------------

    @staticmethod
    def prioritize_updates(impact: ImpactResult) -> List[UpdatePlan]:
        dependencies = {p.artifact_id: p.dependencies for p in impact.update_priority}
        plans: List[UpdatePlan] = []
        scheduled: Set[str] = set()

        for tier in PRIORITY_TIERS:
            for artifact in impact.affected_artifacts:
                if artifact.priority != tier or artifact.artifact_id in scheduled:
                    continue
                scheduled.add(artifact.artifact_id)
                plans.append(UpdatePlan(
                    artifact_id=artifact.artifact_id,
                    operations=[UpdateOperation(
                        type="update-artifact",
                        target=artifact.artifact_id,
                        priority=PRIORITY_NUMBERS[tier],
                        params={"impact_type": artifact.impact_type},
                    )],
                    priority=tier,
                    dependencies=list(dependencies.get(artifact.artifact_id, [])),
                    estimated_time=artifact.estimated_changes * ESTIMATED_TIME_PER_OPERATION,
                ))

        return plans

    def update_file_hash(self, file_path: str, digest: str) -> None:
        with self._hash_lock:
            self._file_hashes[file_path] = digest

    def get_file_hash(self, file_path: str) -> Optional[str]:
        with self._hash_lock:
            return self._file_hashes.get(file_path)

    @property
    def file_hashes(self) -> Dict[str, str]:
        with self._hash_lock:
            return dict(self._file_hashes)

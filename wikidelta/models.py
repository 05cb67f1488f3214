"""Core data models shared by tracking, impact, scheduling and diff layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

ChangeType = Literal["added", "modified", "deleted", "renamed"]
ImpactLevel = Literal["high", "medium", "low"]
UpdatePriority = Literal["critical", "high", "normal", "low"]
RiskLevel = Literal["low", "medium", "high", "critical"]
OperationType = Literal[
    "parse-file",
    "update-artifact",
    "regenerate-section",
    "update-references",
    "update-index",
    "invalidate-cache",
]

IMPACT_ORDER: Dict[str, int] = {"high": 0, "medium": 1, "low": 2}
CHANGE_TYPE_ORDER: Dict[str, int] = {"deleted": 0, "modified": 1, "renamed": 2, "added": 3}
PRIORITY_NUMBERS: Dict[str, int] = {"critical": 1, "high": 2, "normal": 3, "low": 4}


# ===================================================================
# Parsed source input
# ===================================================================

@dataclass
class SourceLocation:
    line: int = 0
    end_line: int = 0
    column: int = 0


@dataclass
class SymbolMember:
    name: str
    type: Optional[str] = None


@dataclass
class SymbolParameter:
    name: str
    type: Optional[str] = None


@dataclass
class CodeSymbol:
    """A symbol as reported by a parsed-file provider."""
    name: str
    kind: str
    signature: str = ""
    description: str = ""
    modifiers: List[str] = field(default_factory=list)
    location: Optional[SourceLocation] = None
    members: List[SymbolMember] = field(default_factory=list)
    parameters: List[SymbolParameter] = field(default_factory=list)
    return_type: Optional[str] = None


@dataclass
class ParsedFile:
    path: str
    symbols: List[CodeSymbol] = field(default_factory=list)
    raw_content: str = ""


# ===================================================================
# Symbol tracking
# ===================================================================

@dataclass
class SymbolSnapshot:
    id: str
    name: str
    kind: str
    signature: str
    description: str
    hash: str
    file_path: str
    start_line: int
    end_line: int
    dependencies: List[str] = field(default_factory=list)
    dependents: List[str] = field(default_factory=list)
    exported: bool = False
    imported: bool = False


@dataclass
class SymbolChange:
    symbol_id: str
    symbol_name: str
    symbol_kind: str
    file_path: str
    change_type: ChangeType
    impact_level: ImpactLevel
    old_snapshot: Optional[SymbolSnapshot] = None
    new_snapshot: Optional[SymbolSnapshot] = None


@dataclass(frozen=True)
class ChangeInfo:
    """One detected file change, produced from the version-control source."""
    file_path: str
    change_type: ChangeType
    timestamp: datetime = field(default_factory=datetime.now)
    old_hash: Optional[str] = None
    new_hash: Optional[str] = None


# ===================================================================
# Impact propagation
# ===================================================================

@dataclass
class ImpactNode:
    id: str
    type: Literal["file", "symbol", "artifact", "module"]
    name: str
    impact_level: ImpactLevel
    change_type: ChangeType
    affected_by: List[str] = field(default_factory=list)
    depth: int = 0


@dataclass
class AffectedArtifact:
    artifact_id: str
    title: str
    impact_type: Literal["content", "reference", "metadata"] = "content"
    priority: UpdatePriority = "normal"
    affected_symbols: List[str] = field(default_factory=list)
    estimated_changes: int = 0
    reason: str = ""


@dataclass
class UpdatePriorityInfo:
    artifact_id: str
    priority: int
    dependencies: List[str] = field(default_factory=list)
    estimated_time: int = 0


@dataclass
class ImpactRisk:
    """Quick risk verdict computed alongside impact propagation."""
    overall_risk: Literal["low", "medium", "high"]
    risk_factors: List[str] = field(default_factory=list)
    mitigation_suggestions: List[str] = field(default_factory=list)
    breaking_changes: bool = False


@dataclass
class ImpactResult:
    direct_impacts: List[ImpactNode]
    indirect_impacts: List[ImpactNode]
    affected_artifacts: List[AffectedArtifact]
    update_priority: List[UpdatePriorityInfo]
    update_order: List[str]
    estimated_effort: float
    risk: ImpactRisk


# ===================================================================
# Risk assessment
# ===================================================================

@dataclass
class ImpactItem:
    id: str
    type: Literal["file", "function", "class", "interface", "module", "test", "document"]
    name: str
    path: str
    impact_level: ImpactLevel
    description: str = ""
    affected_by: List[str] = field(default_factory=list)
    affects: List[str] = field(default_factory=list)


@dataclass
class RiskFactor:
    id: str
    type: Literal["breaking-change", "performance", "security", "compatibility", "maintenance"]
    description: str
    severity: ImpactLevel
    confidence: float
    mitigation: str


@dataclass
class RiskAssessment:
    id: str
    overall_risk: RiskLevel
    risk_score: float
    factors: List[RiskFactor]
    affected_areas: List[str]
    timeframe: Literal["immediate", "short-term", "long-term"]
    recommendation: str


@dataclass
class SuggestedAction:
    id: str
    type: Literal["update-doc", "run-tests", "notify-team", "review"]
    priority: Literal["urgent", "high", "medium", "low"]
    title: str
    description: str
    target_ids: List[str] = field(default_factory=list)


# ===================================================================
# Scheduling
# ===================================================================

@dataclass
class UpdateStrategy:
    type: Literal["full", "incremental", "selective"]
    priority: UpdatePriority
    affected_files: List[str] = field(default_factory=list)
    affected_artifacts: List[str] = field(default_factory=list)
    estimated_time: int = 0


@dataclass
class UpdateOperation:
    type: OperationType
    target: str
    priority: int
    params: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.type}:{self.target}"


@dataclass
class UpdateBatch:
    id: str
    operations: List[UpdateOperation]
    priority: UpdatePriority
    dependencies: List[str] = field(default_factory=list)
    estimated_time: int = 0


@dataclass
class BatchPlan:
    batches: List[UpdateBatch]
    total_operations: int
    estimated_time: int
    parallel_groups: int
    strategy: Optional[UpdateStrategy] = None


@dataclass
class UpdateError:
    operation: UpdateOperation
    error: str
    retry_count: int = 0


@dataclass
class PerformanceMetrics:
    total_time: float = 0.0
    files_processed: int = 0
    artifacts_updated: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    average_file_time: float = 0.0
    average_artifact_time: float = 0.0


@dataclass
class UpdateResult:
    success: bool
    completed_operations: int
    failed_operations: int
    errors: List[UpdateError] = field(default_factory=list)
    metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    skipped_operations: int = 0
    cancelled: bool = False

    def __str__(self) -> str:
        if self.success:
            return f"✅ Completed {self.completed_operations} operation(s)"
        return f"❌ {self.failed_operations} operation(s) failed, {self.completed_operations} completed"


@dataclass
class UpdatePlan:
    artifact_id: str
    operations: List[UpdateOperation]
    priority: UpdatePriority
    dependencies: List[str] = field(default_factory=list)
    estimated_time: int = 0


# ===================================================================
# Diff / merge
# ===================================================================

@dataclass
class DiffLine:
    type: Literal["added", "removed", "unchanged"]
    content: str
    old_line_number: Optional[int] = None
    new_line_number: Optional[int] = None


@dataclass
class DiffHunk:
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    lines: List[DiffLine] = field(default_factory=list)


@dataclass
class DiffResult:
    hunks: List[DiffHunk]
    additions: int
    deletions: int
    unchanged: int


@dataclass
class MergeConflict:
    start_line: int
    end_line: int
    ours: str
    theirs: str
    base: Optional[str] = None


@dataclass
class MergeResult:
    content: str
    conflicts: List[MergeConflict] = field(default_factory=list)
    resolved: bool = True


# ===================================================================
# Threshold history / artifacts
# ===================================================================

@dataclass(frozen=True)
class ThresholdRecord:
    project_size: int
    change_percentage: float
    used_incremental: bool
    success: bool
    update_time: float
    timestamp: str = ""


@dataclass
class Artifact:
    """A generated documentation page as persisted by an artifact store."""
    artifact_id: str
    title: str
    content: str
    base_content: str = ""
    source_files: List[str] = field(default_factory=list)
    updated_at: str = ""

"""Adaptive incremental-vs-full threshold driven by recent update outcomes."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Deque, Dict, Iterable, Mapping, Optional, Tuple

from .models import ThresholdRecord

logger = logging.getLogger(__name__)

MIN_HISTORY_FOR_ADJUSTMENT = 3
RECENT_WINDOW = 5


@dataclass
class ThresholdConfig:
    min_threshold: float = 20
    max_threshold: float = 80
    window_size: int = 10
    small_project_threshold: int = 50
    medium_project_threshold: int = 200
    large_project_threshold: int = 500

    def __post_init__(self):
        if self.window_size < 1:
            raise ValueError("window_size must be at least 1")
        if self.min_threshold > self.max_threshold:
            raise ValueError("min_threshold cannot exceed max_threshold")


@dataclass
class ThresholdRecommendation:
    threshold: float
    recommendation: str
    confidence: float


@dataclass
class ThresholdStats:
    history_size: int
    success_rate: float
    incremental_usage_rate: float
    average_change_percentage: float
    average_update_time: float


class AdaptiveThreshold:
    """Decides whether a change set is small enough for an incremental update.

    The rolling history is the controller's only state and ``record_result``
    is its only mutation, so a controller can be rebuilt exactly by replaying
    a stored history with :meth:`from_history`.
    """

    def __init__(self, config: Optional[ThresholdConfig] = None):
        self.config = config or ThresholdConfig()
        self._history: Deque[ThresholdRecord] = deque(maxlen=self.config.window_size)

    @classmethod
    def from_history(
        cls,
        records: Iterable[ThresholdRecord],
        config: Optional[ThresholdConfig] = None,
    ) -> "AdaptiveThreshold":
        controller = cls(config)
        for record in records:
            controller._history.append(record)
        return controller

    @property
    def history(self) -> Tuple[ThresholdRecord, ...]:
        return tuple(self._history)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def calculate_threshold(self, project_size: int) -> float:
        threshold = self._base_threshold(project_size) + self._adjustment()
        return max(self.config.min_threshold, min(self.config.max_threshold, threshold))

    def should_use_incremental(
        self,
        project_size: int,
        change_percentage: float,
        change_types: Optional[Mapping[str, int]] = None,
    ) -> bool:
        """Return True when an incremental update is advisable.

        Args:
            project_size: Number of files in the project
            change_percentage: Changed files as a percentage of the project
            change_types: Optional ``{"added", "modified", "deleted"}`` counts
        """
        if change_percentage > self.calculate_threshold(project_size):
            return False

        if change_types is not None:
            added = change_types.get("added", 0)
            modified = change_types.get("modified", 0)
            deleted = change_types.get("deleted", 0)
            total = added + modified + deleted

            if total == 0:
                return False
            if deleted / total > 0.3:
                return False
            if added / total > 0.5 and project_size < self.config.small_project_threshold:
                return False

        return True

    def record_result(
        self,
        project_size: int,
        change_percentage: float,
        used_incremental: bool,
        success: bool,
        update_time: float,
    ) -> ThresholdRecord:
        record = ThresholdRecord(
            project_size=project_size,
            change_percentage=change_percentage,
            used_incremental=used_incremental,
            success=success,
            update_time=update_time,
            timestamp=datetime.now().isoformat(),
        )
        self._history.append(record)
        logger.debug("Recorded threshold result: %s", record)
        return record

    def get_recommendation(self, project_size: int) -> ThresholdRecommendation:
        threshold = self.calculate_threshold(project_size)
        recent = self._recent_success_rate()
        average_time = self._average_update_time()

        if len(self._history) < MIN_HISTORY_FOR_ADJUSTMENT:
            text = "Insufficient history for recommendation. Using default threshold."
            confidence = 0.5
        elif recent > 0.9:
            text = "Incremental updates working well. Consider lowering threshold for more efficiency."
            confidence = 0.8
        elif recent < 0.6:
            text = "Incremental updates have issues. Consider raising threshold for more stability."
            confidence = 0.7
        else:
            text = "Current threshold is appropriate for this project."
            confidence = 0.6

        if average_time > 0:
            text += f" Average update time: {average_time:.0f}ms."

        return ThresholdRecommendation(threshold=threshold, recommendation=text, confidence=confidence)

    def get_stats(self) -> ThresholdStats:
        size = len(self._history)
        denominator = max(1, size)
        return ThresholdStats(
            history_size=size,
            success_rate=self._recent_success_rate(),
            incremental_usage_rate=sum(1 for h in self._history if h.used_incremental) / denominator,
            average_change_percentage=sum(h.change_percentage for h in self._history) / denominator,
            average_update_time=self._average_update_time(),
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "config": asdict(self.config),
            "history": [asdict(record) for record in self._history],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AdaptiveThreshold":
        config = ThresholdConfig(**data.get("config", {}))
        records = []
        for raw in data.get("history", []):
            try:
                records.append(ThresholdRecord(**raw))
            except TypeError:
                logger.warning("Skipping malformed threshold record: %r", raw)
        return cls.from_history(records, config)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _base_threshold(self, project_size: int) -> float:
        if project_size < self.config.small_project_threshold:
            return 30
        if project_size < self.config.medium_project_threshold:
            return 50
        if project_size < self.config.large_project_threshold:
            return 65
        return 75

    def _adjustment(self) -> float:
        if len(self._history) < MIN_HISTORY_FOR_ADJUSTMENT:
            return 0

        recent = self._recent_success_rate()
        incremental = self._incremental_success_rate()

        if recent > 0.9 and incremental > 0.8:
            return -5
        if recent < 0.7 or incremental < 0.6:
            return 10
        if incremental < 0.8:
            return 5
        return 0

    def _recent_success_rate(self) -> float:
        if not self._history:
            return 1.0
        recent = list(self._history)[-RECENT_WINDOW:]
        return sum(1 for h in recent if h.success) / len(recent)

    def _incremental_success_rate(self) -> float:
        incremental = [h for h in self._history if h.used_incremental]
        if not incremental:
            return 1.0
        return sum(1 for h in incremental if h.success) / len(incremental)

    def _average_update_time(self) -> float:
        if not self._history:
            return 0.0
        return sum(h.update_time for h in self._history) / len(self._history)

"""Tests for the adaptive incremental-update threshold."""

import pytest

from wikidelta.threshold import AdaptiveThreshold, ThresholdConfig


def _with_results(results, used_incremental=True, config=None) -> AdaptiveThreshold:
    controller = AdaptiveThreshold(config)
    for ok in results:
        controller.record_result(30, 10.0, used_incremental, ok, 120.0)
    return controller


class TestThresholdDecision:
    """Tests for threshold calculation and the incremental decision."""

    def test_small_project_empty_history(self):
        """A 30-file project starts at 30% and takes a 10% change incrementally."""
        controller = AdaptiveThreshold()

        assert controller.calculate_threshold(30) == 30
        assert controller.should_use_incremental(30, 10) is True

    @pytest.mark.parametrize("size, expected", [(10, 30), (100, 50), (300, 65), (1000, 75)])
    def test_base_threshold_by_size(self, size, expected):
        assert AdaptiveThreshold().calculate_threshold(size) == expected

    def test_change_above_threshold_is_full(self):
        assert AdaptiveThreshold().should_use_incremental(30, 31) is False

    def test_many_deletions_force_full(self):
        """More than 30% deletions rules out an incremental update."""
        controller = AdaptiveThreshold()
        assert controller.should_use_incremental(30, 10, {"added": 0, "modified": 2, "deleted": 1}) is False
        assert controller.should_use_incremental(30, 10, {"added": 0, "modified": 3, "deleted": 1}) is True

    def test_mostly_additions_in_small_project_force_full(self):
        controller = AdaptiveThreshold()
        assert controller.should_use_incremental(30, 10, {"added": 3, "modified": 2, "deleted": 0}) is False
        assert controller.should_use_incremental(100, 10, {"added": 3, "modified": 2, "deleted": 0}) is True

    def test_empty_breakdown_is_full(self):
        assert AdaptiveThreshold().should_use_incremental(30, 0, {"added": 0, "modified": 0, "deleted": 0}) is False


class TestAdaptation:
    """Tests for history-driven adjustment."""

    def test_reliable_history_lowers_threshold(self):
        controller = _with_results([True] * 5)
        assert controller.calculate_threshold(30) == 25

    def test_failing_history_raises_threshold(self):
        controller = _with_results([False] * 3)
        assert controller.calculate_threshold(30) == 40

    def test_too_little_history_keeps_base(self):
        controller = _with_results([False, False])
        assert controller.calculate_threshold(30) == 30

    def test_clamped_to_configured_bounds(self):
        config = ThresholdConfig(min_threshold=35, max_threshold=60)
        assert AdaptiveThreshold(config).calculate_threshold(10) == 35
        assert AdaptiveThreshold(config).calculate_threshold(1000) == 60

    def test_window_drops_oldest(self):
        """Only the last window_size records are kept."""
        controller = _with_results([False, False, True, True, True], config=ThresholdConfig(window_size=3))

        assert len(controller.history) == 3
        assert all(r.success for r in controller.history)

    def test_record_result_returns_record(self):
        record = AdaptiveThreshold().record_result(40, 12.5, True, True, 300.0)

        assert record.project_size == 40
        assert record.timestamp


class TestRecommendation:
    """Tests for recommendations and statistics."""

    def test_insufficient_history(self):
        recommendation = AdaptiveThreshold().get_recommendation(30)

        assert recommendation.confidence == 0.5
        assert recommendation.recommendation.startswith("Insufficient history")

    def test_working_well(self):
        recommendation = _with_results([True] * 4).get_recommendation(30)

        assert recommendation.confidence == 0.8
        assert "Average update time: 120ms" in recommendation.recommendation

    def test_issues(self):
        assert _with_results([False] * 4).get_recommendation(30).confidence == 0.7

    def test_stats(self):
        stats = _with_results([True, False], used_incremental=True).get_stats()

        assert stats.history_size == 2
        assert stats.success_rate == 0.5
        assert stats.incremental_usage_rate == 1.0
        assert stats.average_change_percentage == 10.0
        assert stats.average_update_time == 120.0


class TestPersistence:
    """Tests for replaying stored history."""

    def test_round_trip_reproduces_decisions(self):
        original = _with_results([True, False, False, True])
        restored = AdaptiveThreshold.from_dict(original.to_dict())

        assert restored.history == original.history
        assert restored.calculate_threshold(30) == original.calculate_threshold(30)

    def test_malformed_records_are_skipped(self):
        data = _with_results([True]).to_dict()
        data["history"].append({"nonsense": 1})

        assert len(AdaptiveThreshold.from_dict(data).history) == 1

    def test_invalid_config_rejected(self):
        with pytest.raises(ValueError):
            ThresholdConfig(window_size=0)
        with pytest.raises(ValueError):
            ThresholdConfig(min_threshold=90, max_threshold=10)

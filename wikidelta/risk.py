"""Heuristic risk scoring and follow-up suggestions for a set of impacts."""

from __future__ import annotations

import logging
import uuid
from typing import Dict, Iterable, List, Literal, Optional

from .models import ImpactItem, RiskAssessment, RiskFactor, RiskLevel, SuggestedAction

logger = logging.getLogger(__name__)

ChangeKind = Literal["added", "modified", "removed"]

SEVERITY_SCORES: Dict[str, int] = {"high": 3, "medium": 2, "low": 1}

MITIGATION_BY_LEVEL: Dict[str, str] = {
    "critical": "Run the full test suite immediately, prepare a rollback plan and notify every affected team.",
    "high": "Run detailed tests, update the affected documentation and notify the impacted teams.",
    "medium": "Run the regular test suite and update the affected documentation.",
    "low": "Run basic checks and monitor the generated documentation.",
}

ACTION_PRIORITY_ORDER: Dict[str, int] = {"urgent": 0, "high": 1, "medium": 2, "low": 3}

CODE_ITEM_TYPES = {"file", "function", "class", "interface", "module"}


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class RiskAssessmentService:
    """Turns direct and indirect impact items into a scored :class:`RiskAssessment`."""

    def assess_risk(
        self,
        direct: List[ImpactItem],
        indirect: List[ImpactItem],
        change_type: ChangeKind,
    ) -> RiskAssessment:
        factors = self.identify_risk_factors(direct, indirect, change_type)
        score = self.calculate_risk_score(factors)
        level = self.map_score_to_risk_level(score)

        assessment = RiskAssessment(
            id=_new_id("risk"),
            overall_risk=level,
            risk_score=score,
            factors=factors,
            affected_areas=self.identify_affected_areas(list(direct) + list(indirect)),
            timeframe=self.determine_timeframe(change_type, factors),
            recommendation=self.generate_mitigation_recommendation(level),
        )
        logger.debug("Risk assessed as %s (score %.2f, %d factor(s))", level, score, len(factors))
        return assessment

    def identify_risk_factors(
        self,
        direct: List[ImpactItem],
        indirect: List[ImpactItem],
        change_type: ChangeKind,
    ) -> List[RiskFactor]:
        """Apply the rule set in order; every matching rule contributes one factor."""
        factors: List[RiskFactor] = []
        everything = list(direct) + list(indirect)

        if change_type == "removed":
            factors.append(RiskFactor(
                id=_new_id("factor"),
                type="breaking-change",
                description="Removing a file may break components that reference it",
                severity="high",
                confidence=0.9,
                mitigation="Check every reference to the removed file and update it",
            ))

        if sum(1 for item in everything if item.impact_level == "high") > 2:
            factors.append(RiskFactor(
                id=_new_id("factor"),
                type="breaking-change",
                description="Several high-impact items changed",
                severity="high",
                confidence=0.8,
                mitigation="Test every affected feature end to end",
            ))

        if any(item.type == "test" for item in everything):
            factors.append(RiskFactor(
                id=_new_id("factor"),
                type="maintenance",
                description="Test files are affected",
                severity="medium",
                confidence=0.7,
                mitigation="Update the related test cases",
            ))

        if any(item.type == "document" for item in everything):
            factors.append(RiskFactor(
                id=_new_id("factor"),
                type="maintenance",
                description="Documentation is affected",
                severity="low",
                confidence=0.6,
                mitigation="Update the related documentation",
            ))

        if change_type == "modified" and any(item.impact_level == "high" for item in direct):
            factors.append(RiskFactor(
                id=_new_id("factor"),
                type="breaking-change",
                description="A core file was modified",
                severity="medium",
                confidence=0.75,
                mitigation="Run regression tests",
            ))

        return factors

    @staticmethod
    def calculate_risk_score(factors: Iterable[RiskFactor]) -> float:
        """Confidence-weighted mean of severity scores, rounded to two decimals."""
        total_score = 0.0
        total_weight = 0.0
        for factor in factors:
            total_score += SEVERITY_SCORES.get(factor.severity, 0) * factor.confidence
            total_weight += factor.confidence
        if total_weight <= 0:
            return 0.0
        return round(total_score / total_weight, 2)

    @staticmethod
    def map_score_to_risk_level(score: float) -> RiskLevel:
        if score >= 2.5:
            return "critical"
        if score >= 1.8:
            return "high"
        if score >= 1.2:
            return "medium"
        return "low"

    @staticmethod
    def determine_timeframe(change_type: ChangeKind, factors: List[RiskFactor]) -> str:
        if change_type == "removed" or any(f.severity == "high" for f in factors):
            return "immediate"
        if any(f.severity == "medium" for f in factors):
            return "short-term"
        return "long-term"

    @staticmethod
    def generate_mitigation_recommendation(level: RiskLevel) -> str:
        return MITIGATION_BY_LEVEL[level]

    @staticmethod
    def generate_mitigation(factors: Iterable[RiskFactor]) -> List[str]:
        return [factor.mitigation for factor in factors]

    def assess_overall_risk(self, items: List[ImpactItem]) -> RiskLevel:
        factors = self.identify_risk_factors(items, [], "modified")
        return self.map_score_to_risk_level(self.calculate_risk_score(factors))

    @staticmethod
    def identify_affected_areas(items: Iterable[ImpactItem]) -> List[str]:
        """First path segment of every multi-segment path, plus every item type."""
        areas: List[str] = []
        for item in items:
            parts = item.path.split("/")
            if len(parts) > 1 and parts[0] not in areas:
                areas.append(parts[0])
            if item.type not in areas:
                areas.append(item.type)
        return areas


class SuggestionGenerator:
    """Builds concrete follow-up actions from impact items and a risk verdict."""

    def generate(
        self,
        items: List[ImpactItem],
        risk_level: RiskLevel,
        factors: Optional[List[RiskFactor]] = None,
    ) -> List[SuggestedAction]:
        suggestions: List[SuggestedAction] = []
        suggestions.extend(self.suggest_doc_updates(items))
        suggestions.extend(self.suggest_test_runs(items, factors or []))
        suggestions.extend(self.suggest_notifications(items, risk_level))
        suggestions.sort(key=lambda s: ACTION_PRIORITY_ORDER[s.priority])
        return suggestions

    @staticmethod
    def suggest_doc_updates(items: List[ImpactItem]) -> List[SuggestedAction]:
        actions = []
        for item in items:
            if item.type != "document":
                continue
            actions.append(SuggestedAction(
                id=_new_id("action"),
                type="update-doc",
                priority="high" if item.impact_level == "high" else "medium",
                title=f"Update documentation: {item.name}",
                description=f'The page "{item.name}" may need updates: {item.description or "changes detected"}',
                target_ids=[item.id],
            ))
        return actions

    @staticmethod
    def suggest_test_runs(items: List[ImpactItem], factors: List[RiskFactor]) -> List[SuggestedAction]:
        code_items = [item for item in items if item.type in CODE_ITEM_TYPES or item.type == "test"]
        if not code_items:
            return []

        breaking = any(f.type == "breaking-change" for f in factors)
        paths = list(dict.fromkeys(item.path for item in code_items if item.path))
        return [SuggestedAction(
            id=_new_id("action"),
            type="run-tests",
            priority="urgent" if breaking else "medium",
            title="Run full test suite" if breaking else "Run affected tests",
            description=f"Run tests covering {len(paths)} affected file(s)",
            target_ids=paths,
        )]

    @staticmethod
    def suggest_notifications(items: List[ImpactItem], risk_level: RiskLevel) -> List[SuggestedAction]:
        if risk_level not in ("high", "critical"):
            return []
        return [SuggestedAction(
            id=_new_id("action"),
            type="notify-team",
            priority="urgent" if risk_level == "critical" else "high",
            title="Notify development team",
            description=f"Risk level {risk_level}: {len(items)} impact(s) identified",
        )]

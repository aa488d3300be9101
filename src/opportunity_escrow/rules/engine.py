"""RuleEngine — deterministic validation and risk scoring of opportunities.

The engine is an explicit value: build it once with its rule set and hand it
to whoever needs it (the FastAPI app keeps one on ``app.state``). Tests build
isolated engines with their own rules.

Scoring:
    error / critical rule failure   +10
    warning rule failure            +5
    info rule failure               +1
    overdue milestone (error)       +15
    completion % out of range       +5   (error)
    budget overrun > 20%            +10  (warning)
    unmet dependency                +5   (warning, per dependency)

The total is capped at 100 once, after every contribution is added.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from decimal import Decimal

from opportunity_escrow.domain.enums import (
    ComplianceStatus,
    MilestoneStatus,
    RiskLevel,
    RuleCategory,
    RuleSeverity,
)
from opportunity_escrow.domain.exceptions import DuplicateRuleError
from opportunity_escrow.domain.milestones import (
    evaluate_milestone_status,
    is_overdue,
    should_escalate,
)
from opportunity_escrow.domain.models import Milestone, Opportunity
from opportunity_escrow.domain.validation import ValidationResult, ValidationRule
from opportunity_escrow.logging_config import get_logger
from opportunity_escrow.rules.defaults import default_rules

logger = get_logger(__name__)

SEVERITY_WEIGHTS: dict[RuleSeverity, int] = {
    RuleSeverity.CRITICAL: 10,
    RuleSeverity.ERROR: 10,
    RuleSeverity.WARNING: 5,
    RuleSeverity.INFO: 1,
}
OVERDUE_WEIGHT = 15
COMPLETION_RANGE_WEIGHT = 5
BUDGET_OVERRUN_WEIGHT = 10
DEPENDENCY_WEIGHT = 5

BUDGET_TOLERANCE = Decimal("1.2")
MAX_RISK_SCORE = 100
REVIEW_WARNING_THRESHOLD = 5

COMPLIANCE_KEYWORDS = re.compile(r"\b(compliance|regulatory|kyc|aml)\b", re.IGNORECASE)


class _Tally:
    """Accumulates findings during a single evaluation."""

    def __init__(self) -> None:
        self.errors: list[str] = []
        self.warnings: list[str] = []
        self.info: list[str] = []
        self.recommendations: list[str] = []
        self.skipped: list[str] = []
        self.score = 0

    def add(self, severity: RuleSeverity, message: str, weight: int) -> None:
        if severity in (RuleSeverity.ERROR, RuleSeverity.CRITICAL):
            self.errors.append(message)
        elif severity is RuleSeverity.WARNING:
            self.warnings.append(message)
        else:
            self.info.append(message)
        self.score += weight

    def recommend(self, text: str) -> None:
        if text not in self.recommendations:
            self.recommendations.append(text)


class RuleEngine:
    """Evaluates every registered rule against one opportunity.

    Usage:
        engine = RuleEngine()                      # built-in rules
        engine = RuleEngine(rules=[...])           # custom rule set
        result = engine.validate_opportunity(opportunity)
    """

    def __init__(
        self,
        rules: Iterable[ValidationRule] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._rules: list[ValidationRule] = []
        self._clock = clock or (lambda: datetime.now(UTC))
        for rule in default_rules() if rules is None else rules:
            self._register(rule)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    @property
    def rules(self) -> tuple[ValidationRule, ...]:
        """Registered rules in registration order."""
        return tuple(self._rules)

    def add_custom_rule(self, rule: ValidationRule) -> None:
        """Append a rule at runtime. It takes part in the next evaluation."""
        self._register(rule)
        logger.info(
            "rules.custom_rule_added",
            rule_id=rule.id,
            category=rule.category.value,
            severity=rule.severity.value,
        )

    def get_rules_by_category(self, category: RuleCategory | str) -> list[ValidationRule]:
        category = RuleCategory(category)
        return [rule for rule in self._rules if rule.category is category]

    def _register(self, rule: ValidationRule) -> None:
        if any(existing.id == rule.id for existing in self._rules):
            raise DuplicateRuleError(rule.id)
        self._rules.append(rule)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def validate_opportunity(
        self, opportunity: Opportunity, now: datetime | None = None
    ) -> ValidationResult:
        """Run all rules and milestone checks and return a fresh result."""
        now = now or self._clock()
        tally = _Tally()

        for rule in self._rules:
            try:
                if rule.predicate(opportunity):
                    continue
                message = rule.message(opportunity)
            except Exception:
                # A broken rule must not take the rest of the evaluation down
                logger.exception(
                    "rules.rule_failed",
                    rule_id=rule.id,
                    opportunity_id=opportunity.id,
                )
                tally.skipped.append(rule.id)
                continue
            tally.add(rule.severity, message, SEVERITY_WEIGHTS[rule.severity])

        for milestone in opportunity.milestones:
            self._check_milestone(opportunity, milestone, now, tally)

        risk_score = min(tally.score, MAX_RISK_SCORE)
        risk_level = self.get_risk_level(risk_score)
        compliance = self._classify_compliance(tally.errors, tally.warnings)
        self._recommend_from_outcome(tally, risk_level, compliance)

        result = ValidationResult(
            valid=not tally.errors,
            errors=tuple(tally.errors),
            warnings=tuple(tally.warnings),
            info=tuple(tally.info),
            risk_score=risk_score,
            risk_level=risk_level,
            recommendations=tuple(tally.recommendations),
            compliance_status=compliance,
            skipped_rules=tuple(tally.skipped),
        )
        logger.debug(
            "rules.opportunity_validated",
            opportunity_id=opportunity.id,
            valid=result.valid,
            risk_score=risk_score,
            compliance=compliance.value,
        )
        return result

    def evaluate_milestone_status(
        self, milestone: Milestone, now: datetime | None = None
    ) -> MilestoneStatus:
        return evaluate_milestone_status(milestone, now or self._clock())

    @staticmethod
    def get_risk_level(score: int) -> RiskLevel:
        if score < 30:
            return RiskLevel.LOW
        if score < 60:
            return RiskLevel.MEDIUM
        if score < 80:
            return RiskLevel.HIGH
        return RiskLevel.CRITICAL

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _check_milestone(
        self,
        opportunity: Opportunity,
        milestone: Milestone,
        now: datetime,
        tally: _Tally,
    ) -> None:
        if is_overdue(milestone, now):
            tally.add(
                RuleSeverity.ERROR,
                f"Milestone '{milestone.title}' is overdue "
                f"(target date {milestone.target_date.date().isoformat()})",
                OVERDUE_WEIGHT,
            )
            if should_escalate(milestone, now):
                tally.recommend(
                    f"Escalate overdue milestone '{milestone.title}' to an administrator"
                )

        pct = milestone.completion_percentage
        if pct is not None and not 0 <= pct <= 100:
            tally.add(
                RuleSeverity.ERROR,
                f"Milestone '{milestone.title}' has an invalid completion percentage "
                f"({pct}); it must be between 0 and 100",
                COMPLETION_RANGE_WEIGHT,
            )

        if milestone.budget is not None and milestone.actual_cost is not None:
            budget = Decimal(str(milestone.budget))
            actual = Decimal(str(milestone.actual_cost))
            if actual > budget * BUDGET_TOLERANCE:
                tally.add(
                    RuleSeverity.WARNING,
                    f"Milestone '{milestone.title}' is over budget: actual cost {actual} "
                    f"exceeds budget {budget} by more than 20%",
                    BUDGET_OVERRUN_WEIGHT,
                )
                tally.recommend(
                    f"Review the budget of milestone '{milestone.title}' before "
                    "releasing further funds"
                )

        for dependency_id in milestone.dependencies:
            dependency = opportunity.milestone_by_id(dependency_id)
            if dependency is not None and dependency.status is MilestoneStatus.COMPLETED:
                continue
            name = dependency.title if dependency is not None else dependency_id
            tally.add(
                RuleSeverity.WARNING,
                f"Milestone '{milestone.title}' depends on '{name}', which is not completed",
                DEPENDENCY_WEIGHT,
            )

    @staticmethod
    def _classify_compliance(errors: list[str], warnings: list[str]) -> ComplianceStatus:
        if any(COMPLIANCE_KEYWORDS.search(error) for error in errors):
            return ComplianceStatus.NON_COMPLIANT
        if errors or len(warnings) > REVIEW_WARNING_THRESHOLD:
            return ComplianceStatus.REQUIRES_REVIEW
        return ComplianceStatus.COMPLIANT

    @staticmethod
    def _recommend_from_outcome(
        tally: _Tally, risk_level: RiskLevel, compliance: ComplianceStatus
    ) -> None:
        if compliance is ComplianceStatus.NON_COMPLIANT:
            tally.recommend(
                "Resolve compliance findings before the opportunity is published or funded"
            )
        elif compliance is ComplianceStatus.REQUIRES_REVIEW:
            tally.recommend("Submit the opportunity for manual review")
        if risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            tally.recommend("Commission independent due diligence before funding")
        if len(tally.warnings) > REVIEW_WARNING_THRESHOLD:
            tally.recommend("Address outstanding warnings to reduce the risk score")

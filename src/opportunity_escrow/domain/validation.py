"""Validation rule and result types.

A rule is plain tagged data: an id, a category, a severity, a predicate that
returns True when the opportunity satisfies the rule, and a message generator
used when it does not. The engine loops over these records; it never needs to
know what a particular rule checks.

The domain layer has ZERO imports from FastAPI or SQLAlchemy.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from opportunity_escrow.domain.enums import (
    ComplianceStatus,
    RiskLevel,
    RuleCategory,
    RuleSeverity,
)
from opportunity_escrow.domain.models import Opportunity

Predicate = Callable[[Opportunity], bool]
MessageFactory = Callable[[Opportunity], str]


@dataclass(frozen=True)
class ValidationRule:
    """A single registered rule.

    Attributes:
        id: Unique, stable identifier (e.g. "financial.equity_range").
        category: Rule grouping for introspection.
        severity: Decides which result list a failure lands in and its weight.
        predicate: Returns True when the opportunity passes.
        message: Builds the user-facing text for a failure.
    """

    id: str
    category: RuleCategory
    severity: RuleSeverity
    predicate: Predicate
    message: MessageFactory

    def __post_init__(self) -> None:
        object.__setattr__(self, "category", RuleCategory(self.category))
        object.__setattr__(self, "severity", RuleSeverity(self.severity))


@dataclass(frozen=True)
class ValidationResult:
    """Output of one engine evaluation.

    Attributes:
        valid: True when no error or critical rule failed.
        errors: Messages of failed error/critical checks, in evaluation order.
        warnings: Messages of failed warning checks.
        info: Messages of failed informational checks.
        risk_score: Severity-weighted score, capped at 100.
        risk_level: Bucket derived from risk_score.
        recommendations: Follow-up actions for the submitter or reviewer.
        compliance_status: Regulatory classification of the outcome.
    """

    valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    info: tuple[str, ...] = ()
    risk_score: int = 0
    risk_level: RiskLevel = RiskLevel.LOW
    recommendations: tuple[str, ...] = ()
    compliance_status: ComplianceStatus = ComplianceStatus.COMPLIANT
    skipped_rules: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        """Serialize for storage in the opportunities.last_validation JSON column."""
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "info": list(self.info),
            "risk_score": self.risk_score,
            "risk_level": self.risk_level.value,
            "recommendations": list(self.recommendations),
            "compliance_status": self.compliance_status.value,
            "skipped_rules": list(self.skipped_rules),
        }

"""Domain layer — pure business logic with zero framework dependencies."""

from opportunity_escrow.domain.enums import (
    ComplianceStatus,
    ConditionType,
    EscrowStatus,
    EscrowType,
    MilestoneStatus,
    OpportunityStatus,
    OpportunityType,
    RiskLevel,
    RuleCategory,
    RuleSeverity,
    TransactionType,
)
from opportunity_escrow.domain.exceptions import (
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    PortalError,
)
from opportunity_escrow.domain.milestones import evaluate_milestone_status
from opportunity_escrow.domain.models import ConditionSpec, Milestone, Opportunity
from opportunity_escrow.domain.state_machine import (
    EscrowStateMachine,
    validate_transition,
)
from opportunity_escrow.domain.validation import ValidationResult, ValidationRule

__all__ = [
    "ComplianceStatus",
    "ConditionType",
    "EscrowStatus",
    "EscrowType",
    "MilestoneStatus",
    "OpportunityStatus",
    "OpportunityType",
    "RiskLevel",
    "RuleCategory",
    "RuleSeverity",
    "TransactionType",
    "InsufficientFundsError",
    "InvalidStateError",
    "NotFoundError",
    "PortalError",
    "evaluate_milestone_status",
    "ConditionSpec",
    "Milestone",
    "Opportunity",
    "EscrowStateMachine",
    "validate_transition",
    "ValidationResult",
    "ValidationRule",
]

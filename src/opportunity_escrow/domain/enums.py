"""Domain enumerations for the opportunity escrow core.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class OpportunityType(enum.StrEnum):
    """Kinds of investment opportunity an entrepreneur can submit."""

    GOING_CONCERN = "going_concern"
    ORDER_FULFILLMENT = "order_fulfillment"
    PROJECT_PARTNERSHIP = "project_partnership"


class OpportunityStatus(enum.StrEnum):
    """Lifecycle of an opportunity. CLOSED is terminal."""

    DRAFT = "draft"
    UNDER_REVIEW = "under_review"
    PUBLISHED = "published"
    FUNDED = "funded"
    CLOSED = "closed"

    @property
    def is_terminal(self) -> bool:
        return self is OpportunityStatus.CLOSED


class MilestoneStatus(enum.StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class RuleCategory(enum.StrEnum):
    """Grouping used by admin tooling to browse the rule registry."""

    FINANCIAL = "financial"
    LEGAL = "legal"
    OPERATIONAL = "operational"
    TECHNICAL = "technical"
    COMPLIANCE = "compliance"


class RuleSeverity(enum.StrEnum):
    """Severity of a failed rule. Drives both list placement and risk weight."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ComplianceStatus(enum.StrEnum):
    COMPLIANT = "compliant"
    NON_COMPLIANT = "non_compliant"
    REQUIRES_REVIEW = "requires_review"


class RiskLevel(enum.StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class EscrowStatus(enum.StrEnum):
    """Lifecycle states of an escrow account.

    State transitions are enforced by the EscrowStateMachine guard.
    See domain/state_machine.py for the transition table.
    """

    PENDING = "pending"
    FUNDED = "funded"
    ACTIVE = "active"
    RELEASED = "released"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"


class EscrowType(enum.StrEnum):
    INVESTMENT = "investment"
    PAYMENT = "payment"
    MILESTONE = "milestone"
    SECURITY = "security"


class TransactionType(enum.StrEnum):
    """Types of rows in the append-only escrow_transactions table.

    DEPOSIT is the only inflow; every other type reduces the balance.
    """

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    RELEASE = "release"
    REFUND = "refund"
    FEE = "fee"

    @property
    def is_inflow(self) -> bool:
        return self is TransactionType.DEPOSIT


class TransactionStatus(enum.StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ConditionType(enum.StrEnum):
    """Known release condition types.

    MILESTONE_COMPLETION and DOCUMENT_UPLOAD are toggled by external events;
    MANUAL_APPROVAL is marked met by an administrator.
    """

    MILESTONE_COMPLETION = "milestone_completion"
    DOCUMENT_UPLOAD = "document_upload"
    MANUAL_APPROVAL = "manual_approval"

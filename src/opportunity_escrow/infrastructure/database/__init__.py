"""Database infrastructure — engine, ORM models, and repositories."""

from opportunity_escrow.infrastructure.database.engine import (
    close_db,
    create_session_factory,
    get_async_session,
    get_engine,
    get_session_factory,
    init_db,
)
from opportunity_escrow.infrastructure.database.orm_models import (
    Base,
    EscrowAccount,
    EscrowTransaction,
    MilestoneRecord,
    OpportunityRecord,
    ReleaseCondition,
)
from opportunity_escrow.infrastructure.database.repositories import (
    EscrowAccountRepository,
    MilestoneRepository,
    OpportunityRepository,
    ReleaseConditionRepository,
    TransactionRepository,
)

__all__ = [
    "Base",
    "EscrowAccount",
    "EscrowTransaction",
    "MilestoneRecord",
    "OpportunityRecord",
    "ReleaseCondition",
    "EscrowAccountRepository",
    "MilestoneRepository",
    "OpportunityRepository",
    "ReleaseConditionRepository",
    "TransactionRepository",
    "create_session_factory",
    "get_async_session",
    "get_engine",
    "get_session_factory",
    "init_db",
    "close_db",
]

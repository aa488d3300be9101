"""Application services — use case orchestration."""

from opportunity_escrow.services.auto_release import AutoReleaseScheduler
from opportunity_escrow.services.ledger import AccountLockRegistry, EscrowLedger
from opportunity_escrow.services.opportunity_service import OpportunityService
from opportunity_escrow.services.release_conditions import ReleaseConditionTracker

__all__ = [
    "AccountLockRegistry",
    "AutoReleaseScheduler",
    "EscrowLedger",
    "OpportunityService",
    "ReleaseConditionTracker",
]

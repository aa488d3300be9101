"""Built-in validation rules for investment opportunities.

Each rule is declared as data: the predicate returns True when the
opportunity passes. Type-specific rules pass trivially for other types, and
publication-readiness rules pass while the opportunity is still a draft.
"""

from __future__ import annotations

from collections.abc import Iterable

from opportunity_escrow.domain.enums import (
    OpportunityStatus,
    OpportunityType,
    RuleCategory,
    RuleSeverity,
)
from opportunity_escrow.domain.models import Opportunity
from opportunity_escrow.domain.validation import ValidationRule

DEFAULT_SUPPORTED_CURRENCIES = ("USD", "EUR", "GBP", "ZWL", "ZAR", "KES", "NGN", "GHS")

_REVIEW_STATUSES = frozenset(
    {OpportunityStatus.UNDER_REVIEW, OpportunityStatus.PUBLISHED, OpportunityStatus.FUNDED}
)
_KYC_GATED_STATUSES = frozenset({OpportunityStatus.PUBLISHED, OpportunityStatus.FUNDED})


def _number(opportunity: Opportunity, key: str) -> float | None:
    """Read a numeric field; missing or blank is None, garbage raises ValueError."""
    value = opportunity.get(key)
    if value is None or value == "":
        return None
    return float(value)


def _text(opportunity: Opportunity, key: str) -> str:
    value = opportunity.get(key)
    return str(value).strip() if value is not None else ""


def _past_draft(opportunity: Opportunity) -> bool:
    return opportunity.status in _REVIEW_STATUSES


# --- Financial ---


def _equity_required(opp: Opportunity) -> bool:
    if opp.type is not OpportunityType.GOING_CONCERN:
        return True
    equity = _number(opp, "equity_offered")
    return equity is not None and equity > 0


def _equity_in_range(opp: Opportunity) -> bool:
    equity = _number(opp, "equity_offered")
    return equity is None or 0 <= equity <= 100


def _roi_non_negative(opp: Opportunity) -> bool:
    roi = _number(opp, "expected_roi")
    return roi is None or roi >= 0


def _roi_plausible(opp: Opportunity) -> bool:
    roi = _number(opp, "expected_roi")
    return roi is None or roi <= 100


def _funding_goal_positive(opp: Opportunity) -> bool:
    goal = _number(opp, "funding_goal")
    return goal is None or goal > 0


# --- Legal / operational ---


def _title_present(opp: Opportunity) -> bool:
    return bool(opp.title and opp.title.strip())


def _partner_roles_present(opp: Opportunity) -> bool:
    return opp.type is not OpportunityType.PROJECT_PARTNERSHIP or bool(opp.get("partner_roles"))


def _order_details_present(opp: Opportunity) -> bool:
    return opp.type is not OpportunityType.ORDER_FULFILLMENT or bool(opp.get("order_details"))


def _milestones_planned(opp: Opportunity) -> bool:
    return not _past_draft(opp) or bool(opp.milestones)


# --- Publication readiness ---


def _description_present(opp: Opportunity) -> bool:
    return not _past_draft(opp) or bool(_text(opp, "description"))


def _currency_present(opp: Opportunity) -> bool:
    return not _past_draft(opp) or bool(_text(opp, "primary_currency"))


# --- Compliance ---


def _kyc_approved(opp: Opportunity) -> bool:
    if opp.status not in _KYC_GATED_STATUSES:
        return True
    return _text(opp, "kyc_status").lower() == "approved"


def _aml_clear(opp: Opportunity) -> bool:
    return not opp.get("aml_flagged", False)


def default_rules(
    supported_currencies: Iterable[str] = DEFAULT_SUPPORTED_CURRENCIES,
) -> list[ValidationRule]:
    """Return the standard rule set in registration order."""
    currencies = tuple(c.upper() for c in supported_currencies)

    def _currency_supported(opp: Opportunity) -> bool:
        currency = _text(opp, "primary_currency")
        return not currency or currency.upper() in currencies

    return [
        ValidationRule(
            id="legal.title_required",
            category=RuleCategory.LEGAL,
            severity=RuleSeverity.ERROR,
            predicate=_title_present,
            message=lambda opp: "Title is required",
        ),
        ValidationRule(
            id="financial.equity_required",
            category=RuleCategory.FINANCIAL,
            severity=RuleSeverity.ERROR,
            predicate=_equity_required,
            message=lambda opp: (
                "Equity offered is required for going concern opportunities "
                "and must be greater than 0"
            ),
        ),
        ValidationRule(
            id="financial.equity_range",
            category=RuleCategory.FINANCIAL,
            severity=RuleSeverity.ERROR,
            predicate=_equity_in_range,
            message=lambda opp: (
                f"Equity percentage must be between 0 and 100 "
                f"(got {opp.get('equity_offered')})"
            ),
        ),
        ValidationRule(
            id="financial.roi_non_negative",
            category=RuleCategory.FINANCIAL,
            severity=RuleSeverity.ERROR,
            predicate=_roi_non_negative,
            message=lambda opp: "Expected ROI cannot be negative",
        ),
        ValidationRule(
            id="financial.roi_plausible",
            category=RuleCategory.FINANCIAL,
            severity=RuleSeverity.WARNING,
            predicate=_roi_plausible,
            message=lambda opp: (
                f"Expected ROI of {opp.get('expected_roi')}% needs supporting "
                "financial projections"
            ),
        ),
        ValidationRule(
            id="financial.funding_goal_positive",
            category=RuleCategory.FINANCIAL,
            severity=RuleSeverity.ERROR,
            predicate=_funding_goal_positive,
            message=lambda opp: "Funding goal must be greater than 0",
        ),
        ValidationRule(
            id="financial.supported_currency",
            category=RuleCategory.FINANCIAL,
            severity=RuleSeverity.WARNING,
            predicate=_currency_supported,
            message=lambda opp: (
                f"Currency '{opp.get('primary_currency')}' is not supported; "
                f"use one of {', '.join(currencies)}"
            ),
        ),
        ValidationRule(
            id="operational.order_details",
            category=RuleCategory.OPERATIONAL,
            severity=RuleSeverity.ERROR,
            predicate=_order_details_present,
            message=lambda opp: "Order details are required for order fulfillment opportunities",
        ),
        ValidationRule(
            id="legal.partner_roles",
            category=RuleCategory.LEGAL,
            severity=RuleSeverity.ERROR,
            predicate=_partner_roles_present,
            message=lambda opp: (
                "Partner roles are required for project partnership opportunities"
            ),
        ),
        ValidationRule(
            id="operational.milestones_planned",
            category=RuleCategory.OPERATIONAL,
            severity=RuleSeverity.INFO,
            predicate=_milestones_planned,
            message=lambda opp: "No milestones are defined; investors cannot track progress",
        ),
        ValidationRule(
            id="technical.description_for_review",
            category=RuleCategory.TECHNICAL,
            severity=RuleSeverity.WARNING,
            predicate=_description_present,
            message=lambda opp: "Description is required before review or publication",
        ),
        ValidationRule(
            id="technical.currency_for_review",
            category=RuleCategory.TECHNICAL,
            severity=RuleSeverity.WARNING,
            predicate=_currency_present,
            message=lambda opp: "Primary currency must be specified before review or publication",
        ),
        ValidationRule(
            id="compliance.kyc_approved",
            category=RuleCategory.COMPLIANCE,
            severity=RuleSeverity.CRITICAL,
            predicate=_kyc_approved,
            message=lambda opp: (
                "KYC approval of the submitting party is required before "
                "publication or funding"
            ),
        ),
        ValidationRule(
            id="compliance.aml_clear",
            category=RuleCategory.COMPLIANCE,
            severity=RuleSeverity.CRITICAL,
            predicate=_aml_clear,
            message=lambda opp: "AML screening flagged the submitting party",
        ),
    ]

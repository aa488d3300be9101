"""Rule-based validation of investment opportunities.

    - RuleEngine:     evaluates a rule registry plus milestone checks
    - default_rules:  the built-in financial/legal/operational/technical/compliance set
"""

from opportunity_escrow.rules.defaults import DEFAULT_SUPPORTED_CURRENCIES, default_rules
from opportunity_escrow.rules.engine import RuleEngine

__all__ = [
    "DEFAULT_SUPPORTED_CURRENCIES",
    "RuleEngine",
    "default_rules",
]

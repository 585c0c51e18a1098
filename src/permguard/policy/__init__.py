"""
Policy evaluation for permguard.

This package holds the pure parts of the decision procedure:

    - conditions: Evaluate a single predicate against a request context
    - matcher: Walk the ordered rule list and find the first rule that applies

Both are side-effect free and never raise for malformed rule data: a
condition that cannot be evaluated is simply false.
"""

from permguard.policy.conditions import (
    RequestContext,
    evaluate_condition,
    evaluate_conditions,
)
from permguard.policy.matcher import (
    DEFAULT_POLICY_DENY_REASON,
    RuleMatch,
    match_rules,
    matches_pattern,
)

__all__ = [
    "DEFAULT_POLICY_DENY_REASON",
    "RequestContext",
    "RuleMatch",
    "evaluate_condition",
    "evaluate_conditions",
    "match_rules",
    "matches_pattern",
]

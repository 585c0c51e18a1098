"""
Policy rule matcher.

Walks the ordered rule list of a PermissionPolicy and returns the first rule
that applies to a requested permission. A rule applies when its pattern
matches the name AND all of its conditions hold; a rule whose conditions
fail is skipped, it does not deny.

Pattern forms:
    - Exact:        "file.write" matches only "file.write"
    - Wildcard:     "file.*" matches every name starting with "file."
    - Hierarchical: "file" matches "file.read", "file.write", ...
"""

from dataclasses import dataclass

from permguard.policy.conditions import TIME_TYPE, RequestContext, evaluate_conditions
from permguard.schema import PermissionPolicy, PermissionRule

DEFAULT_RULE_DENY_REASON = "Denied by policy rule"
TIME_RESTRICTION_REASON = "Access denied due to time restriction"
DEFAULT_POLICY_DENY_REASON = "denied by default policy"


@dataclass(frozen=True)
class RuleMatch:
    """
    The rule that decided a check.

    Attributes:
        rule: The matching rule
        index: Position of the rule in the policy
        allowed: The rule's decision
        reason: Denial reason (None when allowed)
    """

    rule: PermissionRule
    index: int
    allowed: bool
    reason: str | None


def matches_pattern(pattern: str, name: str) -> bool:
    """Check if a rule pattern matches a permission name."""
    if pattern == name:
        return True

    if pattern.endswith("*"):
        return name.startswith(pattern[:-1])

    return name.startswith(pattern + ".")


def denial_reason(rule: PermissionRule) -> str:
    """
    Reason surfaced when a rule denies.

    Rules gated on the clock always report the time restriction, whatever
    their own reason says.
    """
    if any(c.type == TIME_TYPE for c in rule.conditions):
        return TIME_RESTRICTION_REASON
    return rule.reason or DEFAULT_RULE_DENY_REASON


def match_rules(
    policy: PermissionPolicy,
    name: str,
    context: RequestContext,
) -> RuleMatch | None:
    """
    Find the first applicable rule.

    Args:
        policy: Policy whose rules are walked in order
        name: Requested permission name
        context: Request context for condition evaluation

    Returns:
        RuleMatch for the first rule that applies, or None
    """
    for index, rule in enumerate(policy.rules):
        if not matches_pattern(rule.pattern, name):
            continue
        if not evaluate_conditions(rule.conditions, context):
            continue
        return RuleMatch(
            rule=rule,
            index=index,
            allowed=rule.allow,
            reason=None if rule.allow else denial_reason(rule),
        )
    return None

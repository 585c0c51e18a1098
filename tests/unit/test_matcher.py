"""
Unit tests for the policy rule matcher.

Tests cover:
- Exact, wildcard and hierarchical patterns
- First-applicable-rule semantics
- Denial reasons (explicit, default, time restriction)
"""

from datetime import UTC, datetime

from permguard.policy import RequestContext, match_rules, matches_pattern
from permguard.policy.matcher import (
    DEFAULT_RULE_DENY_REASON,
    TIME_RESTRICTION_REASON,
    denial_reason,
)
from permguard.schema import Condition, PermissionPolicy, PermissionRule

NOON = datetime(2026, 3, 2, 12, 0, 0, tzinfo=UTC)


def rule(pattern: str, allow: bool, **kwargs) -> PermissionRule:
    return PermissionRule(pattern=pattern, allow=allow, **kwargs)


# =============================================================================
# Pattern Matching
# =============================================================================


class TestMatchesPattern:
    """Rule pattern forms."""

    def test_exact(self) -> None:
        assert matches_pattern("file.write", "file.write")
        assert not matches_pattern("file.write", "file.read")

    def test_wildcard(self) -> None:
        assert matches_pattern("file.*", "file.read")
        assert matches_pattern("*", "anything.at.all")
        assert not matches_pattern("file.*", "bash.execute")

    def test_hierarchical(self) -> None:
        assert matches_pattern("file", "file.read")
        assert not matches_pattern("file", "filesystem.read")

    def test_child_does_not_match_parent(self) -> None:
        assert not matches_pattern("file.read", "file")


# =============================================================================
# Rule Selection
# =============================================================================


class TestMatchRules:
    """First applicable rule wins."""

    def test_no_rules(self) -> None:
        assert match_rules(PermissionPolicy(), "file.read", RequestContext({}, NOON)) is None

    def test_first_match_wins(self) -> None:
        policy = PermissionPolicy(rules=[rule("file.*", True), rule("file.read", False)])
        match = match_rules(policy, "file.read", RequestContext({}, NOON))
        assert match.index == 0
        assert match.allowed is True
        assert match.reason is None

    def test_failed_conditions_skip_rule(self) -> None:
        policy = PermissionPolicy(
            rules=[
                rule(
                    "file.write",
                    False,
                    conditions=[Condition(type="path", operator="starts_with", value="/etc")],
                ),
                rule("file.write", True),
            ]
        )
        match = match_rules(policy, "file.write", RequestContext({"path": "/home/x"}, NOON))
        assert match.index == 1
        assert match.allowed is True

    def test_unmatched_pattern_returns_none(self) -> None:
        policy = PermissionPolicy(rules=[rule("bash.execute", False)])
        assert match_rules(policy, "file.read", RequestContext({}, NOON)) is None

    def test_deny_carries_reason(self) -> None:
        policy = PermissionPolicy(rules=[rule("bash.*", False, reason="No shell")])
        match = match_rules(policy, "bash.execute", RequestContext({}, NOON))
        assert match.allowed is False
        assert match.reason == "No shell"


# =============================================================================
# Denial Reasons
# =============================================================================


class TestDenialReason:
    """Reason selection for denying rules."""

    def test_explicit_reason(self) -> None:
        assert denial_reason(rule("x", False, reason="because")) == "because"

    def test_default_reason(self) -> None:
        assert denial_reason(rule("x", False)) == DEFAULT_RULE_DENY_REASON

    def test_time_condition_overrides_reason(self) -> None:
        r = rule(
            "x",
            False,
            reason="custom",
            conditions=[Condition(type="time", operator="between", value=["22:00", "06:00"])],
        )
        assert denial_reason(r) == TIME_RESTRICTION_REASON

"""
Unit tests for condition evaluation.

Tests cover:
- Context value resolution (resource/path, time, context_key, coercion)
- Each operator, with single values and any-of lists
- Time windows, including wraparound past midnight
- Invalid regexes and inapplicable operators evaluate to False
"""

from datetime import UTC, datetime

import pytest

from permguard.policy.conditions import (
    RequestContext,
    evaluate_condition,
    evaluate_conditions,
    to_context_string,
)
from permguard.schema import Condition

NOON = datetime(2026, 3, 2, 12, 0, 0, tzinfo=UTC)


def ctx(data: dict | None = None, now: datetime = NOON) -> RequestContext:
    return RequestContext(data, now)


def at(hour: int, minute: int = 0) -> datetime:
    return NOON.replace(hour=hour, minute=minute)


# =============================================================================
# Value Resolution
# =============================================================================


class TestResolution:
    """How a condition finds its context value."""

    def test_to_context_string(self) -> None:
        assert to_context_string(None) == ""
        assert to_context_string(True) == "true"
        assert to_context_string(False) == "false"
        assert to_context_string(42) == "42"

    def test_resource_falls_back_to_path(self) -> None:
        assert ctx({"path": "/tmp/a"}).resource == "/tmp/a"
        assert ctx({"resource": "/r", "path": "/p"}).resource == "/r"

    def test_time_of_day(self) -> None:
        assert ctx(now=at(9, 5)).time_of_day == "09:05:00"

    def test_path_type_reads_resource(self) -> None:
        condition = Condition(type="path", operator="starts_with", value="/home")
        assert ctx({"resource": "/home/a"}).resolve(condition) == "/home/a"

    def test_context_key_overrides_type(self) -> None:
        condition = Condition(
            type="resource", operator="equals", value="alice", context_key="user"
        )
        assert ctx({"user": "alice", "resource": "/x"}).resolve(condition) == "alice"

    def test_other_types_read_context(self) -> None:
        condition = Condition(type="user", operator="equals", value="bob")
        assert ctx({"user": "bob"}).resolve(condition) == "bob"

    def test_missing_value_is_empty(self) -> None:
        condition = Condition(type="user", operator="equals", value="")
        assert evaluate_condition(condition, ctx({})) is True


# =============================================================================
# Operators
# =============================================================================


class TestOperators:
    """String operators with single and list values."""

    @pytest.mark.parametrize(
        ("operator", "value", "actual", "expected"),
        [
            ("equals", "abc", "abc", True),
            ("equals", "abc", "abcd", False),
            ("starts_with", "/home/", "/home/me", True),
            ("starts_with", ["/etc", "/usr"], "/usr/bin", True),
            ("starts_with", ["/etc", "/usr"], "/home", False),
            ("ends_with", ".py", "main.py", True),
            ("ends_with", [".env", ".key"], "prod.key", True),
            ("contains", "secret", "my-secret-file", True),
            ("contains", ["rm", "dd"], "ls -la", False),
            ("regex", r"^rm\s+-rf", "rm -rf /", True),
            ("regex", [r"\.pem$", r"\.key$"], "id.pem", True),
            ("regex", r"^rm", "echo rm", False),
        ],
    )
    def test_operator(self, operator: str, value: str | list[str], actual: str, expected: bool) -> None:
        condition = Condition(type="command", operator=operator, value=value)
        assert evaluate_condition(condition, ctx({"command": actual})) is expected

    def test_equals_with_list_is_false(self) -> None:
        condition = Condition(type="user", operator="equals", value=["a", "b"])
        assert evaluate_condition(condition, ctx({"user": "a"})) is False

    def test_regex_searches_anywhere(self) -> None:
        condition = Condition(type="command", operator="regex", value="sudo")
        assert evaluate_condition(condition, ctx({"command": "echo && sudo ls"})) is True

    def test_invalid_regex_is_false(self) -> None:
        condition = Condition(type="command", operator="regex", value="([unclosed")
        assert evaluate_condition(condition, ctx({"command": "([unclosed"})) is False

    def test_camel_case_operator_accepted(self) -> None:
        condition = Condition(type="path", operator="endsWith", value=".txt")
        assert evaluate_condition(condition, ctx({"path": "a.txt"})) is True


# =============================================================================
# Time Windows
# =============================================================================


class TestBetween:
    """Time-of-day windows."""

    def test_inside_window(self) -> None:
        condition = Condition(type="time", operator="between", value=["09:00", "17:00"])
        assert evaluate_condition(condition, ctx(now=at(12))) is True

    def test_bounds_inclusive(self) -> None:
        condition = Condition(type="time", operator="between", value=["09:00", "17:00"])
        assert evaluate_condition(condition, ctx(now=at(9))) is True
        assert evaluate_condition(condition, ctx(now=at(17))) is True
        assert evaluate_condition(condition, ctx(now=at(17, 1))) is False

    def test_wraparound_window(self) -> None:
        condition = Condition(type="time", operator="between", value=["22:00", "06:00"])
        assert evaluate_condition(condition, ctx(now=at(23))) is True
        assert evaluate_condition(condition, ctx(now=at(2))) is True
        assert evaluate_condition(condition, ctx(now=at(12))) is False

    def test_between_requires_time_type(self) -> None:
        condition = Condition(type="hour", operator="between", value=["00:00", "23:59"])
        assert evaluate_condition(condition, ctx({"hour": "12:00"})) is False

    def test_between_requires_two_values(self) -> None:
        condition = Condition(type="time", operator="between", value=["09:00"])
        assert evaluate_condition(condition, ctx()) is False

    def test_between_rejects_scalar(self) -> None:
        condition = Condition(type="time", operator="between", value="09:00")
        assert evaluate_condition(condition, ctx()) is False


# =============================================================================
# Conjunction
# =============================================================================


class TestConjunction:
    """evaluate_conditions AND semantics."""

    def test_empty_holds(self) -> None:
        assert evaluate_conditions([], ctx()) is True

    def test_all_must_hold(self) -> None:
        conditions = [
            Condition(type="path", operator="starts_with", value="/home"),
            Condition(type="path", operator="ends_with", value=".txt"),
        ]
        assert evaluate_conditions(conditions, ctx({"path": "/home/a.txt"})) is True
        assert evaluate_conditions(conditions, ctx({"path": "/home/a.md"})) is False

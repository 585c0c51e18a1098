"""
Condition evaluation.

A condition compares one value resolved from the request context against a
string or list of strings. Evaluation never raises: an operator/type
combination that does not apply, or a pattern that does not compile,
evaluates to False.
"""

import logging
import re
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from permguard.schema import Condition, ConditionOperator

logger = logging.getLogger(__name__)

TIME_TYPE = "time"
RESOURCE_TYPES = frozenset({"path", "resource"})


def to_context_string(value: Any) -> str:
    """Coerce a context value for string comparison (missing -> "")."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class RequestContext:
    """
    Read-only string view over a request's context mapping.

    Every accessor returns a string, so conditions only ever compare strings.
    """

    def __init__(self, data: Mapping[str, Any] | None, now: datetime) -> None:
        self._data = data or {}
        self._now = now

    def get(self, key: str) -> str:
        return to_context_string(self._data.get(key))

    @property
    def resource(self) -> str:
        """The "resource" field, falling back to "path"."""
        value = self._data.get("resource")
        if value is None:
            value = self._data.get("path")
        return to_context_string(value)

    @property
    def time_of_day(self) -> str:
        """Local time of day as HH:MM:SS."""
        return self._now.strftime("%H:%M:%S")

    def resolve(self, condition: Condition) -> str:
        """The value a condition compares against."""
        if condition.context_key:
            return self.get(condition.context_key)
        if condition.type in RESOURCE_TYPES:
            return self.resource
        if condition.type == TIME_TYPE:
            return self.time_of_day
        return self.get(condition.type)


def _as_list(value: str | list[str]) -> list[str]:
    return [value] if isinstance(value, str) else list(value)


def _equals(actual: str, condition: Condition) -> bool:
    return isinstance(condition.value, str) and actual == condition.value


def _starts_with(actual: str, condition: Condition) -> bool:
    return any(actual.startswith(v) for v in _as_list(condition.value))


def _ends_with(actual: str, condition: Condition) -> bool:
    return any(actual.endswith(v) for v in _as_list(condition.value))


def _contains(actual: str, condition: Condition) -> bool:
    return any(v in actual for v in _as_list(condition.value))


def _regex(actual: str, condition: Condition) -> bool:
    pattern = "|".join(_as_list(condition.value))
    try:
        compiled = re.compile(pattern)
    except re.error as e:
        logger.debug("Ignoring invalid regex condition %r: %s", pattern, e)
        return False
    return compiled.search(actual) is not None


def _between(actual: str, condition: Condition) -> bool:
    """
    Time-of-day window, inclusive, compared at minute resolution.

    A start later than the end wraps past midnight: ["22:00", "06:00"]
    holds from 22:00 through 06:00.
    """
    if condition.type != TIME_TYPE or isinstance(condition.value, str):
        return False
    if len(condition.value) != 2:
        return False
    start, end = condition.value
    current = actual[:5]
    if start > end:
        return current >= start or current <= end
    return start <= current <= end


_OPERATORS: dict[ConditionOperator, Callable[[str, Condition], bool]] = {
    ConditionOperator.EQUALS: _equals,
    ConditionOperator.STARTS_WITH: _starts_with,
    ConditionOperator.ENDS_WITH: _ends_with,
    ConditionOperator.CONTAINS: _contains,
    ConditionOperator.REGEX: _regex,
    ConditionOperator.BETWEEN: _between,
}


def evaluate_condition(condition: Condition, context: RequestContext) -> bool:
    """Evaluate one condition. Never raises."""
    operator = _OPERATORS.get(condition.operator)
    if operator is None:
        return False
    return operator(context.resolve(condition), condition)


def evaluate_conditions(conditions: list[Condition], context: RequestContext) -> bool:
    """AND over all conditions; an empty list holds trivially."""
    return all(evaluate_condition(c, context) for c in conditions)

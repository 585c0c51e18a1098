"""
Schema definitions for permguard.

This module defines the Pydantic models used throughout permguard:
- Permission: Static catalog metadata (scope, risk, confirmation flag)
- Condition/PermissionRule/PermissionPolicy: The ordered rule policy
- PermissionCheck/PermissionResult: A decision request and its outcome
- AuditLogEntry: One appended record per decision
- PermissionConfig: Catalog + policy bundle used by export/import and YAML
- EngineSettings: Tunables of the decision engine

Design Decisions:
    - Field names are snake_case; camelCase aliases are accepted on input
      (populate_by_name) so configurations exported elsewhere import cleanly
    - Models describing immutable data are frozen
    - Enums are closed; unknown scope/risk/operator values fail validation
"""

from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from permguard.errors import ConfigLoadError, ConfigValidationError


# =============================================================================
# Enums
# =============================================================================


class PermissionScope(str, Enum):
    """Broad area a permission belongs to."""

    TOOL = "tool"
    SYSTEM = "system"
    NETWORK = "network"
    FILE = "file"
    CUSTOM = "custom"


class RiskLevel(str, Enum):
    """Risk classification of a permission."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ConditionOperator(str, Enum):
    """
    Comparison applied by a rule condition.

    camelCase spellings ("startsWith") are accepted on input and mapped to
    these values by Condition's validator.
    """

    EQUALS = "equals"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    CONTAINS = "contains"
    REGEX = "regex"
    BETWEEN = "between"


class DecisionSource(str, Enum):
    """Which branch of the decision procedure produced a result."""

    UNKNOWN_PERMISSION = "unknown_permission"
    TEMPORARY_GRANT = "temporary_grant"
    LIMITED_GRANT = "limited_grant"
    GRANT = "grant"
    CONFIRMATION = "confirmation"
    RULE = "rule"
    DEFAULT = "default"
    ERROR = "error"


class AuditFilter(str, Enum):
    """Filter for audit log reads."""

    GRANTED = "granted"
    DENIED = "denied"


class UnhandledConfirmation(str, Enum):
    """
    What to do when confirmation is required but no handler is installed.

    DENY fails closed. ALLOW skips confirmation silently.
    """

    DENY = "deny"
    ALLOW = "allow"


# =============================================================================
# Catalog Models
# =============================================================================


class Permission(BaseModel):
    """
    A named capability registered in the catalog.

    Attributes:
        name: Dot-segmented name (e.g., "file.write")
        scope: Broad area of the permission
        risk: Risk classification
        requires_confirmation: Whether grant-based approval needs confirmation
        description: Optional human-readable description
        parent: Optional parent permission name (informational)
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    name: str = Field(..., min_length=1, description="Dot-segmented permission name")
    scope: PermissionScope = Field(..., description="Permission scope")
    risk: RiskLevel = Field(..., description="Risk level")
    requires_confirmation: bool = Field(
        default=False,
        description="Require confirmation before grant-based approval",
    )
    description: str | None = Field(default=None, description="Human-readable description")
    parent: str | None = Field(default=None, description="Parent permission name")


# =============================================================================
# Policy Models
# =============================================================================

_OPERATOR_ALIASES = {
    "startsWith": ConditionOperator.STARTS_WITH,
    "endsWith": ConditionOperator.ENDS_WITH,
}


class Condition(BaseModel):
    """
    A single predicate over the request context.

    Attributes:
        type: Key used to resolve the context value ("time", "path" and
            "resource" have special handling; anything else reads
            context[type])
        operator: Comparison to apply
        value: A string, or a list of strings meaning "any of"
        context_key: Read this context field instead of the type default
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    type: str = Field(..., min_length=1, description="Condition type")
    operator: ConditionOperator = Field(..., description="Comparison operator")
    value: str | list[str] = Field(..., description="Value or list of values")
    context_key: str | None = Field(default=None, description="Context field override")

    @field_validator("operator", mode="before")
    @classmethod
    def normalize_operator(cls, v: Any) -> Any:
        """Accept camelCase operator names."""
        if isinstance(v, str) and v in _OPERATOR_ALIASES:
            return _OPERATOR_ALIASES[v]
        return v


class PermissionRule(BaseModel):
    """
    One policy line.

    Attributes:
        pattern: Exact name, "prefix*" wildcard, or hierarchical parent
        allow: Decision when the rule applies
        conditions: All must hold for the rule to apply (empty = always)
        reason: Reason surfaced on denial
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    pattern: str = Field(
        ...,
        min_length=1,
        alias="permission",
        description="Permission name pattern",
    )
    allow: bool = Field(..., description="Allow or deny when the rule applies")
    conditions: list[Condition] = Field(
        default_factory=list,
        description="Conditions, evaluated with AND semantics",
    )
    reason: str | None = Field(default=None, description="Reason shown on denial")


class PermissionPolicy(BaseModel):
    """
    Ordered rule list plus the default fallback.

    The first rule whose pattern matches and whose conditions all hold
    decides; if none does, default_allow applies.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    default_allow: bool = Field(
        default=False,
        description="Decision when no grant or rule applies",
    )
    rules: list[PermissionRule] = Field(
        default_factory=list,
        description="Rules evaluated in order",
    )


# =============================================================================
# Runtime Models
# =============================================================================


class PermissionCheck(BaseModel):
    """A decision request: the permission asked about plus free-form context."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    permission: str = Field(..., description="Permission name being checked")
    context: dict[str, Any] = Field(default_factory=dict, description="Request context")


class PermissionResult(BaseModel):
    """
    Outcome of a permission check.

    Attributes:
        granted: Whether the operation may proceed
        reason: Explanation, present on denial
        permission: Permission that was checked
        context: Context echoed from the request
        timestamp: When the decision was made
        source: Which branch of the decision procedure decided
        expires_at: Expiry of the temporary grant that approved the check
        remaining_uses: Uses left on the limited grant that approved the check
        rule: The policy rule that decided, if any
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    granted: bool = Field(..., description="Whether the permission was granted")
    reason: str | None = Field(default=None, description="Reason, present on denial")
    permission: str = Field(..., description="Permission that was checked")
    context: dict[str, Any] = Field(default_factory=dict, description="Request context")
    timestamp: datetime = Field(..., description="Decision time")
    source: DecisionSource = Field(..., description="Deciding branch")
    expires_at: datetime | None = Field(default=None, description="Temporary grant expiry")
    remaining_uses: int | None = Field(default=None, description="Remaining limited uses")
    rule: PermissionRule | None = Field(default=None, description="Deciding rule")


class AuditLogEntry(BaseModel):
    """One append-only record per decision."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    timestamp: datetime = Field(..., description="When the entry was appended")
    permission: str = Field(..., description="Permission that was checked")
    context: dict[str, Any] = Field(default_factory=dict, description="Request context")
    result: PermissionResult = Field(..., description="The full decision")


class ConfirmationRequest(BaseModel):
    """Payload handed to a confirmation handler."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    permission: str = Field(..., description="Permission awaiting confirmation")
    risk: RiskLevel = Field(..., description="Risk level of the permission")
    context: dict[str, Any] = Field(default_factory=dict, description="Request context")


# =============================================================================
# Configuration Models
# =============================================================================


class PermissionConfig(BaseModel):
    """
    Bulk catalog + policy configuration.

    Either part may be omitted on import; an omitted part is left unchanged.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    permissions: list[Permission] | None = Field(
        default=None,
        description="Full catalog replacement",
    )
    policy: PermissionPolicy | None = Field(
        default=None,
        description="Whole policy replacement",
    )


class EngineSettings(BaseModel):
    """
    Tunables of the decision engine.

    Attributes:
        confirmation_timeout_seconds: Upper bound on awaiting a handler
        unhandled_confirmation: Behavior when confirmation is required but
            no handler is installed
        seed_builtin_permissions: Register the built-in catalog at startup
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    confirmation_timeout_seconds: float = Field(
        default=60.0,
        description="Maximum time to await a confirmation handler",
        gt=0,
    )
    unhandled_confirmation: UnhandledConfirmation = Field(
        default=UnhandledConfirmation.DENY,
        description="Decision when no confirmation handler is installed",
    )
    seed_builtin_permissions: bool = Field(
        default=True,
        description="Register built-in permissions at construction",
    )


# =============================================================================
# YAML Loading Helpers
# =============================================================================


def parse_config(data: Mapping[str, Any] | None, source: str = "<mapping>") -> PermissionConfig:
    """
    Validate a mapping as a PermissionConfig.

    Raises:
        ConfigValidationError: If the data doesn't match the schema
    """
    if data is None:
        return PermissionConfig()
    if not isinstance(data, Mapping):
        raise ConfigValidationError(
            source=source,
            errors=[f"expected a mapping at top level, got {type(data).__name__}"],
        )
    try:
        return PermissionConfig.model_validate(dict(data))
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise ConfigValidationError(source=source, errors=errors) from e


def load_config(path: Path | str) -> PermissionConfig:
    """
    Load a catalog/policy configuration from a YAML file.

    Raises:
        ConfigLoadError: If the file can't be read or isn't valid YAML
        ConfigValidationError: If the YAML doesn't match the schema
    """
    path = Path(path)
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigLoadError(source=str(path), underlying_error=str(e)) from e

    return parse_config(data, source=str(path))


def load_config_from_string(content: str) -> PermissionConfig:
    """Load a catalog/policy configuration from a YAML string."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigLoadError(source="<string>", underlying_error=str(e)) from e
    return parse_config(data, source="<string>")


def dump_config(config: PermissionConfig) -> str:
    """Serialize a configuration to YAML, omitting unset parts."""
    data = config.model_dump(mode="json", exclude_none=True)
    return yaml.safe_dump(data, sort_keys=False)

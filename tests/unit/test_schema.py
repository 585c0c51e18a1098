"""
Unit tests for schema models and YAML configuration loading.

Tests cover:
- Model validation (enums, frozen models, extra fields)
- camelCase aliases on input
- parse_config / load_config / load_config_from_string error wrapping
- dump_config output
"""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from permguard.errors import ConfigLoadError, ConfigValidationError
from permguard.schema import (
    Condition,
    ConditionOperator,
    EngineSettings,
    Permission,
    PermissionConfig,
    PermissionPolicy,
    PermissionRule,
    PermissionScope,
    RiskLevel,
    dump_config,
    load_config,
    load_config_from_string,
    parse_config,
)


# =============================================================================
# Models
# =============================================================================


class TestPermission:
    """Permission model."""

    def test_minimal(self) -> None:
        p = Permission(name="file.read", scope="file", risk="low")
        assert p.scope == PermissionScope.FILE
        assert p.risk == RiskLevel.LOW
        assert p.requires_confirmation is False

    def test_camel_case_alias(self) -> None:
        p = Permission.model_validate(
            {"name": "x", "scope": "custom", "risk": "high", "requiresConfirmation": True}
        )
        assert p.requires_confirmation is True

    def test_invalid_risk(self) -> None:
        with pytest.raises(ValidationError):
            Permission(name="x", scope="file", risk="extreme")

    def test_empty_name(self) -> None:
        with pytest.raises(ValidationError):
            Permission(name="", scope="file", risk="low")

    def test_frozen(self) -> None:
        p = Permission(name="x", scope="file", risk="low")
        with pytest.raises(ValidationError):
            p.risk = RiskLevel.HIGH

    def test_extra_fields_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Permission.model_validate({"name": "x", "scope": "file", "risk": "low", "owner": "me"})


class TestPolicyModels:
    """Condition, PermissionRule and PermissionPolicy."""

    def test_operator_aliases(self) -> None:
        assert Condition(type="path", operator="startsWith", value="/").operator == (
            ConditionOperator.STARTS_WITH
        )
        assert Condition(type="path", operator="endsWith", value="/").operator == (
            ConditionOperator.ENDS_WITH
        )

    def test_unknown_operator(self) -> None:
        with pytest.raises(ValidationError):
            Condition(type="path", operator="glob", value="*")

    def test_context_key_alias(self) -> None:
        c = Condition.model_validate(
            {"type": "x", "operator": "equals", "value": "v", "contextKey": "user"}
        )
        assert c.context_key == "user"

    def test_rule_permission_alias(self) -> None:
        rule = PermissionRule.model_validate({"permission": "file.*", "allow": True})
        assert rule.pattern == "file.*"
        assert rule.conditions == []

    def test_policy_defaults(self) -> None:
        policy = PermissionPolicy()
        assert policy.default_allow is False
        assert policy.rules == []

    def test_policy_camel_case(self) -> None:
        policy = PermissionPolicy.model_validate({"defaultAllow": True})
        assert policy.default_allow is True

    def test_settings_timeout_positive(self) -> None:
        with pytest.raises(ValidationError):
            EngineSettings(confirmation_timeout_seconds=0)


# =============================================================================
# Configuration Loading
# =============================================================================


class TestConfigLoading:
    """YAML configuration helpers."""

    def test_load_sample(self, sample_config_file: Path) -> None:
        config = load_config(sample_config_file)
        assert [p.name for p in config.permissions] == ["file.read", "file.write", "bash.execute"]
        assert config.permissions[2].requires_confirmation is True
        assert config.policy.default_allow is False
        assert config.policy.rules[0].pattern == "file.write"
        assert config.policy.rules[0].conditions[0].value == ["/etc", "/usr"]

    def test_missing_file(self, temp_dir: Path) -> None:
        with pytest.raises(ConfigLoadError) as exc_info:
            load_config(temp_dir / "missing.yaml")
        assert exc_info.value.code == 3001

    def test_invalid_yaml(self) -> None:
        with pytest.raises(ConfigLoadError):
            load_config_from_string("policy: [unclosed")

    def test_invalid_schema(self) -> None:
        with pytest.raises(ConfigValidationError) as exc_info:
            load_config_from_string("permissions:\n  - name: x\n    scope: moon\n    risk: low\n")
        assert any("scope" in e for e in exc_info.value.errors)
        assert exc_info.value.source == "<string>"

    def test_top_level_must_be_mapping(self) -> None:
        with pytest.raises(ConfigValidationError):
            load_config_from_string("- just\n- a list\n")

    def test_empty_document(self) -> None:
        config = load_config_from_string("")
        assert config.permissions is None
        assert config.policy is None

    def test_parse_config_mapping(self) -> None:
        config = parse_config({"policy": {"defaultAllow": True}})
        assert config.policy.default_allow is True
        assert config.permissions is None

    def test_dump_round_trips_through_yaml(self) -> None:
        config = PermissionConfig(
            policy=PermissionPolicy(
                rules=[PermissionRule(pattern="bash.*", allow=False, reason="no shell")]
            )
        )
        data = yaml.safe_load(dump_config(config))
        assert "permissions" not in data
        assert data["policy"]["rules"][0]["pattern"] == "bash.*"
        assert parse_config(
            {"policy": {"rules": [{"permission": "bash.*", "allow": False}]}}
        ).policy.rules[0].pattern == "bash.*"

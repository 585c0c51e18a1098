"""
permguard - Permission and policy evaluation for agent tool calls.

permguard is the decision oracle an agent runtime consults before a
sensitive operation (reading or writing files, running shell commands,
making network requests). It provides:
- A catalog of named permissions with scope and risk metadata
- Permanent, wildcard, hierarchical, temporary and usage-limited grants
- An ordered, condition-based rule policy with a deny-by-default fallback
- Confirmation prompts for high-risk permissions, failing closed
- An append-only audit trail, optionally persisted to SQLite

Example usage:
    engine = PermissionEngine()
    engine.grant("file.read")
    result = await engine.check("file.read", {"resource": "./README.md"})

    $ permguard check file.write -c policy.yaml -x resource=/tmp/out.txt
    $ permguard audit audit.db --filter denied
"""

__version__ = "0.1.0"
__author__ = "permguard Contributors"

from permguard.engine import PermissionEngine
from permguard.errors import (
    ConfigError,
    ConfigLoadError,
    ConfigValidationError,
    ConfirmationError,
    PermguardError,
    PermissionDeniedError,
    StorageError,
)
from permguard.schema import (
    AuditLogEntry,
    Condition,
    ConditionOperator,
    DecisionSource,
    EngineSettings,
    Permission,
    PermissionCheck,
    PermissionConfig,
    PermissionPolicy,
    PermissionResult,
    PermissionRule,
    PermissionScope,
    RiskLevel,
    UnhandledConfirmation,
    load_config,
)
from permguard.store import AuditDB

__all__ = [
    "__version__",
    "__author__",
    "AuditDB",
    "AuditLogEntry",
    "Condition",
    "ConditionOperator",
    "ConfigError",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfirmationError",
    "DecisionSource",
    "EngineSettings",
    "PermguardError",
    "Permission",
    "PermissionCheck",
    "PermissionConfig",
    "PermissionDeniedError",
    "PermissionEngine",
    "PermissionPolicy",
    "PermissionResult",
    "PermissionRule",
    "PermissionScope",
    "RiskLevel",
    "StorageError",
    "UnhandledConfirmation",
    "load_config",
]

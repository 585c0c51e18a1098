"""
Decision engine for permguard.

The PermissionEngine is the single decision oracle every tool executor
consults before a sensitive operation. It composes the catalog, grant
store, policy matcher, confirmation gate and audit log:

    check(permission, context)
        1. Unknown permission         -> deny
        2. Grant store lookup         -> grant (confirmation for standing
                                         grants of confirmation-required
                                         permissions)
        3. First applicable rule      -> its decision
        4. Default policy             -> default_allow
        Every path appends exactly one audit entry.

Design Principles:
    - Fail-closed: errors and confirmation failures become denials
    - No caching: only the grant store carries state between checks
    - Explicit ownership: the engine is an ordinary object, no singleton

The engine decides; it does not enforce. Callers must refuse to act when
result.granted is False (or use require(), which raises).
"""

import asyncio
import copy
import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta
from typing import Any

from permguard.audit import AuditLog, AuditSink
from permguard.catalog import BUILTIN_PERMISSIONS, PermissionCatalog
from permguard.confirm import (
    CANCELLED_REASON,
    ConfirmationGate,
    ConfirmationHandler,
)
from permguard.errors import PermissionDeniedError
from permguard.grants import GrantStore, as_aware
from permguard.policy import (
    DEFAULT_POLICY_DENY_REASON,
    RequestContext,
    match_rules,
)
from permguard.schema import (
    AuditFilter,
    AuditLogEntry,
    ConfirmationRequest,
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
    parse_config,
)

logger = logging.getLogger(__name__)


def local_now() -> datetime:
    """Current local time, timezone-aware."""
    return datetime.now().astimezone()


def _echo_context(context: Any) -> dict[str, Any]:
    """Best-effort string-keyed copy of a context that failed validation."""
    if not isinstance(context, Mapping):
        return {}
    return {str(k): repr(v) for k, v in context.items()}


class PermissionEngine:
    """
    Central permission decision engine.

    Usage:
        engine = PermissionEngine(PermissionPolicy(default_allow=False))
        engine.grant("file.*")
        result = await engine.check("file.write", {"resource": "/tmp/out.txt"})
        if result.granted:
            # proceed with the operation
        else:
            # refuse, surface result.reason

    A fresh engine denies by default: without a policy, anything that is
    neither granted nor allowed by a rule is refused. This differs from
    allow-by-default permission managers; pass
    PermissionPolicy(default_allow=True) to get that behaviour.

    Attributes:
        settings: Engine tunables
        catalog: Registered permissions
        grants: Explicit grant state
        audit: Append-only decision log
    """

    def __init__(
        self,
        policy: PermissionPolicy | None = None,
        permissions: Iterable[Permission] = (),
        settings: EngineSettings | None = None,
        confirmation_handler: ConfirmationHandler | None = None,
        audit_sink: AuditSink | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            policy: Rule policy (defaults to deny-by-default with no rules)
            permissions: Extra permissions registered after the built-ins
            settings: Engine tunables
            confirmation_handler: Handler for confirmation-required permissions
            audit_sink: Receives each audit entry (e.g. an AuditDB)
            clock: Source of the current time, for tests
        """
        self.settings = settings or EngineSettings()
        self._clock = clock or local_now
        self._policy = policy or PermissionPolicy()

        self.catalog = PermissionCatalog(
            BUILTIN_PERMISSIONS if self.settings.seed_builtin_permissions else ()
        )
        for permission in permissions:
            self.catalog.register(permission)

        self.grants = GrantStore()
        self.audit = AuditLog(sink=audit_sink)
        self._gate = ConfirmationGate(
            handler=confirmation_handler,
            timeout_seconds=self.settings.confirmation_timeout_seconds,
            unhandled=self.settings.unhandled_confirmation,
        )

    def _now(self) -> datetime:
        return as_aware(self._clock())

    # =========================================================================
    # Decisions
    # =========================================================================

    async def check(
        self,
        permission: str,
        context: Mapping[str, Any] | None = None,
    ) -> PermissionResult:
        """
        Decide whether an operation needing a permission may proceed.

        Args:
            permission: Permission name (e.g., "file.write")
            context: Request details (resource, command, user, ...)

        Returns:
            PermissionResult; exactly one audit entry is appended
        """
        try:
            request = PermissionCheck(
                permission=permission,
                context=copy.deepcopy(dict(context or {})),
            )
        except Exception as e:
            logger.warning("Rejected malformed check for %s: %s", permission, e)
            request = PermissionCheck.model_construct(
                permission=str(permission),
                context=_echo_context(context),
            )
            result = self._deny(
                request,
                DecisionSource.ERROR,
                f"Invalid permission check: {e}",
            )
            self.audit.append(result)
            return result
        return await self.evaluate(request)

    async def evaluate(self, request: PermissionCheck) -> PermissionResult:
        """Decide a PermissionCheck. See check()."""
        try:
            result = await self._decide(request)
        except asyncio.CancelledError:
            self.audit.append(
                self._deny(request, DecisionSource.CONFIRMATION, CANCELLED_REASON)
            )
            raise
        except Exception as e:
            logger.exception("Permission check for %s failed", request.permission)
            result = self._deny(
                request,
                DecisionSource.ERROR,
                f"Permission check failed: {e}",
            )

        self.audit.append(result)
        logger.debug(
            "%s %s (%s)%s",
            "GRANT" if result.granted else "DENY",
            result.permission,
            result.source.value,
            f": {result.reason}" if result.reason else "",
        )
        return result

    def check_sync(
        self,
        permission: str,
        context: Mapping[str, Any] | None = None,
    ) -> PermissionResult:
        """
        Blocking wrapper around check() for synchronous callers.

        Must not be called from inside a running event loop.
        """
        return asyncio.run(self.check(permission, context))

    async def require(
        self,
        permission: str,
        context: Mapping[str, Any] | None = None,
    ) -> PermissionResult:
        """
        Like check(), but raise on denial.

        Raises:
            PermissionDeniedError: If the check is denied
        """
        result = await self.check(permission, context)
        if not result.granted:
            raise PermissionDeniedError(
                permission=permission,
                reason=result.reason or "",
                request_context=dict(result.context),
            )
        return result

    async def _decide(self, request: PermissionCheck) -> PermissionResult:
        name = request.permission
        permission = self.catalog.get(name)
        if permission is None:
            return self._deny(
                request,
                DecisionSource.UNKNOWN_PERMISSION,
                f"Unknown permission: {name}",
            )

        now = self._now()
        match = self.grants.consume(name, now)
        if match is not None:
            if match.source == DecisionSource.GRANT and permission.requires_confirmation:
                outcome = await self._gate.confirm(
                    ConfirmationRequest(
                        permission=name,
                        risk=permission.risk,
                        context=request.context,
                    )
                )
                if not outcome.approved:
                    return self._deny(request, DecisionSource.CONFIRMATION, outcome.reason)
            return self._result(
                request,
                granted=True,
                source=match.source,
                expires_at=match.expires_at,
                remaining_uses=match.remaining_uses,
            )

        policy = self._policy
        rule_match = match_rules(policy, name, RequestContext(request.context, now))
        if rule_match is not None:
            return self._result(
                request,
                granted=rule_match.allowed,
                source=DecisionSource.RULE,
                reason=rule_match.reason,
                rule=rule_match.rule,
            )

        return self._result(
            request,
            granted=policy.default_allow,
            source=DecisionSource.DEFAULT,
            reason=None if policy.default_allow else DEFAULT_POLICY_DENY_REASON,
        )

    def _result(
        self,
        request: PermissionCheck,
        granted: bool,
        source: DecisionSource,
        reason: str | None = None,
        expires_at: datetime | None = None,
        remaining_uses: int | None = None,
        rule: PermissionRule | None = None,
    ) -> PermissionResult:
        return PermissionResult(
            granted=granted,
            reason=reason,
            permission=request.permission,
            context=request.context,
            timestamp=self._now(),
            source=source,
            expires_at=expires_at,
            remaining_uses=remaining_uses,
            rule=rule,
        )

    def _deny(
        self,
        request: PermissionCheck,
        source: DecisionSource,
        reason: str | None,
    ) -> PermissionResult:
        return self._result(request, granted=False, source=source, reason=reason)

    # =========================================================================
    # Catalog
    # =========================================================================

    def register(self, permission: Permission) -> None:
        self.catalog.register(permission)

    def unregister(self, name: str) -> bool:
        return self.catalog.unregister(name)

    def get(self, name: str) -> Permission | None:
        return self.catalog.get(name)

    def list_permissions(self) -> list[Permission]:
        return self.catalog.list()

    def list_by_risk(self, risk: RiskLevel | str) -> list[Permission]:
        return self.catalog.list_by_risk(risk)

    def list_by_scope(self, scope: PermissionScope | str) -> list[Permission]:
        return self.catalog.list_by_scope(scope)

    def clear(self) -> None:
        """Remove every registered permission."""
        self.catalog.clear()

    def requires_confirmation(self, name: str) -> bool:
        permission = self.catalog.get(name)
        return permission is not None and permission.requires_confirmation

    # =========================================================================
    # Policy and configuration
    # =========================================================================

    def set_policy(self, policy: PermissionPolicy | Mapping[str, Any]) -> None:
        if not isinstance(policy, PermissionPolicy):
            policy = PermissionPolicy.model_validate(dict(policy))
        self._policy = policy

    def get_policy(self) -> PermissionPolicy:
        """A copy of the current policy."""
        return self._policy.model_copy(deep=True)

    def export_config(self) -> PermissionConfig:
        return PermissionConfig(
            permissions=self.catalog.list(),
            policy=self.get_policy(),
        )

    def import_config(self, config: PermissionConfig | Mapping[str, Any]) -> None:
        """
        Replace the catalog and/or policy.

        Parts missing from the config are left unchanged.

        Raises:
            ConfigValidationError: If a mapping doesn't match the schema
        """
        if not isinstance(config, PermissionConfig):
            config = parse_config(config)
        if config.permissions is not None:
            self.catalog.replace(config.permissions)
        if config.policy is not None:
            self.set_policy(config.policy)

    # =========================================================================
    # Grants
    # =========================================================================

    def grant(self, name: str) -> None:
        """Grant permanently. Accepts exact names, "prefix*" and bare parents."""
        self.grants.grant(name)

    def revoke(self, name: str) -> None:
        """Remove permanent, temporary and limited grants for the name."""
        self.grants.revoke(name)

    def grant_temporary(self, name: str, expires_at: datetime | timedelta) -> datetime:
        """Grant until expires_at (absolute, or relative to now)."""
        return self.grants.grant_temporary(name, expires_at, now=self._now())

    def grant_with_limit(self, name: str, max_uses: int) -> None:
        self.grants.grant_with_limit(name, max_uses)

    def grant_scope(self, scope: PermissionScope | str) -> list[str]:
        """Permanently grant every catalog permission in a scope."""
        names = [p.name for p in self.catalog.list_by_scope(scope)]
        for name in names:
            self.grants.grant(name)
        return names

    def list_granted(self) -> list[str]:
        return self.grants.list_granted()

    # =========================================================================
    # Confirmation and audit
    # =========================================================================

    def set_confirmation_handler(self, handler: ConfirmationHandler | None) -> None:
        self._gate.handler = handler

    def get_audit_log(self, filter: AuditFilter | str | None = None) -> list[AuditLogEntry]:
        """Snapshot of the audit log, optionally only "granted" or "denied" entries."""
        return self.audit.entries(filter)

    def clear_audit_log(self) -> None:
        self.audit.clear()

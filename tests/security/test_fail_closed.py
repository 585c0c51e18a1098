"""
Security tests for fail-closed behavior.

These tests verify that the engine never approves an operation because
something went wrong: broken handlers, slow prompts, cancellation, racing
consumers of limited grants, and grants that look broader than they are.

Tests cover:
- Confirmation failures deny
- Cancellation is audited as a denial
- Malformed requests are denied and audited
- Limited grants are never double-spent under concurrency
- Grant and rule patterns do not over-match
"""

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import FakeClock
from permguard.confirm import CANCELLED_REASON, TIMEOUT_REASON
from permguard.engine import PermissionEngine
from permguard.schema import (
    DecisionSource,
    EngineSettings,
    Permission,
    PermissionPolicy,
    PermissionRule,
)


@pytest.fixture
def guarded(clock: FakeClock) -> PermissionEngine:
    """Engine with a standing grant on a confirmation-required permission."""
    engine = PermissionEngine(
        PermissionPolicy(default_allow=True),
        permissions=[
            Permission(
                name="payments.refund",
                scope="custom",
                risk="critical",
                requires_confirmation=True,
            )
        ],
        settings=EngineSettings(confirmation_timeout_seconds=0.05),
        clock=clock,
    )
    engine.grant("payments.refund")
    return engine


# =============================================================================
# Confirmation
# =============================================================================


class TestConfirmationFailsClosed:
    """A grant is never final without a confirmed answer."""

    @pytest.mark.asyncio
    async def test_slow_handler_denied(self, guarded: PermissionEngine) -> None:
        async def slow(request) -> bool:
            await asyncio.sleep(5)
            return True

        guarded.set_confirmation_handler(slow)
        result = await guarded.check("payments.refund")
        assert result.granted is False
        assert result.reason == TIMEOUT_REASON

    @pytest.mark.asyncio
    async def test_crashing_handler_denied(self, guarded: PermissionEngine) -> None:
        def crash(request) -> bool:
            raise KeyError("tty")

        guarded.set_confirmation_handler(crash)
        result = await guarded.check("payments.refund")
        assert result.granted is False
        assert result.reason.startswith("User confirmation failed:")

    @pytest.mark.asyncio
    async def test_default_allow_does_not_bypass_refusal(self, guarded: PermissionEngine) -> None:
        guarded.set_confirmation_handler(lambda request: False)
        result = await guarded.check("payments.refund")
        assert result.granted is False
        assert result.source == DecisionSource.CONFIRMATION

    @pytest.mark.asyncio
    async def test_cancelled_check_is_audited(self, guarded: PermissionEngine) -> None:
        started = asyncio.Event()

        async def waiting(request) -> bool:
            started.set()
            await asyncio.sleep(5)
            return True

        guarded._gate.timeout_seconds = 10
        guarded.set_confirmation_handler(waiting)
        task = asyncio.create_task(guarded.check("payments.refund"))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        log = guarded.get_audit_log()
        assert len(log) == 1
        assert log[0].result.granted is False
        assert log[0].result.reason == CANCELLED_REASON


# =============================================================================
# Malformed Requests
# =============================================================================


class TestMalformedChecks:
    """Requests that fail validation are denied and still audited."""

    @pytest.mark.asyncio
    async def test_non_string_context_key(self, engine: PermissionEngine) -> None:
        engine.grant("file.read")
        result = await engine.check("file.read", {1: "x"})
        assert result.granted is False
        assert result.source == DecisionSource.ERROR
        assert result.reason.startswith("Invalid permission check:")

        log = engine.get_audit_log()
        assert len(log) == 1
        assert log[0].permission == "file.read"
        assert log[0].context == {"1": "'x'"}
        assert log[0].result.granted is False

    @pytest.mark.asyncio
    async def test_non_mapping_context(self, engine: PermissionEngine) -> None:
        result = await engine.check("file.read", ["resource", "/etc"])
        assert result.granted is False
        assert result.source == DecisionSource.ERROR
        assert engine.get_audit_log()[0].context == {}

    def test_sync_wrapper_denies_too(self, engine: PermissionEngine) -> None:
        engine.grant("file.read")
        result = engine.check_sync("file.read", {("a", "b"): 1})
        assert result.granted is False
        assert len(engine.get_audit_log("denied")) == 1


# =============================================================================
# Limited Grants
# =============================================================================


class TestLimitedGrantConcurrency:
    """Uses are never over-granted."""

    def test_threads_cannot_double_spend(self, engine: PermissionEngine) -> None:
        engine.grant_with_limit("network.request", 10)
        barrier = threading.Barrier(8)

        def attempt(_: int) -> int:
            barrier.wait()
            granted = 0
            for _ in range(5):
                if engine.check_sync("network.request").granted:
                    granted += 1
            return granted

        with ThreadPoolExecutor(max_workers=8) as pool:
            total = sum(pool.map(attempt, range(8)))

        assert total == 10
        assert len(engine.get_audit_log()) == 40

    @pytest.mark.asyncio
    async def test_concurrent_tasks_cannot_double_spend(self, engine: PermissionEngine) -> None:
        engine.grant_with_limit("network.request", 3)
        results = await asyncio.gather(*(engine.check("network.request") for _ in range(10)))
        assert sum(r.granted for r in results) == 3


# =============================================================================
# Pattern Boundaries
# =============================================================================


class TestPatternBoundaries:
    """Grants and rules cover exactly what they name."""

    @pytest.mark.asyncio
    async def test_hierarchical_grant_needs_dot_boundary(self, engine: PermissionEngine) -> None:
        engine.register(Permission(name="filesystem.format", scope="system", risk="critical"))
        engine.grant("file")
        assert (await engine.check("filesystem.format")).granted is False

    @pytest.mark.asyncio
    async def test_dotted_grant_is_not_hierarchical(self, engine: PermissionEngine) -> None:
        engine.register(Permission(name="file.read.secrets", scope="file", risk="high"))
        engine.grant("file.read")
        assert (await engine.check("file.read.secrets")).granted is False

    @pytest.mark.asyncio
    async def test_deny_rule_not_bypassed_by_context(self, engine: PermissionEngine) -> None:
        engine.set_policy(
            PermissionPolicy(
                default_allow=True,
                rules=[PermissionRule(pattern="system", allow=False)],
            )
        )
        result = await engine.check("system.execute", {"user": "root", "resource": "/"})
        assert result.granted is False

    @pytest.mark.asyncio
    async def test_unknown_permission_denied_despite_everything(
        self, engine: PermissionEngine
    ) -> None:
        engine.set_policy(
            PermissionPolicy(default_allow=True, rules=[PermissionRule(pattern="*", allow=True)])
        )
        engine.grant("*")
        result = await engine.check("rootkit.install")
        assert result.granted is False
        assert result.source == DecisionSource.UNKNOWN_PERMISSION

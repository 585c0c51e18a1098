"""
Confirmation gate.

Permissions flagged requires_confirmation need an out-of-band approval
before a grant-based approval is final. The gate wraps a caller-supplied
handler and turns every way it can fail into a denial:

    - handler answers False       -> "User confirmation denied"
    - handler raises              -> "User confirmation failed: <error>"
    - handler exceeds the timeout -> "User confirmation timed out"
      (or raises ConfirmationTimeoutError)
    - handler is cancelled        -> "User confirmation cancelled"
    - no handler installed        -> denial, or approval if the engine is
                                     configured with unhandled_confirmation=allow

Handlers receive a ConfirmationRequest and may be coroutine functions or
plain callables. Plain callables run on the event loop, so anything that
blocks (a terminal prompt) should hand off to a thread, as
ConsoleConfirmationHandler does.

Usage:
    gate = ConfirmationGate(handler, timeout_seconds=30)
    outcome = await gate.confirm(request)
    if not outcome.approved:
        print(outcome.reason)
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TextIO

import httpx
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from permguard.errors import (
    ConfirmationError,
    ConfirmationTimeoutError,
    ConfirmationTransportError,
)
from permguard.schema import ConfirmationRequest, RiskLevel, UnhandledConfirmation

logger = logging.getLogger(__name__)

ConfirmationHandler = Callable[[ConfirmationRequest], Awaitable[bool] | bool]

DENIED_REASON = "User confirmation denied"
TIMEOUT_REASON = "User confirmation timed out"
CANCELLED_REASON = "User confirmation cancelled"
NO_HANDLER_REASON = "Confirmation required but no handler is configured"

RISK_STYLES = {
    RiskLevel.LOW: "green",
    RiskLevel.MEDIUM: "yellow",
    RiskLevel.HIGH: "red",
    RiskLevel.CRITICAL: "bold red",
}


@dataclass(frozen=True)
class ConfirmationOutcome:
    """Result of asking for confirmation. reason is set when not approved."""

    approved: bool
    reason: str | None = None


class ConfirmationGate:
    """
    Awaits a confirmation handler with a timeout, failing closed.

    Attributes:
        handler: The installed handler, or None
        timeout_seconds: Upper bound on awaiting the handler
        unhandled: Decision when no handler is installed
    """

    def __init__(
        self,
        handler: ConfirmationHandler | None = None,
        timeout_seconds: float = 60.0,
        unhandled: UnhandledConfirmation = UnhandledConfirmation.DENY,
    ) -> None:
        self.handler = handler
        self.timeout_seconds = timeout_seconds
        self.unhandled = unhandled

    async def confirm(self, request: ConfirmationRequest) -> ConfirmationOutcome:
        """
        Ask for confirmation.

        Never raises for handler failures. Re-raises CancelledError only
        when the calling task itself is being cancelled.
        """
        if self.handler is None:
            if self.unhandled == UnhandledConfirmation.ALLOW:
                logger.debug("No confirmation handler; allowing %s", request.permission)
                return ConfirmationOutcome(approved=True)
            logger.warning("No confirmation handler; denying %s", request.permission)
            return ConfirmationOutcome(approved=False, reason=NO_HANDLER_REASON)

        try:
            answer = await asyncio.wait_for(
                self._invoke(request),
                timeout=self.timeout_seconds,
            )
        except TimeoutError:
            logger.warning(
                "Confirmation for %s timed out after %ss",
                request.permission,
                self.timeout_seconds,
            )
            return ConfirmationOutcome(approved=False, reason=TIMEOUT_REASON)
        except ConfirmationTimeoutError as e:
            logger.warning("Confirmation for %s timed out: %s", request.permission, e)
            return ConfirmationOutcome(approved=False, reason=TIMEOUT_REASON)
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            logger.warning("Confirmation for %s was cancelled", request.permission)
            return ConfirmationOutcome(approved=False, reason=CANCELLED_REASON)
        except Exception as e:
            logger.warning("Confirmation handler failed for %s: %s", request.permission, e)
            return ConfirmationOutcome(
                approved=False,
                reason=f"User confirmation failed: {e}",
            )

        if answer:
            return ConfirmationOutcome(approved=True)
        return ConfirmationOutcome(approved=False, reason=DENIED_REASON)

    async def _invoke(self, request: ConfirmationRequest) -> Any:
        answer = self.handler(request)
        if inspect.isawaitable(answer):
            answer = await answer
        return answer


# =============================================================================
# Handlers
# =============================================================================


class ConsoleConfirmationHandler:
    """
    Interactive terminal prompt built on Rich.

    Shows the permission, its risk and the request context, then asks a
    yes/no question. The prompt runs in a worker thread so the event loop
    (and the gate's timeout) keep running while the user decides.
    """

    def __init__(
        self,
        console: Console | None = None,
        default: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        self.console = console or Console()
        self.default = default
        self.stream = stream

    async def __call__(self, request: ConfirmationRequest) -> bool:
        return await asyncio.to_thread(self.ask, request)

    def ask(self, request: ConfirmationRequest) -> bool:
        style = RISK_STYLES.get(request.risk, "white")
        title = (
            f"[bold]{request.permission}[/bold] "
            f"[{style}]({request.risk.value} risk)[/{style}]"
        )

        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Key", style="dim")
        table.add_column("Value")
        for key, value in request.context.items():
            table.add_row(str(key), str(value))
        if not request.context:
            table.add_row("context", "[dim](empty)[/dim]")

        self.console.print(Panel(table, title=title, title_align="left", expand=False))
        return Confirm.ask(
            "Allow this operation?",
            console=self.console,
            default=self.default,
            stream=self.stream,
        )


class HttpConfirmationHandler:
    """
    Delegates confirmation to a remote approval service.

    POSTs the ConfirmationRequest as JSON and expects a JSON body of the
    form {"approved": true|false}. A request that exceeds timeout_seconds
    raises ConfirmationTimeoutError; other transport errors, non-2xx
    statuses and malformed bodies raise ConfirmationError subclasses. The
    gate converts all of them into a denial.

    Example:
        async with HttpConfirmationHandler("https://approvals.internal/confirm") as handler:
            engine.set_confirmation_handler(handler)
            ...
    """

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 30.0,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.headers = headers or {}
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_seconds,
                headers=self.headers,
            )
        return self._client

    async def __call__(self, request: ConfirmationRequest) -> bool:
        client = self._get_client()
        try:
            response = await client.post(self.url, json=request.model_dump(mode="json"))
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise ConfirmationTimeoutError(
                permission=request.permission,
                timeout_seconds=self.timeout_seconds,
            ) from e
        except httpx.HTTPError as e:
            raise ConfirmationTransportError(
                permission=request.permission,
                url=self.url,
                underlying_error=str(e),
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise ConfirmationError(
                permission=request.permission,
                message=f"Approval service returned invalid JSON: {e}",
            ) from e

        approved = data.get("approved") if isinstance(data, dict) else None
        if not isinstance(approved, bool):
            raise ConfirmationError(
                permission=request.permission,
                message="Approval service response has no boolean 'approved' field",
            )
        return approved

    async def aclose(self) -> None:
        """Close the HTTP client if this handler created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpConfirmationHandler":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

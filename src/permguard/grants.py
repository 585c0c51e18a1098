"""
Grant store.

Tracks explicit grants layered on top of the catalog and policy:

    - permanent: a set of names; wildcard ("file.*") and hierarchical
      ("file") entries also cover descendants
    - temporary: name -> expiry; inactive once now >= expiry
    - limited: name -> remaining uses; each approval consumes one

Lookup order is temporary, then limited, then permanent. Narrower,
time- or usage-bounded grants are consulted first so a standing wildcard
never widens them.

All mutation happens under one re-entrant lock, so a limited grant is never
double-spent by concurrent checks for the same name.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

from permguard.schema import DecisionSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GrantMatch:
    """
    An active grant found for a permission.

    Attributes:
        source: TEMPORARY_GRANT, LIMITED_GRANT or GRANT
        expires_at: Set for temporary grants
        remaining_uses: Set for limited grants (after this use)
        granted_by: The permanent grant entry that matched, for GRANT
    """

    source: DecisionSource
    expires_at: datetime | None = None
    remaining_uses: int | None = None
    granted_by: str | None = None


def as_aware(value: datetime) -> datetime:
    """Interpret naive datetimes as local time."""
    if value.tzinfo is None:
        return value.astimezone()
    return value


def wildcard_covers(granted: str, permission: str) -> bool:
    """True if a trailing-* grant covers the permission ("file.*" -> "file.read")."""
    return granted.endswith("*") and permission.startswith(granted[:-1])


def hierarchy_covers(granted: str, permission: str) -> bool:
    """True if a dot-free grant is an ancestor of the permission ("file" -> "file.read")."""
    return "." not in granted and permission.startswith(granted + ".")


class GrantStore:
    """
    In-memory grant state.

    Usage:
        store = GrantStore()
        store.grant("file.*")
        store.grant_with_limit("api.call", 3)
        match = store.consume("api.call", now)
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._granted: set[str] = set()
        self._temporary: dict[str, datetime] = {}
        self._limited: dict[str, int] = {}

    # =========================================================================
    # Mutation
    # =========================================================================

    def grant(self, name: str) -> None:
        with self._lock:
            self._granted.add(name)

    def revoke(self, name: str) -> None:
        """Remove every kind of grant for the name. Unknown names are ignored."""
        with self._lock:
            self._granted.discard(name)
            self._temporary.pop(name, None)
            self._limited.pop(name, None)

    def grant_temporary(
        self,
        name: str,
        expires_at: datetime | timedelta,
        now: datetime | None = None,
    ) -> datetime:
        """
        Grant until the given expiry.

        Args:
            name: Permission name
            expires_at: Absolute expiry, or a duration relative to now
            now: Reference time for relative durations

        Returns:
            The absolute (timezone-aware) expiry that was stored
        """
        if isinstance(expires_at, timedelta):
            expires_at = (now or datetime.now().astimezone()) + expires_at
        expiry = as_aware(expires_at)
        with self._lock:
            self._temporary[name] = expiry
        return expiry

    def grant_with_limit(self, name: str, max_uses: int) -> None:
        with self._lock:
            self._limited[name] = max_uses

    def clear(self) -> None:
        with self._lock:
            self._granted.clear()
            self._temporary.clear()
            self._limited.clear()

    # =========================================================================
    # Inspection
    # =========================================================================

    def list_granted(self) -> list[str]:
        """Permanent grants only, sorted."""
        with self._lock:
            return sorted(self._granted)

    def list_temporary(self) -> dict[str, datetime]:
        with self._lock:
            return dict(self._temporary)

    def list_limited(self) -> dict[str, int]:
        with self._lock:
            return dict(self._limited)

    # =========================================================================
    # Lookup
    # =========================================================================

    def consume(self, name: str, now: datetime) -> GrantMatch | None:
        """
        Find the grant that approves a check, consuming it where applicable.

        Order:
            1. Purge expired temporary grants
            2. Active temporary grant
            3. Limited grant with uses left (decremented); an exhausted entry
               is removed and treated as absent
            4. Permanent exact, wildcard or hierarchical grant

        Returns:
            The matching grant, or None to fall through to the policy
        """
        now = as_aware(now)
        with self._lock:
            self._purge_expired(now)

            expiry = self._temporary.get(name)
            if expiry is not None:
                return GrantMatch(
                    source=DecisionSource.TEMPORARY_GRANT,
                    expires_at=expiry,
                )

            remaining = self._limited.get(name)
            if remaining is not None:
                if remaining > 0:
                    self._limited[name] = remaining - 1
                    return GrantMatch(
                        source=DecisionSource.LIMITED_GRANT,
                        remaining_uses=remaining - 1,
                    )
                logger.debug("Limited grant for %s exhausted", name)
                del self._limited[name]

            granted_by = self._find_standing_grant(name)
            if granted_by is not None:
                return GrantMatch(source=DecisionSource.GRANT, granted_by=granted_by)

        return None

    def _purge_expired(self, now: datetime) -> None:
        expired = [name for name, expiry in self._temporary.items() if expiry <= now]
        for name in expired:
            logger.debug("Temporary grant for %s expired", name)
            del self._temporary[name]

    def _find_standing_grant(self, name: str) -> str | None:
        if name in self._granted:
            return name
        for granted in sorted(self._granted):
            if wildcard_covers(granted, name) or hierarchy_covers(granted, name):
                return granted
        return None

"""
Permission catalog.

Maps permission names to their static metadata. Names are unique;
registering an existing name replaces its metadata.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from permguard.schema import Permission, PermissionScope, RiskLevel

BUILTIN_PERMISSIONS: tuple[Permission, ...] = (
    Permission(name="file.read", scope=PermissionScope.FILE, risk=RiskLevel.LOW),
    Permission(name="file.write", scope=PermissionScope.FILE, risk=RiskLevel.MEDIUM),
    Permission(name="file.delete", scope=PermissionScope.FILE, risk=RiskLevel.HIGH),
    Permission(name="bash.execute", scope=PermissionScope.SYSTEM, risk=RiskLevel.HIGH),
    Permission(name="network.request", scope=PermissionScope.NETWORK, risk=RiskLevel.MEDIUM),
    Permission(name="system.execute", scope=PermissionScope.SYSTEM, risk=RiskLevel.HIGH),
)


class PermissionCatalog:
    """
    Registry of known permissions.

    Usage:
        catalog = PermissionCatalog(BUILTIN_PERMISSIONS)
        catalog.register(Permission(name="api.call", scope="network", risk="medium"))
        catalog.get("api.call")
    """

    def __init__(self, permissions: Iterable[Permission] = ()) -> None:
        self._permissions: dict[str, Permission] = {}
        for permission in permissions:
            self.register(permission)

    def register(self, permission: Permission) -> None:
        """Add or replace a permission."""
        self._permissions[permission.name] = permission

    def unregister(self, name: str) -> bool:
        """Remove a permission. Returns False if it was not registered."""
        return self._permissions.pop(name, None) is not None

    def get(self, name: str) -> Permission | None:
        return self._permissions.get(name)

    def list(self) -> list[Permission]:
        """All permissions in registration order."""
        return list(self._permissions.values())

    def list_by_risk(self, risk: RiskLevel | str) -> list[Permission]:
        risk = RiskLevel(risk)
        return [p for p in self._permissions.values() if p.risk == risk]

    def list_by_scope(self, scope: PermissionScope | str) -> list[Permission]:
        scope = PermissionScope(scope)
        return [p for p in self._permissions.values() if p.scope == scope]

    def clear(self) -> None:
        self._permissions.clear()

    def replace(self, permissions: Iterable[Permission]) -> None:
        """Swap the whole catalog for the given permissions."""
        self._permissions = {p.name: p for p in permissions}

    def __contains__(self, name: object) -> bool:
        return name in self._permissions

    def __len__(self) -> int:
        return len(self._permissions)

    def __iter__(self) -> Iterator[Permission]:
        return iter(list(self._permissions.values()))

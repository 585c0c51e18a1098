"""
Pytest configuration and fixtures for permguard tests.

This module provides shared fixtures used across unit, integration,
and security tests.
"""

import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Generator

import pytest

from permguard.engine import PermissionEngine
from permguard.schema import PermissionPolicy


class FakeClock:
    """Settable clock for driving expiry and time-of-day conditions."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)

    def set_time(self, hour: int, minute: int = 0) -> None:
        self.now = self.now.replace(hour=hour, minute=minute, second=0)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at noon UTC."""
    return FakeClock(datetime(2026, 3, 2, 12, 0, 0, tzinfo=UTC))


@pytest.fixture
def engine(clock: FakeClock) -> PermissionEngine:
    """Engine with built-ins, deny-by-default policy and the fake clock."""
    return PermissionEngine(PermissionPolicy(default_allow=False), clock=clock)


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a catalog + policy YAML for testing."""
    return """
permissions:
  - name: file.read
    scope: file
    risk: low
  - name: file.write
    scope: file
    risk: medium
  - name: bash.execute
    scope: system
    risk: high
    requiresConfirmation: true
    description: Run shell commands
policy:
  defaultAllow: false
  rules:
    - permission: file.write
      allow: false
      reason: System directories are read-only
      conditions:
        - type: path
          operator: startsWith
          value: ["/etc", "/usr"]
    - permission: file.*
      allow: true
      conditions:
        - type: resource
          operator: starts_with
          value: /home/agent/
"""


@pytest.fixture
def sample_config_file(temp_dir: Path, sample_config_yaml: str) -> Path:
    """Write the sample config to disk."""
    path = temp_dir / "permissions.yaml"
    path.write_text(sample_config_yaml)
    return path

"""
Shared fixtures: a throwaway database, a controllable clock and seeded users.
"""

import os
import shutil
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

from legacy_vault.core.schema import Role
from legacy_vault.core.services import build_services


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def db_path():
    """Create a temporary database path for testing."""
    test_dir = tempfile.mkdtemp()
    yield os.path.join(test_dir, "test_vault.db")
    shutil.rmtree(test_dir)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 1, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def services(db_path, clock):
    return build_services(db_path, clock=clock)


@pytest.fixture
def admin(services, clock):
    return services.users.create_user("Ada Admin", "admin@example.com", Role.ADMIN, now=clock())


@pytest.fixture
def owner(services, clock):
    return services.users.create_user("Olivia Owner", "owner@example.com", Role.OWNER,
                                      inactivity_days=30, now=clock())


@pytest.fixture
def dependent(services, clock):
    return services.users.create_user("Dan Dependent", "dependent@example.com", Role.DEPENDENT, now=clock())


@pytest.fixture
def relationship(services, owner, dependent):
    """Dependent linked to the owner with assets and notes visible."""
    return services.registry.add_dependent(owner.id, dependent.email, {"assets": True, "notes": True})


@pytest.fixture
def inactive_owner(services, clock, owner, relationship):
    """Owner pushed past their threshold by a sweep."""
    clock.advance(days=31)
    services.activity.sweep()
    return services.users.get_user(owner.id)

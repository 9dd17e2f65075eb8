from __future__ import annotations

import os
from types import SimpleNamespace
from uuid import uuid4

import pytest

# Settings are read from the environment on every call; fix them before the app is imported
os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "false")
os.environ.setdefault("AUTO_SEED", "false")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("GOOGLE_MAPS_API_KEY", "test-key")

from dental_crm.core.permissions import DEFAULT_ROLE_PERMISSIONS, AccessContext  # noqa: E402


def make_profile(role: str = "seller", email: str = "ana.perez@3dental.cl", full_name: str | None = "Ana Pérez"):
    return SimpleNamespace(id=uuid4(), email=email, role=role, full_name=full_name, status="active")


def make_context(role: str = "seller", permissions=None, **profile_kwargs) -> AccessContext:
    profile = make_profile(role=role, **profile_kwargs)
    codes = DEFAULT_ROLE_PERMISSIONS.get(role, []) if permissions is None else permissions
    return AccessContext(profile=profile, real_profile=profile, permissions=frozenset(codes))


class _Savepoint:
    def __init__(self, session: "FakeSession") -> None:
        self.session = session

    async def __aenter__(self):
        self.session.savepoints += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self.session.savepoint_rollbacks += 1
        return False


class FakeSession:
    """Stands in for AsyncSession where services only commit, roll back or open savepoints."""

    def __init__(self) -> None:
        self.commits = 0
        self.rollbacks = 0
        self.savepoints = 0
        self.savepoint_rollbacks = 0

    def begin_nested(self) -> _Savepoint:
        return _Savepoint(self)

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1

    async def close(self) -> None:
        return None


@pytest.fixture
def seller_ctx() -> AccessContext:
    return make_context("seller")


@pytest.fixture
def manager_ctx() -> AccessContext:
    return make_context("manager", email="gerencia@3dental.cl", full_name="Gerencia")

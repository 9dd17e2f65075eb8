from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from dental_crm.core.deps import _load_permissions, get_access_context
from dental_crm.core.permissions import DEFAULT_ROLE_PERMISSIONS, MANAGE_USERS, VIEW_METAS
from dental_crm.repositories.profiles import ProfileRepository
from dental_crm.schemas.auth import ProfileUpdate
from dental_crm.services import access as access_module
from dental_crm.services.access import AccessService
from dental_crm.services.base import ConflictError, ForbiddenError
from tests.conftest import FakeSession, make_profile


@pytest.fixture(autouse=True)
def _no_owner(monkeypatch):
    monkeypatch.delenv("OWNER_EMAIL", raising=False)


def _stored_permissions(matrix):
    async def list_role_permissions(self, role):
        return matrix.get(role, [])

    return list_role_permissions


def _profiles_by_email(*profiles):
    by_email = {p.email: p for p in profiles}

    async def get_by_email(self, email):
        return by_email.get(email.strip().lower())

    return get_by_email


class TestLoadPermissions:
    async def test_failed_read_falls_back_to_defaults(self, monkeypatch):
        async def list_role_permissions(self, role):
            raise RuntimeError("relation role_permissions does not exist")

        monkeypatch.setattr(ProfileRepository, "list_role_permissions", list_role_permissions)
        session = FakeSession()

        codes = await _load_permissions(ProfileRepository(session), make_profile("seller"))

        assert codes == frozenset(DEFAULT_ROLE_PERMISSIONS["seller"])
        assert session.savepoints == 1
        assert session.savepoint_rollbacks == 1
        assert session.rollbacks == 0

    async def test_stored_codes_replace_defaults(self, monkeypatch):
        monkeypatch.setattr(ProfileRepository, "list_role_permissions", _stored_permissions({"seller": [MANAGE_USERS]}))

        codes = await _load_permissions(ProfileRepository(FakeSession()), make_profile(" Seller "))

        assert codes == frozenset({MANAGE_USERS})


class TestImpersonation:
    async def test_without_header_the_caller_is_effective(self, monkeypatch):
        monkeypatch.setattr(ProfileRepository, "list_role_permissions", _stored_permissions({}))
        seller = make_profile("seller")

        ctx = await get_access_context(profile=seller, session=FakeSession(), impersonate_email=None)

        assert ctx.profile is seller
        assert not ctx.is_impersonating

    async def test_requires_manage_users(self, monkeypatch):
        target = make_profile("driver", email="chofer@3dental.cl")
        monkeypatch.setattr(ProfileRepository, "list_role_permissions", _stored_permissions({}))
        monkeypatch.setattr(ProfileRepository, "get_by_email", _profiles_by_email(target))

        with pytest.raises(HTTPException) as exc:
            await get_access_context(
                profile=make_profile("seller"), session=FakeSession(), impersonate_email="chofer@3dental.cl"
            )
        assert exc.value.status_code == 403

    async def test_target_permissions_become_effective(self, monkeypatch):
        admin = make_profile("admin", email="gerencia@3dental.cl")
        target = make_profile("seller", email="vendedor@3dental.cl")
        monkeypatch.setattr(ProfileRepository, "list_role_permissions", _stored_permissions({}))
        monkeypatch.setattr(ProfileRepository, "get_by_email", _profiles_by_email(target))

        ctx = await get_access_context(profile=admin, session=FakeSession(), impersonate_email=" Vendedor@3dental.cl ")

        assert ctx.profile is target
        assert ctx.real_profile is admin
        assert ctx.is_impersonating
        assert ctx.permissions == frozenset({VIEW_METAS})
        assert not ctx.has_permission(MANAGE_USERS)

    async def test_unknown_target_is_not_found(self, monkeypatch):
        monkeypatch.setattr(ProfileRepository, "list_role_permissions", _stored_permissions({}))
        monkeypatch.setattr(ProfileRepository, "get_by_email", _profiles_by_email())

        with pytest.raises(HTTPException) as exc:
            await get_access_context(
                profile=make_profile("admin"), session=FakeSession(), impersonate_email="nadie@3dental.cl"
            )
        assert exc.value.status_code == 404


class _ProfileRepo:
    def __init__(self, *profiles):
        self.profiles = list(profiles)
        self.created = []
        self.commits = 0

    async def get_by_email(self, email):
        return next((p for p in self.profiles if p.email == email), None)

    async def get_by_id(self, profile_id):
        return next((p for p in self.profiles if p.id == profile_id), None)

    async def create(self, **values):
        profile = SimpleNamespace(id=None, **values)
        self.created.append(profile)
        return profile

    async def commit(self):
        self.commits += 1

    async def refresh(self, profile):
        return None


def _access_service(repo, monkeypatch) -> AccessService:
    monkeypatch.setattr(access_module, "get_password_hash", lambda password: f"hashed:{password}")
    service = AccessService(FakeSession())
    service.repo = repo
    return service


class TestRegister:
    async def test_invited_profile_is_claimed(self, monkeypatch):
        invited = make_profile("jefe", email="jefe@3dental.cl", full_name=None)
        invited.hashed_password = None
        repo = _ProfileRepo(invited)
        service = _access_service(repo, monkeypatch)

        profile = await service.register("jefe@3dental.cl", "s3creta!", "Jefe de Bodega")

        assert profile is invited
        assert profile.role == "jefe"
        assert profile.status == "active"
        assert profile.hashed_password == "hashed:s3creta!"
        assert profile.full_name == "Jefe de Bodega"
        assert repo.created == []
        assert repo.commits == 1

    async def test_registered_profile_cannot_register_again(self, monkeypatch):
        existing = make_profile("seller")
        existing.hashed_password = "hashed:old"
        service = _access_service(_ProfileRepo(existing), monkeypatch)

        with pytest.raises(ConflictError):
            await service.register(existing.email, "otra", None)
        assert existing.hashed_password == "hashed:old"

    async def test_new_email_becomes_active_seller(self, monkeypatch):
        repo = _ProfileRepo()
        service = _access_service(repo, monkeypatch)

        profile = await service.register("nuevo@3dental.cl", "s3creta!", "Nuevo Vendedor")

        assert profile.role == "seller"
        assert profile.status == "active"
        assert profile.hashed_password == "hashed:s3creta!"
        assert repo.commits == 1


class TestOwnerLock:
    async def test_owner_profile_cannot_be_edited(self, monkeypatch):
        monkeypatch.setenv("OWNER_EMAIL", " Gerencia@3dental.cl ")
        owner = make_profile("admin", email="gerencia@3dental.cl")
        repo = _ProfileRepo(owner)
        service = _access_service(repo, monkeypatch)

        with pytest.raises(ForbiddenError):
            await service.update_profile(owner.id, ProfileUpdate(role="seller", status="suspended"))
        assert owner.role == "admin"
        assert owner.status == "active"
        assert repo.commits == 0

    async def test_other_profiles_can_be_edited(self, monkeypatch):
        monkeypatch.setenv("OWNER_EMAIL", "gerencia@3dental.cl")
        seller = make_profile("seller")
        service = _access_service(_ProfileRepo(seller), monkeypatch)

        updated = await service.update_profile(seller.id, ProfileUpdate(role=" Driver "))

        assert updated.role == "driver"

from __future__ import annotations

from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from dental_crm.repositories.profiles import ProfileRepository
from dental_crm.schemas.clients import ClientCreate, ClientUpdate
from dental_crm.services.base import ConflictError, ValidationFailed
from dental_crm.services.clients import (
    IMPORT_DEFAULT_ADDRESS,
    IMPORT_NOTE,
    ClientService,
    plan_client_import,
    read_import_frame,
    resolve_seller,
)
from tests.conftest import FakeSession, make_profile

CSV = (
    "\ufeffNombre,Rut,Giro,Dirección,Ciudad,Teléfono,Email,Contacto,Vendedor\n"
    "Clínica Sonrisa,76.111.111-6,Odontología,Av. Providencia 2000,Providencia,+56911111111,contacto@sonrisa.cl,Dra. Soto,juan\n"
    ",12.345.678-5,,,,,,,\n"
    "Dental Norte,12.345.678-5,,,,,,,desconocido@3dental.cl\n"
).encode("utf-8")


def test_read_import_frame_strips_bom():
    frame = read_import_frame(CSV)
    assert list(frame.columns)[0] == "Nombre"
    assert len(frame) == 3


def test_read_import_frame_rejects_empty():
    with pytest.raises(ValidationFailed):
        read_import_frame(b"")
    with pytest.raises(ValidationFailed):
        read_import_frame(b"Nombre,Rut\n")


def test_plan_client_import():
    records = read_import_frame(CSV).to_dict(orient="records")
    plan = plan_client_import(records, -33.4489, -70.6693, "Santiago")

    assert len(plan.rows) == 2
    assert len(plan.errors) == 1
    assert plan.errors[0].startswith("Fila sin nombre: ")

    sonrisa = plan.rows[0].values
    assert sonrisa["rut"] == "76111111-6"
    assert sonrisa["comuna"] == "Providencia"
    assert sonrisa["purchase_contact"] == "Dra. Soto"
    assert sonrisa["notes"] == IMPORT_NOTE
    assert (sonrisa["lat"], sonrisa["lng"], sonrisa["zone"]) == (-33.4489, -70.6693, "Santiago")
    assert plan.rows[0].seller == "juan"

    norte = plan.rows[1].values
    assert norte["address"] == IMPORT_DEFAULT_ADDRESS
    assert norte["giro"] is None


def test_resolve_seller_by_email_then_user_part():
    juan = make_profile(email="juan@3dental.cl")
    maria = make_profile(email="Maria.Lopez@3dental.cl")
    profiles = [juan, maria]
    assert resolve_seller("maria.lopez@3dental.cl", profiles) is maria
    assert resolve_seller("JUAN", profiles) is juan
    assert resolve_seller("pedro", profiles) is None
    assert resolve_seller(None, profiles) is None


class _ClientRepo:
    def __init__(self, existing=None, owner=None):
        self.existing = existing
        self.owner = owner
        self.created = []
        self.known_ruts = set()

    async def find_owner_by_rut(self, rut):
        if self.existing is None:
            return None
        return self.existing, self.owner

    async def get_by_rut(self, rut):
        return SimpleNamespace(rut=rut) if rut in self.known_ruts else None

    async def create(self, values):
        client = SimpleNamespace(id=uuid4(), **values)
        self.created.append(client)
        return client

    async def commit(self):
        return None


def _payload(**overrides) -> ClientCreate:
    values = dict(
        name="Clínica Sonrisa",
        rut="76.111.111-6",
        email="contacto@sonrisa.cl",
        phone="+56911111111",
        address="Av. Providencia 2000",
        giro="Odontología",
    )
    values.update(overrides)
    return ClientCreate(**values)


@pytest.mark.asyncio
async def test_create_rejects_duplicate_rut_naming_owner(seller_ctx):
    service = ClientService(FakeSession())
    service.repo = _ClientRepo(existing=SimpleNamespace(id=uuid4()), owner=make_profile(full_name="Juan Rojas"))
    with pytest.raises(ConflictError) as exc:
        await service.create(seller_ctx, _payload())
    assert exc.value.message == "Client already exists, assigned to Juan Rojas"
    assert exc.value.details == {"rut": "76111111-6", "owner_name": "Juan Rojas"}


@pytest.mark.asyncio
async def test_create_defaults_position_and_owner(seller_ctx):
    service = ClientService(FakeSession())
    service.repo = _ClientRepo()
    client = await service.create(seller_ctx, _payload())
    assert client.rut == "76111111-6"
    assert client.created_by == seller_ctx.profile_id
    assert (client.lat, client.lng) == (-33.4489, -70.6693)
    assert client.status == "active"


@pytest.mark.asyncio
async def test_import_reports_per_row(monkeypatch, manager_ctx):
    juan = make_profile(email="juan@3dental.cl")

    async def list_all(self):
        return [juan]

    monkeypatch.setattr(ProfileRepository, "list_all", list_all)
    service = ClientService(FakeSession())
    repo = _ClientRepo()
    repo.known_ruts.add("12345678-5")
    service.repo = repo

    result = await service.import_csv(manager_ctx, CSV)

    assert result.success_count == 1
    assert result.error_count == 2
    assert repo.created[0].created_by == juan.id
    assert "Vendedor no encontrado: desconocido@3dental.cl (Asignando a ti por defecto)" in result.messages
    assert "RUT duplicado: 12345678-5 (Dental Norte)" in result.messages


class _FlakyClientRepo(_ClientRepo):
    """Insert of one named client hits a unique violation in the database."""

    def __init__(self, failing_name):
        super().__init__()
        self.failing_name = failing_name

    async def create(self, values):
        if values["name"] == self.failing_name:
            raise IntegrityError("INSERT INTO clients", {}, Exception("duplicate key value"))
        return await super().create(values)


@pytest.mark.asyncio
async def test_import_continues_after_database_error(monkeypatch, manager_ctx):
    async def list_all(self):
        return [make_profile(email="juan@3dental.cl")]

    monkeypatch.setattr(ProfileRepository, "list_all", list_all)
    session = FakeSession()
    service = ClientService(session)
    service.repo = _FlakyClientRepo("Clínica Sonrisa")
    content = (
        "Nombre,Rut,Vendedor\n"
        "Clínica Sonrisa,76.111.111-6,juan\n"
        "Dental Norte,12.345.678-5,juan\n"
    ).encode("utf-8")

    result = await service.import_csv(manager_ctx, content)

    assert result.success_count == 1
    assert result.error_count == 1
    assert result.messages[0].startswith("Error al insertar Clínica Sonrisa: ")
    assert [c.name for c in service.repo.created] == ["Dental Norte"]
    # only the failing row's savepoint is rolled back
    assert session.savepoints == 2
    assert session.savepoint_rollbacks == 1
    assert session.rollbacks == 0


@pytest.mark.asyncio
async def test_update_rejects_rut_without_digits(seller_ctx):
    client = SimpleNamespace(id=uuid4(), rut="76111111-6", created_by=seller_ctx.profile_id)

    class _Repo(_ClientRepo):
        async def get(self, client_id):
            return client

    service = ClientService(FakeSession())
    service.repo = _Repo()
    payload = ClientUpdate(**_payload(rut=".").model_dump())
    with pytest.raises(ValidationFailed, match="RUT is required"):
        await service.update(seller_ctx, client.id, payload)

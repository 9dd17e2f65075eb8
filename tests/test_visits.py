from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest

from dental_crm.repositories.visits import COMPLETED, IN_PROGRESS
from dental_crm.schemas.visits import VisitEnd, VisitStart
from dental_crm.services.base import ForbiddenError, ValidationFailed
from dental_crm.services.visits import VisitService, collapse_duplicate_visits, day_bounds
from tests.conftest import FakeSession


def test_day_bounds():
    start, end = day_bounds(datetime(2024, 5, 2, 15, 30, tzinfo=timezone.utc))
    assert start == datetime(2024, 5, 2, 0, 0, tzinfo=timezone.utc)
    assert end == datetime(2024, 5, 2, 23, 59, 59, 999999, tzinfo=timezone.utc)


def test_collapse_duplicate_visits_keeps_newest_in_progress():
    rep, client_id = uuid4(), uuid4()
    client = SimpleNamespace(id=client_id, name="Clínica Sonrisa")
    newest = SimpleNamespace(id=1, sales_rep_id=rep, client_id=client_id, status=IN_PROGRESS)
    older = SimpleNamespace(id=2, sales_rep_id=rep, client_id=client_id, status=IN_PROGRESS)
    done_a = SimpleNamespace(id=3, sales_rep_id=rep, client_id=client_id, status=COMPLETED)
    done_b = SimpleNamespace(id=4, sales_rep_id=rep, client_id=client_id, status=COMPLETED)

    rows = collapse_duplicate_visits([(newest, client), (older, client), (done_a, client), (done_b, client)])
    assert [v.id for v, _ in rows] == [1, 3, 4]


class _VisitRepo:
    def __init__(self, active=None):
        self.active = active
        self.created = None

    async def get_active_for_rep(self, rep_id):
        return self.active

    async def create(self, **values):
        raise AssertionError("no visit should be created")

    async def commit(self):
        return None


class _ClientRepo:
    def __init__(self, client):
        self.client = client

    async def get(self, client_id):
        return self.client


def _service(client, active=None) -> VisitService:
    service = VisitService(FakeSession())
    service.repo = _VisitRepo(active)
    service.clients = _ClientRepo(client)
    return service


@pytest.mark.asyncio
async def test_start_outside_geofence_is_forbidden(seller_ctx):
    client = SimpleNamespace(id=uuid4(), name="Clínica Sonrisa", lat=-33.4489, lng=-70.6693)
    service = _service(client)
    with pytest.raises(ForbiddenError) as exc:
        await service.start(seller_ctx, VisitStart(client_id=client.id, lat=-33.40, lng=-70.60))
    assert exc.value.message.startswith("You are ")
    assert exc.value.message.endswith(" km away from the client")
    assert exc.value.details["radius_m"] == 500.0


@pytest.mark.asyncio
async def test_start_requires_lat_and_lng_together(seller_ctx):
    client = SimpleNamespace(id=uuid4(), name="Clínica Sonrisa", lat=-33.4489, lng=-70.6693)
    service = _service(client)
    with pytest.raises(ValidationFailed):
        await service.start(seller_ctx, VisitStart(client_id=client.id, lat=-33.4489))


@pytest.mark.asyncio
async def test_start_resumes_active_visit(seller_ctx):
    client = SimpleNamespace(id=uuid4(), name="Clínica Sonrisa", lat=-33.4489, lng=-70.6693)
    active = SimpleNamespace(
        id=uuid4(),
        client_id=client.id,
        sales_rep_id=seller_ctx.profile_id,
        check_in_time=datetime.now(timezone.utc),
        check_out_time=None,
        check_in_lat=None,
        check_in_lng=None,
        check_out_lat=None,
        check_out_lng=None,
        status=IN_PROGRESS,
        notes=None,
        created_at=datetime.now(timezone.utc),
    )
    result = await _service(client, active=active).start(seller_ctx, VisitStart(client_id=client.id))
    assert result.resumed
    assert result.client_name == "Clínica Sonrisa"
    assert result.visit.id == active.id
    assert not result.timer.is_overtime


class _FailingCommitRepo(_VisitRepo):
    async def commit(self):
        raise RuntimeError("connection reset")

    async def refresh(self, visit):
        raise AssertionError("a failed check-out must not refresh")


@pytest.mark.asyncio
async def test_end_keeps_visit_active_when_commit_fails(seller_ctx):
    check_in = datetime(2024, 5, 2, 10, 0, tzinfo=timezone.utc)
    active = SimpleNamespace(
        id=uuid4(),
        client_id=uuid4(),
        sales_rep_id=seller_ctx.profile_id,
        check_in_time=check_in,
        check_out_time=None,
        check_out_lat=None,
        check_out_lng=None,
        status=IN_PROGRESS,
        notes="pedido pendiente",
    )
    session = FakeSession()
    service = VisitService(session)
    service.repo = _FailingCommitRepo(active)

    with pytest.raises(RuntimeError):
        await service.end(seller_ctx, VisitEnd(lat=-33.44, lng=-70.65, notes="cerrada"))

    assert active.status == IN_PROGRESS
    assert active.check_out_time is None
    assert (active.check_out_lat, active.check_out_lng) == (None, None)
    assert active.notes == "pedido pendiente"
    assert session.rollbacks == 1

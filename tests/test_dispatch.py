from __future__ import annotations

import io
from datetime import datetime
from types import SimpleNamespace
from uuid import uuid4

import pandas as pd
import pytest

from dental_crm.schemas.dispatch import DispatchRow, MatchedOrder, RouteCreate, StopUpdate
from dental_crm.services.base import ForbiddenError, NotFoundError, ValidationFailed
from dental_crm.services.dispatch import (
    DispatchService,
    MAPS_DIR_URL,
    build_maps_links,
    default_route_name,
    match_rows,
    order_by_optimization,
    order_match_key,
    parse_dispatch_sheet,
    row_match_key,
    split_waypoints,
)
from tests.conftest import FakeSession, make_context, make_profile

DEPOT = (-33.3768, -70.6725)


def _order(folio, status="approved"):
    return SimpleNamespace(id=uuid4(), folio=folio, status=status, delivery_status=None)


def _client(name, rut, lat=-33.45, lng=-70.65, address="Av. Siempre Viva 742"):
    return SimpleNamespace(
        id=uuid4(), name=name, rut=rut, lat=lat, lng=lng, address=address, zone="Santiago", phone="+56 2 2345 6789"
    )


def _matched(name, lat=None, lng=None) -> MatchedOrder:
    return MatchedOrder(id=uuid4(), folio=1, client_name=name, lat=lat, lng=lng, status="approved")


class TestMatching:
    def test_keys_ignore_rut_formatting(self):
        assert order_match_key(1001, "76111111-6") == "1001-761111116"
        assert row_match_key(DispatchRow(RUT="76.111.111-6", PEDIDO=" 1001 ")) == "1001-761111116"

    def test_match_rows(self):
        sonrisa = (_order(1001), _client("Clínica Sonrisa", "76111111-6"))
        norte = (_order(1002), _client("Dental Norte", "12345678-5", address=None))
        rows = [
            DispatchRow(RUT="76.111.111-6", PEDIDO="1001"),
            DispatchRow(RUT="12.345.678-5", PEDIDO="1002"),
            DispatchRow(RUT="12.345.678-5", PEDIDO="9999"),
        ]
        result = match_rows(rows, [sonrisa, norte])
        assert result.read == 3
        assert [m.folio for m in result.matched] == [1001, 1002]
        assert result.matched[0].client_name == "Clínica Sonrisa"
        assert result.matched[0].delivery_status == "pending"
        # Missing address falls back to the zone
        assert result.matched[1].client_address == "Santiago"
        assert result.not_found == [DispatchRow(RUT="12.345.678-5", PEDIDO="9999")]

    def test_folio_must_match_the_same_client(self):
        order = (_order(1001), _client("Clínica Sonrisa", "76111111-6"))
        result = match_rows([DispatchRow(RUT="12345678-5", PEDIDO="1001")], [order])
        assert result.matched == []
        assert len(result.not_found) == 1

    def test_numeric_cells_become_text(self):
        row = DispatchRow(RUT=76111111, PEDIDO=1001.0)
        assert (row.RUT, row.PEDIDO) == ("76111111", "1001")


class TestParseSheet:
    def test_csv_with_lowercase_headers(self):
        content = b"rut,pedido,comentario\n76.111.111-6,1001,urgente\n,,\n12.345.678-5,1002,\n"
        rows = parse_dispatch_sheet(content, "despacho.csv")
        assert rows == [
            DispatchRow(RUT="76.111.111-6", PEDIDO="1001"),
            DispatchRow(RUT="12.345.678-5", PEDIDO="1002"),
        ]

    def test_xlsx_first_sheet(self):
        buffer = io.BytesIO()
        pd.DataFrame({"RUT": ["76.111.111-6"], "PEDIDO": [1001]}).to_excel(buffer, index=False)
        rows = parse_dispatch_sheet(buffer.getvalue(), "despacho.xlsx")
        assert rows == [DispatchRow(RUT="76.111.111-6", PEDIDO="1001")]

    def test_missing_columns(self):
        with pytest.raises(ValidationFailed) as exc:
            parse_dispatch_sheet(b"cliente,folio\nA,1\n", "x.csv")
        assert "RUT and PEDIDO" in exc.value.message

    def test_empty_file(self):
        with pytest.raises(ValidationFailed):
            parse_dispatch_sheet(b"", "x.csv")

    @pytest.mark.parametrize("content", [b"PK\x03\x04garbage", b"not a workbook"])
    def test_unreadable_workbook(self, content):
        with pytest.raises(ValidationFailed, match="Could not read the file"):
            parse_dispatch_sheet(content, "despacho.xlsx")


class TestRouteOrdering:
    def test_split_waypoints(self):
        a, b = _matched("A", -33.4, -70.6), _matched("B")
        with_coords, without = split_waypoints([a, b])
        assert with_coords == [a]
        assert without == [b]

    def test_order_by_optimization(self):
        a, b, c = _matched("A", 1, 1), _matched("B", 2, 2), _matched("C", 3, 3)
        leftover = _matched("D")
        ordered = order_by_optimization([a, b, c], [2, 0, 1], [leftover])
        assert [o.client_name for o in ordered] == ["C", "A", "B", "D"]

    def test_unreturned_indexes_keep_their_order(self):
        a, b, c = _matched("A", 1, 1), _matched("B", 2, 2), _matched("C", 3, 3)
        ordered = order_by_optimization([a, b, c], [1, 7])
        assert [o.client_name for o in ordered] == ["B", "A", "C"]


class TestMapsLinks:
    def test_single_link(self):
        stops = [(-33.41, -70.60), (-33.42, -70.61)]
        links = build_maps_links(DEPOT, DEPOT, stops)
        assert links == [
            MAPS_DIR_URL + "-33.3768,-70.6725/-33.41,-70.6/-33.42,-70.61/-33.3768,-70.6725"
        ]

    def test_split_links_chain(self):
        stops = [(float(-30 - i), -70.0) for i in range(10)]
        links = build_maps_links(DEPOT, DEPOT, stops, max_waypoints=8)
        assert len(links) == 2

        first = links[0][len(MAPS_DIR_URL):].split("/")
        second = links[1][len(MAPS_DIR_URL):].split("/")
        # origin + 8 stops, the eighth being the end of the part
        assert len(first) == 9
        assert first[0] == "-33.3768,-70.6725"
        assert first[-1] == "-37.0,-70.0"
        # next part starts where the previous ended and closes at the depot
        assert second == ["-37.0,-70.0", "-38.0,-70.0", "-39.0,-70.0", "-33.3768,-70.6725"]

    def test_exactly_max_waypoints_is_one_link(self):
        stops = [(-33.0, float(-70 - i)) for i in range(8)]
        assert len(build_maps_links(DEPOT, DEPOT, stops)) == 1


def test_default_route_name():
    assert default_route_name(datetime(2024, 3, 5, 12, 0)) == "Ruta 05-03-2024"


class _Profiles:
    def __init__(self, *profiles):
        self.by_id = {p.id: p for p in profiles}

    async def get_by_id(self, profile_id):
        return self.by_id.get(profile_id)


class _Orders:
    def __init__(self, pairs=(), fail_on_update=False, fail_on_read=False):
        self.pairs = list(pairs)
        self.fail_on_update = fail_on_update
        self.fail_on_read = fail_on_read
        self.updates = []

    async def list_by_ids(self, order_ids):
        return [(o, c) for o, c in self.pairs if o.id in order_ids]

    async def list_dispatchable(self):
        if self.fail_on_read:
            raise RuntimeError("connection reset")
        return self.pairs

    async def set_delivery(self, order_ids, *, delivery_status, route_id=None):
        if self.fail_on_update:
            raise RuntimeError("deadlock detected")
        self.updates.append((list(order_ids), delivery_status, route_id))
        return len(order_ids)


class _Routes:
    def __init__(self, route=None, stops=()):
        self.route = route
        self.stops = list(stops)
        self.created = None
        self.commits = 0

    async def create_route(self, route, items):
        route.id = uuid4()
        route.items = items
        self.created = route
        return route

    async def get_item(self, item_id):
        return next((i for i in self.route.items if i.id == item_id), None)

    async def get_route(self, route_id):
        return self.route

    async def list_stops(self, route_id):
        return self.stops

    async def commit(self):
        self.commits += 1


def _dispatch_service(routes=None, orders=None, profiles=None) -> DispatchService:
    service = DispatchService(FakeSession())
    service.repo = routes or _Routes()
    service.orders = orders or _Orders()
    service.profiles = profiles or _Profiles()
    return service


class TestCreateRoute:
    async def test_items_follow_order_sequence(self, manager_ctx):
        driver = make_profile("driver", email="chofer@3dental.cl")
        pairs = [(_order(1001), _client("Clínica Sonrisa", "76111111-6")), (_order(1002), _client("Dental Norte", "12345678-5"))]
        routes, orders = _Routes(), _Orders(pairs)
        service = _dispatch_service(routes, orders, _Profiles(driver))
        second, first = pairs[1][0].id, pairs[0][0].id

        route = await service.create_route(manager_ctx, RouteCreate(order_ids=[second, first, second], driver_id=driver.id))

        assert route is routes.created
        assert route.driver_id == driver.id
        assert route.status == "active"
        assert route.created_by == manager_ctx.profile_id
        assert route.name.startswith("Ruta ")
        assert [(i.order_id, i.sequence_order, i.status) for i in route.items] == [
            (second, 1, "pending"),
            (first, 2, "pending"),
        ]
        assert orders.updates == [([second, first], "out_for_delivery", route.id)]
        assert routes.commits == 1

    async def test_rejects_profile_that_is_not_a_driver(self, manager_ctx):
        seller = make_profile("seller")
        pairs = [(_order(1001), _client("Clínica Sonrisa", "76111111-6"))]
        routes, orders = _Routes(), _Orders(pairs)
        service = _dispatch_service(routes, orders, _Profiles(seller))

        with pytest.raises(ValidationFailed, match="not a driver"):
            await service.create_route(manager_ctx, RouteCreate(order_ids=[pairs[0][0].id], driver_id=seller.id))
        assert routes.created is None
        assert orders.updates == []

    async def test_missing_orders_write_nothing(self, manager_ctx):
        driver = make_profile("driver", email="chofer@3dental.cl")
        pairs = [(_order(1001), _client("Clínica Sonrisa", "76111111-6"))]
        routes, orders = _Routes(), _Orders(pairs)
        service = _dispatch_service(routes, orders, _Profiles(driver))
        unknown = uuid4()

        with pytest.raises(NotFoundError) as exc:
            await service.create_route(
                manager_ctx, RouteCreate(order_ids=[pairs[0][0].id, unknown], driver_id=driver.id)
            )
        assert exc.value.details == [str(unknown)]
        assert routes.created is None
        assert orders.updates == []

    async def test_failed_order_update_rolls_back(self, manager_ctx):
        driver = make_profile("driver", email="chofer@3dental.cl")
        pairs = [(_order(1001), _client("Clínica Sonrisa", "76111111-6"))]
        routes = _Routes()
        service = _dispatch_service(routes, _Orders(pairs, fail_on_update=True), _Profiles(driver))

        with pytest.raises(RuntimeError):
            await service.create_route(manager_ctx, RouteCreate(order_ids=[pairs[0][0].id], driver_id=driver.id))
        assert routes.commits == 0
        assert service.session.rollbacks == 1


def _stop(sequence, status="pending"):
    return SimpleNamespace(id=uuid4(), order_id=uuid4(), sequence_order=sequence, status=status, notes=None, delivered_at=None)


class TestUpdateStop:
    def _setup(self, ctx, other_status):
        first, second = _stop(1), _stop(2, status=other_status)
        route = SimpleNamespace(id=uuid4(), driver_id=ctx.profile_id, status="active", items=[first, second])
        first.route_id = second.route_id = route.id
        order = SimpleNamespace(id=first.order_id, folio=1001)
        routes = _Routes(route, stops=[(first, order, _client("Clínica Sonrisa", "76111111-6"))])
        orders = _Orders()
        return _dispatch_service(routes, orders), route, first, orders

    async def test_last_pending_stop_completes_route(self):
        ctx = make_context("driver")
        service, route, stop, orders = self._setup(ctx, other_status="failed")

        result = await service.update_stop(ctx, stop.id, StopUpdate(status="delivered", notes="Recibe recepción"))

        assert route.status == "completed"
        assert stop.delivered_at is not None
        assert orders.updates == [([stop.order_id], "delivered", None)]
        assert result.item_id == stop.id
        assert result.status == "delivered"
        assert result.notes == "Recibe recepción"
        assert service.repo.commits == 1

    async def test_route_stays_active_while_stops_are_pending(self):
        ctx = make_context("driver")
        service, route, stop, _ = self._setup(ctx, other_status="pending")

        await service.update_stop(ctx, stop.id, StopUpdate(status="failed"))

        assert route.status == "active"
        assert stop.delivered_at is None

    async def test_other_drivers_cannot_close_the_stop(self):
        owner = make_context("driver")
        service, _, stop, orders = self._setup(owner, other_status="pending")

        with pytest.raises(ForbiddenError):
            await service.update_stop(make_context("driver"), stop.id, StopUpdate(status="delivered"))
        assert stop.status == "pending"
        assert orders.updates == []


async def test_match_fails_when_bulk_read_fails():
    service = _dispatch_service(orders=_Orders(fail_on_read=True))
    with pytest.raises(RuntimeError, match="connection reset"):
        await service.match([DispatchRow(RUT="76.111.111-6", PEDIDO="1001")])

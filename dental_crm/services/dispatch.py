from __future__ import annotations

import io
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID
from zipfile import BadZipFile

import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException
from xlrd import XLRDError
from xlrd.compdoc import CompDocError
from sqlalchemy.ext.asyncio import AsyncSession

from dental_crm.core.permissions import EXECUTE_DELIVERY, MANAGE_DISPATCH, ROLE_DRIVER, AccessContext, normalize_role
from dental_crm.core.rut import rut_match_key
from dental_crm.core.settings import get_app_settings
from dental_crm.db.models.clients import Client
from dental_crm.db.models.dispatch import DeliveryRoute, RouteItem
from dental_crm.db.models.orders import Order
from dental_crm.repositories.dispatch import DispatchRepository
from dental_crm.repositories.orders import OrderRepository
from dental_crm.repositories.profiles import ProfileRepository
from dental_crm.schemas.dispatch import (
    DispatchRow,
    MatchedOrder,
    MatchResult,
    OptimizedRoute,
    RouteCreate,
    RouteDetail,
    RouteStop,
    RouteSummary,
    StopUpdate,
)
from dental_crm.schemas.realtime import ChangeEvent
from dental_crm.services.base import BaseService, ForbiddenError, NotFoundError, ValidationFailed
from dental_crm.services.documents import DeliveryNoteDocument, QuotationLine, render_delivery_note_pdf
from dental_crm.services.google import GoogleApiClient, LatLng
from dental_crm.services.realtime import DISPATCH_TOPIC, notify_change

logger = logging.getLogger(__name__)

ROUTE_ACTIVE = "active"
ROUTE_COMPLETED = "completed"

OUT_FOR_DELIVERY = "out_for_delivery"
STOP_PENDING = "pending"

MAPS_DIR_URL = "https://www.google.com/maps/dir/"


# Matching


# PUBLIC_INTERFACE
def order_match_key(folio: Optional[int], rut: Optional[str]) -> str:
    return f"{folio or 0}-{rut_match_key(rut)}"


# PUBLIC_INTERFACE
def row_match_key(row: DispatchRow) -> str:
    return f"{str(row.PEDIDO).strip()}-{rut_match_key(row.RUT)}"


def to_matched(order: Order, client: Client) -> MatchedOrder:
    return MatchedOrder(
        id=order.id,
        folio=order.folio,
        client_name=client.name,
        client_address=client.address or client.zone,
        client_rut=client.rut,
        lat=client.lat,
        lng=client.lng,
        status=order.status,
        delivery_status=order.delivery_status or "pending",
    )


# PUBLIC_INTERFACE
def match_rows(rows: Sequence[DispatchRow], orders: Iterable[Tuple[Order, Client]]) -> MatchResult:
    """
    Match spreadsheet rows to orders by "<folio>-<rut key>". The order side
    comes from a single bulk read; each row is a map lookup.
    """
    index: Dict[str, Tuple[Order, Client]] = {}
    for order, client in orders:
        index[order_match_key(order.folio, client.rut)] = (order, client)

    result = MatchResult(read=len(rows))
    for row in rows:
        found = index.get(row_match_key(row))
        if found is None:
            result.not_found.append(row)
        else:
            result.matched.append(to_matched(*found))
    return result


def _cell_text(value: Any) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    # Folios read as floats by pandas come back as "123.0"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


# PUBLIC_INTERFACE
def parse_dispatch_sheet(content: bytes, filename: str = "") -> List[DispatchRow]:
    """Read the first sheet of an xlsx/xls/csv upload into RUT/PEDIDO rows."""
    if not content:
        raise ValidationFailed("The file is empty")
    name = (filename or "").lower()
    try:
        if name.endswith(".csv"):
            frame = pd.read_csv(io.BytesIO(content), dtype=str)
        else:
            frame = pd.read_excel(io.BytesIO(content), sheet_name=0)
    except (ValueError, BadZipFile, InvalidFileException, XLRDError, CompDocError) as exc:
        raise ValidationFailed(f"Could not read the file: {exc}") from exc

    frame.columns = [str(c).strip().upper() for c in frame.columns]
    if "RUT" not in frame.columns or "PEDIDO" not in frame.columns:
        raise ValidationFailed("The file must have RUT and PEDIDO columns")

    rows = []
    for record in frame[["RUT", "PEDIDO"]].to_dict(orient="records"):
        rut, folio = _cell_text(record["RUT"]), _cell_text(record["PEDIDO"])
        if not rut and not folio:
            continue
        rows.append(DispatchRow(RUT=rut, PEDIDO=folio))
    return rows


# Route ordering


# PUBLIC_INTERFACE
def split_waypoints(orders: Sequence[MatchedOrder]) -> Tuple[List[MatchedOrder], List[MatchedOrder]]:
    """Separate orders with coordinates (route waypoints) from the rest."""
    with_coords = [o for o in orders if o.lat is not None and o.lng is not None]
    without = [o for o in orders if o.lat is None or o.lng is None]
    return with_coords, without


# PUBLIC_INTERFACE
def order_by_optimization(
    waypoints: Sequence[MatchedOrder], optimized: Sequence[int], leftovers: Sequence[MatchedOrder] = ()
) -> List[MatchedOrder]:
    """Reorder waypoints by the optimised index list and append stops that had no coordinates."""
    ordered = [waypoints[i] for i in optimized if 0 <= i < len(waypoints)]
    returned = set(optimized)
    # Indexes the optimiser did not return keep their relative order
    missing = [w for i, w in enumerate(waypoints) if i not in returned]
    return ordered + missing + list(leftovers)


def _maps_url(points: Sequence[LatLng]) -> str:
    return MAPS_DIR_URL + "/".join(f"{lat},{lng}" for lat, lng in points)


# PUBLIC_INTERFACE
def build_maps_links(origin: LatLng, destination: LatLng, stops: Sequence[LatLng], max_waypoints: int = 8) -> List[str]:
    """
    Google Maps directions links for the ordered stops, split into parts of
    at most ``max_waypoints`` stops. Each part starts where the previous one
    ended and the last part ends at ``destination``.
    """
    if len(stops) <= max_waypoints:
        return [_maps_url([origin, *stops, destination])]

    links = []
    start = origin
    remaining = list(stops)
    while remaining:
        chunk, remaining = remaining[:max_waypoints], remaining[max_waypoints:]
        if remaining:
            end, middle = chunk[-1], chunk[:-1]
        else:
            end, middle = destination, chunk
        links.append(_maps_url([start, *middle, end]))
        start = end
    return links


# PUBLIC_INTERFACE
def default_route_name(now: Optional[datetime] = None) -> str:
    return f"Ruta {(now or datetime.now(timezone.utc)).strftime('%d-%m-%Y')}"


class DispatchService(BaseService):
    """Order matching, route optimisation and delivery routes."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = DispatchRepository(session)
        self.orders = OrderRepository(session)
        self.profiles = ProfileRepository(session)
        self.settings = get_app_settings()

    @property
    def depot(self) -> LatLng:
        return (self.settings.DEPOT_LAT, self.settings.DEPOT_LNG)

    # PUBLIC_INTERFACE
    async def match(self, rows: Sequence[DispatchRow]) -> MatchResult:
        """Match rows against one bulk read of dispatchable orders; a failed read aborts."""
        orders = await self.orders.list_dispatchable()
        result = match_rows(rows, orders)
        logger.info("Dispatch match: read=%d matched=%d not_found=%d", result.read, len(result.matched), len(result.not_found))
        return result

    # PUBLIC_INTERFACE
    async def optimize(self, orders: Sequence[MatchedOrder], google: GoogleApiClient) -> OptimizedRoute:
        """Order the stops with the Routes API, depot to depot."""
        waypoints, leftovers = split_waypoints(orders)
        response = await google.optimize_waypoints(
            self.depot, self.depot, [(o.lat, o.lng) for o in waypoints]
        )
        ordered = order_by_optimization(waypoints, response["order"], leftovers)
        stops = [(o.lat, o.lng) for o in ordered if o.lat is not None and o.lng is not None]
        return OptimizedRoute(
            orders=ordered,
            optimized_indexes=response["order"],
            distance_meters=response.get("distance_meters"),
            duration=response.get("duration"),
            maps_links=build_maps_links(
                self.depot, self.depot, stops, self.settings.MAPS_MAX_WAYPOINTS_PER_LINK
            ) if stops else [],
        )

    # PUBLIC_INTERFACE
    async def create_route(self, ctx: AccessContext, payload: RouteCreate) -> DeliveryRoute:
        """
        Create a route for a driver in one transaction: the route, one item per
        order with sequence 1..n, and the orders flagged out for delivery.
        """
        driver = await self.profiles.get_by_id(payload.driver_id)
        if driver is None:
            raise NotFoundError("Driver not found")
        if normalize_role(driver.role) != ROLE_DRIVER:
            raise ValidationFailed("The selected profile is not a driver")

        order_ids = list(dict.fromkeys(payload.order_ids))
        found = {o.id for o, _ in await self.orders.list_by_ids(order_ids)}
        missing = [str(i) for i in order_ids if i not in found]
        if missing:
            raise NotFoundError("Some orders do not exist", details=missing)

        route = DeliveryRoute(
            name=(payload.name or "").strip() or default_route_name(),
            driver_id=driver.id,
            status=ROUTE_ACTIVE,
            created_by=ctx.profile_id,
        )
        items = [
            RouteItem(order_id=order_id, sequence_order=seq, status=STOP_PENDING)
            for seq, order_id in enumerate(order_ids, start=1)
        ]
        try:
            route = await self.repo.create_route(route, items)
            await self.orders.set_delivery(order_ids, delivery_status=OUT_FOR_DELIVERY, route_id=route.id)
            await self.repo.commit()
        except Exception:
            await self.session.rollback()
            logger.exception("Route creation failed; nothing was saved")
            raise
        logger.info("Route %s created with %d stops for driver %s", route.id, len(items), driver.email)
        await notify_change(
            DISPATCH_TOPIC, ChangeEvent(entity="route", action="created", entity_id=route.id, profile_id=driver.id)
        )
        return route

    # PUBLIC_INTERFACE
    async def list_routes(self, status: Optional[str] = None) -> List[RouteSummary]:
        return [
            RouteSummary(
                id=route.id,
                name=route.name,
                driver_id=route.driver_id,
                driver_email=email,
                status=route.status,
                order_count=count,
                created_at=route.created_at,
            )
            for route, email, count in await self.repo.list_routes(status)
        ]

    async def _stops(self, route_id: UUID) -> List[RouteStop]:
        return [
            RouteStop(
                item_id=item.id,
                sequence_order=item.sequence_order,
                status=item.status,
                order_id=order.id,
                folio=order.folio,
                client_name=client.name,
                client_address=client.address or client.zone,
                client_phone=client.phone,
                lat=client.lat,
                lng=client.lng,
                delivered_at=item.delivered_at,
                notes=item.notes,
            )
            for item, order, client in await self.repo.list_stops(route_id)
        ]

    # PUBLIC_INTERFACE
    async def route_detail(self, ctx: AccessContext, route_id: UUID) -> RouteDetail:
        route = await self.repo.get_route(route_id)
        if route is None:
            raise NotFoundError("Route not found")
        if route.driver_id != ctx.profile_id and not ctx.has_permission(MANAGE_DISPATCH):
            raise ForbiddenError("Not allowed to view this route")
        driver = await self.profiles.get_by_id(route.driver_id)
        stops = await self._stops(route.id)
        points = [(s.lat, s.lng) for s in stops if s.lat is not None and s.lng is not None]
        return RouteDetail(
            id=route.id,
            name=route.name,
            driver_id=route.driver_id,
            driver_email=driver.email if driver else None,
            status=route.status,
            order_count=len(stops),
            created_at=route.created_at,
            stops=stops,
            maps_links=build_maps_links(self.depot, self.depot, points, self.settings.MAPS_MAX_WAYPOINTS_PER_LINK)
            if points
            else [],
        )

    # PUBLIC_INTERFACE
    async def start_dispatch(self, ctx: AccessContext, order_ids: Sequence[UUID]) -> int:
        """Mark orders out for delivery without building a route."""
        updated = await self.orders.set_delivery(list(order_ids), delivery_status=OUT_FOR_DELIVERY)
        await self.orders.commit()
        logger.info("Dispatch started for %d orders", updated)
        await notify_change(DISPATCH_TOPIC, ChangeEvent(entity="order", action="updated", profile_id=ctx.profile_id))
        return updated

    # PUBLIC_INTERFACE
    async def driver_routes(self, ctx: AccessContext) -> List[RouteDetail]:
        """Active routes of the calling driver, with their stops."""
        if not ctx.has_permission(EXECUTE_DELIVERY):
            raise ForbiddenError("Only drivers can list delivery routes")
        return [await self.route_detail(ctx, r.id) for r in await self.repo.list_driver_routes(ctx.profile_id)]

    # PUBLIC_INTERFACE
    async def update_stop(self, ctx: AccessContext, item_id: UUID, payload: StopUpdate) -> RouteStop:
        """
        Close a stop as delivered or failed. The order follows the stop and the
        route completes once no stop is pending.
        """
        item = await self.repo.get_item(item_id)
        if item is None:
            raise NotFoundError("Stop not found")
        route = await self.repo.get_route(item.route_id)
        if route.driver_id != ctx.profile_id and not ctx.has_permission(MANAGE_DISPATCH):
            raise ForbiddenError("This stop belongs to another driver")

        item.status = payload.status
        item.notes = payload.notes or item.notes
        item.delivered_at = datetime.now(timezone.utc) if payload.status == "delivered" else None
        await self.orders.set_delivery([item.order_id], delivery_status=payload.status)
        if all(i.status != STOP_PENDING for i in route.items):
            route.status = ROUTE_COMPLETED
            logger.info("Route %s completed", route.id)
        await self.repo.commit()

        await notify_change(
            DISPATCH_TOPIC, ChangeEvent(entity="route", action="updated", entity_id=route.id, profile_id=route.driver_id)
        )
        for stop in await self._stops(route.id):
            if stop.item_id == item_id:
                return stop
        raise NotFoundError("Stop not found")

    # PUBLIC_INTERFACE
    async def delivery_note(self, ctx: AccessContext, order_id: UUID) -> Tuple[bytes, str]:
        """Guía de despacho PDF of an order; returns (content, filename)."""
        found = await self.orders.get_with_client(order_id)
        if found is None:
            raise NotFoundError("Order not found")
        order, client = found
        route_name = driver_name = None
        if order.route_id is not None:
            route = await self.repo.get_route(order.route_id)
            if route is not None:
                if route.driver_id != ctx.profile_id and not ctx.has_permission(MANAGE_DISPATCH):
                    raise ForbiddenError("Not allowed to print this delivery note")
                route_name = route.name
                driver = await self.profiles.get_by_id(route.driver_id)
                driver_name = (driver.full_name or driver.email) if driver else None
        elif not ctx.has_permission(MANAGE_DISPATCH):
            raise ForbiddenError("Not allowed to print this delivery note")

        note = DeliveryNoteDocument(
            folio=order.folio,
            route_name=route_name,
            driver_name=driver_name,
            client_name=client.name,
            client_rut=client.rut,
            client_address=client.address or client.zone,
            client_phone=client.phone,
            delivery_status=order.delivery_status,
            issued_at=datetime.now(timezone.utc),
            lines=[
                QuotationLine(
                    code=i.code, detail=i.detail, qty=i.qty, unit=i.unit, price=i.price, discount=i.discount, total=i.total
                )
                for i in order.items
            ],
        )
        return render_delivery_note_pdf(note, self.settings.COMPANY_NAME), f"guia_despacho_{order.folio}.pdf"

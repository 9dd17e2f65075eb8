from __future__ import annotations

from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select

from dental_crm.db.models.clients import Client
from dental_crm.db.models.dispatch import DeliveryRoute, RouteItem
from dental_crm.db.models.orders import Order
from dental_crm.db.models.profiles import Profile
from .base import BaseRepository


class DispatchRepository(BaseRepository):
    """Repository for delivery routes and their stops."""

    async def create_route(self, route: DeliveryRoute, items: List[RouteItem]) -> DeliveryRoute:
        route.items = items
        await self.persist(route)
        return route

    async def get_route(self, route_id: UUID) -> Optional[DeliveryRoute]:
        return await self.scalar_one_or_none(select(DeliveryRoute).where(DeliveryRoute.id == route_id))

    async def list_routes(self, status: Optional[str] = None) -> List[Tuple[DeliveryRoute, Optional[str], int]]:
        """Routes with the driver's e-mail and the number of stops."""
        item_count = (
            select(func.count(RouteItem.id)).where(RouteItem.route_id == DeliveryRoute.id).scalar_subquery()
        )
        stmt = (
            select(DeliveryRoute, Profile.email, item_count.label("order_count"))
            .outerjoin(Profile, Profile.id == DeliveryRoute.driver_id)
            .order_by(DeliveryRoute.created_at.desc())
        )
        if status:
            stmt = stmt.where(DeliveryRoute.status == status)
        return [(r, email, int(count or 0)) for r, email, count in (await self.execute(stmt)).all()]

    async def list_driver_routes(self, driver_id: UUID, status: str = "active") -> List[DeliveryRoute]:
        stmt = (
            select(DeliveryRoute)
            .where(DeliveryRoute.driver_id == driver_id, DeliveryRoute.status == status)
            .order_by(DeliveryRoute.created_at.desc())
        )
        return await self.all(stmt)

    async def list_stops(self, route_id: UUID) -> List[Tuple[RouteItem, Order, Client]]:
        stmt = (
            select(RouteItem, Order, Client)
            .join(Order, Order.id == RouteItem.order_id)
            .join(Client, Client.id == Order.client_id)
            .where(RouteItem.route_id == route_id)
            .order_by(RouteItem.sequence_order)
        )
        return [(i, o, c) for i, o, c in (await self.execute(stmt)).all()]

    async def get_item(self, item_id: UUID) -> Optional[RouteItem]:
        return await self.scalar_one_or_none(select(RouteItem).where(RouteItem.id == item_id))

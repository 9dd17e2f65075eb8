from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import func, select, update

from dental_crm.db.models.clients import Client
from dental_crm.db.models.orders import Order, OrderItem
from .base import BaseRepository


class OrderRepository(BaseRepository):
    """Repository for quotations/orders and their items."""

    async def get(self, order_id: UUID) -> Optional[Order]:
        return await self.scalar_one_or_none(select(Order).where(Order.id == order_id))

    async def get_with_client(self, order_id: UUID) -> Optional[Tuple[Order, Client]]:
        stmt = select(Order, Client).join(Client, Client.id == Order.client_id).where(Order.id == order_id)
        row = (await self.execute(stmt)).first()
        return (row[0], row[1]) if row else None

    async def create(self, order: Order, items: Sequence[OrderItem]) -> Order:
        order.items = list(items)
        await self.persist(order)
        return order

    async def list_with_clients(
        self,
        *,
        user_id: Optional[UUID] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        status: Optional[str] = None,
        limit: int = 200,
    ) -> List[Tuple[Order, Client]]:
        stmt = select(Order, Client).join(Client, Client.id == Order.client_id)
        if user_id is not None:
            stmt = stmt.where(Order.user_id == user_id)
        if start is not None:
            stmt = stmt.where(Order.created_at >= start)
        if end is not None:
            stmt = stmt.where(Order.created_at <= end)
        if status:
            stmt = stmt.where(Order.status == status)
        stmt = stmt.order_by(Order.created_at.desc()).limit(limit)
        return [(o, c) for o, c in (await self.execute(stmt)).all()]

    async def sales_total(self, user_id: UUID, start: datetime, end: datetime) -> float:
        stmt = select(func.coalesce(func.sum(Order.total_amount), 0.0)).where(
            Order.user_id == user_id, Order.created_at >= start, Order.created_at <= end
        )
        return float((await self.execute(stmt)).scalar_one())

    async def list_dispatchable(self) -> List[Tuple[Order, Client]]:
        """All non-rejected orders whose client has a RUT."""
        stmt = (
            select(Order, Client)
            .join(Client, Client.id == Order.client_id)
            .where(Order.status != "rejected", Client.rut.is_not(None))
        )
        return [(o, c) for o, c in (await self.execute(stmt)).all()]

    async def list_by_ids(self, order_ids: Sequence[UUID]) -> List[Tuple[Order, Client]]:
        if not order_ids:
            return []
        stmt = select(Order, Client).join(Client, Client.id == Order.client_id).where(Order.id.in_(list(order_ids)))
        return [(o, c) for o, c in (await self.execute(stmt)).all()]

    async def set_delivery(
        self,
        order_ids: Sequence[UUID],
        *,
        delivery_status: str,
        route_id: Optional[UUID] = None,
    ) -> int:
        values = {"delivery_status": delivery_status, "updated_at": func.now()}
        if route_id is not None:
            values["route_id"] = route_id
        stmt = (
            update(Order)
            .where(Order.id.in_(list(order_ids)))
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.execute(stmt)
        return int(result.rowcount or 0)

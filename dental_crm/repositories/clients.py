from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import or_, select

from dental_crm.db.models.clients import Client
from dental_crm.db.models.profiles import Profile
from .base import BaseRepository


class ClientRepository(BaseRepository):
    """Repository for clients."""

    async def get(self, client_id: UUID) -> Optional[Client]:
        return await self.scalar_one_or_none(select(Client).where(Client.id == client_id))

    async def get_by_rut(self, rut: str) -> Optional[Client]:
        return await self.scalar_one_or_none(select(Client).where(Client.rut == rut))

    async def find_owner_by_rut(self, rut: str) -> Optional[Tuple[Client, Optional[Profile]]]:
        """Return the client holding a RUT together with its owner profile."""
        stmt = (
            select(Client, Profile)
            .outerjoin(Profile, Profile.id == Client.created_by)
            .where(Client.rut == rut)
            .limit(1)
        )
        row = (await self.execute(stmt)).first()
        if row is None:
            return None
        return row[0], row[1]

    async def list_clients(
        self,
        *,
        owner_id: Optional[UUID] = None,
        search: Optional[str] = None,
        limit: int = 200,
        offset: int = 0,
    ) -> List[Client]:
        stmt = select(Client)
        if owner_id is not None:
            stmt = stmt.where(Client.created_by == owner_id)
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(
                or_(Client.name.ilike(pattern), Client.rut.ilike(pattern), Client.address.ilike(pattern))
            )
        stmt = stmt.order_by(Client.name).offset(offset).limit(limit)
        return await self.all(stmt)

    async def list_ids_and_names(self, owner_id: Optional[UUID] = None) -> List[Tuple[UUID, str]]:
        stmt = select(Client.id, Client.name)
        if owner_id is not None:
            stmt = stmt.where(Client.created_by == owner_id)
        return [(cid, name) for cid, name in (await self.execute(stmt)).all()]

    async def list_created_between(self, owner_id: UUID, start: datetime, end: datetime) -> List[Client]:
        stmt = (
            select(Client)
            .where(Client.created_by == owner_id, Client.created_at >= start, Client.created_at <= end)
            .order_by(Client.created_at)
        )
        return await self.all(stmt)

    async def create(self, values: Dict[str, Any]) -> Client:
        client = Client(**values)
        await self.persist(client)
        return client

    async def update(self, client: Client, values: Dict[str, Any]) -> Client:
        for key, value in values.items():
            setattr(client, key, value)
        await self.persist(client)
        return client

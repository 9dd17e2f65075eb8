from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select

from dental_crm.db.models.clients import Client
from dental_crm.db.models.visits import Visit
from .base import BaseRepository

IN_PROGRESS = "in-progress"
COMPLETED = "completed"


class VisitRepository(BaseRepository):
    """Repository for field visits."""

    async def get(self, visit_id: UUID) -> Optional[Visit]:
        return await self.scalar_one_or_none(select(Visit).where(Visit.id == visit_id))

    async def get_active_for_rep(self, rep_id: UUID) -> Optional[Visit]:
        """Most recent in-progress visit of a sales rep."""
        stmt = (
            select(Visit)
            .where(Visit.sales_rep_id == rep_id, Visit.status == IN_PROGRESS)
            .order_by(Visit.check_in_time.desc())
            .limit(1)
        )
        return await self.scalar_one_or_none(stmt)

    async def create(self, **values) -> Visit:
        visit = Visit(**values)
        await self.persist(visit)
        return visit

    async def list_with_clients(
        self,
        *,
        start: datetime,
        end: datetime,
        rep_id: Optional[UUID] = None,
        status: Optional[str] = None,
    ) -> List[Tuple[Visit, Client]]:
        """Visits checked in within [start, end], newest first, with their client."""
        stmt = (
            select(Visit, Client)
            .join(Client, Client.id == Visit.client_id)
            .where(Visit.check_in_time >= start, Visit.check_in_time <= end)
        )
        if rep_id is not None:
            stmt = stmt.where(Visit.sales_rep_id == rep_id)
        if status:
            stmt = stmt.where(Visit.status == status)
        stmt = stmt.order_by(Visit.check_in_time.desc())
        return [(v, c) for v, c in (await self.execute(stmt)).all()]

    async def list_in_progress(self) -> List[Tuple[Visit, Client]]:
        stmt = (
            select(Visit, Client)
            .join(Client, Client.id == Visit.client_id)
            .where(Visit.status == IN_PROGRESS)
            .order_by(Visit.check_in_time.desc())
        )
        return [(v, c) for v, c in (await self.execute(stmt)).all()]

    async def last_completed_by_client(self, client_ids: List[UUID]) -> Dict[UUID, datetime]:
        """Latest completed check-in per client."""
        if not client_ids:
            return {}
        stmt = (
            select(Visit.client_id, func.max(Visit.check_in_time))
            .where(Visit.client_id.in_(client_ids), Visit.status == COMPLETED)
            .group_by(Visit.client_id)
        )
        return {cid: last for cid, last in (await self.execute(stmt)).all()}

    async def last_zone_for_rep(self, rep_id: UUID) -> Optional[str]:
        stmt = (
            select(Client.zone)
            .join(Visit, Visit.client_id == Client.id)
            .where(Visit.sales_rep_id == rep_id)
            .order_by(Visit.check_in_time.desc())
            .limit(1)
        )
        return await self.scalar_one_or_none(stmt)

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta, timezone
from typing import Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from dental_crm.core.geo import check_geofence
from dental_crm.core.permissions import VIEW_TEAM_STATS, AccessContext
from dental_crm.core.settings import get_app_settings
from dental_crm.core.visit_timer import visit_timer
from dental_crm.db.models.clients import Client
from dental_crm.db.models.visits import Visit
from dental_crm.repositories.clients import ClientRepository
from dental_crm.repositories.visits import COMPLETED, IN_PROGRESS, VisitRepository
from dental_crm.schemas.realtime import ChangeEvent
from dental_crm.schemas.visits import (
    ActiveVisitRead,
    DailyVisitRead,
    VisitEnd,
    VisitRead,
    VisitStart,
    VisitTimerRead,
)
from dental_crm.services.base import BaseService, ForbiddenError, NotFoundError, ValidationFailed
from dental_crm.services.realtime import VISITS_TOPIC, notify_change

logger = logging.getLogger(__name__)

# columns check-out writes; restored in memory when the commit fails
CLOSE_FIELDS = ("status", "check_out_time", "check_out_lat", "check_out_lng", "notes")


# PUBLIC_INTERFACE
def day_bounds(day: datetime) -> Tuple[datetime, datetime]:
    """Start and end (inclusive) of the calendar day containing ``day``."""
    tz = day.tzinfo or timezone.utc
    start = datetime.combine(day.date(), time.min, tzinfo=tz)
    return start, start + timedelta(days=1) - timedelta(microseconds=1)


# PUBLIC_INTERFACE
def collapse_duplicate_visits(rows: Iterable[Tuple[Visit, Client]]) -> List[Tuple[Visit, Client]]:
    """
    Keep only the newest in-progress visit per (rep, client); completed
    visits are all kept. Input order (newest first) is preserved.
    """
    seen = set()
    result = []
    for visit, client in rows:
        if visit.status == IN_PROGRESS:
            key = (visit.sales_rep_id, visit.client_id)
            if key in seen:
                continue
            seen.add(key)
        result.append((visit, client))
    return result


class VisitService(BaseService):
    """Check-in/check-out of field visits."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = VisitRepository(session)
        self.clients = ClientRepository(session)
        self.settings = get_app_settings()

    def _active_read(self, visit: Visit, client_name: Optional[str], resumed: bool) -> ActiveVisitRead:
        state = visit_timer(visit.check_in_time, limit_minutes=self.settings.VISIT_TIME_LIMIT_MINUTES)
        return ActiveVisitRead(
            visit=VisitRead.model_validate(visit),
            client_name=client_name,
            timer=VisitTimerRead(
                elapsed_seconds=state.elapsed_seconds,
                remaining_seconds=state.remaining_seconds,
                is_overtime=state.is_overtime,
                label=state.label,
                display=state.display,
            ),
            resumed=resumed,
        )

    # PUBLIC_INTERFACE
    async def start(self, ctx: AccessContext, payload: VisitStart) -> ActiveVisitRead:
        """
        Check in at a client.

        A rep has at most one in-progress visit: if one exists it is returned
        with ``resumed=True``. When a position is sent it must lie within the
        geofence of the client.
        """
        active = await self.repo.get_active_for_rep(ctx.profile_id)
        if active is not None:
            client = await self.clients.get(active.client_id)
            logger.info("Resuming visit %s for rep %s", active.id, ctx.profile_id)
            return self._active_read(active, client.name if client else None, resumed=True)

        client = await self.clients.get(payload.client_id)
        if client is None:
            raise NotFoundError("Client not found")

        if (payload.lat is None) != (payload.lng is None):
            raise ValidationFailed("lat and lng must be sent together")
        if payload.lat is not None:
            fence = check_geofence(
                payload.lat, payload.lng, client.lat, client.lng, radius_m=self.settings.GEOFENCE_RADIUS_METERS
            )
            if not fence.within:
                raise ForbiddenError(
                    f"You are {fence.distance_km:.2f} km away from the client",
                    details={"distance_km": round(fence.distance_km, 3), "radius_m": fence.radius_m},
                )

        visit = await self.repo.create(
            client_id=client.id,
            sales_rep_id=ctx.profile_id,
            check_in_time=datetime.now(timezone.utc),
            check_in_lat=payload.lat,
            check_in_lng=payload.lng,
            status=IN_PROGRESS,
            notes=payload.notes,
        )
        await self.repo.commit()
        logger.info("Visit %s started at client %s", visit.id, client.id)
        await notify_change(
            VISITS_TOPIC, ChangeEvent(entity="visit", action="created", entity_id=visit.id, profile_id=ctx.profile_id)
        )
        return self._active_read(visit, client.name, resumed=False)

    async def _close(self, visit: Visit, payload: Optional[VisitEnd]) -> Visit:
        visit_id = visit.id
        before = {name: getattr(visit, name) for name in CLOSE_FIELDS}
        visit.status = COMPLETED
        visit.check_out_time = datetime.now(timezone.utc)
        if payload is not None:
            if payload.lat is not None and payload.lng is not None:
                visit.check_out_lat = payload.lat
                visit.check_out_lng = payload.lng
            if payload.notes:
                visit.notes = payload.notes
        try:
            await self.repo.commit()
        except Exception:
            for name, value in before.items():
                setattr(visit, name, value)
            await self.session.rollback()
            logger.exception("Failed to close visit %s; it stays in progress", visit_id)
            raise
        await self.repo.refresh(visit)
        await notify_change(
            VISITS_TOPIC,
            ChangeEvent(entity="visit", action="updated", entity_id=visit.id, profile_id=visit.sales_rep_id),
        )
        return visit

    # PUBLIC_INTERFACE
    async def end(self, ctx: AccessContext, payload: VisitEnd) -> Visit:
        """Check out of the caller's active visit."""
        active = await self.repo.get_active_for_rep(ctx.profile_id)
        if active is None:
            raise NotFoundError("No active visit")
        visit = await self._close(active, payload)
        logger.info("Visit %s completed", visit.id)
        return visit

    # PUBLIC_INTERFACE
    async def force_close(self, ctx: AccessContext, visit_id: UUID) -> Visit:
        """Supervisors close a visit a rep left open."""
        if not ctx.has_permission(VIEW_TEAM_STATS):
            raise ForbiddenError("Only supervisors can close other visits")
        visit = await self.repo.get(visit_id)
        if visit is None:
            raise NotFoundError("Visit not found")
        if visit.status != IN_PROGRESS:
            raise ValidationFailed("Visit is already closed")
        logger.info("Visit %s force-closed by %s", visit_id, ctx.real_profile.email)
        return await self._close(visit, None)

    # PUBLIC_INTERFACE
    async def active(self, ctx: AccessContext) -> Optional[ActiveVisitRead]:
        visit = await self.repo.get_active_for_rep(ctx.profile_id)
        if visit is None:
            return None
        client = await self.clients.get(visit.client_id)
        return self._active_read(visit, client.name if client else None, resumed=True)

    # PUBLIC_INTERFACE
    async def daily(
        self, ctx: AccessContext, day: Optional[datetime] = None, rep_id: Optional[UUID] = None
    ) -> List[DailyVisitRead]:
        """
        Visits of a day. Supervisors may see every rep (or pick one); other
        callers only get their own.
        """
        start, end = day_bounds(day or datetime.now(timezone.utc))
        if not ctx.has_permission(VIEW_TEAM_STATS):
            rep_id = ctx.profile_id
        rows = await self.repo.list_with_clients(start=start, end=end, rep_id=rep_id)
        return [
            DailyVisitRead(visit=VisitRead.model_validate(v), client_name=c.name, client_zone=c.zone)
            for v, c in collapse_duplicate_visits(rows)
        ]

    # PUBLIC_INTERFACE
    async def in_progress(self, ctx: AccessContext) -> List[DailyVisitRead]:
        if not ctx.has_permission(VIEW_TEAM_STATS):
            raise ForbiddenError("Only supervisors can list the team's open visits")
        rows = collapse_duplicate_visits(await self.repo.list_in_progress())
        return [
            DailyVisitRead(visit=VisitRead.model_validate(v), client_name=c.name, client_zone=c.zone) for v, c in rows
        ]

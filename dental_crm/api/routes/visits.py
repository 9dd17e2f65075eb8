from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dental_crm.core.deps import get_access_context, get_session, require_permission
from dental_crm.core.permissions import VIEW_TEAM_STATS, AccessContext
from dental_crm.schemas.visits import ActiveVisitRead, DailyVisitRead, VisitEnd, VisitRead, VisitStart
from dental_crm.services.visits import VisitService

router = APIRouter(prefix="/visits", tags=["Visits"])


# PUBLIC_INTERFACE
@router.post(
    "/start",
    response_model=ActiveVisitRead,
    summary="Check in",
    description=(
        "Start a visit at a client. An open visit of the caller is resumed instead. "
        "With lat/lng the position must be within 500 m of the client (403 otherwise)."
    ),
)
async def start_visit(
    payload: VisitStart,
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> ActiveVisitRead:
    return await VisitService(session).start(ctx, payload)


# PUBLIC_INTERFACE
@router.post("/end", response_model=VisitRead, summary="Check out", description="Close the caller's active visit.")
async def end_visit(
    payload: VisitEnd,
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> VisitRead:
    return VisitRead.model_validate(await VisitService(session).end(ctx, payload))


# PUBLIC_INTERFACE
@router.get(
    "/active",
    response_model=Optional[ActiveVisitRead],
    summary="Active visit",
    description="The caller's in-progress visit with its 20-minute countdown, or null.",
)
async def active_visit(
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> Optional[ActiveVisitRead]:
    return await VisitService(session).active(ctx)


# PUBLIC_INTERFACE
@router.get(
    "/daily",
    response_model=List[DailyVisitRead],
    summary="Visits of a day",
    description="Duplicate in-progress visits of the same rep and client collapse to the newest.",
)
async def daily_visits(
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
    day: Optional[datetime] = Query(None, description="Any instant of the wanted day; defaults to today"),
    rep_id: Optional[UUID] = Query(None, description="Supervisors only"),
) -> List[DailyVisitRead]:
    return await VisitService(session).daily(ctx, day=day, rep_id=rep_id)


# PUBLIC_INTERFACE
@router.get("/in-progress", response_model=List[DailyVisitRead], summary="Open visits of the team")
async def in_progress_visits(
    ctx: AccessContext = Depends(require_permission(VIEW_TEAM_STATS)),
    session: AsyncSession = Depends(get_session),
) -> List[DailyVisitRead]:
    return await VisitService(session).in_progress(ctx)


# PUBLIC_INTERFACE
@router.post("/{visit_id}/force-close", response_model=VisitRead, summary="Force close a visit")
async def force_close_visit(
    visit_id: UUID = Path(...),
    ctx: AccessContext = Depends(require_permission(VIEW_TEAM_STATS)),
    session: AsyncSession = Depends(get_session),
) -> VisitRead:
    return VisitRead.model_validate(await VisitService(session).force_close(ctx, visit_id))

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from dental_crm.core.deps import get_access_context, get_session, require_permission
from dental_crm.core.permissions import VIEW_TEAM_STATS, AccessContext
from dental_crm.schemas.activity import TaskRead
from dental_crm.schemas.dashboard import MonthlyProgress, NeglectedClient, SellerDayStats, TeamMemberSummary
from dental_crm.services.dashboard import DashboardService

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


# PUBLIC_INTERFACE
@router.get(
    "/me",
    response_model=SellerDayStats,
    summary="Seller day stats",
    description="Handled clients, effective time (visits + 15 min per digital order + 7 min per call), zones and activity.",
)
async def seller_day(
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
    day: Optional[datetime] = Query(None),
) -> SellerDayStats:
    return await DashboardService(session).seller_day(ctx, day)


# PUBLIC_INTERFACE
@router.get("/team", response_model=List[TeamMemberSummary], summary="Team summary")
async def team_summary(
    ctx: AccessContext = Depends(require_permission(VIEW_TEAM_STATS)),
    session: AsyncSession = Depends(get_session),
    day: Optional[datetime] = Query(None),
) -> List[TeamMemberSummary]:
    return await DashboardService(session).team_summary(ctx, day)


# PUBLIC_INTERFACE
@router.get("/monthly", response_model=MonthlyProgress, summary="Monthly goal progress")
async def monthly_progress(
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> MonthlyProgress:
    return await DashboardService(session).monthly(ctx)


# PUBLIC_INTERFACE
@router.get(
    "/neglected-clients",
    response_model=List[NeglectedClient],
    summary="Neglected clients",
    description="Clients without a completed visit in 15 days or more; 999 days means never visited.",
)
async def neglected(
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> List[NeglectedClient]:
    return await DashboardService(session).neglected(ctx)


# PUBLIC_INTERFACE
@router.get("/tasks", response_model=List[TaskRead], summary="Tasks due today")
async def tasks_due(
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> List[TaskRead]:
    return [TaskRead.model_validate(t) for t in await DashboardService(session).pending_tasks(ctx)]

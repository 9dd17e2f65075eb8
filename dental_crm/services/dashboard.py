"""
Dashboard metrics.

Time accounting: a visit counts its real duration (open visits run until
now), a digital order (one not taken during a visit) counts 15 minutes and a
call counts 7 minutes. Handled clients are the distinct clients touched by
any of those activities.
"""

from __future__ import annotations

import calendar
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from dental_crm.core.permissions import VIEW_TEAM_STATS, AccessContext
from dental_crm.core.settings import get_app_settings
from dental_crm.repositories.activity import ActivityRepository
from dental_crm.repositories.clients import ClientRepository
from dental_crm.repositories.orders import OrderRepository
from dental_crm.repositories.profiles import ProfileRepository
from dental_crm.repositories.visits import VisitRepository
from dental_crm.schemas.dashboard import (
    ActivityEntry,
    MonthlyProgress,
    NeglectedClient,
    SellerDayStats,
    TeamMemberSummary,
)
from dental_crm.services.base import BaseService, ForbiddenError
from dental_crm.services.visits import day_bounds

logger = logging.getLogger(__name__)

NEVER_VISITED_DAYS = 999


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


@dataclass
class TimeAccount:
    minutes: int
    client_ids: Set[UUID]

    @property
    def handled_clients(self) -> int:
        return len(self.client_ids)


# PUBLIC_INTERFACE
def account_time(
    visits: Iterable,
    orders: Iterable,
    calls: Iterable,
    now: Optional[datetime] = None,
    digital_order_minutes: int = 15,
    call_minutes: int = 7,
) -> TimeAccount:
    """
    Effective minutes and handled clients of a set of activities.

    visits need client_id/check_in_time/check_out_time, orders need
    client_id/visit_id and calls need client_id.
    """
    current = _aware(now or datetime.now(timezone.utc))
    total = 0
    client_ids: Set[UUID] = set()

    for v in visits:
        client_ids.add(v.client_id)
        end = _aware(v.check_out_time) if v.check_out_time else current
        minutes = math.floor((end - _aware(v.check_in_time)).total_seconds() / 60)
        total += max(0, minutes)

    for o in orders:
        if o.visit_id is None:
            client_ids.add(o.client_id)
            total += digital_order_minutes

    for c in calls:
        client_ids.add(c.client_id)
        total += call_minutes

    return TimeAccount(minutes=total, client_ids=client_ids)


# PUBLIC_INTERFACE
def format_hours(minutes: int) -> str:
    h, m = divmod(max(0, int(minutes)), 60)
    return f"{h}h {m}m"


# PUBLIC_INTERFACE
def display_name(full_name: Optional[str], email: Optional[str]) -> str:
    """Full name, or the upper-cased user part of the e-mail."""
    if full_name:
        return full_name
    return (email or "").split("@")[0].upper()


# PUBLIC_INTERFACE
def neglected_clients(
    clients: Iterable[Tuple[UUID, str]],
    last_visits: Dict[UUID, datetime],
    now: Optional[datetime] = None,
    threshold_days: int = 15,
) -> List[NeglectedClient]:
    """Clients whose last completed visit is at least threshold_days old, most neglected first."""
    current = _aware(now or datetime.now(timezone.utc))
    result = []
    for client_id, name in clients:
        last = last_visits.get(client_id)
        if last is None:
            days = NEVER_VISITED_DAYS
        else:
            days = math.floor((current - _aware(last)).total_seconds() / 86400)
        if days >= threshold_days:
            result.append(NeglectedClient(id=client_id, name=name, days_since_last_visit=days, last_visit_date=last))
    result.sort(key=lambda c: c.days_since_last_visit, reverse=True)
    return result


# PUBLIC_INTERFACE
def monthly_progress(goal: float, sales: float, commission_rate: Optional[float], default_rate: float = 0.01) -> MonthlyProgress:
    rate = commission_rate or default_rate
    return MonthlyProgress(
        goal=goal,
        current_sales=sales,
        commission_rate=rate,
        commission=math.floor(sales * rate + 0.5),
        progress_percent=math.floor(sales / goal * 100 + 0.5) if goal > 0 else 0,
    )


# PUBLIC_INTERFACE
def month_bounds(now: datetime) -> Tuple[datetime, datetime]:
    tz = now.tzinfo or timezone.utc
    first = datetime(now.year, now.month, 1, tzinfo=tz)
    last_day = calendar.monthrange(now.year, now.month)[1]
    return first, datetime(now.year, now.month, last_day, tzinfo=tz) + timedelta(days=1) - timedelta(microseconds=1)


# PUBLIC_INTERFACE
def combined_activity(visit_rows: Sequence, order_rows: Sequence, call_rows: Sequence) -> List[ActivityEntry]:
    """Visits, digital orders and calls as one feed, newest first."""
    entries = [
        ActivityEntry(type="Visita", time=v.check_in_time, client_id=c.id, client_name=c.name, zone=c.zone, status=v.status)
        for v, c in visit_rows
    ]
    entries += [
        ActivityEntry(type="Pedido Digital", time=o.created_at, client_id=c.id, client_name=c.name, zone=c.zone, status="Completado")
        for o, c in order_rows
        if o.visit_id is None
    ]
    entries += [
        ActivityEntry(
            type="Llamada", time=call.created_at, client_id=c.id, client_name=c.name, zone=c.zone, status=call.status or "Finalizada"
        )
        for call, c in call_rows
    ]
    entries.sort(key=lambda e: _aware(e.time), reverse=True)
    return entries


class DashboardService(BaseService):
    """Read-only aggregation for the dashboard screens."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.visits = VisitRepository(session)
        self.orders = OrderRepository(session)
        self.activity = ActivityRepository(session)
        self.clients = ClientRepository(session)
        self.profiles = ProfileRepository(session)
        self.settings = get_app_settings()

    async def _day_rows(self, profile_id: UUID, start: datetime, end: datetime):
        visit_rows = await self.visits.list_with_clients(start=start, end=end, rep_id=profile_id)
        order_rows = await self.orders.list_with_clients(user_id=profile_id, start=start, end=end, limit=1000)
        call_rows = await self.activity.list_calls_with_clients(user_id=profile_id, start=start, end=end)
        return visit_rows, order_rows, call_rows

    def _account(self, visit_rows, order_rows, call_rows, now: datetime) -> TimeAccount:
        return account_time(
            [v for v, _ in visit_rows],
            [o for o, _ in order_rows],
            [c for c, _ in call_rows],
            now=now,
            digital_order_minutes=self.settings.DIGITAL_ORDER_MINUTES,
            call_minutes=self.settings.CALL_MINUTES,
        )

    # PUBLIC_INTERFACE
    async def seller_day(self, ctx: AccessContext, day: Optional[datetime] = None) -> SellerDayStats:
        now = datetime.now(timezone.utc)
        start, end = day_bounds(day or now)
        visit_rows, order_rows, call_rows = await self._day_rows(ctx.profile_id, start, end)
        account = self._account(visit_rows, order_rows, call_rows, now)

        zones: List[str] = []
        for _, client in [*visit_rows, *order_rows, *call_rows]:
            if client.zone and client.zone not in zones:
                zones.append(client.zone)

        return SellerDayStats(
            handled_clients=account.handled_clients,
            effective_minutes=account.minutes,
            effective_hours=format_hours(account.minutes),
            zones=zones,
            recent_activity=combined_activity(visit_rows, order_rows, call_rows),
            quotations_today=len(order_rows),
        )

    async def _monthly(self, profile_id: UUID, now: datetime) -> Tuple[Optional[float], float, Optional[float]]:
        first, last = month_bounds(now)
        goal = await self.activity.get_goal(profile_id, now.year, now.month)
        sales = await self.orders.sales_total(profile_id, first, last)
        if goal is None:
            return None, sales, None
        return goal.target_amount, sales, goal.commission_rate

    # PUBLIC_INTERFACE
    async def monthly(self, ctx: AccessContext) -> MonthlyProgress:
        target, sales, rate = await self._monthly(ctx.profile_id, datetime.now(timezone.utc))
        return monthly_progress(target or 0, sales, rate, self.settings.DEFAULT_COMMISSION_RATE)

    # PUBLIC_INTERFACE
    async def team_summary(self, ctx: AccessContext, day: Optional[datetime] = None) -> List[TeamMemberSummary]:
        if not ctx.has_permission(VIEW_TEAM_STATS):
            raise ForbiddenError("Team statistics require VIEW_TEAM_STATS")
        now = datetime.now(timezone.utc)
        start, end = day_bounds(day or now)

        summary = []
        for profile in await self.profiles.list_all():
            visit_rows, order_rows, call_rows = await self._day_rows(profile.id, start, end)
            account = self._account(visit_rows, order_rows, call_rows, now)
            created = await self.clients.list_created_between(profile.id, start, end)
            target, sales, _ = await self._monthly(profile.id, now)
            summary.append(
                TeamMemberSummary(
                    id=profile.id,
                    name=display_name(profile.full_name, profile.email),
                    role=profile.role,
                    handled_clients=account.handled_clients,
                    clients_created=len(created),
                    new_client_names=[c.name for c in created],
                    quote_amount=sum(o.total_amount or 0 for o, _ in order_rows),
                    quote_count=len(order_rows),
                    hours=format_hours(account.minutes),
                    zone=await self.visits.last_zone_for_rep(profile.id) or "N/A",
                    monthly_goal=target or 0,
                    monthly_sales=sales,
                )
            )
        return summary

    # PUBLIC_INTERFACE
    async def neglected(self, ctx: AccessContext) -> List[NeglectedClient]:
        owner_id = None if ctx.has_permission(VIEW_TEAM_STATS) else ctx.profile_id
        clients = await self.clients.list_ids_and_names(owner_id)
        last = await self.visits.last_completed_by_client([cid for cid, _ in clients])
        return neglected_clients(clients, last, threshold_days=self.settings.NEGLECTED_CLIENT_DAYS)

    # PUBLIC_INTERFACE
    async def pending_tasks(self, ctx: AccessContext):
        _, end_of_today = day_bounds(datetime.now(timezone.utc))
        return await self.activity.list_pending_tasks(ctx.profile_id, due_before=end_of_today)

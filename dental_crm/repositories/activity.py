from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select

from dental_crm.db.models.activity import CallLog, EmailLog, Goal, Task
from dental_crm.db.models.clients import Client
from .base import BaseRepository


class ActivityRepository(BaseRepository):
    """Repository for goals, agenda tasks and communication logs."""

    # Goals
    async def get_goal(self, user_id: UUID, year: int, month: int) -> Optional[Goal]:
        stmt = select(Goal).where(Goal.user_id == user_id, Goal.year == year, Goal.month == month)
        return await self.scalar_one_or_none(stmt)

    async def upsert_goal(
        self, user_id: UUID, year: int, month: int, target_amount: float, commission_rate: float
    ) -> Goal:
        goal = await self.get_goal(user_id, year, month)
        if goal is None:
            goal = Goal(user_id=user_id, year=year, month=month)
        goal.target_amount = target_amount
        goal.commission_rate = commission_rate
        await self.persist(goal)
        return goal

    async def list_goals(self, year: int, month: int) -> List[Goal]:
        stmt = select(Goal).where(Goal.year == year, Goal.month == month)
        return await self.all(stmt)

    # Tasks
    async def create_task(self, **values) -> Task:
        task = Task(**values)
        await self.persist(task)
        return task

    async def get_task(self, task_id: UUID) -> Optional[Task]:
        return await self.scalar_one_or_none(select(Task).where(Task.id == task_id))

    async def list_pending_tasks(self, user_id: UUID, due_before: Optional[datetime] = None) -> List[Task]:
        stmt = select(Task).where(Task.user_id == user_id, Task.completed.is_(False))
        if due_before is not None:
            stmt = stmt.where(Task.due_date <= due_before)
        stmt = stmt.order_by(Task.due_date.asc().nullslast())
        return await self.all(stmt)

    # Calls
    async def create_call(self, **values) -> CallLog:
        call = CallLog(**values)
        await self.persist(call)
        return call

    async def list_calls_with_clients(
        self, *, user_id: Optional[UUID], start: datetime, end: datetime
    ) -> List[Tuple[CallLog, Client]]:
        stmt = (
            select(CallLog, Client)
            .join(Client, Client.id == CallLog.client_id)
            .where(CallLog.created_at >= start, CallLog.created_at <= end)
        )
        if user_id is not None:
            stmt = stmt.where(CallLog.user_id == user_id)
        stmt = stmt.order_by(CallLog.created_at.desc())
        return [(call, client) for call, client in (await self.execute(stmt)).all()]

    # Emails
    async def create_email_log(self, **values) -> EmailLog:
        log = EmailLog(**values)
        await self.persist(log)
        return log

    async def list_email_logs(self, user_id: UUID, limit: int = 50) -> List[EmailLog]:
        stmt = select(EmailLog).where(EmailLog.user_id == user_id).order_by(EmailLog.created_at.desc()).limit(limit)
        return await self.all(stmt)

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from dental_crm.core.permissions import MANAGE_METAS, VIEW_METAS, AccessContext
from dental_crm.core.settings import get_app_settings
from dental_crm.db.models.activity import CallLog, EmailLog, Goal, Task
from dental_crm.repositories.activity import ActivityRepository
from dental_crm.repositories.clients import ClientRepository
from dental_crm.repositories.profiles import ProfileRepository
from dental_crm.schemas.activity import CalendarEventCreate, CalendarEventRead, CallCreate, GoalUpsert, TaskCreate
from dental_crm.schemas.realtime import ChangeEvent
from dental_crm.services.base import BaseService, ForbiddenError, NotFoundError
from dental_crm.services.google import GoogleApiClient
from dental_crm.services.realtime import DASHBOARD_TOPIC, notify_change

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 100


# PUBLIC_INTERFACE
def event_to_read(event: Dict[str, Any]) -> CalendarEventRead:
    """Flatten a Calendar API event; all-day events carry a date instead of a dateTime."""
    start = event.get("start") or {}
    end = event.get("end") or {}
    return CalendarEventRead(
        id=event.get("id"),
        summary=event.get("summary"),
        start=start.get("dateTime") or start.get("date"),
        end=end.get("dateTime") or end.get("date"),
        html_link=event.get("htmlLink"),
    )


class ActivityService(BaseService):
    """Agenda tasks, call and e-mail logs, monthly goals and the Google calendar."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = ActivityRepository(session)
        self.settings = get_app_settings()

    # Tasks

    # PUBLIC_INTERFACE
    async def create_task(self, ctx: AccessContext, payload: TaskCreate) -> Task:
        task = await self.repo.create_task(user_id=ctx.profile_id, **payload.model_dump())
        await self.repo.commit()
        return task

    # PUBLIC_INTERFACE
    async def pending_tasks(self, ctx: AccessContext) -> List[Task]:
        return await self.repo.list_pending_tasks(ctx.profile_id)

    # PUBLIC_INTERFACE
    async def complete_task(self, ctx: AccessContext, task_id: UUID) -> Task:
        task = await self.repo.get_task(task_id)
        if task is None or task.user_id != ctx.profile_id:
            raise NotFoundError("Task not found")
        task.completed = True
        await self.repo.commit()
        await self.repo.refresh(task)
        return task

    # Calls

    # PUBLIC_INTERFACE
    async def log_call(self, ctx: AccessContext, payload: CallCreate) -> CallLog:
        if await ClientRepository(self.session).get(payload.client_id) is None:
            raise NotFoundError("Client not found")
        call = await self.repo.create_call(user_id=ctx.profile_id, **payload.model_dump())
        await self.repo.commit()
        await notify_change(
            DASHBOARD_TOPIC, ChangeEvent(entity="call", action="created", entity_id=call.id, profile_id=ctx.profile_id)
        )
        return call

    # E-mail

    # PUBLIC_INTERFACE
    async def send_email(
        self,
        ctx: AccessContext,
        google: GoogleApiClient,
        google_token: str,
        to: str,
        subject: str,
        body: str,
        client_id: Optional[UUID] = None,
        attachment: Optional[Tuple[str, bytes, str]] = None,
    ) -> EmailLog:
        """Send through Gmail as the caller, then record the message in email_logs."""
        sent = await google.send_gmail(google_token, to, subject, body, attachment)
        log = await self.repo.create_email_log(
            user_id=ctx.profile_id,
            client_id=client_id,
            recipient=to,
            subject=subject,
            snippet=body[:SNIPPET_LENGTH],
            gmail_message_id=sent.get("id"),
        )
        await self.repo.commit()
        logger.info("E-mail sent to %s (gmail id=%s)", to, sent.get("id"))
        return log

    # PUBLIC_INTERFACE
    async def email_history(self, ctx: AccessContext) -> List[EmailLog]:
        return await self.repo.list_email_logs(ctx.profile_id)

    # Goals

    # PUBLIC_INTERFACE
    async def set_goal(self, ctx: AccessContext, payload: GoalUpsert) -> Goal:
        if not ctx.has_permission(MANAGE_METAS):
            raise ForbiddenError("Setting goals requires MANAGE_METAS")
        if await ProfileRepository(self.session).get_by_id(payload.user_id) is None:
            raise NotFoundError("Profile not found")
        rate = payload.commission_rate if payload.commission_rate is not None else self.settings.DEFAULT_COMMISSION_RATE
        goal = await self.repo.upsert_goal(payload.user_id, payload.year, payload.month, payload.target_amount, rate)
        await self.repo.commit()
        logger.info("Goal %d/%d set for %s: %s", payload.month, payload.year, payload.user_id, payload.target_amount)
        return goal

    # PUBLIC_INTERFACE
    async def list_goals(self, ctx: AccessContext, year: int, month: int) -> List[Goal]:
        if not ctx.has_permission(VIEW_METAS):
            raise ForbiddenError("Viewing goals requires VIEW_METAS")
        goals = await self.repo.list_goals(year, month)
        if ctx.has_permission(MANAGE_METAS):
            return goals
        return [g for g in goals if g.user_id == ctx.profile_id]

    # Calendar

    # PUBLIC_INTERFACE
    async def upcoming_events(self, google: GoogleApiClient, google_token: str, limit: int = 10) -> List[CalendarEventRead]:
        return [event_to_read(e) for e in await google.list_events(google_token, max_results=limit)]

    # PUBLIC_INTERFACE
    async def create_event(
        self, google: GoogleApiClient, google_token: str, payload: CalendarEventCreate
    ) -> CalendarEventRead:
        event = await google.create_event(
            google_token, payload.summary, payload.start, description=payload.description, location=payload.location
        )
        return event_to_read(event)

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Path, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from dental_crm.core.deps import get_access_context, get_google_client, get_google_token, get_session
from dental_crm.core.permissions import AccessContext
from dental_crm.schemas.activity import (
    CalendarEventCreate,
    CalendarEventRead,
    CallCreate,
    CallRead,
    EmailLogRead,
    GoalRead,
    GoalUpsert,
    TaskCreate,
    TaskRead,
)
from dental_crm.services.activity import ActivityService
from dental_crm.services.google import GoogleApiClient

schedule_router = APIRouter(prefix="/schedule", tags=["Schedule"])
communications_router = APIRouter(prefix="/communications", tags=["Communications"])
goals_router = APIRouter(prefix="/goals", tags=["Goals"])


# Tasks and calendar


# PUBLIC_INTERFACE
@schedule_router.post("/tasks", response_model=TaskRead, status_code=status.HTTP_201_CREATED, summary="Create task")
async def create_task(
    payload: TaskCreate,
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> TaskRead:
    return TaskRead.model_validate(await ActivityService(session).create_task(ctx, payload))


# PUBLIC_INTERFACE
@schedule_router.get("/tasks", response_model=List[TaskRead], summary="Pending tasks")
async def pending_tasks(
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> List[TaskRead]:
    return [TaskRead.model_validate(t) for t in await ActivityService(session).pending_tasks(ctx)]


# PUBLIC_INTERFACE
@schedule_router.post("/tasks/{task_id}/complete", response_model=TaskRead, summary="Complete task")
async def complete_task(
    task_id: UUID = Path(...),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> TaskRead:
    return TaskRead.model_validate(await ActivityService(session).complete_task(ctx, task_id))


# PUBLIC_INTERFACE
@schedule_router.get(
    "/events",
    response_model=List[CalendarEventRead],
    summary="Upcoming calendar events",
    description="Reads the caller's primary Google Calendar (X-Google-Access-Token header).",
)
async def upcoming_events(
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
    google: GoogleApiClient = Depends(get_google_client),
    google_token: str = Depends(get_google_token),
    limit: int = Query(10, ge=1, le=50),
) -> List[CalendarEventRead]:
    return await ActivityService(session).upcoming_events(google, google_token, limit)


# PUBLIC_INTERFACE
@schedule_router.post(
    "/events",
    response_model=CalendarEventRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create calendar event",
    description="Creates a one-hour event in the caller's primary Google Calendar.",
)
async def create_event(
    payload: CalendarEventCreate,
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
    google: GoogleApiClient = Depends(get_google_client),
    google_token: str = Depends(get_google_token),
) -> CalendarEventRead:
    return await ActivityService(session).create_event(google, google_token, payload)


# Calls and e-mail


# PUBLIC_INTERFACE
@communications_router.post("/calls", response_model=CallRead, status_code=status.HTTP_201_CREATED, summary="Log call")
async def log_call(
    payload: CallCreate,
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> CallRead:
    return CallRead.model_validate(await ActivityService(session).log_call(ctx, payload))


# PUBLIC_INTERFACE
@communications_router.post(
    "/email",
    response_model=EmailLogRead,
    status_code=status.HTTP_201_CREATED,
    summary="Send e-mail",
    description="Multipart form: to, subject, body, optional client_id and attachment (max 20 MB). Sent through Gmail.",
)
async def send_email(
    to: str = Form(...),
    subject: str = Form(...),
    body: str = Form(...),
    client_id: Optional[UUID] = Form(None),
    attachment: Optional[UploadFile] = File(None),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
    google: GoogleApiClient = Depends(get_google_client),
    google_token: str = Depends(get_google_token),
) -> EmailLogRead:
    file_part = None
    if attachment is not None and attachment.filename:
        file_part = (
            attachment.filename,
            await attachment.read(),
            attachment.content_type or "application/octet-stream",
        )
    log = await ActivityService(session).send_email(
        ctx, google, google_token, to, subject, body, client_id=client_id, attachment=file_part
    )
    return EmailLogRead.model_validate(log)


# PUBLIC_INTERFACE
@communications_router.get("/email", response_model=List[EmailLogRead], summary="Sent e-mails")
async def email_history(
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> List[EmailLogRead]:
    return [EmailLogRead.model_validate(e) for e in await ActivityService(session).email_history(ctx)]


# Goals


# PUBLIC_INTERFACE
@goals_router.put("", response_model=GoalRead, summary="Set monthly goal", description="Requires MANAGE_METAS.")
async def set_goal(
    payload: GoalUpsert,
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> GoalRead:
    return GoalRead.model_validate(await ActivityService(session).set_goal(ctx, payload))


# PUBLIC_INTERFACE
@goals_router.get("", response_model=List[GoalRead], summary="Goals of a month", description="Requires VIEW_METAS.")
async def list_goals(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> List[GoalRead]:
    return [GoalRead.model_validate(g) for g in await ActivityService(session).list_goals(ctx, year, month)]

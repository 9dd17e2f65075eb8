from __future__ import annotations

import io
from datetime import date, datetime, time, timezone
from typing import Optional
from uuid import UUID

import pandas as pd
from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from dental_crm.core.deps import get_session, require_permission
from dental_crm.core.permissions import VIEW_ALL_CLIENTS, VIEW_TEAM_STATS, AccessContext
from dental_crm.repositories.clients import ClientRepository
from dental_crm.repositories.orders import OrderRepository
from dental_crm.repositories.visits import VisitRepository
from dental_crm.schemas.common import ExportFormat
from dental_crm.services.documents import export_dataframe

# PUBLIC_INTERFACE
router = APIRouter(
    prefix="/reports",
    tags=["Reports"],
)

VISIT_COLUMNS = [
    "check_in_time",
    "check_out_time",
    "status",
    "sales_rep_id",
    "client_name",
    "client_rut",
    "zone",
    "duration_minutes",
    "notes",
]
CLIENT_COLUMNS = ["name", "rut", "giro", "address", "comuna", "zone", "phone", "email", "purchase_contact", "status", "created_at"]
QUOTATION_COLUMNS = ["folio", "order_date", "client_name", "client_rut", "status", "delivery_status", "subtotal", "tax", "total_amount"]


async def _stream(df: pd.DataFrame, filename_base: str, export_format: str) -> StreamingResponse:
    """Export a DataFrame off the event loop and wrap it as a file download."""
    content, media_type, filename = await run_in_threadpool(export_dataframe, df, filename_base, export_format)
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return StreamingResponse(io.BytesIO(content), media_type=media_type, headers=headers)


def _range(date_from: Optional[date], date_to: Optional[date]):
    today = datetime.now(timezone.utc).date()
    start = datetime.combine(date_from or today, time.min, tzinfo=timezone.utc)
    end = datetime.combine(date_to or today, time.max, tzinfo=timezone.utc)
    return start, end


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    # Excel cannot store tz-aware datetimes
    return value.astimezone(timezone.utc).replace(tzinfo=None) if value else None


# PUBLIC_INTERFACE
@router.get(
    "/visits",
    summary="Visits report",
    description="Visits checked in within the date range, with client and duration.",
    response_description="File stream (CSV/XLSX/PDF)",
)
async def visits_report(
    ctx: AccessContext = Depends(require_permission(VIEW_TEAM_STATS)),
    session: AsyncSession = Depends(get_session),
    date_from: Optional[date] = Query(None, description="First day (default today)"),
    date_to: Optional[date] = Query(None, description="Last day (default today)"),
    rep_id: Optional[UUID] = Query(None),
    format: ExportFormat = Query("csv", description="Export format"),
):
    start, end = _range(date_from, date_to)
    rows = await VisitRepository(session).list_with_clients(start=start, end=end, rep_id=rep_id)
    data = []
    for visit, client in rows:
        duration = None
        if visit.check_out_time:
            duration = max(0, int((visit.check_out_time - visit.check_in_time).total_seconds() // 60))
        data.append(
            {
                "check_in_time": _naive(visit.check_in_time),
                "check_out_time": _naive(visit.check_out_time),
                "status": visit.status,
                "sales_rep_id": str(visit.sales_rep_id),
                "client_name": client.name,
                "client_rut": client.rut,
                "zone": client.zone,
                "duration_minutes": duration,
                "notes": visit.notes,
            }
        )
    return await _stream(pd.DataFrame(data, columns=VISIT_COLUMNS), "visits", format)


# PUBLIC_INTERFACE
@router.get(
    "/clients",
    summary="Clients report",
    description="Client master data export.",
    response_description="File stream (CSV/XLSX/PDF)",
)
async def clients_report(
    ctx: AccessContext = Depends(require_permission(VIEW_ALL_CLIENTS)),
    session: AsyncSession = Depends(get_session),
    search: Optional[str] = Query(None),
    format: ExportFormat = Query("csv", description="Export format"),
):
    clients = await ClientRepository(session).list_clients(search=search, limit=100000)
    data = [
        {
            "name": c.name,
            "rut": c.rut,
            "giro": c.giro,
            "address": c.address,
            "comuna": c.comuna,
            "zone": c.zone,
            "phone": c.phone,
            "email": c.email,
            "purchase_contact": c.purchase_contact,
            "status": c.status,
            "created_at": _naive(c.created_at),
        }
        for c in clients
    ]
    return await _stream(pd.DataFrame(data, columns=CLIENT_COLUMNS), "clients", format)


# PUBLIC_INTERFACE
@router.get(
    "/quotations",
    summary="Quotations report",
    description="Quotations created within the date range.",
    response_description="File stream (CSV/XLSX/PDF)",
)
async def quotations_report(
    ctx: AccessContext = Depends(require_permission(VIEW_TEAM_STATS)),
    session: AsyncSession = Depends(get_session),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    format: ExportFormat = Query("csv", description="Export format"),
):
    start, end = _range(date_from, date_to)
    rows = await OrderRepository(session).list_with_clients(start=start, end=end, limit=100000)
    data = [
        {
            "folio": o.folio,
            "order_date": o.order_date,
            "client_name": c.name,
            "client_rut": c.rut,
            "status": o.status,
            "delivery_status": o.delivery_status,
            "subtotal": o.subtotal,
            "tax": o.tax,
            "total_amount": o.total_amount,
        }
        for o, c in rows
    ]
    return await _stream(pd.DataFrame(data, columns=QUOTATION_COLUMNS), "quotations", format)

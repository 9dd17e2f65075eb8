from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from dental_crm.core.deps import get_access_context, get_google_client, get_google_token, get_session
from dental_crm.core.permissions import AccessContext
from dental_crm.schemas.common import MessageResponse
from dental_crm.schemas.quotations import QuotationCreate, QuotationEmailRequest, QuotationRead, QuotationStatusUpdate
from dental_crm.services.google import GoogleApiClient
from dental_crm.services.quotations import QuotationService

router = APIRouter(prefix="/quotations", tags=["Quotations"])


def _pdf_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=QuotationRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create quotation",
    description="Line totals, subtotal, 19% IVA and total are computed server-side. The folio is sequential.",
)
async def create_quotation(
    payload: QuotationCreate,
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> QuotationRead:
    service = QuotationService(session)
    return service.to_read(await service.create(ctx, payload))


# PUBLIC_INTERFACE
@router.get("", response_model=List[QuotationRead], summary="List quotations")
async def list_quotations(
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
    status_filter: Optional[str] = Query(None, alias="status"),
    mine: bool = Query(False, description="Only the caller's quotations"),
    limit: int = Query(200, ge=1, le=1000),
) -> List[QuotationRead]:
    service = QuotationService(session)
    return [service.to_read(o) for o in await service.list_quotations(ctx, status=status_filter, mine=mine, limit=limit)]


# PUBLIC_INTERFACE
@router.get("/{order_id}", response_model=QuotationRead, summary="Get quotation")
async def get_quotation(
    order_id: UUID = Path(...),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> QuotationRead:
    service = QuotationService(session)
    return service.to_read(await service.get(ctx, order_id))


# PUBLIC_INTERFACE
@router.patch(
    "/{order_id}/status",
    response_model=QuotationRead,
    summary="Approve or reject",
    description="Requires MANAGE_DISPATCH or a manager role.",
)
async def set_quotation_status(
    payload: QuotationStatusUpdate,
    order_id: UUID = Path(...),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> QuotationRead:
    service = QuotationService(session)
    return service.to_read(await service.set_status(ctx, order_id, payload.status))


# PUBLIC_INTERFACE
@router.get(
    "/{order_id}/pdf",
    summary="Quotation PDF",
    response_class=Response,
    responses={200: {"content": {"application/pdf": {}}}},
)
async def quotation_pdf(
    order_id: UUID = Path(...),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> Response:
    content, filename = await QuotationService(session).pdf(ctx, order_id)
    return _pdf_response(content, filename)


# PUBLIC_INTERFACE
@router.post(
    "/{order_id}/email",
    response_model=MessageResponse,
    summary="E-mail quotation",
    description="Send the PDF from the caller's Gmail account (X-Google-Access-Token header).",
)
async def email_quotation(
    payload: QuotationEmailRequest,
    order_id: UUID = Path(...),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
    google: GoogleApiClient = Depends(get_google_client),
    google_token: str = Depends(get_google_token),
) -> MessageResponse:
    sent = await QuotationService(session).email(ctx, order_id, payload, google, google_token)
    return MessageResponse(message="Quotation sent", details={"gmail_message_id": sent.get("id")})

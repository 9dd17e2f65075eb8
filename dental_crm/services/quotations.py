from __future__ import annotations

import json
import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from dental_crm.core.permissions import MANAGE_DISPATCH, VIEW_ALL_CLIENTS, AccessContext
from dental_crm.core.settings import get_app_settings
from dental_crm.db.models.clients import Client
from dental_crm.db.models.orders import Order, OrderItem
from dental_crm.repositories.activity import ActivityRepository
from dental_crm.repositories.clients import ClientRepository
from dental_crm.repositories.orders import OrderRepository
from dental_crm.repositories.profiles import ProfileRepository
from dental_crm.schemas.quotations import QuotationCreate, QuotationEmailRequest, QuotationItemIn, QuotationRead
from dental_crm.schemas.realtime import ChangeEvent
from dental_crm.services.base import BaseService, ForbiddenError, NotFoundError, ValidationFailed
from dental_crm.services.documents import QuotationDocument, QuotationLine, render_quotation_pdf
from dental_crm.services.google import GoogleApiClient
from dental_crm.services.realtime import DASHBOARD_TOPIC, notify_change

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"


# PUBLIC_INTERFACE
def round_half_up(value: float) -> int:
    """Round .5 towards positive infinity, as peso amounts are rounded."""
    return int(math.floor(value + 0.5))


# PUBLIC_INTERFACE
def compute_line_total(qty: float, price: float, discount: float = 0) -> int:
    """qty x price less the discount percentage, rounded to whole pesos."""
    return round_half_up(qty * price * (1 - (discount or 0) / 100))


# PUBLIC_INTERFACE
def compute_totals(line_totals: Iterable[float], tax_rate: float = 0.19) -> Tuple[float, int, float]:
    """Return (subtotal, tax, total) where tax is the rounded IVA over the subtotal."""
    subtotal = sum(line_totals)
    tax = round_half_up(subtotal * tax_rate)
    return subtotal, tax, subtotal + tax


# PUBLIC_INTERFACE
def format_payment_terms(raw: Optional[str]) -> str:
    """
    Payment terms are free text or JSON like {"type": "CREDITO", "days": 30};
    the JSON form prints as "CREDITO - 30 DÍAS" (days omitted when zero).
    """
    if not raw:
        return ""
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return raw
    if not isinstance(parsed, dict):
        return raw
    kind = parsed.get("type") or ""
    try:
        days = int(parsed.get("days") or 0)
    except (TypeError, ValueError):
        days = 0
    return f"{kind} - {days} DÍAS" if days > 0 else str(kind)


# PUBLIC_INTERFACE
def expiry_date(order_date: date, validity_days: int = 15) -> date:
    return order_date + timedelta(days=validity_days)


def build_items(items: List[QuotationItemIn]) -> List[OrderItem]:
    return [
        OrderItem(
            line_no=idx,
            code=item.code,
            detail=item.detail,
            sub_detail=item.sub_detail,
            qty=item.qty,
            unit=item.unit,
            price=item.price,
            discount=item.discount,
            total=compute_line_total(item.qty, item.price, item.discount),
        )
        for idx, item in enumerate(items, start=1)
    ]


class QuotationService(BaseService):
    """Quotations (orders): totals, approval flow, PDF and e-mail."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = OrderRepository(session)
        self.clients = ClientRepository(session)
        self.settings = get_app_settings()

    def to_read(self, order: Order) -> QuotationRead:
        read = QuotationRead.model_validate(order)
        if order.order_date is not None:
            read.expiry_date = expiry_date(order.order_date, self.settings.QUOTATION_VALIDITY_DAYS)
        return read

    # PUBLIC_INTERFACE
    async def create(self, ctx: AccessContext, payload: QuotationCreate) -> Order:
        client = await self.clients.get(payload.client_id)
        if client is None:
            raise NotFoundError("Client not found")

        items = build_items(payload.items)
        subtotal, tax, total = compute_totals((i.total for i in items), self.settings.TAX_RATE)
        order = Order(
            client_id=client.id,
            user_id=ctx.profile_id,
            visit_id=payload.visit_id,
            status=STATUS_PENDING,
            delivery_status="pending",
            order_date=datetime.now(timezone.utc).date(),
            payment_terms=payload.payment_terms,
            comments=payload.comments,
            subtotal=subtotal,
            tax=tax,
            total_amount=total,
        )
        order = await self.repo.create(order, items)
        await self.repo.commit()
        logger.info("Quotation %s created for client %s (total=%s)", order.folio, client.id, total)
        await notify_change(
            DASHBOARD_TOPIC, ChangeEvent(entity="order", action="created", entity_id=order.id, profile_id=ctx.profile_id)
        )
        return order

    async def _get_visible(self, ctx: AccessContext, order_id: UUID) -> Tuple[Order, Client]:
        found = await self.repo.get_with_client(order_id)
        if found is None:
            raise NotFoundError("Quotation not found")
        order, client = found
        if order.user_id != ctx.profile_id and not (
            ctx.has_permission(VIEW_ALL_CLIENTS) or ctx.has_permission(MANAGE_DISPATCH)
        ):
            raise ForbiddenError("Not allowed to access this quotation")
        return order, client

    # PUBLIC_INTERFACE
    async def get(self, ctx: AccessContext, order_id: UUID) -> Order:
        order, _ = await self._get_visible(ctx, order_id)
        return order

    # PUBLIC_INTERFACE
    async def list_quotations(
        self, ctx: AccessContext, status: Optional[str] = None, mine: bool = False, limit: int = 200
    ) -> List[Order]:
        user_id = None
        if mine or not (ctx.has_permission(VIEW_ALL_CLIENTS) or ctx.has_permission(MANAGE_DISPATCH)):
            user_id = ctx.profile_id
        rows = await self.repo.list_with_clients(user_id=user_id, status=status, limit=limit)
        return [order for order, _ in rows]

    # PUBLIC_INTERFACE
    async def set_status(self, ctx: AccessContext, order_id: UUID, status: str) -> Order:
        """Approve or reject a pending quotation."""
        if not ctx.has_permission(MANAGE_DISPATCH) and not ctx.is_manager:
            raise ForbiddenError("Not allowed to change quotation status")
        order, _ = await self._get_visible(ctx, order_id)
        if status not in (STATUS_APPROVED, STATUS_REJECTED, STATUS_PENDING):
            raise ValidationFailed(f"Unknown status: {status}")
        if order.route_id is not None and status == STATUS_REJECTED:
            raise ValidationFailed("Orders assigned to a route cannot be rejected")
        order.status = status
        await self.repo.commit()
        await self.repo.refresh(order)
        logger.info("Quotation %s set to %s", order.folio, status)
        await notify_change(
            DASHBOARD_TOPIC, ChangeEvent(entity="order", action="updated", entity_id=order.id, profile_id=order.user_id)
        )
        return order

    async def _document(self, order: Order, client: Client) -> QuotationDocument:
        seller_name = ""
        if order.user_id is not None:
            seller = await ProfileRepository(self.session).get_by_id(order.user_id)
            if seller is not None:
                seller_name = seller.full_name or seller.email
        issued = order.order_date or order.created_at.date()
        return QuotationDocument(
            folio=order.folio,
            issue_date=issued,
            expiry_date=expiry_date(issued, self.settings.QUOTATION_VALIDITY_DAYS),
            client_name=client.name,
            client_rut=client.rut,
            client_address=client.address,
            client_comuna=client.comuna,
            client_giro=client.giro,
            client_phone=client.phone,
            client_email=client.email,
            client_contact=client.purchase_contact,
            payment_terms=format_payment_terms(order.payment_terms),
            seller_name=seller_name,
            subtotal=order.subtotal,
            tax=order.tax,
            total=order.total_amount,
            comments=order.comments,
            lines=[
                QuotationLine(
                    code=i.code,
                    detail=i.detail,
                    sub_detail=i.sub_detail,
                    qty=i.qty,
                    unit=i.unit,
                    price=i.price,
                    discount=i.discount,
                    total=i.total,
                )
                for i in order.items
            ],
        )

    # PUBLIC_INTERFACE
    async def pdf(self, ctx: AccessContext, order_id: UUID) -> Tuple[bytes, str]:
        """Render the quotation PDF; returns (content, filename)."""
        order, client = await self._get_visible(ctx, order_id)
        content = render_quotation_pdf(await self._document(order, client), self.settings.COMPANY_NAME)
        return content, f"cotizacion_{order.folio}.pdf"

    # PUBLIC_INTERFACE
    async def email(
        self,
        ctx: AccessContext,
        order_id: UUID,
        payload: QuotationEmailRequest,
        google: GoogleApiClient,
        google_token: str,
    ) -> dict:
        """Send the quotation PDF from the caller's Gmail account and log it."""
        order, client = await self._get_visible(ctx, order_id)
        recipient = payload.to or client.email
        if not recipient:
            raise ValidationFailed("The client has no e-mail; provide a recipient")
        subject = payload.subject or f"Cotización N° {order.folio} - {self.settings.COMPANY_NAME}"
        body = payload.body or (
            f"Estimado(a) {client.purchase_contact or client.name},\n\n"
            f"Adjuntamos la cotización N° {order.folio}.\n\nSaludos cordiales."
        )
        content = render_quotation_pdf(await self._document(order, client), self.settings.COMPANY_NAME)
        sent = await google.send_gmail(
            google_token, recipient, subject, body, attachment=(f"cotizacion_{order.folio}.pdf", content, "application/pdf")
        )
        await ActivityRepository(self.session).create_email_log(
            user_id=ctx.profile_id,
            client_id=client.id,
            recipient=recipient,
            subject=subject,
            snippet=body[:100],
            gmail_message_id=sent.get("id"),
        )
        await self.session.commit()
        logger.info("Quotation %s e-mailed to %s", order.folio, recipient)
        return sent

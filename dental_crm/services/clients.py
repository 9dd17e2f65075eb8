from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, NamedTuple, Optional
from uuid import UUID

import pandas as pd
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from dental_crm.core.geo import GeofenceResult, check_geofence
from dental_crm.core.permissions import MANAGE_CLIENTS, VIEW_ALL_CLIENTS, AccessContext
from dental_crm.core.rut import normalize_rut
from dental_crm.core.settings import get_app_settings
from dental_crm.db.models.clients import Client
from dental_crm.repositories.clients import ClientRepository
from dental_crm.repositories.profiles import ProfileRepository
from dental_crm.schemas.clients import ClientCreate, ClientUpdate, ImportResult
from dental_crm.schemas.realtime import ChangeEvent
from dental_crm.services.base import BaseService, ConflictError, ForbiddenError, NotFoundError, ValidationFailed
from dental_crm.services.realtime import DASHBOARD_TOPIC, notify_change

logger = logging.getLogger(__name__)

IMPORT_NOTE = "Importado vía CSV"
IMPORT_DEFAULT_ADDRESS = "Dirección por actualizar"


@dataclass
class ImportRow:
    """Client row mapped from the import sheet, before owner resolution."""
    values: Dict[str, Any]
    seller: Optional[str] = None


@dataclass
class ImportPlan:
    rows: List[ImportRow] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


class SellerRef(NamedTuple):
    id: UUID
    email: Optional[str]


def _cell(row: Dict[str, Any], *names: str) -> Optional[str]:
    """First non-empty cell among the given headers, stripped."""
    for name in names:
        value = row.get(name)
        if value is None or (isinstance(value, float) and pd.isna(value)):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


# PUBLIC_INTERFACE
def read_import_frame(content: bytes) -> pd.DataFrame:
    """Parse an uploaded CSV as text columns; blank lines are skipped."""
    if not content or not content.strip():
        raise ValidationFailed("The CSV file is empty")
    frame = pd.read_csv(io.BytesIO(content), dtype=str, skip_blank_lines=True, encoding="utf-8-sig")
    if frame.empty:
        raise ValidationFailed("The CSV file is empty")
    frame.columns = [str(c).strip() for c in frame.columns]
    return frame


# PUBLIC_INTERFACE
def plan_client_import(records: Iterable[Dict[str, Any]], default_lat: float, default_lng: float, zone: str) -> ImportPlan:
    """
    Map import rows (headers Nombre, Rut, Giro, Dirección, Comuna/Ciudad,
    Teléfono, Email, Contacto, Vendedor) to client values. Rows without a
    name are reported as errors and skipped.
    """
    plan = ImportPlan()
    for record in records:
        name = _cell(record, "Nombre")
        if not name:
            plan.errors.append(f"Fila sin nombre: {dict(record)}")
            continue
        raw_rut = _cell(record, "Rut")
        plan.rows.append(
            ImportRow(
                values={
                    "name": name,
                    "rut": normalize_rut(raw_rut) if raw_rut else None,
                    "giro": _cell(record, "Giro"),
                    "address": _cell(record, "Dirección") or IMPORT_DEFAULT_ADDRESS,
                    "comuna": _cell(record, "Comuna", "Ciudad"),
                    "phone": _cell(record, "Teléfono"),
                    "email": _cell(record, "Email"),
                    "purchase_contact": _cell(record, "Contacto"),
                    "status": "active",
                    "zone": zone,
                    "lat": default_lat,
                    "lng": default_lng,
                    "notes": IMPORT_NOTE,
                },
                seller=_cell(record, "Vendedor"),
            )
        )
    return plan


# PUBLIC_INTERFACE
def resolve_seller(seller: Optional[str], profiles: Iterable[Any]) -> Optional[Any]:
    """Find a profile by full e-mail, then by the user part before '@'."""
    if not seller:
        return None
    wanted = seller.strip().lower()
    candidates = list(profiles)
    for p in candidates:
        if (p.email or "").lower() == wanted:
            return p
    for p in candidates:
        if (p.email or "").split("@")[0].lower() == wanted:
            return p
    return None


class ClientService(BaseService):
    """Client master data, ownership and import."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = ClientRepository(session)
        self.settings = get_app_settings()

    # PUBLIC_INTERFACE
    async def get(self, client_id: UUID) -> Client:
        client = await self.repo.get(client_id)
        if client is None:
            raise NotFoundError("Client not found")
        return client

    # PUBLIC_INTERFACE
    async def list_clients(
        self, ctx: AccessContext, search: Optional[str] = None, scope: str = "all", limit: int = 200, offset: int = 0
    ) -> List[Client]:
        """
        Callers with VIEW_ALL_CLIENTS choose between every client (scope=all)
        and their own (scope=mine); everyone else only sees their own.
        """
        owner_id = None
        if not ctx.has_permission(VIEW_ALL_CLIENTS) or scope == "mine":
            owner_id = ctx.profile_id
        return await self.repo.list_clients(owner_id=owner_id, search=search, limit=limit, offset=offset)

    # PUBLIC_INTERFACE
    async def create(self, ctx: AccessContext, payload: ClientCreate) -> Client:
        rut = normalize_rut(payload.rut)
        if not rut:
            raise ValidationFailed("RUT is required")
        existing = await self.repo.find_owner_by_rut(rut)
        if existing is not None:
            _, owner = existing
            owner_name = (owner.full_name or owner.email) if owner else "Sin asignar"
            raise ConflictError(
                f"Client already exists, assigned to {owner_name}",
                details={"rut": rut, "owner_name": owner_name},
            )
        values = payload.model_dump()
        values.update(
            rut=rut,
            lat=payload.lat if payload.lat is not None else self.settings.DEFAULT_CLIENT_LAT,
            lng=payload.lng if payload.lng is not None else self.settings.DEFAULT_CLIENT_LNG,
            zone=self.settings.DEFAULT_CLIENT_ZONE,
            status="active",
            created_by=ctx.profile_id,
        )
        client = await self.repo.create(values)
        await self.repo.commit()
        logger.info("Client created: %s (%s)", client.name, client.rut)
        await notify_change(DASHBOARD_TOPIC, ChangeEvent(entity="client", action="created", entity_id=client.id, profile_id=ctx.profile_id))
        return client

    # PUBLIC_INTERFACE
    async def update(self, ctx: AccessContext, client_id: UUID, payload: ClientUpdate) -> Client:
        client = await self.get(client_id)
        self._ensure_can_modify(ctx, client)
        rut = normalize_rut(payload.rut)
        if not rut:
            raise ValidationFailed("RUT is required")
        if rut != client.rut:
            other = await self.repo.get_by_rut(rut)
            if other is not None and other.id != client.id:
                raise ConflictError("Another client already has this RUT", details={"rut": rut})
        values = payload.model_dump()
        values["rut"] = rut
        # Keep the stored position when the form does not send one
        if payload.lat is None or payload.lng is None:
            values.pop("lat")
            values.pop("lng")
        client = await self.repo.update(client, values)
        await self.repo.commit()
        return client

    # PUBLIC_INTERFACE
    async def delete(self, ctx: AccessContext, client_id: UUID) -> None:
        client = await self.get(client_id)
        self._ensure_can_modify(ctx, client)
        await self.repo.delete(client)
        await self.repo.commit()
        logger.info("Client deleted: %s", client_id)
        await notify_change(DASHBOARD_TOPIC, ChangeEvent(entity="client", action="deleted", entity_id=client_id, profile_id=ctx.profile_id))

    def _ensure_can_modify(self, ctx: AccessContext, client: Client) -> None:
        if client.created_by != ctx.profile_id and not ctx.has_permission(MANAGE_CLIENTS):
            raise ForbiddenError("Only the owner or a client manager can modify this client")

    # PUBLIC_INTERFACE
    async def geofence(self, client_id: UUID, lat: float, lng: float) -> GeofenceResult:
        client = await self.get(client_id)
        return check_geofence(lat, lng, client.lat, client.lng, radius_m=self.settings.GEOFENCE_RADIUS_METERS)

    # PUBLIC_INTERFACE
    async def import_csv(self, ctx: AccessContext, content: bytes) -> ImportResult:
        """
        Import clients from CSV. Rows are inserted one by one; a failing row
        is reported and does not roll back the others.
        """
        frame = await asyncio.to_thread(read_import_frame, content)
        plan = plan_client_import(
            frame.to_dict(orient="records"),
            self.settings.DEFAULT_CLIENT_LAT,
            self.settings.DEFAULT_CLIENT_LNG,
            self.settings.DEFAULT_CLIENT_ZONE,
        )
        result = ImportResult(error_count=len(plan.errors), messages=list(plan.errors))
        # plain values: nothing below may touch ORM state after a failed row
        importer_id = ctx.profile_id
        sellers = [SellerRef(p.id, p.email) for p in await ProfileRepository(self.session).list_all()]

        for row in plan.rows:
            owner_id = importer_id
            if row.seller:
                seller = resolve_seller(row.seller, sellers)
                if seller is not None:
                    owner_id = seller.id
                else:
                    result.messages.append(f"Vendedor no encontrado: {row.seller} (Asignando a ti por defecto)")
            values = dict(row.values, created_by=owner_id)

            rut = values.get("rut")
            if rut and await self.repo.get_by_rut(rut):
                result.error_count += 1
                result.messages.append(f"RUT duplicado: {rut} ({values['name']})")
                continue
            try:
                async with self.session.begin_nested():
                    await self.repo.create(values)
                await self.repo.commit()
                result.success_count += 1
            except IntegrityError as exc:
                result.error_count += 1
                result.messages.append(f"Error al insertar {values['name']}: {exc.orig}")

        logger.info("Client import finished: ok=%d errors=%d", result.success_count, result.error_count)
        if result.success_count:
            await notify_change(DASHBOARD_TOPIC, ChangeEvent(entity="client", action="created", profile_id=importer_id))
        return result

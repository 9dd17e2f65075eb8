from __future__ import annotations

from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Path, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from dental_crm.core.deps import get_access_context, get_session, require_permission
from dental_crm.core.permissions import IMPORT_CLIENTS, AccessContext
from dental_crm.schemas.clients import ClientCreate, ClientRead, ClientUpdate, ImportResult
from dental_crm.schemas.common import MessageResponse
from dental_crm.schemas.geo import GeofenceRead, Position
from dental_crm.services.clients import ClientService

router = APIRouter(prefix="/clients", tags=["Clients"])


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[ClientRead],
    summary="List clients",
    description="Search by name, RUT or address. scope=mine restricts to own clients; without VIEW_ALL_CLIENTS it is implied.",
)
async def list_clients(
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
    search: Optional[str] = Query(None),
    scope: Literal["all", "mine"] = Query("all"),
    limit: int = Query(200, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[ClientRead]:
    items = await ClientService(session).list_clients(ctx, search=search, scope=scope, limit=limit, offset=offset)
    return [ClientRead.model_validate(c) for c in items]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=ClientRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create client",
    description="Creates a client owned by the caller. A RUT already registered answers 409 with the owner's name.",
)
async def create_client(
    payload: ClientCreate,
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> ClientRead:
    return ClientRead.model_validate(await ClientService(session).create(ctx, payload))


# PUBLIC_INTERFACE
@router.post(
    "/import",
    response_model=ImportResult,
    summary="Import clients from CSV",
    description=(
        "Columns: Nombre, Rut, Giro, Dirección, Comuna/Ciudad, Teléfono, Email, Contacto, Vendedor. "
        "Rows are inserted independently and failures are reported per row."
    ),
)
async def import_clients(
    file: UploadFile = File(..., description="CSV file"),
    ctx: AccessContext = Depends(require_permission(IMPORT_CLIENTS)),
    session: AsyncSession = Depends(get_session),
) -> ImportResult:
    content = await file.read()
    return await ClientService(session).import_csv(ctx, content)


# PUBLIC_INTERFACE
@router.get("/{client_id}", response_model=ClientRead, summary="Get client")
async def get_client(
    client_id: UUID = Path(...),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> ClientRead:
    return ClientRead.model_validate(await ClientService(session).get(client_id))


# PUBLIC_INTERFACE
@router.put("/{client_id}", response_model=ClientRead, summary="Update client")
async def update_client(
    payload: ClientUpdate,
    client_id: UUID = Path(...),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> ClientRead:
    return ClientRead.model_validate(await ClientService(session).update(ctx, client_id, payload))


# PUBLIC_INTERFACE
@router.delete(
    "/{client_id}",
    response_model=MessageResponse,
    summary="Delete client",
    description="Allowed to the owner or to callers holding MANAGE_CLIENTS.",
)
async def delete_client(
    client_id: UUID = Path(...),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> MessageResponse:
    await ClientService(session).delete(ctx, client_id)
    return MessageResponse(message="Client deleted")


# PUBLIC_INTERFACE
@router.post(
    "/{client_id}/geofence",
    response_model=GeofenceRead,
    summary="Check geofence",
    description="Distance from a position to the client and whether it lies within the check-in radius.",
)
async def check_client_geofence(
    position: Position,
    client_id: UUID = Path(...),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> GeofenceRead:
    result = await ClientService(session).geofence(client_id, position.lat, position.lng)
    return GeofenceRead(
        distance_km=result.distance_km, distance_m=result.distance_m, radius_m=result.radius_m, within=result.within
    )

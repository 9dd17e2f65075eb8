from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Path, Query, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from dental_crm.core.deps import get_access_context, get_google_client, get_session, require_permission
from dental_crm.core.permissions import EXECUTE_DELIVERY, MANAGE_DISPATCH, AccessContext
from dental_crm.schemas.common import MessageResponse
from dental_crm.schemas.dispatch import (
    MatchRequest,
    MatchResult,
    OptimizedRoute,
    OptimizeRequest,
    RouteCreate,
    RouteDetail,
    RouteStop,
    RouteSummary,
    StartDispatchRequest,
    StopUpdate,
)
from dental_crm.services.dispatch import DispatchService, parse_dispatch_sheet
from dental_crm.services.google import GoogleApiClient

router = APIRouter(prefix="/dispatch", tags=["Dispatch"])
deliveries_router = APIRouter(prefix="/deliveries", tags=["Deliveries"])


# PUBLIC_INTERFACE
@router.post(
    "/match",
    response_model=MatchResult,
    summary="Match dispatch rows",
    description="Match RUT/PEDIDO rows to non-rejected orders by folio and RUT.",
    dependencies=[Depends(require_permission(MANAGE_DISPATCH))],
)
async def match_orders(payload: MatchRequest, session: AsyncSession = Depends(get_session)) -> MatchResult:
    return await DispatchService(session).match(payload.rows)


# PUBLIC_INTERFACE
@router.post(
    "/match/upload",
    response_model=MatchResult,
    summary="Match dispatch spreadsheet",
    description="Upload an xlsx/xls/csv whose first sheet has RUT and PEDIDO columns.",
    dependencies=[Depends(require_permission(MANAGE_DISPATCH))],
)
async def match_upload(
    file: UploadFile = File(...),
    session: AsyncSession = Depends(get_session),
) -> MatchResult:
    rows = await run_in_threadpool(parse_dispatch_sheet, await file.read(), file.filename or "")
    return await DispatchService(session).match(rows)


# PUBLIC_INTERFACE
@router.post(
    "/optimize",
    response_model=OptimizedRoute,
    summary="Optimize route",
    description="Order matched stops with the Google Routes API from and back to the depot.",
    dependencies=[Depends(require_permission(MANAGE_DISPATCH))],
)
async def optimize_route(
    payload: OptimizeRequest,
    session: AsyncSession = Depends(get_session),
    google: GoogleApiClient = Depends(get_google_client),
) -> OptimizedRoute:
    return await DispatchService(session).optimize(payload.orders, google)


# PUBLIC_INTERFACE
@router.post(
    "/routes",
    response_model=RouteDetail,
    status_code=status.HTTP_201_CREATED,
    summary="Create route",
    description="Assign orders, in stop order, to a driver. Orders move to out_for_delivery.",
)
async def create_route(
    payload: RouteCreate,
    ctx: AccessContext = Depends(require_permission(MANAGE_DISPATCH)),
    session: AsyncSession = Depends(get_session),
) -> RouteDetail:
    service = DispatchService(session)
    route = await service.create_route(ctx, payload)
    return await service.route_detail(ctx, route.id)


# PUBLIC_INTERFACE
@router.get(
    "/routes",
    response_model=List[RouteSummary],
    summary="List routes",
    dependencies=[Depends(require_permission(MANAGE_DISPATCH))],
)
async def list_routes(
    session: AsyncSession = Depends(get_session),
    status_filter: Optional[str] = Query(None, alias="status"),
) -> List[RouteSummary]:
    return await DispatchService(session).list_routes(status_filter)


# PUBLIC_INTERFACE
@router.get("/routes/{route_id}", response_model=RouteDetail, summary="Route detail")
async def route_detail(
    route_id: UUID = Path(...),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> RouteDetail:
    return await DispatchService(session).route_detail(ctx, route_id)


# PUBLIC_INTERFACE
@router.post("/start", response_model=MessageResponse, summary="Start dispatch")
async def start_dispatch(
    payload: StartDispatchRequest,
    ctx: AccessContext = Depends(require_permission(MANAGE_DISPATCH)),
    session: AsyncSession = Depends(get_session),
) -> MessageResponse:
    updated = await DispatchService(session).start_dispatch(ctx, payload.order_ids)
    return MessageResponse(message="Dispatch started", details={"updated": updated})


# PUBLIC_INTERFACE
@router.get(
    "/orders/{order_id}/delivery-note",
    summary="Delivery note PDF",
    response_class=Response,
    responses={200: {"content": {"application/pdf": {}}}},
)
async def delivery_note(
    order_id: UUID = Path(...),
    ctx: AccessContext = Depends(get_access_context),
    session: AsyncSession = Depends(get_session),
) -> Response:
    content, filename = await DispatchService(session).delivery_note(ctx, order_id)
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# PUBLIC_INTERFACE
@deliveries_router.get(
    "/routes",
    response_model=List[RouteDetail],
    summary="My active routes",
    description="Active routes assigned to the calling driver.",
)
async def my_routes(
    ctx: AccessContext = Depends(require_permission(EXECUTE_DELIVERY)),
    session: AsyncSession = Depends(get_session),
) -> List[RouteDetail]:
    return await DispatchService(session).driver_routes(ctx)


# PUBLIC_INTERFACE
@deliveries_router.patch(
    "/stops/{item_id}",
    response_model=RouteStop,
    summary="Close a stop",
    description="Mark a stop delivered or failed; the route completes when no stop is pending.",
)
async def update_stop(
    payload: StopUpdate,
    item_id: UUID = Path(...),
    ctx: AccessContext = Depends(require_permission(EXECUTE_DELIVERY, MANAGE_DISPATCH)),
    session: AsyncSession = Depends(get_session),
) -> RouteStop:
    return await DispatchService(session).update_stop(ctx, item_id, payload)

from __future__ import annotations

from fastapi import APIRouter, Depends

from dental_crm.core.deps import get_access_context, get_google_client
from dental_crm.core.permissions import AccessContext
from dental_crm.schemas.geo import GeocodeRead, GeocodeRequest
from dental_crm.services.google import GoogleApiClient

router = APIRouter(prefix="/geo", tags=["Geo"])


# PUBLIC_INTERFACE
@router.post(
    "/geocode",
    response_model=GeocodeRead,
    summary="Geocode address",
    description="Resolve a Chilean address to coordinates, formatted address and comuna.",
)
async def geocode_address(
    payload: GeocodeRequest,
    ctx: AccessContext = Depends(get_access_context),
    google: GoogleApiClient = Depends(get_google_client),
) -> GeocodeRead:
    return GeocodeRead(**await google.geocode(payload.address))

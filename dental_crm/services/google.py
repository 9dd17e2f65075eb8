"""
Thin async clients for the Google APIs the CRM delegates to.

- Routes API (computeRoutes with waypoint optimisation) for dispatch ordering
- Geocoding API for client addresses (restricted to Chile)
- Gmail API for sending quotations and client e-mails
- Calendar API for the seller agenda

Maps calls authenticate with the server API key; Gmail and Calendar calls act
on behalf of the caller with the Google access token the client forwards.
"""

from __future__ import annotations

import base64
import logging
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from dental_crm.core.geo import extract_comuna
from dental_crm.core.settings import get_app_settings
from dental_crm.services.base import UpstreamError, ValidationFailed

logger = logging.getLogger(__name__)

ROUTES_URL = "https://routes.googleapis.com/directions/v2:computeRoutes"
GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
GMAIL_SEND_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages/send"
CALENDAR_EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"

ROUTES_FIELD_MASK = "routes.optimizedIntermediateWaypointIndex,routes.distanceMeters,routes.duration"

LatLng = Tuple[float, float]


def _waypoint(point: LatLng) -> Dict[str, Any]:
    lat, lng = point
    return {"location": {"latLng": {"latitude": lat, "longitude": lng}}}


# PUBLIC_INTERFACE
def build_mime_message(
    to: str,
    subject: str,
    body: str,
    attachment: Optional[Tuple[str, bytes, str]] = None,
    sender: Optional[str] = None,
) -> str:
    """
    Build a multipart message and return it base64url-encoded, as the Gmail
    ``messages.send`` endpoint expects in its ``raw`` field.

    attachment is ``(filename, content, mime_type)``. Non-ASCII subjects are
    RFC 2047 encoded as UTF-8.
    """
    msg = EmailMessage()
    msg["To"] = to
    if sender:
        msg["From"] = sender
    msg["Subject"] = subject
    msg.set_content(body, charset="utf-8")
    if attachment is not None:
        filename, content, mime_type = attachment
        maintype, _, subtype = (mime_type or "application/octet-stream").partition("/")
        msg.add_attachment(content, maintype=maintype, subtype=subtype or "octet-stream", filename=filename)
    return base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii")


class GoogleApiClient:
    """
    Async client over httpx. Pass ``transport`` to route calls somewhere other
    than the network (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        settings = get_app_settings()
        self.api_key = api_key if api_key is not None else settings.GOOGLE_MAPS_API_KEY
        self.timeout = timeout if timeout is not None else settings.GOOGLE_HTTP_TIMEOUT_SECONDS
        self.transport = transport
        self.max_attachment_bytes = settings.EMAIL_ATTACHMENT_MAX_BYTES

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            async with self._client() as client:
                resp = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("Google API timeout: %s %s", method, url)
            raise UpstreamError(f"Timeout calling Google API: {exc}") from exc
        except httpx.HTTPError as exc:
            logger.warning("Google API connection error: %s %s", method, url)
            raise UpstreamError(f"Error calling Google API: {exc}") from exc
        if resp.status_code >= 400:
            logger.warning("Google API %s %s answered %s", method, url, resp.status_code)
            raise UpstreamError(
                f"Google API error: {resp.status_code}",
                upstream_status=resp.status_code,
                details=_safe_json(resp),
            )
        return resp

    def _require_key(self) -> str:
        if not self.api_key:
            raise UpstreamError("GOOGLE_MAPS_API_KEY is not configured")
        return self.api_key

    # Routes

    # PUBLIC_INTERFACE
    async def optimize_waypoints(
        self, origin: LatLng, destination: LatLng, waypoints: Sequence[LatLng]
    ) -> Dict[str, Any]:
        """
        Ask the Routes API for the optimal visiting order of the waypoints.

        Returns a dict with ``order`` (indexes into waypoints),
        ``distance_meters`` and ``duration``.
        """
        if not waypoints:
            return {"order": [], "distance_meters": None, "duration": None}

        body = {
            "origin": _waypoint(origin),
            "destination": _waypoint(destination),
            "intermediates": [_waypoint(p) for p in waypoints],
            "travelMode": "DRIVE",
            "optimizeWaypointOrder": True,
        }
        headers = {
            "X-Goog-Api-Key": self._require_key(),
            "X-Goog-FieldMask": ROUTES_FIELD_MASK,
            "Content-Type": "application/json",
        }
        resp = await self._send("POST", ROUTES_URL, json=body, headers=headers)
        routes = (resp.json() or {}).get("routes") or []
        if not routes:
            raise UpstreamError("Routes API returned no route")
        route = routes[0]
        order = route.get("optimizedIntermediateWaypointIndex")
        # A single intermediate comes back without an index list
        if not order:
            order = list(range(len(waypoints)))
        return {
            "order": [int(i) for i in order],
            "distance_meters": route.get("distanceMeters"),
            "duration": route.get("duration"),
        }

    # Geocoding

    # PUBLIC_INTERFACE
    async def geocode(self, address: str) -> Dict[str, Any]:
        """Resolve an address within Chile to coordinates, formatted address and comuna."""
        params = {"address": address, "components": "country:CL", "key": self._require_key()}
        resp = await self._send("GET", GEOCODE_URL, params=params)
        data = resp.json() or {}
        status = data.get("status")
        if status == "ZERO_RESULTS":
            raise ValidationFailed("Address not found")
        if status != "OK" or not data.get("results"):
            raise UpstreamError(f"Geocoding failed: {status}", details=data.get("error_message"))
        top = data["results"][0]
        location = top["geometry"]["location"]
        formatted = top.get("formatted_address") or address
        return {
            "formatted_address": formatted,
            "lat": float(location["lat"]),
            "lng": float(location["lng"]),
            "comuna": extract_comuna(formatted, top.get("address_components")) or None,
            "place_id": top.get("place_id"),
        }

    # Gmail

    # PUBLIC_INTERFACE
    async def send_gmail(
        self,
        access_token: str,
        to: str,
        subject: str,
        body: str,
        attachment: Optional[Tuple[str, bytes, str]] = None,
    ) -> Dict[str, Any]:
        """Send a message from the token owner's mailbox; returns Gmail's message resource."""
        if attachment is not None and len(attachment[1]) > self.max_attachment_bytes:
            raise ValidationFailed("Attachment exceeds the 20 MB limit")
        raw = build_mime_message(to, subject, body, attachment)
        resp = await self._send(
            "POST",
            GMAIL_SEND_URL,
            json={"raw": raw},
            headers={"Authorization": f"Bearer {access_token}"},
        )
        return resp.json() or {}

    # Calendar

    # PUBLIC_INTERFACE
    async def list_events(self, access_token: str, max_results: int = 10) -> List[Dict[str, Any]]:
        """Upcoming events of the primary calendar, soonest first."""
        params = {
            "timeMin": datetime.now(timezone.utc).isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": str(max_results),
        }
        resp = await self._send(
            "GET",
            CALENDAR_EVENTS_URL,
            params=params,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        return list((resp.json() or {}).get("items") or [])

    # PUBLIC_INTERFACE
    async def create_event(
        self,
        access_token: str,
        summary: str,
        start: datetime,
        description: Optional[str] = None,
        location: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a one-hour event starting at ``start``."""
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        end = start + timedelta(hours=1)
        body: Dict[str, Any] = {
            "summary": summary,
            "start": {"dateTime": start.isoformat()},
            "end": {"dateTime": end.isoformat()},
        }
        if description:
            body["description"] = description
        if location:
            body["location"] = location
        resp = await self._send(
            "POST",
            CALENDAR_EVENTS_URL,
            json=body,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        return resp.json() or {}


def _safe_json(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text[:500]

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from dental_crm.core.security import access_token_subject
from dental_crm.schemas.realtime import WsEnvelope
from dental_crm.services.realtime import DASHBOARD_TOPIC, DISPATCH_TOPIC, VISITS_TOPIC, broadcast_manager

logger = logging.getLogger(__name__)

# close code sent when the 'token' query parameter is missing or not a valid access token
WS_UNAUTHORIZED = 4401

TOPIC_SUMMARIES = {
    DASHBOARD_TOPIC: "Every change relevant to dashboards (visits, orders, routes, clients, calls).",
    VISITS_TOPIC: "Visit check-in and check-out changes.",
    DISPATCH_TOPIC: "Route and delivery changes.",
}

info_router = APIRouter(tags=["WebSocket"])
ws_router = APIRouter()


# PUBLIC_INTERFACE
@info_router.get(
    "/websocket-info",
    response_model=Dict[str, Any],
    summary="WebSocket usage",
    description="WebSocket endpoints are not part of the OpenAPI schema; this describes them.",
)
def websocket_info() -> Dict[str, Any]:
    return {
        "usage": (
            "Connect with a valid access JWT in the 'token' query parameter. Frames are "
            "{ type, payload, at, user_id?, channel? } where type is '<entity>.<action>' "
            "(e.g. 'visit.created'); re-fetch the affected lists on receipt. "
            "Send 'ping' to receive 'pong'."
        ),
        "endpoints": [
            {"path": f"/ws/{topic}", "summary": summary, "query": ["token"]}
            for topic, summary in TOPIC_SUMMARIES.items()
        ],
        "close_codes": {str(WS_UNAUTHORIZED): "missing or invalid access token"},
    }


async def _serve(websocket: WebSocket, topic: str) -> None:
    await websocket.accept()
    profile_id: Optional[str] = access_token_subject(websocket.query_params.get("token"))
    if profile_id is None:
        await websocket.close(code=WS_UNAUTHORIZED)
        return

    await broadcast_manager.connect(topic, websocket)
    hello = WsEnvelope(type="subscribed", payload={"topic": topic}, user_id=profile_id, channel=topic)
    try:
        await websocket.send_json(hello.model_dump(mode="json"))
        while True:
            text = await websocket.receive_text()
            if text.strip().lower() == "ping":
                await websocket.send_text("pong")
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WebSocket on topic=%s failed", topic)
        await websocket.close()
    finally:
        await broadcast_manager.disconnect(topic, websocket)


# PUBLIC_INTERFACE
@ws_router.websocket("/ws/dashboard")
async def ws_dashboard(websocket: WebSocket):
    """Dashboard feed; receives every change."""
    await _serve(websocket, DASHBOARD_TOPIC)


# PUBLIC_INTERFACE
@ws_router.websocket("/ws/visits")
async def ws_visits(websocket: WebSocket):
    await _serve(websocket, VISITS_TOPIC)


# PUBLIC_INTERFACE
@ws_router.websocket("/ws/dispatch")
async def ws_dispatch(websocket: WebSocket):
    await _serve(websocket, DISPATCH_TOPIC)

from __future__ import annotations

import base64
import json
from datetime import datetime, timezone
from email import message_from_bytes, policy

import httpx
import pytest

from dental_crm.services.base import UpstreamError, ValidationFailed
from dental_crm.services.google import (
    CALENDAR_EVENTS_URL,
    GMAIL_SEND_URL,
    ROUTES_URL,
    GoogleApiClient,
    build_mime_message,
)


def _client(handler) -> GoogleApiClient:
    return GoogleApiClient(api_key="test-key", timeout=5, transport=httpx.MockTransport(handler))


def test_build_mime_message_with_attachment():
    raw = build_mime_message(
        "contacto@sonrisa.cl",
        "Cotización N° 1001",
        "Adjuntamos la cotización.",
        attachment=("cotizacion_1001.pdf", b"%PDF-1.4 test", "application/pdf"),
    )
    msg = message_from_bytes(base64.urlsafe_b64decode(raw), policy=policy.default)
    assert msg["To"] == "contacto@sonrisa.cl"
    assert msg["Subject"] == "Cotización N° 1001"
    attachments = list(msg.iter_attachments())
    assert len(attachments) == 1
    assert attachments[0].get_filename() == "cotizacion_1001.pdf"
    assert attachments[0].get_content() == b"%PDF-1.4 test"


@pytest.mark.asyncio
async def test_optimize_waypoints_sends_depot_and_reads_order():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"routes": [{"optimizedIntermediateWaypointIndex": [1, 0], "distanceMeters": 12000, "duration": "1800s"}]},
        )

    result = await _client(handler).optimize_waypoints((-33.37, -70.67), (-33.37, -70.67), [(-33.4, -70.6), (-33.5, -70.7)])

    assert result == {"order": [1, 0], "distance_meters": 12000, "duration": "1800s"}
    assert seen["url"] == ROUTES_URL
    assert seen["headers"]["X-Goog-Api-Key"] == "test-key"
    assert seen["body"]["optimizeWaypointOrder"] is True
    assert len(seen["body"]["intermediates"]) == 2


@pytest.mark.asyncio
async def test_single_waypoint_without_index_list():
    def handler(request):
        return httpx.Response(200, json={"routes": [{"distanceMeters": 100}]})

    result = await _client(handler).optimize_waypoints((0, 0), (0, 0), [(1, 1)])
    assert result["order"] == [0]


@pytest.mark.asyncio
async def test_no_waypoints_skips_the_call():
    def handler(request):
        raise AssertionError("no request expected")

    result = await _client(handler).optimize_waypoints((0, 0), (0, 0), [])
    assert result["order"] == []


@pytest.mark.asyncio
async def test_upstream_error_keeps_status():
    def handler(request):
        return httpx.Response(403, json={"error": {"message": "API key not valid"}})

    with pytest.raises(UpstreamError) as exc:
        await _client(handler).optimize_waypoints((0, 0), (0, 0), [(1, 1)])
    assert exc.value.upstream_status == 403
    assert exc.value.status_code == 502


@pytest.mark.asyncio
async def test_missing_api_key():
    def handler(request):
        raise AssertionError("no request expected")

    client = GoogleApiClient(api_key="", transport=httpx.MockTransport(handler))
    with pytest.raises(UpstreamError):
        await client.geocode("Av. Providencia 2000")


@pytest.mark.asyncio
async def test_geocode_restricted_to_chile():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["components"] == "country:CL"
        return httpx.Response(
            200,
            json={
                "status": "OK",
                "results": [
                    {
                        "formatted_address": "Av. Providencia 2000, 7500000 Providencia, Región Metropolitana, Chile",
                        "geometry": {"location": {"lat": -33.42, "lng": -70.61}},
                        "place_id": "abc",
                        "address_components": [],
                    }
                ],
            },
        )

    result = await _client(handler).geocode("Av. Providencia 2000")
    assert result["lat"] == -33.42
    assert result["comuna"] == "Providencia"
    assert result["place_id"] == "abc"


@pytest.mark.asyncio
async def test_geocode_zero_results():
    def handler(request):
        return httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []})

    with pytest.raises(ValidationFailed):
        await _client(handler).geocode("nowhere")


@pytest.mark.asyncio
async def test_send_gmail_uses_caller_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["raw"] = json.loads(request.content)["raw"]
        return httpx.Response(200, json={"id": "msg-1", "threadId": "t-1"})

    result = await _client(handler).send_gmail("google-token", "a@b.cl", "Hola", "Cuerpo")
    assert result["id"] == "msg-1"
    assert seen["url"] == GMAIL_SEND_URL
    assert seen["auth"] == "Bearer google-token"
    assert b"Subject: Hola" in base64.urlsafe_b64decode(seen["raw"])


@pytest.mark.asyncio
async def test_send_gmail_rejects_large_attachment():
    def handler(request):
        raise AssertionError("no request expected")

    client = _client(handler)
    client.max_attachment_bytes = 10
    with pytest.raises(ValidationFailed):
        await client.send_gmail("t", "a@b.cl", "s", "b", attachment=("big.bin", b"x" * 11, "application/octet-stream"))


@pytest.mark.asyncio
async def test_create_event_is_one_hour():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "evt-1"})

    start = datetime(2024, 5, 2, 15, 0, tzinfo=timezone.utc)
    await _client(handler).create_event("t", "Visita Clínica Sonrisa", start, location="Providencia")
    assert seen["url"] == CALENDAR_EVENTS_URL
    assert seen["body"]["start"]["dateTime"] == "2024-05-02T15:00:00+00:00"
    assert seen["body"]["end"]["dateTime"] == "2024-05-02T16:00:00+00:00"
    assert seen["body"]["location"] == "Providencia"
    assert "description" not in seen["body"]

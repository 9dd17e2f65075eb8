from uuid import uuid4

from starlette.websockets import WebSocketState

from dental_crm.schemas.realtime import ChangeEvent
from dental_crm.services.realtime import DASHBOARD_TOPIC, VISITS_TOPIC, BroadcastManager


class FakeSocket:
    def __init__(self, fail: bool = False, closed: bool = False):
        self.sent = []
        self.fail = fail
        state = WebSocketState.DISCONNECTED if closed else WebSocketState.CONNECTED
        self.application_state = state
        self.client_state = WebSocketState.CONNECTED

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("socket gone")
        self.sent.append(message)


async def test_change_is_mirrored_to_dashboard():
    hub = BroadcastManager()
    visits_ws, dash_ws = FakeSocket(), FakeSocket()
    await hub.connect(VISITS_TOPIC, visits_ws)
    await hub.connect(DASHBOARD_TOPIC, dash_ws)

    rep = uuid4()
    await hub.publish_change(VISITS_TOPIC, ChangeEvent(entity="visit", action="created", profile_id=rep))

    assert visits_ws.sent[0]["type"] == "visit.created"
    assert visits_ws.sent[0]["channel"] == "visits"
    assert dash_ws.sent[0]["channel"] == "dashboard"
    assert dash_ws.sent[0]["user_id"] == str(rep)


async def test_failed_and_closed_sockets_are_dropped():
    hub = BroadcastManager()
    good, broken, closed = FakeSocket(), FakeSocket(fail=True), FakeSocket(closed=True)
    for ws in (good, broken, closed):
        await hub.connect(DASHBOARD_TOPIC, ws)

    delivered = await hub.broadcast(DASHBOARD_TOPIC, {"type": "client.deleted"})

    assert delivered == 1
    assert hub.subscriber_count(DASHBOARD_TOPIC) == 1
    assert good.sent == [{"type": "client.deleted"}]


async def test_disconnect_and_empty_topic():
    hub = BroadcastManager()
    ws = FakeSocket()
    await hub.connect(VISITS_TOPIC, ws)
    await hub.disconnect(VISITS_TOPIC, ws)

    assert hub.subscriber_count(VISITS_TOPIC) == 0
    assert await hub.broadcast(VISITS_TOPIC, {"type": "x"}) == 0

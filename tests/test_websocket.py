"""Tests for the /ws streaming channel."""

import asyncio
import base64
import json

import pytest
from starlette.websockets import WebSocketDisconnect

from medichat.api.channels import WS_POLICY_VIOLATION, StreamingChannel, inbound_from_payload
from medichat.auth.tokens import TokenService
from medichat.chat.models import MessageType, OutboundReply
from medichat.errors import ValidationError
from tests.conftest import JWT_SECRET, FakeLLM, make_chatbot, signup


# ─── Handshake ────────────────────────────────────────────────


def _assert_refused(client, url: str):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(url) as ws:
            ws.receive_json()
    assert exc_info.value.code == WS_POLICY_VIOLATION


def test_missing_token_closes_1008(client):
    _assert_refused(client, "/ws")


def test_invalid_token_closes_1008(client):
    _assert_refused(client, "/ws?token=garbage")


def test_expired_token_closes_1008(client):
    _, user = signup(client)
    expired = TokenService(JWT_SECRET, ttl_minutes=-1).issue(user["id"])
    _assert_refused(client, f"/ws?token={expired}")


# ─── Messages ─────────────────────────────────────────────────


def test_text_exchange(client, services):
    token, user = signup(client)

    with client.websocket_connect(f"/ws?token={token}") as ws:
        ws.send_json({"id": "m1", "type": "text", "content": "hello"})
        reply = ws.receive_json()

    assert reply["type"] == "reply"
    assert reply["id"] == "m1"
    assert reply["content"] == "echo: hello"
    assert len(services.sessions.get(user["id"])) == 2


def test_voice_exchange(client):
    token, _ = signup(client)
    audio = base64.b64encode(b"fake-audio").decode()

    with client.websocket_connect(f"/ws?token={token}") as ws:
        ws.send_json({"type": "voice", "content": audio})
        reply = ws.receive_json()

    assert reply["content"] == "echo: I have a headache"


def test_bad_frame_gets_error_and_connection_stays_open(client):
    token, _ = signup(client)

    with client.websocket_connect(f"/ws?token={token}") as ws:
        ws.send_text("{not json")
        error = ws.receive_json()
        ws.send_json({"id": 7, "type": "video", "content": "x"})
        unsupported = ws.receive_json()
        ws.send_json({"content": "still here"})
        reply = ws.receive_json()

    assert error == {"type": "error", "kind": "validation_error", "error": "Message must be valid JSON"}
    assert unsupported["kind"] == "validation_error"
    assert unsupported["id"] == 7
    assert reply["content"] == "echo: still here"


def test_generation_failure_is_delivered_as_error(client, fake_llm):
    fake_llm.failures = 10
    token, _ = signup(client)

    with client.websocket_connect(f"/ws?token={token}") as ws:
        ws.send_json({"content": "hello"})
        reply = ws.receive_json()

    assert reply["type"] == "error"
    assert reply["kind"] == "generation_error"


# ─── Channel behaviour ────────────────────────────────────────


class FakeWebSocket:
    """Feeds queued ASGI receive events; records sent payloads."""

    def __init__(self):
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: list[dict] = []
        self.sent_event = asyncio.Event()

    def push_text(self, payload: dict) -> None:
        self.incoming.put_nowait({"type": "websocket.receive", "text": json.dumps(payload)})

    def disconnect(self) -> None:
        self.incoming.put_nowait({"type": "websocket.disconnect", "code": 1000})

    async def receive(self) -> dict:
        return await self.incoming.get()

    async def send_json(self, payload: dict) -> None:
        self.sent.append(payload)
        self.sent_event.set()


@pytest.mark.asyncio
async def test_disconnect_mid_turn_still_persists(db, user):
    llm = FakeLLM(delay=0.05)
    chatbot = make_chatbot(db, llm=llm)
    ws = FakeWebSocket()
    channel = StreamingChannel(ws, chatbot, user.id)

    ws.push_text({"content": "are you there?"})
    ws.disconnect()
    await channel.run()

    assert channel.closed is True
    assert ws.sent == []
    assert await db.count_turns(user.id) == 1
    assert len(chatbot.sessions.get(user.id)) == 2


@pytest.mark.asyncio
async def test_concurrent_events_on_one_connection(db, user):
    chatbot = make_chatbot(db, llm=FakeLLM(delay=0.01))
    ws = FakeWebSocket()
    channel = StreamingChannel(ws, chatbot, user.id)
    runner = asyncio.create_task(channel.run())

    for i in range(3):
        ws.push_text({"id": i, "content": f"m{i}"})
    while len(ws.sent) < 3:
        ws.sent_event.clear()
        await asyncio.wait_for(ws.sent_event.wait(), timeout=5)
    ws.disconnect()
    await runner

    assert sorted(p["id"] for p in ws.sent) == [0, 1, 2]
    assert all(p["content"] == f"echo: m{p['id']}" for p in ws.sent)
    assert len(chatbot.sessions.get(user.id)) == 6


@pytest.mark.asyncio
async def test_send_failure_marks_channel_closed(db, user):
    chatbot = make_chatbot(db)
    ws = FakeWebSocket()

    async def broken_send(payload):
        raise RuntimeError("socket gone")

    ws.send_json = broken_send
    channel = StreamingChannel(ws, chatbot, user.id)

    await channel.deliver(OutboundReply.from_error(ValidationError()))

    assert channel.closed is True


# ─── Payload parsing ──────────────────────────────────────────


def test_payload_defaults_to_text():
    inbound = inbound_from_payload("u1", {"content": "hi"})
    assert inbound.type is MessageType.TEXT
    assert inbound.content == "hi"


def test_voice_payload_is_decoded():
    inbound = inbound_from_payload(
        "u1", {"type": "voice", "content": base64.b64encode(b"\x00\x01").decode()}
    )
    assert inbound.content == b"\x00\x01"


@pytest.mark.parametrize(
    "payload",
    [
        "just a string",
        {"type": "text"},
        {"type": "text", "content": ""},
        {"type": "text", "content": 42},
        {"type": "fax", "content": "hi"},
    ],
)
def test_invalid_payloads(payload):
    with pytest.raises(ValidationError):
        inbound_from_payload("u1", payload)

"""
Delivery channels — bind the Chatbot to HTTP calls and WebSocket connections.

Two ways in:
  1. Request/response — `Authorization: Bearer <token>` on every call.
     Missing header → 401, bad or expired token → 403. The Chatbot is never
     reached without a verified user id.
  2. Streaming — `/ws?token=<token>`. Verified once, before any event is
     read; failures close with 1008 (policy violation) and no data frame is
     sent. The user id is then bound to the connection for its lifetime.

Event payloads on both channels are `{content, type}` with type "text" or
"voice"; voice content is base64-encoded audio. An optional `id` is echoed
back on the reply so clients can correlate concurrent messages.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
from typing import TYPE_CHECKING, Any

from fastapi import HTTPException, Request, WebSocket

from medichat.chat.models import InboundMessage, MessageType, OutboundReply
from medichat.errors import InvalidTokenError, ValidationError

if TYPE_CHECKING:
    from medichat.auth.tokens import TokenService
    from medichat.chat.orchestrator import Chatbot

logger = logging.getLogger(__name__)

WS_POLICY_VIOLATION = 1008


def extract_bearer(auth_header: str | None) -> str | None:
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header[7:].strip()
    return token or None


def authenticate_bearer(auth_header: str | None, tokens: "TokenService") -> str:
    """Resolve a bearer header to a user id or raise the matching HTTP error."""
    token = extract_bearer(auth_header)
    if not token:
        raise HTTPException(401, "Authentication required")
    try:
        return tokens.verify(token)
    except InvalidTokenError:
        raise HTTPException(403, "Invalid token")


async def get_user_id(request: Request) -> str:
    """FastAPI dependency for protected routes."""
    services = request.app.state.services
    return authenticate_bearer(request.headers.get("authorization"), services.tokens)


def authenticate_websocket(ws: WebSocket, tokens: "TokenService") -> str | None:
    """User id for a connection attempt, or None if it must be refused."""
    token = ws.query_params.get("token")
    if not token:
        return None
    try:
        return tokens.verify(token)
    except InvalidTokenError as e:
        logger.info("Refusing WebSocket: %s", e.detail or e.message)
        return None


def inbound_from_payload(user_id: str, payload: Any) -> InboundMessage:
    """Validate a `{content, type}` event and decode voice content."""
    if not isinstance(payload, dict):
        raise ValidationError("Message must be a JSON object")

    raw_type = payload.get("type", MessageType.TEXT.value)
    try:
        message_type = MessageType(raw_type)
    except ValueError:
        raise ValidationError(f"Unsupported message type: {raw_type!r}")

    content = payload.get("content")
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("Message content is required")

    if message_type is MessageType.VOICE:
        try:
            audio = base64.b64decode(content, validate=True)
        except (binascii.Error, ValueError):
            raise ValidationError("Voice content must be base64-encoded audio")
        return InboundMessage(user_id, audio, message_type)

    return InboundMessage(user_id, content, message_type)


class StreamingChannel:
    """
    One accepted WebSocket bound to one user.

    Each event is processed as its own task so a slow turn doesn't block
    reading. When the client goes away, in-flight turns still run to
    completion (and persist); their replies are dropped.
    """

    def __init__(self, ws: WebSocket, chatbot: "Chatbot", user_id: str):
        self.ws = ws
        self.chatbot = chatbot
        self.user_id = user_id
        self.closed = False
        self._pending: set[asyncio.Task] = set()

    async def run(self) -> None:
        logger.info("Client connected", extra={"user_id": self.user_id})
        try:
            while True:
                message = await self.ws.receive()
                if message["type"] == "websocket.disconnect":
                    break
                self._dispatch(message.get("text"))
        finally:
            self.closed = True
            if self._pending:
                # asyncio.wait never cancels the tasks it waits on.
                await asyncio.wait(set(self._pending))
            logger.info("Client disconnected", extra={"user_id": self.user_id})

    def _dispatch(self, text: str | None) -> None:
        task = asyncio.create_task(self._handle_event(text))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _handle_event(self, text: str | None) -> None:
        event_id = None
        try:
            if text is None:
                raise ValidationError("Expected a JSON text frame")
            try:
                payload = json.loads(text)
            except json.JSONDecodeError:
                raise ValidationError("Message must be valid JSON")
            if isinstance(payload, dict):
                event_id = payload.get("id")
            inbound = inbound_from_payload(self.user_id, payload)
        except ValidationError as e:
            await self.deliver(OutboundReply.from_error(e), event_id)
            return

        reply = await self.chatbot.handle(inbound)
        await self.deliver(reply, event_id)

    async def deliver(self, reply: OutboundReply, event_id: Any = None) -> None:
        if self.closed:
            logger.debug("Dropping reply for closed connection", extra={"user_id": self.user_id})
            return
        payload = reply.to_dict()
        if event_id is not None:
            payload["id"] = event_id
        try:
            await self.ws.send_json(payload)
        except Exception as e:
            self.closed = True
            logger.debug("Send failed, connection gone: %s", e, extra={"user_id": self.user_id})

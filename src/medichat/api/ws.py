"""
Streaming endpoint — `/ws?token=<session token>`.

The token is checked before anything is read. A missing, invalid or expired
token gets the handshake completed and then an immediate 1008 close; no data
frame is ever sent.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket

from medichat.api.channels import (
    WS_POLICY_VIOLATION,
    StreamingChannel,
    authenticate_websocket,
)

logger = logging.getLogger(__name__)


def create_ws_router() -> APIRouter:
    router = APIRouter()

    @router.websocket("/ws")
    async def chat_socket(ws: WebSocket):
        services = ws.app.state.services
        user_id = authenticate_websocket(ws, services.tokens)
        await ws.accept()
        if not user_id:
            # Closing before accept() turns into an HTTP 403 under uvicorn.
            await ws.close(code=WS_POLICY_VIOLATION, reason="Invalid token")
            return

        await StreamingChannel(ws, services.chatbot, user_id).run()

    return router

"""
Conversation Orchestrator — the Chatbot.

Runs one message through the turn pipeline:

    VERIFYING → TRANSCRIBING (voice only) → GENERATING → PERSISTING
              → UPDATING_HISTORY → DONE

Any failure lands in ERRORED and comes back as an error reply; nothing is
raised to the transport. The whole turn runs under the user's session lock
so concurrent messages from one user are applied one at a time, in arrival
order. Different users never wait on each other.

Transient failures (transcription, generation, persistence) are retried
with exponential backoff up to ``retry_attempts`` total attempts. When the
turn log write still fails, ``persist_failure_policy`` decides:

- "fail"    — the turn is an error; the generated reply is dropped
- "deliver" — the reply is returned with persisted=False

History is only updated after a successful write in both cases.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from medichat.chat.generator import ResponseGenerator
from medichat.chat.models import (
    ChatMessage,
    ConversationTurn,
    InboundMessage,
    MessageType,
    OutboundReply,
    Role,
    TurnState,
)
from medichat.chat.session_store import SessionStore
from medichat.chat.transcription import TranscriptionAdapter
from medichat.core.logging import TurnTimer
from medichat.errors import ChatError, PersistenceError, UnknownUserError, ValidationError
from medichat.storage.database import Database

logger = logging.getLogger(__name__)

T = TypeVar("T")

PERSIST_POLICIES = ("fail", "deliver")


class Chatbot:
    def __init__(
        self,
        db: Database,
        sessions: SessionStore,
        transcriber: TranscriptionAdapter,
        generator: ResponseGenerator,
        *,
        retry_attempts: int = 3,
        retry_delay: float = 0.5,
        retry_max_delay: float = 8.0,
        persist_failure_policy: str = "fail",
    ):
        if persist_failure_policy not in PERSIST_POLICIES:
            raise ValueError(
                f"persist_failure_policy must be one of {PERSIST_POLICIES}, "
                f"got {persist_failure_policy!r}"
            )
        self.db = db
        self.sessions = sessions
        self.transcriber = transcriber
        self.generator = generator
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay
        self.retry_max_delay = retry_max_delay
        self.persist_failure_policy = persist_failure_policy

    async def process_message(
        self, user_id: str, content: str | bytes, type: str = "text"
    ) -> OutboundReply:
        """Convenience wrapper for callers holding loose values."""
        try:
            message_type = MessageType(type)
        except ValueError:
            return OutboundReply.from_error(
                ValidationError(f"Unsupported message type: {type!r}")
            )
        return await self.handle(InboundMessage(user_id, content, message_type))

    async def handle(self, message: InboundMessage) -> OutboundReply:
        user_id = message.user_id
        state = TurnState.VERIFYING
        timer = TurnTimer()

        def enter(next_state: TurnState) -> None:
            nonlocal state
            timer.mark(state.value)
            state = next_state
            logger.debug(
                "Turn state → %s", state.value, extra={"user_id": user_id, "state": state.value}
            )

        try:
            # Entered before the first await so turns keep arrival order.
            async with self.sessions.turn(user_id):
                await self._verify_user(user_id)

                if message.type is MessageType.VOICE:
                    enter(TurnState.TRANSCRIBING)
                    if not isinstance(message.content, (bytes, bytearray)):
                        raise ValidationError("Voice content must be audio bytes")
                    text = await self._with_retry(
                        self.transcriber.transcribe, bytes(message.content)
                    )
                else:
                    if not isinstance(message.content, str) or not message.content.strip():
                        raise ValidationError("Message content is required")
                    text = message.content.strip()

                enter(TurnState.GENERATING)
                history = self.sessions.get(user_id)
                reply = await self._with_retry(self.generator.generate, text, history)

                enter(TurnState.PERSISTING)
                turn = ConversationTurn(user_id=user_id, input_text=text, output_text=reply.raw)
                try:
                    await self._with_retry(self.db.add_turn, turn)
                except PersistenceError:
                    if self.persist_failure_policy != "deliver":
                        raise
                    logger.warning(
                        "Turn not persisted; delivering reply anyway",
                        extra={"user_id": user_id, "state": state.value},
                    )
                    return OutboundReply.from_generated(reply, persisted=False)

                enter(TurnState.UPDATING_HISTORY)
                self.sessions.append(
                    user_id,
                    [
                        ChatMessage(Role.USER, text),
                        ChatMessage(Role.ASSISTANT, reply.raw),
                    ],
                )

            enter(TurnState.DONE)
            logger.info(
                "Turn complete (%s)",
                timer.summary(),
                extra={
                    "user_id": user_id,
                    "message_type": message.type.value,
                    "duration_ms": round(timer.total_ms(), 1),
                },
            )
            return OutboundReply.from_generated(reply)

        except ChatError as e:
            logger.warning(
                "Turn failed in %s: %s%s",
                state.value,
                e.kind,
                f" ({e.detail})" if e.detail else "",
                extra={"user_id": user_id, "state": state.value, "kind": e.kind},
            )
            return OutboundReply.from_error(e)
        except Exception:
            logger.exception(
                "Unexpected error in %s", state.value, extra={"user_id": user_id, "state": state.value}
            )
            return OutboundReply.from_error(ChatError())

    async def transcribe(self, audio: bytes) -> str:
        """Standalone transcription for the upload endpoint. Raises ChatError."""
        return await self._with_retry(self.transcriber.transcribe, audio)

    async def _verify_user(self, user_id: str) -> None:
        user = await self._with_retry(self.db.get_user, user_id)
        if user is None:
            raise UnknownUserError()

    async def _with_retry(self, fn: Callable[..., Awaitable[T]], *args) -> T:
        delay = self.retry_delay
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return await fn(*args)
            except ChatError as e:
                if not e.retryable or attempt >= self.retry_attempts:
                    raise
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.1fs",
                    e.kind,
                    attempt,
                    self.retry_attempts,
                    delay,
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.retry_max_delay)
        raise AssertionError("unreachable")

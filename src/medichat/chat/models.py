"""
Chat Models — the data that flows through one conversation turn.

InboundMessage → (ChatMessage history) → GeneratedReply → ConversationTurn
                                                       → OutboundReply

All models are frozen dataclasses. Replies and errors are tagged with an
explicit ``type`` so clients can branch without sniffing keys.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from medichat.errors import ChatError


class MessageType(str, Enum):
    TEXT = "text"
    VOICE = "voice"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Urgency(str, Enum):
    """Triage tier detected in a turn."""

    ROUTINE = "routine"
    URGENT = "urgent"  # should see a clinician within ~24h
    EMERGENT = "emergent"  # emergency services now


class TurnState(str, Enum):
    """Pipeline states of a single message."""

    VERIFYING = "verifying"
    TRANSCRIBING = "transcribing"
    GENERATING = "generating"
    PERSISTING = "persisting"
    UPDATING_HISTORY = "updating_history"
    DONE = "done"
    ERRORED = "errored"


@dataclass(frozen=True)
class ChatMessage:
    """One role-tagged entry of the rolling context window."""

    role: Role
    content: str

    def to_openai_message(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class InboundMessage:
    """A message as received from a delivery channel.

    For voice messages ``content`` holds the raw audio bytes.
    """

    user_id: str
    content: str | bytes
    type: MessageType = MessageType.TEXT


@dataclass(frozen=True)
class ConversationTurn:
    """One persisted exchange. Append-only."""

    user_id: str
    input_text: str
    output_text: str
    timestamp: float = field(default_factory=time.time)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "message": self.input_text,
            "response": self.output_text,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class GeneratedReply:
    """Completion text after post-processing."""

    content: str
    raw: str
    urgency: Urgency = Urgency.ROUTINE
    flags: tuple[str, ...] = ()

    @property
    def urgent(self) -> bool:
        return self.urgency is not Urgency.ROUTINE


@dataclass(frozen=True)
class OutboundReply:
    """What goes back to the caller: a reply or a normalized error."""

    type: str  # "reply" | "error"
    content: str = ""
    urgency: Urgency = Urgency.ROUTINE
    flags: tuple[str, ...] = ()
    persisted: bool = True
    error_kind: str | None = None
    error: str | None = None
    status_code: int = 200
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_generated(
        cls, reply: GeneratedReply, *, persisted: bool = True
    ) -> OutboundReply:
        return cls(
            type="reply",
            content=reply.content,
            urgency=reply.urgency,
            flags=reply.flags,
            persisted=persisted,
        )

    @classmethod
    def from_error(cls, error: ChatError) -> OutboundReply:
        return cls(
            type="error",
            error_kind=error.kind,
            error=error.message,
            status_code=error.status_code,
        )

    @property
    def is_error(self) -> bool:
        return self.type == "error"

    def to_dict(self) -> dict[str, Any]:
        if self.is_error:
            return {"type": "error", "kind": self.error_kind, "error": self.error}
        return {
            "type": "reply",
            "content": self.content,
            "urgency": self.urgency.value,
            "urgent": self.urgency is not Urgency.ROUTINE,
            "flags": list(self.flags),
            "persisted": self.persisted,
            "timestamp": self.timestamp,
        }

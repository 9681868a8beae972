"""
Error taxonomy shared by the core and the transport layer.

Every error carries a stable ``kind`` tag, an HTTP status, a client-safe
message and whether a bounded retry may help. Internal detail goes to the
logs only; ``to_payload()`` is what clients see.
"""

from __future__ import annotations

from typing import Any


class ChatError(Exception):
    """Base class for all errors the gateway maps to client responses."""

    kind: str = "internal_error"
    status_code: int = 500
    retryable: bool = False
    public_message: str = "Failed to process message"

    def __init__(self, message: str | None = None, *, detail: str | None = None):
        self.message = message or self.public_message
        self.detail = detail
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        return {"type": "error", "kind": self.kind, "error": self.message}


class AuthError(ChatError):
    """Bad credentials or a sign-up conflict at the identity provider."""

    kind = "auth_error"
    status_code = 400
    public_message = "Authentication failed"


class InvalidTokenError(ChatError):
    """Malformed, tampered or expired session token."""

    kind = "invalid_token"
    status_code = 403
    public_message = "Invalid token"


class UnknownUserError(ChatError):
    """Token verified but no persisted user matches it."""

    kind = "unknown_user"
    status_code = 404
    public_message = "User not found"


class TranscriptionError(ChatError):
    kind = "transcription_error"
    status_code = 400
    retryable = True
    public_message = "Could not transcribe audio"


class GenerationError(ChatError):
    kind = "generation_error"
    status_code = 502
    retryable = True
    public_message = "Could not generate a response"


class PersistenceError(ChatError):
    kind = "persistence_error"
    status_code = 500
    retryable = True
    public_message = "Could not save conversation"


class ValidationError(ChatError):
    """Malformed request body or missing required field."""

    kind = "validation_error"
    status_code = 400
    public_message = "Invalid request"

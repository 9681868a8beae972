"""Persisted records — users and patients. Conversation turns live in chat.models."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any

PATIENT_FIELDS = (
    "name",
    "date_of_birth",
    "gender",
    "phone",
    "email",
    "medical_history",
    "allergies",
    "medications",
    "notes",
)


@dataclass(frozen=True)
class User:
    id: str
    email: str
    identity_id: str
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Patient:
    id: int
    user_id: str
    name: str
    date_of_birth: str | None = None
    gender: str | None = None
    phone: str | None = None
    email: str | None = None
    medical_history: str | None = None
    allergies: str | None = None
    medications: str | None = None
    notes: str | None = None
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

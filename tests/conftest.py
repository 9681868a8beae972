"""
Shared fixtures for MediChat tests.

Fake STT / LLM / identity providers stand in for the vendor SDKs; storage
is a real SQLite file under tmp_path.
"""

from __future__ import annotations

import asyncio
import uuid

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from medichat.auth.identity import Identity, IdentityProvider
from medichat.chat.generator import ResponseGenerator
from medichat.chat.orchestrator import Chatbot
from medichat.chat.session_store import SessionStore
from medichat.chat.transcription import TranscriptionAdapter
from medichat.core.config import (
    AuthConfig,
    ChatConfig,
    DatabaseConfig,
    MediChatConfig,
    STTConfig,
)
from medichat.errors import AuthError
from medichat.providers.base import LLMProvider, STTProvider
from medichat.storage.database import Database

JWT_SECRET = "test-secret-for-medichat-session-tokens"


# ── Fake providers ─────────────────────────────────────────


class FakeSTT(STTProvider):
    """Returns a fixed transcript. Fails the first `failures` calls."""

    def __init__(
        self, transcript: str | None = "I have a headache", failures: int = 0, delay: float = 0.0
    ):
        self.transcript = transcript
        self.failures = failures
        self.delay = delay
        self.calls: list[bytes] = []
        self.started = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.started = False

    async def transcribe(self, audio_data: bytes) -> str | None:
        self.calls.append(audio_data)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("stt unavailable")
        return self.transcript


class FakeLLM(LLMProvider):
    """
    Echoes the last user message as "echo: <text>" unless `reply` is set.

    Tracks how many generate() calls overlap so tests can check per-user
    serialization.
    """

    def __init__(self, reply: str | None = None, delay: float = 0.0, failures: int = 0):
        self.reply = reply
        self.delay = delay
        self.failures = failures
        self.calls: list[list[dict]] = []
        self.active = 0
        self.max_active = 0

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def generate(self, messages, max_tokens=500, temperature=0.7):
        self.calls.append(list(messages))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.failures > 0:
                self.failures -= 1
                raise RuntimeError("llm unavailable")
            if self.reply is not None:
                return self.reply
            return f"echo: {messages[-1]['content']}"
        finally:
            self.active -= 1


class FakeIdentity(IdentityProvider):
    """In-memory identity provider keyed by email."""

    def __init__(self):
        self.accounts: dict[str, tuple[str, str]] = {}
        self.closed = False

    async def sign_up(self, email: str, password: str) -> Identity:
        if email in self.accounts:
            raise AuthError("User already registered")
        identity_id = f"idp-{uuid.uuid4()}"
        self.accounts[email] = (password, identity_id)
        return Identity(identity_id=identity_id, email=email)

    async def authenticate(self, email: str, password: str) -> Identity:
        account = self.accounts.get(email)
        if account is None or account[0] != password:
            raise AuthError("Invalid login credentials")
        return Identity(identity_id=account[1], email=email)

    async def close(self) -> None:
        self.closed = True


# ── Helpers ────────────────────────────────────────────────


def make_chatbot(db: Database, stt: STTProvider | None = None, llm: LLMProvider | None = None, **kwargs) -> Chatbot:
    history_limit = kwargs.pop("history_limit", 10)
    max_bytes = kwargs.pop("max_bytes", 1024)
    kwargs.setdefault("retry_delay", 0)
    return Chatbot(
        db,
        SessionStore(limit=history_limit),
        TranscriptionAdapter(stt or FakeSTT(), max_bytes=max_bytes),
        ResponseGenerator(llm or FakeLLM()),
        **kwargs,
    )


def make_config(tmp_path, **chat_overrides) -> MediChatConfig:
    max_audio_bytes = chat_overrides.pop("max_audio_bytes", 1024)
    chat_overrides.setdefault("retry_delay", 0)
    return MediChatConfig(
        auth=AuthConfig(jwt_secret=JWT_SECRET),
        stt=STTConfig(max_audio_bytes=max_audio_bytes),
        chat=ChatConfig(**chat_overrides),
        database=DatabaseConfig(db_path=str(tmp_path / "medichat-test.db")),
    )


def auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def signup(client: TestClient, email: str = "pat@example.com", password: str = "hunter22") -> tuple[str, dict]:
    response = client.post("/api/auth/signup", json={"email": email, "password": password})
    assert response.status_code == 201, response.text
    body = response.json()
    return body["token"], body["user"]


# ── Fixtures ───────────────────────────────────────────────


@pytest_asyncio.fixture
async def db(tmp_path):
    d = Database(tmp_path / "medichat-test.db")
    await d.start()
    yield d
    await d.stop()


@pytest_asyncio.fixture
async def user(db):
    return await db.create_user("pat@example.com", "idp-pat")


@pytest.fixture
def fake_stt():
    return FakeSTT()


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def fake_identity():
    return FakeIdentity()


@pytest.fixture
def services(tmp_path, fake_stt, fake_llm, fake_identity):
    from medichat.services import build_services

    return build_services(
        make_config(tmp_path),
        stt=fake_stt,
        llm=fake_llm,
        identity=fake_identity,
    )


@pytest.fixture
def client(services):
    """TestClient over a full app; startup opens the database."""
    from medichat.main import create_app

    with TestClient(create_app(services)) as test_client:
        yield test_client

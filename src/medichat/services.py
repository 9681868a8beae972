"""
Service container — everything the routes need, built once per process.

The Session Store lives here: created at startup, dropped at shutdown.
Tests build a Services with fake providers and hand it to create_app().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from medichat.auth.identity import IdentityProvider, SupabaseIdentityProvider
from medichat.auth.tokens import TokenService
from medichat.chat.generator import ResponseGenerator
from medichat.chat.orchestrator import Chatbot
from medichat.chat.session_store import SessionStore
from medichat.chat.transcription import TranscriptionAdapter
from medichat.core.config import MediChatConfig
from medichat.providers import get_llm_provider, get_stt_provider
from medichat.providers.base import LLMProvider, STTProvider
from medichat.storage.database import Database

logger = logging.getLogger(__name__)


def get_identity_provider(cfg: MediChatConfig) -> IdentityProvider:
    provider = cfg.identity.provider.lower()
    if provider == "supabase":
        return SupabaseIdentityProvider(
            cfg.identity.supabase_url,
            cfg.identity.supabase_anon_key,
            timeout=cfg.identity.timeout,
        )
    raise ValueError(f"Unknown identity provider: {provider}")


@dataclass
class Services:
    db: Database
    sessions: SessionStore
    chatbot: Chatbot
    tokens: TokenService
    identity: IdentityProvider
    stt: STTProvider
    llm: LLMProvider

    async def start(self) -> None:
        await self.db.start()
        for provider in (self.stt, self.llm):
            try:
                await provider.start()
            except Exception as e:
                # The gateway still serves auth and patient routes; chat
                # turns will fail with a generation/transcription error.
                logger.error("%s failed to start: %s", provider.__class__.__name__, e)

    async def stop(self) -> None:
        await self.stt.stop()
        await self.llm.stop()
        await self.identity.close()
        await self.db.stop()


def build_services(
    cfg: MediChatConfig,
    *,
    db: Database | None = None,
    stt: STTProvider | None = None,
    llm: LLMProvider | None = None,
    identity: IdentityProvider | None = None,
) -> Services:
    db = db or Database(cfg.database.db_path)
    stt = stt or get_stt_provider()
    llm = llm or get_llm_provider()
    identity = identity or get_identity_provider(cfg)

    sessions = SessionStore(
        limit=cfg.chat.history_limit, max_sessions=cfg.chat.max_sessions
    )
    chatbot = Chatbot(
        db,
        sessions,
        TranscriptionAdapter(stt, max_bytes=cfg.stt.max_audio_bytes),
        ResponseGenerator(
            llm, max_tokens=cfg.llm.max_tokens, temperature=cfg.llm.temperature
        ),
        retry_attempts=cfg.chat.retry_attempts,
        retry_delay=cfg.chat.retry_delay,
        retry_max_delay=cfg.chat.retry_max_delay,
        persist_failure_policy=cfg.chat.persist_failure_policy,
    )
    tokens = TokenService(
        cfg.auth.jwt_secret,
        algorithm=cfg.auth.jwt_algorithm,
        ttl_minutes=cfg.auth.token_ttl_minutes,
    )
    return Services(
        db=db,
        sessions=sessions,
        chatbot=chatbot,
        tokens=tokens,
        identity=identity,
        stt=stt,
        llm=llm,
    )

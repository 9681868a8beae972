"""Tests for service wiring and lifecycle."""

from dataclasses import replace

import pytest

from medichat.auth.identity import SupabaseIdentityProvider
from medichat.core.config import IdentityConfig
from medichat.services import build_services
from tests.conftest import FakeIdentity, FakeLLM, FakeSTT, make_config


class BrokenSTT(FakeSTT):
    async def start(self) -> None:
        raise ValueError("DEEPGRAM_API_KEY not set")


def test_build_services_applies_config(tmp_path):
    cfg = make_config(tmp_path, history_limit=4, max_sessions=50, persist_failure_policy="deliver")
    services = build_services(cfg, stt=FakeSTT(), llm=FakeLLM(), identity=FakeIdentity())

    assert services.sessions.limit == 4
    assert services.sessions.max_sessions == 50
    assert services.chatbot.persist_failure_policy == "deliver"
    assert services.chatbot.sessions is services.sessions
    assert services.chatbot.transcriber.max_bytes == cfg.stt.max_audio_bytes


@pytest.mark.asyncio
async def test_provider_start_failure_does_not_block_startup(tmp_path):
    identity = FakeIdentity()
    services = build_services(
        make_config(tmp_path), stt=BrokenSTT(), llm=FakeLLM(), identity=identity
    )

    await services.start()
    assert await services.db.ping() is True

    await services.stop()
    assert await services.db.ping() is False
    assert identity.closed is True


@pytest.mark.asyncio
async def test_supabase_identity_is_the_default(tmp_path):
    services = build_services(make_config(tmp_path), stt=FakeSTT(), llm=FakeLLM())

    assert isinstance(services.identity, SupabaseIdentityProvider)
    await services.identity.close()


def test_unknown_identity_provider_is_rejected(tmp_path):
    cfg = replace(make_config(tmp_path), identity=IdentityConfig(provider="ldap"))

    with pytest.raises(ValueError, match="ldap"):
        build_services(cfg, stt=FakeSTT(), llm=FakeLLM())

"""
OpenAI STT Provider — Whisper transcription of uploaded clips.

Enabled with MEDICHAT_STT_PROVIDER=openai; reuses OPENAI_API_KEY.
"""

from __future__ import annotations

import logging

from openai import AsyncOpenAI

import medichat.core.config as config_module
from medichat.providers.base import STTProvider

logger = logging.getLogger(__name__)


class OpenAISTTProvider(STTProvider):
    def __init__(self):
        self.client: AsyncOpenAI | None = None

    async def start(self) -> None:
        if self.client:
            return
        cfg = config_module.config.stt
        if not cfg.api_key:
            raise ValueError("OPENAI_API_KEY not set")
        self.client = AsyncOpenAI(api_key=cfg.api_key)
        logger.info("OpenAI STT ready (model=%s)", cfg.model)

    async def stop(self) -> None:
        if self.client:
            await self.client.close()
        self.client = None

    async def transcribe(self, audio_data: bytes) -> str | None:
        if not self.client:
            raise RuntimeError("OpenAI STT not started")

        cfg = config_module.config.stt
        result = await self.client.audio.transcriptions.create(
            model=cfg.model,
            file=("voice-message.webm", audio_data),
            language=cfg.language,
        )
        text = (result.text or "").strip()
        return text or None

    async def health_check(self) -> dict:
        return {
            "provider": "openai_whisper",
            "model": config_module.config.stt.model,
            "status": "ready" if self.client else "not_started",
        }

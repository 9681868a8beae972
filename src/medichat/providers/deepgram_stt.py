"""
Deepgram STT Provider — batch transcription of uploaded audio.

Uses the v5 SDK (`listen.v1.media.transcribe_file`). Voice messages arrive
as complete clips, so there is no live socket here.
"""

from __future__ import annotations

import logging

from deepgram import AsyncDeepgramClient

import medichat.core.config as config_module
from medichat.providers.base import STTProvider

logger = logging.getLogger(__name__)


class DeepgramSTTProvider(STTProvider):
    def __init__(self):
        self.client: AsyncDeepgramClient | None = None

    async def start(self) -> None:
        if self.client:
            return
        cfg = config_module.config.stt
        if not cfg.api_key:
            raise ValueError("DEEPGRAM_API_KEY not set")
        self.client = AsyncDeepgramClient(api_key=cfg.api_key)
        logger.info("Deepgram STT ready (model=%s)", cfg.model)

    async def stop(self) -> None:
        self.client = None

    async def transcribe(self, audio_data: bytes) -> str | None:
        if not self.client:
            raise RuntimeError("Deepgram STT not started")

        cfg = config_module.config.stt
        response = await self.client.listen.v1.media.transcribe_file(
            request=audio_data,
            model=cfg.model,
            smart_format=True,
            language=cfg.language,
        )
        channels = response.results.channels if response.results else []
        if not channels or not channels[0].alternatives:
            return None
        transcript = channels[0].alternatives[0].transcript
        if transcript and transcript.strip():
            return transcript.strip()
        return None

    async def health_check(self) -> dict:
        return {
            "provider": "deepgram",
            "model": config_module.config.stt.model,
            "status": "ready" if self.client else "not_started",
        }

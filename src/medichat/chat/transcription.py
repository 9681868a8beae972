"""
Transcription Adapter — audio bytes in, text out.

A thin pass-through over the configured STT provider. Any provider failure
or an empty transcript becomes a TranscriptionError; retries are the
orchestrator's business.
"""

from __future__ import annotations

import logging

from medichat.errors import TranscriptionError, ValidationError
from medichat.providers.base import STTProvider

logger = logging.getLogger(__name__)


class TranscriptionAdapter:
    def __init__(self, provider: STTProvider, max_bytes: int = 5 * 1024 * 1024):
        self._provider = provider
        self.max_bytes = max_bytes

    async def transcribe(self, audio: bytes) -> str:
        if not audio:
            raise ValidationError("No audio provided")
        if len(audio) > self.max_bytes:
            raise ValidationError(
                f"Audio exceeds the {self.max_bytes // (1024 * 1024)} MiB limit"
            )

        try:
            text = await self._provider.transcribe(audio)
        except Exception as e:
            logger.warning("STT provider failed: %s", e)
            raise TranscriptionError(detail=str(e)) from e

        if not text or not text.strip():
            raise TranscriptionError("No speech detected in audio")
        return text.strip()

"""
Provider Registry — factory functions to get the right provider by config.

Add a new provider? Add an elif.
"""

from __future__ import annotations

import medichat.core.config as config_module
from medichat.providers.base import LLMProvider, STTProvider


def get_stt_provider() -> STTProvider:
    provider = config_module.config.stt.provider.lower()
    if provider == "deepgram":
        from medichat.providers.deepgram_stt import DeepgramSTTProvider

        return DeepgramSTTProvider()
    elif provider == "openai":
        from medichat.providers.openai_stt import OpenAISTTProvider

        return OpenAISTTProvider()
    raise ValueError(f"Unknown STT provider: {provider}")


def get_llm_provider() -> LLMProvider:
    provider = config_module.config.llm.provider.lower()
    if provider == "openai":
        from medichat.providers.openai_llm import OpenAILLMProvider

        return OpenAILLMProvider()
    raise ValueError(f"Unknown LLM provider: {provider}")

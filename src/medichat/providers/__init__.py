"""
MediChat Providers — abstract interfaces for STT and LLM.

Concrete implementations (Deepgram, OpenAI) live alongside. Swap providers
by changing config.
"""

from medichat.providers.base import LLMProvider, STTProvider
from medichat.providers.registry import get_llm_provider, get_stt_provider

__all__ = [
    "STTProvider",
    "LLMProvider",
    "get_stt_provider",
    "get_llm_provider",
]

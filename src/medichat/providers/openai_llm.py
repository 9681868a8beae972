"""
OpenAI LLM Provider — chat completions via the async SDK.

MEDICHAT_LLM_BASE_URL points the client at any OpenAI-compatible API.
"""

from __future__ import annotations

import logging

from openai import AsyncOpenAI

import medichat.core.config as config_module
from medichat.providers.base import LLMProvider

logger = logging.getLogger(__name__)


class OpenAILLMProvider(LLMProvider):
    def __init__(self):
        self.client: AsyncOpenAI | None = None

    async def start(self) -> None:
        if self.client:
            return

        cfg = config_module.config.llm
        client_kwargs: dict = {}
        if cfg.api_key:
            client_kwargs["api_key"] = cfg.api_key
        if cfg.base_url:
            client_kwargs["base_url"] = cfg.base_url
            logger.info("Using custom base_url: %s", cfg.base_url)

        self.client = AsyncOpenAI(**client_kwargs)
        logger.info("OpenAI LLM ready (model=%s)", cfg.model)

    async def stop(self) -> None:
        if self.client:
            await self.client.close()
        self.client = None

    async def generate(
        self,
        messages: list[dict],
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> str | None:
        if not self.client:
            raise RuntimeError("OpenAI LLM not started")

        completion = await self.client.chat.completions.create(
            model=config_module.config.llm.model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        if not completion.choices:
            return None
        return completion.choices[0].message.content

    async def health_check(self) -> dict:
        return {
            "provider": "openai",
            "model": config_module.config.llm.model,
            "status": "ready" if self.client else "not_started",
        }

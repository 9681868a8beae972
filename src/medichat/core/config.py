"""
MediChat Configuration — single source of truth for all settings.

Reads from environment variables with sensible defaults.
Vendor credentials keep their usual names (OPENAI_API_KEY, DEEPGRAM_API_KEY,
SUPABASE_URL, JWT_SECRET); everything else is prefixed with MEDICHAT_.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

MIB = 1024 * 1024


@dataclass(frozen=True)
class AuthConfig:
    """Session token settings."""

    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    token_ttl_minutes: int = 24 * 60

    @classmethod
    def from_env(cls) -> AuthConfig:
        return cls(
            jwt_secret=os.getenv("JWT_SECRET", ""),
            jwt_algorithm=os.getenv("MEDICHAT_JWT_ALGORITHM", "HS256"),
            token_ttl_minutes=int(os.getenv("MEDICHAT_TOKEN_TTL_MINUTES", "1440")),
        )


@dataclass(frozen=True)
class IdentityConfig:
    """Identity provider (Supabase GoTrue) settings."""

    provider: str = "supabase"
    supabase_url: str = ""
    supabase_anon_key: str = ""
    timeout: float = 10.0

    @classmethod
    def from_env(cls) -> IdentityConfig:
        return cls(
            provider=os.getenv("MEDICHAT_IDENTITY_PROVIDER", "supabase"),
            supabase_url=os.getenv("SUPABASE_URL", "").rstrip("/"),
            supabase_anon_key=os.getenv("SUPABASE_ANON_KEY", ""),
            timeout=float(os.getenv("MEDICHAT_IDENTITY_TIMEOUT", "10.0")),
        )


@dataclass(frozen=True)
class STTConfig:
    """Speech-to-text provider settings."""

    provider: str = "deepgram"
    api_key: str = ""
    model: str = "nova-3"
    language: str = "en"
    max_audio_bytes: int = 5 * MIB

    @classmethod
    def from_env(cls) -> STTConfig:
        provider = os.getenv("MEDICHAT_STT_PROVIDER", "deepgram").lower()
        if provider == "openai":
            api_key = os.getenv("OPENAI_API_KEY", "")
            default_model = "whisper-1"
        else:
            api_key = os.getenv("DEEPGRAM_API_KEY", "")
            default_model = "nova-3"
        return cls(
            provider=provider,
            api_key=api_key,
            model=os.getenv("MEDICHAT_STT_MODEL", default_model),
            language=os.getenv("MEDICHAT_STT_LANGUAGE", "en"),
            max_audio_bytes=int(
                os.getenv("MEDICHAT_MAX_AUDIO_BYTES", str(5 * MIB))
            ),
        )


@dataclass(frozen=True)
class LLMConfig:
    """Language model provider settings."""

    provider: str = "openai"
    api_key: str = ""
    base_url: str = ""
    model: str = "gpt-4o-mini"
    max_tokens: int = 500
    temperature: float = 0.7

    @classmethod
    def from_env(cls) -> LLMConfig:
        return cls(
            provider=os.getenv("MEDICHAT_LLM_PROVIDER", "openai"),
            api_key=os.getenv("OPENAI_API_KEY", ""),
            base_url=os.getenv("MEDICHAT_LLM_BASE_URL", ""),
            model=os.getenv("MEDICHAT_LLM_MODEL", "gpt-4o-mini"),
            max_tokens=int(os.getenv("MEDICHAT_LLM_MAX_TOKENS", "500")),
            temperature=float(os.getenv("MEDICHAT_LLM_TEMPERATURE", "0.7")),
        )


@dataclass(frozen=True)
class ChatConfig:
    """Conversation pipeline settings."""

    history_limit: int = 10  # messages, i.e. 5 exchanges
    max_sessions: int = 0  # users kept in memory; 0 = unbounded
    retry_attempts: int = 3  # total attempts per external call
    retry_delay: float = 0.5  # seconds, doubles each attempt
    retry_max_delay: float = 8.0
    persist_failure_policy: str = "fail"  # fail | deliver

    @classmethod
    def from_env(cls) -> ChatConfig:
        return cls(
            history_limit=int(os.getenv("MEDICHAT_HISTORY_LIMIT", "10")),
            max_sessions=int(os.getenv("MEDICHAT_MAX_SESSIONS", "0")),
            retry_attempts=int(os.getenv("MEDICHAT_RETRY_ATTEMPTS", "3")),
            retry_delay=float(os.getenv("MEDICHAT_RETRY_DELAY", "0.5")),
            retry_max_delay=float(os.getenv("MEDICHAT_RETRY_MAX_DELAY", "8.0")),
            persist_failure_policy=os.getenv(
                "MEDICHAT_PERSIST_FAILURE_POLICY", "fail"
            ).lower(),
        )


@dataclass(frozen=True)
class DatabaseConfig:
    """Durable storage settings."""

    db_path: str = "medichat.db"

    @classmethod
    def from_env(cls) -> DatabaseConfig:
        return cls(db_path=os.getenv("MEDICHAT_DB_PATH", "medichat.db"))


@dataclass(frozen=True)
class ServerConfig:
    """Server settings."""

    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: tuple[str, ...] = ("*",)

    @classmethod
    def from_env(cls) -> ServerConfig:
        origins = os.getenv("MEDICHAT_CORS_ORIGINS", "*")
        return cls(
            host=os.getenv("MEDICHAT_HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        )


@dataclass(frozen=True)
class MediChatConfig:
    """Root configuration."""

    auth: AuthConfig = field(default_factory=AuthConfig)
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    stt: STTConfig = field(default_factory=STTConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_env(cls) -> MediChatConfig:
        return cls(
            auth=AuthConfig.from_env(),
            identity=IdentityConfig.from_env(),
            stt=STTConfig.from_env(),
            llm=LLMConfig.from_env(),
            chat=ChatConfig.from_env(),
            database=DatabaseConfig.from_env(),
            server=ServerConfig.from_env(),
        )


# Singleton. Import the module and read `config_module.config` when the
# value may be reloaded (tests), or `config` directly otherwise.
config = MediChatConfig.from_env()


def reload_config() -> MediChatConfig:
    """Rebuild the singleton from the current environment."""
    global config
    config = MediChatConfig.from_env()
    return config

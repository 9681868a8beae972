"""
MediChat Logging — colorized dev output, JSON lines in production.

- Color formatter for dev mode (auto-detects TTY)
- JSON structured formatter (MEDICHAT_LOG_FORMAT=json)
- Quiets chatty third-party loggers (httpx, openai, deepgram, aiosqlite)
- TurnTimer for per-stage latency of a chat turn

Structured extra fields (logger.info(..., extra={...})):
    user_id, state, message_type, duration_ms, kind
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from datetime import datetime, timezone

COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[1;31m",
    "RESET": "\033[0m",
    "DIM": "\033[2m",
}


class ColorFormatter(logging.Formatter):
    """Terminal formatter; colors level and logger name when enabled."""

    def __init__(self, use_color: bool = True):
        super().__init__(
            fmt="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
            datefmt="%H:%M:%S",
        )
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_color:
            return super().format(record)

        levelname, name = record.levelname, record.name
        record.levelname = (
            f"{COLORS.get(levelname, '')}{levelname}{COLORS['RESET']}"
        )
        record.name = f"{COLORS['DIM']}{name}{COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname, record.name = levelname, name


_STRUCTURED_FIELDS = (
    "user_id",
    "state",
    "message_type",
    "duration_ms",
    "kind",
)


class StructuredFormatter(logging.Formatter):
    """One JSON object per line; structured extras are lifted to the top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in _STRUCTURED_FIELDS:
            if hasattr(record, key):
                entry[key] = getattr(record, key)
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TurnTimer:
    """Stage timings for one chat turn.

        timer = TurnTimer()
        timer.mark("transcribe")
        timer.mark("generate")
        timer.summary()  # "transcribe: 0.4s | generate: 1.9s | Total: 2.3s"
    """

    def __init__(self):
        self._marks: list[tuple[str, float]] = []
        self._start = time.monotonic()

    def mark(self, stage: str) -> None:
        self._marks.append((stage, time.monotonic()))

    def total_ms(self) -> float:
        return (time.monotonic() - self._start) * 1000

    def summary(self) -> str:
        parts = []
        prev = self._start
        for name, ts in self._marks:
            parts.append(f"{name}: {ts - prev:.1f}s")
            prev = ts
        parts.append(f"Total: {self.total_ms() / 1000:.1f}s")
        return " | ".join(parts)


def _should_use_color() -> bool:
    env_val = os.getenv("MEDICHAT_LOG_COLOR", "auto").lower()
    if env_val in ("true", "false"):
        return env_val == "true"
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def setup_logging() -> None:
    """Configure root logging once at startup.

    Env vars:
        MEDICHAT_LOG_LEVEL  — DEBUG / INFO / WARNING / ERROR (default: INFO)
        MEDICHAT_LOG_COLOR  — true / false / auto (default: auto)
        MEDICHAT_LOG_FORMAT — text / json (default: text)
    """
    level_name = os.getenv("MEDICHAT_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    log_format = os.getenv("MEDICHAT_LOG_FORMAT", "text").lower()

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    if log_format == "json":
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = ColorFormatter(use_color=_should_use_color())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    for noisy_logger in [
        "httpx",
        "httpcore",
        "openai",
        "openai._base_client",
        "deepgram",
        "aiosqlite",
        "websockets",
        "uvicorn.access",
    ]:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    logging.getLogger("uvicorn.error").setLevel(level)
    logging.getLogger("medichat").debug(
        "Logging configured (level=%s, format=%s)", level_name, log_format
    )

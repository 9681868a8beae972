"""
Response Generator — history + new text in, structured reply out.

1. Build the prompt: fixed system role, prior turns oldest first, new text
2. Call the LLM provider
3. Post-process: strip, classify triage urgency, add safety notices

Urgency is taken from the user's words (emergency and urgent-care
patterns) and from referral language in the completion itself. An emergent
turn gets an emergency notice prepended; an urgent one gets a follow-up
notice appended.
"""

from __future__ import annotations

import logging
import re
from typing import Sequence

from medichat.chat.models import ChatMessage, GeneratedReply, Urgency
from medichat.errors import GenerationError
from medichat.providers.base import LLMProvider

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are MediChat, a careful and friendly medical assistant. "
    "Answer health questions in plain language and keep replies short unless "
    "the user asks for detail. Describe likely possibilities and practical next "
    "steps, and say clearly when you are uncertain. Never claim a confirmed "
    "diagnosis and never prescribe. If the user describes symptoms that could be "
    "an emergency, tell them to contact emergency services immediately before "
    "anything else."
)

EMERGENCY_NOTICE = (
    "This may be a medical emergency. Call 911 or your local emergency number now."
)
URGENT_NOTICE = (
    "These symptoms should be checked by a healthcare provider soon. "
    "If they get worse, seek urgent care."
)

_EMERGENCY_PATTERNS = [
    re.compile(r"chest pain.*breath", re.IGNORECASE),
    re.compile(r"\bstroke\b", re.IGNORECASE),
    re.compile(r"severe bleeding", re.IGNORECASE),
    re.compile(r"anaphyla\w*", re.IGNORECASE),
    re.compile(r"overdose", re.IGNORECASE),
    re.compile(r"self[- ]?harm", re.IGNORECASE),
    re.compile(r"suicid\w*", re.IGNORECASE),
    re.compile(r"unconscious|unresponsive", re.IGNORECASE),
]

_URGENT_HINT_RE = re.compile(
    r"\b(?:"
    r"high fever|persistent fever|"
    r"severe pain|worsening pain|"
    r"fainting|fainted|syncope|"
    r"shortness of breath|difficulty breathing|"
    r"vomiting|dehydration|"
    r"chest pain|"
    r"blood pressure|"
    r"infection"
    r")\b",
    flags=re.IGNORECASE,
)

# Referral language in the completion itself.
_REFERRAL_RE = re.compile(
    r"\b(?:call 911|emergency room|emergency services|urgent care|"
    r"seek (?:immediate|emergency) (?:medical )?(?:care|attention|help))\b",
    flags=re.IGNORECASE,
)


def build_messages(text: str, history: Sequence[ChatMessage]) -> list[dict]:
    """System prompt, prior turns oldest first, then the new user text."""
    messages: list[dict] = [{"role": "system", "content": SYSTEM_PROMPT}]
    messages.extend(m.to_openai_message() for m in history)
    messages.append({"role": "user", "content": text})
    return messages


def classify_urgency(user_text: str, completion: str = "") -> tuple[Urgency, tuple[str, ...]]:
    """Return the triage tier and the matched terms (lowercased, sorted)."""
    flags: set[str] = set()
    urgency = Urgency.ROUTINE

    for pattern in _EMERGENCY_PATTERNS:
        match = pattern.search(user_text or "")
        if match:
            flags.add(match.group(0).lower())
            urgency = Urgency.EMERGENT

    urgent_hits = {m.group(0).lower() for m in _URGENT_HINT_RE.finditer(user_text or "")}
    referral_hits = {m.group(0).lower() for m in _REFERRAL_RE.finditer(completion or "")}
    if urgent_hits or referral_hits:
        flags |= urgent_hits | referral_hits
        if urgency is Urgency.ROUTINE:
            urgency = Urgency.URGENT

    return urgency, tuple(sorted(flags))


def enhance(user_text: str, completion: str) -> GeneratedReply:
    raw = completion.strip()
    urgency, flags = classify_urgency(user_text, raw)

    content = raw
    if urgency is Urgency.EMERGENT:
        content = f"{EMERGENCY_NOTICE}\n\n{raw}"
    elif urgency is Urgency.URGENT:
        content = f"{raw}\n\n{URGENT_NOTICE}"

    return GeneratedReply(content=content, raw=raw, urgency=urgency, flags=flags)


class ResponseGenerator:
    def __init__(
        self,
        provider: LLMProvider,
        max_tokens: int = 500,
        temperature: float = 0.7,
    ):
        self._provider = provider
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def generate(self, text: str, history: Sequence[ChatMessage]) -> GeneratedReply:
        messages = build_messages(text, history)
        try:
            completion = await self._provider.generate(
                messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as e:
            logger.warning("LLM provider failed: %s", e)
            raise GenerationError(detail=str(e)) from e

        if not isinstance(completion, str) or not completion.strip():
            raise GenerationError(detail="empty completion")

        reply = enhance(text, completion)
        if reply.urgent:
            logger.info(
                "Flagged %s turn: %s", reply.urgency.value, ", ".join(reply.flags)
            )
        return reply

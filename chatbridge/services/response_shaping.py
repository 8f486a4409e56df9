"""Post-processing of AI replies and per-platform text formatting."""

import html
import re
from typing import Any, Optional

from chatbridge.logging_config import get_logger
from chatbridge.services.configuration_service import AiSettings

logger = get_logger("response_shaping")

GREETING_WORDS = frozenset({"hi", "hello", "hey", "alo", "chào", "xin chào", "hola", "привет", "здравствуйте"})
GREETING_MAX_INPUT_LENGTH = 20

TRUNCATION_NOTICE = "\n\n[Response truncated]"
GREETING_ELLIPSIS = "..."
FALLBACK_REPLY = "Sorry, I could not generate a response right now."

_WORD_RE = re.compile(r"\w+", re.UNICODE)


def is_simple_greeting(text: Optional[str]) -> bool:
    if not text:
        return False
    normalized = text.strip().casefold()
    if len(normalized) >= GREETING_MAX_INPUT_LENGTH:
        return False

    words = _WORD_RE.findall(normalized)
    if any(word in GREETING_WORDS for word in words):
        return True
    # multi-word greetings such as "xin chào"
    joined = " ".join(words)
    return any(" " in greeting and greeting in joined for greeting in GREETING_WORDS)


def first_answer(answer: Any) -> str:
    if isinstance(answer, list):
        logger.warning(
            "AI returned a list answer, using the first element",
            extra={"context": {"count": len(answer)}},
        )
        answer = answer[0] if answer else ""
    if answer is None:
        return ""
    return answer if isinstance(answer, str) else str(answer)


def shape_ai_reply(answer: Any, user_message: Optional[str], ai_settings: AiSettings) -> str:
    """Apply the greeting cap, then the maximum length cap."""
    reply = first_answer(answer).strip()
    if not reply:
        return FALLBACK_REPLY

    greeting_cap = ai_settings.simple_greeting_max_length
    if is_simple_greeting(user_message) and len(reply) > greeting_cap:
        reply = reply[:greeting_cap] + GREETING_ELLIPSIS

    max_length = ai_settings.max_response_length
    if len(reply) > max_length:
        reply = reply[:max_length] + TRUNCATION_NOTICE

    return reply


def truncate(text: str, limit: int, suffix: str = GREETING_ELLIPSIS) -> str:
    """Hard platform limit; the suffix is counted inside the limit."""
    if len(text) <= limit:
        return text
    return text[: max(limit - len(suffix), 0)] + suffix


def format_for_telegram(
    content: str,
    sender_name: Optional[str],
    max_length: int,
    from_agent: bool,
    parse_mode: Optional[str] = "HTML",
) -> str:
    if (parse_mode or "").upper() != "HTML":
        # only the HTML parse mode decodes entities
        text = f"{sender_name}:\n{content}" if from_agent and sender_name else content
        return truncate(text, max_length)

    body = html.escape(content, quote=False)
    if from_agent and sender_name:
        body = f"<b>{html.escape(sender_name, quote=False)}:</b>\n{body}"
    if len(body) > max_length:
        # truncate the unescaped text so no HTML entity is cut in half
        prefix_len = len(body) - len(html.escape(content, quote=False))
        room = max(max_length - prefix_len, 0)
        body = body[:prefix_len] + html.escape(truncate(content, room), quote=False)
        if len(body) > max_length:
            body = truncate(body, max_length)
    return body


def format_for_chatwoot(content: str, sender_name: Optional[str], max_length: int, is_group_chat: bool) -> str:
    text = content
    if is_group_chat and sender_name:
        text = f"[{sender_name}]: {text}"
    return truncate(text, max_length)

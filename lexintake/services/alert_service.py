"""Operational alerts to the ops Telegram chat.

The same (level, message) pair is sent at most once per ALERT_COOLDOWN_SECONDS.
"""

import time
from typing import Optional

import httpx

from lexintake.config import settings
from lexintake.logging_config import get_logger

logger = get_logger("alert_service")

LEVEL_EMOJI = {"INFO": "ℹ️", "WARNING": "⚠️", "ERROR": "❌", "CRITICAL": "🔥"}

_last_sent: dict[tuple[str, str], float] = {}


def _throttled(level: str, message: str) -> bool:
    now = time.monotonic()
    last = _last_sent.get((level, message))
    if last is not None and now - last < settings.alert_cooldown_seconds:
        return True
    _last_sent[(level, message)] = now
    return False


def format_alert(level: str, message: str, context: Optional[dict] = None) -> str:
    text = f"{LEVEL_EMOJI.get(level, '📢')} *{level}* lexintake\n\n{message}"
    if context:
        lines = "\n".join(f"  {key}: {value}" for key, value in context.items())
        text += f"\n\n```\n{lines}\n```"
    return text


async def send_alert(level: str, message: str, context: Optional[dict] = None) -> bool:
    """Post an alert; returns True only when Telegram accepted it."""
    if not settings.alert_bot_token or not settings.alert_chat_id:
        logger.warning(f"Alert not configured: {level} - {message}", extra={"context": context or {}})
        return False

    if _throttled(level, message):
        logger.info(f"Alert suppressed by cooldown: {level} - {message}")
        return False

    try:
        async with httpx.AsyncClient(timeout=10) as client:
            response = await client.post(
                f"https://api.telegram.org/bot{settings.alert_bot_token}/sendMessage",
                json={
                    "chat_id": settings.alert_chat_id,
                    "text": format_alert(level, message, context),
                    "parse_mode": "Markdown",
                },
            )
            return response.status_code == 200
    except Exception as e:
        logger.error(f"Failed to send alert: {e}")
        return False


async def alert_critical(message: str, context: Optional[dict] = None) -> bool:
    return await send_alert("CRITICAL", message, context)

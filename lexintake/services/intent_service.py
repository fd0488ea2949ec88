"""Input normalization: maps raw WhatsApp text to the tokens the triage script branches on."""

import re
import unicodedata
from enum import Enum
from typing import Optional

from lexintake.logging_config import get_logger
from lexintake.schemas.message import InboundMessage
from lexintake.schemas.session import PracticeArea

logger = get_logger("intent_service")


class ReplyToken(str, Enum):
    TODAY = "today"  # "foi hoje"
    NEGATIVE = "negative"  # "não", "ainda não"
    AFFIRMATIVE = "affirmative"  # "sim", "pode sim"
    SWITCH = "switch"  # "quero trocar de advogado"


# Ordered {token <- triggers}. Matching is substring containment on normalized text,
# so "trocar" and "troca de advogado" both carry SWITCH.
REPLY_PATTERNS: tuple[tuple[ReplyToken, tuple[str, ...]], ...] = (
    (ReplyToken.TODAY, ("hoje",)),
    (ReplyToken.NEGATIVE, ("não", "nao")),
    (ReplyToken.AFFIRMATIVE, ("sim",)),
    (ReplyToken.SWITCH, ("troca",)),
)

AREA_OPTIONS: dict[str, PracticeArea] = {
    "1": PracticeArea.CRIMINAL,
    "2": PracticeArea.FAMILY,
    "3": PracticeArea.CIVIL,
    "4": PracticeArea.LABOR,
    "5": PracticeArea.OTHER,
}
DEFAULT_AREA = PracticeArea.OTHER

_SENDER_SEPARATORS = re.compile(r"[\s+\-().]")


def normalize_for_matching(text: str) -> str:
    """Normalize text for matching short replies (NFC, casefold, trim punctuation)."""
    if not text:
        return ""

    # some keyboards send decomposed accents ("não")
    normalized = unicodedata.normalize("NFC", text).strip().casefold()
    normalized = re.sub(r"\s+", " ", normalized)
    # "1." -> "1", "Sim!" -> "sim"
    normalized = re.sub(r"^[^\w]+|[^\w]+$", "", normalized)
    return normalized


def detect_tokens(text: str) -> frozenset[ReplyToken]:
    """Return every token whose triggers occur in the text."""
    normalized = normalize_for_matching(text)
    if not normalized:
        return frozenset()
    return frozenset(
        token for token, triggers in REPLY_PATTERNS if any(trigger in normalized for trigger in triggers)
    )


def has_token(text: str, token: ReplyToken) -> bool:
    return token in detect_tokens(text)


def parse_area(text: str) -> PracticeArea:
    """Menu answer -> practice area. Anything outside the menu is OTHER."""
    return AREA_OPTIONS.get(normalize_for_matching(text), DEFAULT_AREA)


def normalize_sender_id(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    sender_id = _SENDER_SEPARATORS.sub("", raw)
    return sender_id or None


def normalize_inbound(
    sender: Optional[str],
    text: Optional[str],
    message_id: Optional[str] = None,
) -> Optional[InboundMessage]:
    """Build the core's inbound event, or None when there is nothing to triage."""
    sender_id = normalize_sender_id(sender)
    if not sender_id:
        logger.info("Inbound message without sender ignored", extra={"context": {"message_id": message_id}})
        return None

    body = (text or "").strip()
    if not body:
        logger.info(
            "Inbound message without text ignored",
            extra={"context": {"sender_id": sender_id, "message_id": message_id}},
        )
        return None

    return InboundMessage(sender_id=sender_id, text=body, message_id=message_id)

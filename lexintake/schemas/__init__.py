from lexintake.schemas.message import InboundMessage
from lexintake.schemas.session import PracticeArea, PrisonStatus, Session, TriageStep
from lexintake.schemas.webhook import WebhookPayload, WebhookResponse

__all__ = [
    "InboundMessage",
    "PracticeArea",
    "PrisonStatus",
    "Session",
    "TriageStep",
    "WebhookPayload",
    "WebhookResponse",
]

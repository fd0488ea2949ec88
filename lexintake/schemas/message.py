from typing import Optional

from pydantic import BaseModel


class InboundMessage(BaseModel):
    sender_id: str
    text: str
    message_id: Optional[str] = None

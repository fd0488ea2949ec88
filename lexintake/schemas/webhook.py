from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field


class WhatsAppText(BaseModel):
    body: Optional[str] = None


class WhatsAppMessage(BaseModel):
    sender: Optional[str] = Field(default=None, validation_alias=AliasChoices("from", "sender"))
    id: Optional[str] = None
    timestamp: Optional[str] = None
    type: Optional[str] = "text"
    text: Optional[WhatsAppText] = None


class WhatsAppValue(BaseModel):
    messaging_product: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    messages: list[WhatsAppMessage] = Field(default_factory=list)
    statuses: list[dict[str, Any]] = Field(default_factory=list)


class WhatsAppChange(BaseModel):
    field: Optional[str] = None
    value: WhatsAppValue = Field(default_factory=WhatsAppValue)


class WhatsAppEntry(BaseModel):
    id: Optional[str] = None
    changes: list[WhatsAppChange] = Field(default_factory=list)


class WebhookPayload(BaseModel):
    object: Optional[str] = None
    entry: list[WhatsAppEntry] = Field(default_factory=list)

    def iter_messages(self):
        for entry in self.entry:
            for change in entry.changes:
                yield from change.value.messages


class WebhookResponse(BaseModel):
    success: bool
    message: str
    accepted: int = 0

from typing import Optional

import httpx

from lexintake.config import Settings
from lexintake.logging_config import get_logger
from lexintake.services.alert_service import alert_critical
from lexintake.services.messaging.base import OutboundSender

logger = get_logger("messaging.whatsapp")


class WhatsAppCloudSender(OutboundSender):
    """WhatsApp Cloud API (Meta Graph) text sender."""

    def __init__(
        self,
        access_token: Optional[str],
        phone_number_id: Optional[str],
        api_version: str = "v19.0",
        base_url: str = "https://graph.facebook.com",
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.api_version = api_version
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "WhatsAppCloudSender":
        return cls(
            access_token=settings.whatsapp_token,
            phone_number_id=settings.whatsapp_phone_number_id,
            api_version=settings.whatsapp_api_version,
            base_url=settings.whatsapp_api_base_url,
            timeout_seconds=settings.send_timeout_seconds,
        )

    @property
    def messages_url(self) -> str:
        return f"{self.base_url}/{self.api_version}/{self.phone_number_id}/messages"

    async def send(self, recipient: str, body: str) -> bool:
        if not self.access_token or not self.phone_number_id:
            logger.error("WhatsApp credentials missing (WHATSAPP_TOKEN / WHATSAPP_PHONE_NUMBER_ID not set)")
            await alert_critical("WhatsApp send failed", {"recipient": recipient, "error": "missing_credentials"})
            return False

        if not recipient or not body:
            logger.warning(f"send: missing recipient={recipient!r} or body")
            return False

        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": recipient,
            "type": "text",
            "text": {"preview_url": False, "body": body},
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(
                    self.messages_url,
                    headers={
                        "Authorization": f"Bearer {self.access_token}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
            logger.info(
                f"WhatsApp response: status={response.status_code}, to={recipient}, body={response.text[:200]}"
            )
            return response.status_code == 200
        except Exception as e:
            logger.error(f"Error sending WhatsApp message: {e}")
            await alert_critical("WhatsApp send failed", {"recipient": recipient, "error": str(e)})
            return False

"""Lead upserts into the office CRM. Unconfigured CRM is a silent no-op."""

from abc import ABC, abstractmethod
from typing import Optional

import httpx

from lexintake.config import Settings
from lexintake.logging_config import get_logger

logger = get_logger("crm_service")


class LeadStore(ABC):
    @abstractmethod
    async def upsert(self, phone: str, fields: dict) -> bool:
        pass


class NullLeadStore(LeadStore):
    async def upsert(self, phone: str, fields: dict) -> bool:
        logger.debug(f"CRM not configured, skipping lead upsert for {phone}")
        return True


class HttpLeadStore(LeadStore):
    """POSTs {"phone": ..., **fields} to a CRM webhook that upserts by phone."""

    def __init__(
        self,
        url: str,
        api_token: Optional[str] = None,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.api_token = api_token
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def upsert(self, phone: str, fields: dict) -> bool:
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(self.url, headers=headers, json={"phone": phone, **fields})
        except httpx.HTTPError as e:
            logger.error(f"CRM upsert failed: {e}", extra={"context": {"phone": phone}})
            return False

        if response.is_success:
            return True
        logger.warning(
            f"CRM upsert rejected: status={response.status_code}",
            extra={"context": {"phone": phone, "body": response.text[:200]}},
        )
        return False


def build_lead_store(settings: Settings) -> LeadStore:
    if not settings.crm_upsert_url:
        return NullLeadStore()
    return HttpLeadStore(settings.crm_upsert_url, api_token=settings.crm_api_token)

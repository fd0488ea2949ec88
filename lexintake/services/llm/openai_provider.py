from typing import List, Optional

import httpx

from lexintake.logging_config import get_logger
from lexintake.services.llm.base import LLMProvider, LLMResponse

logger = get_logger("llm.openai")


class OpenAIProviderError(Exception):
    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"OpenAI API error: {status_code} - {body[:200]}")


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions provider."""

    def __init__(
        self,
        api_key: str,
        default_model: str = "gpt-4o-mini",
        timeout_seconds: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.timeout_seconds = timeout_seconds
        self.base_url = "https://api.openai.com/v1/chat/completions"
        self._transport = transport

    async def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 400,
    ) -> LLMResponse:
        model = model or self.default_model
        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_completion_tokens": max_tokens,
        }
        logger.debug(f"OpenAI request: model={model}, messages_count={len(messages)}")

        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            response = await client.post(
                self.base_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )

        logger.debug(f"OpenAI response status: {response.status_code}")
        if response.status_code != 200:
            logger.error(f"OpenAI error: {response.text[:500]}")
            raise OpenAIProviderError(response.status_code, response.text)

        data = response.json()
        content = ""
        finish_reason = None
        if data.get("choices"):
            choice = data["choices"][0]
            content = choice.get("message", {}).get("content") or ""
            finish_reason = choice.get("finish_reason")

        return LLMResponse(
            content=content,
            model=data.get("model", model),
            usage=data.get("usage"),
            finish_reason=finish_reason,
        )

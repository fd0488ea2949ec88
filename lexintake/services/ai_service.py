"""Free-form replies for the assistant reply mode."""

from typing import Optional

from lexintake.config import Settings
from lexintake.logging_config import get_logger
from lexintake.services.llm import LLMProvider, OpenAIProvider, chat_messages
from lexintake.services.result import ErrorCode, Result

logger = get_logger("ai_service")

FALLBACK_REPLY = (
    "Olá! Recebemos sua mensagem. Para agilizar o atendimento, envie seu nome completo, "
    "cidade/estado e um breve resumo do caso."
)


class ReplyGenerator:
    """Wraps an LLM provider. Every failure is returned as a Result, never raised."""

    def __init__(
        self,
        provider: Optional[LLMProvider],
        system_prompt: str,
        model: Optional[str] = None,
    ):
        self.provider = provider
        self.system_prompt = system_prompt
        self.model = model

    @property
    def available(self) -> bool:
        return self.provider is not None

    async def generate(self, sender_id: str, text: str) -> Result[str]:
        if self.provider is None:
            return Result.failure("LLM provider not configured", ErrorCode.NO_CREDENTIALS)

        try:
            response = await self.provider.generate(chat_messages(self.system_prompt, text), model=self.model)
        except Exception as e:
            logger.error(f"Reply generation failed: {e}", extra={"context": {"sender_id": sender_id}})
            return Result.failure(str(e), ErrorCode.PROVIDER_ERROR)

        reply = (response.content or "").strip()
        if response.truncated:
            logger.info("LLM reply truncated at max_tokens", extra={"context": {"sender_id": sender_id}})
        if not reply:
            logger.warning("LLM returned empty reply", extra={"context": {"sender_id": sender_id}})
            return Result.failure("Empty reply", ErrorCode.EMPTY_REPLY)
        return Result.success(reply)


def build_reply_generator(settings: Settings) -> ReplyGenerator:
    provider = None
    if settings.openai_api_key:
        provider = OpenAIProvider(api_key=settings.openai_api_key, default_model=settings.openai_model)
    return ReplyGenerator(provider, settings.assistant_system_prompt, model=settings.openai_model)

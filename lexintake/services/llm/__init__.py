from lexintake.services.llm.base import LLMProvider, LLMResponse, chat_messages
from lexintake.services.llm.openai_provider import OpenAIProvider

__all__ = ["LLMProvider", "LLMResponse", "OpenAIProvider", "chat_messages"]

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

ChatMessage = dict


def chat_messages(system_prompt: str, user_text: str) -> List[ChatMessage]:
    """Single-turn chat: the office prompt followed by the sender's text."""
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_text},
    ]


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None
    finish_reason: Optional[str] = None

    @property
    def truncated(self) -> bool:
        return self.finish_reason == "length"


class LLMProvider(ABC):
    @abstractmethod
    async def generate(
        self,
        messages: List[ChatMessage],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 400,
    ) -> LLMResponse:
        """Return one chat completion for `messages`."""

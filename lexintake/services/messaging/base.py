from abc import ABC, abstractmethod


class OutboundSender(ABC):
    """Delivers a text message to a sender on the messaging channel."""

    @abstractmethod
    async def send(self, recipient: str, body: str) -> bool:
        """Return True when the provider accepted the message."""
        pass

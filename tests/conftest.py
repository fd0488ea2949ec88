import asyncio
from datetime import datetime, timezone

import pytest

from lexintake.services.dialogue_service import DialogueService
from lexintake.services.escalation_service import EscalationScheduler
from lexintake.services.messaging.base import OutboundSender
from lexintake.services.session_store import InMemorySessionStore


class RecordingSender(OutboundSender):
    """Outbound sender that records messages instead of calling WhatsApp."""

    def __init__(self, ok: bool = True, raises: Exception | None = None):
        self.ok = ok
        self.raises = raises
        self.sent: list[tuple[str, str]] = []

    async def send(self, recipient: str, body: str) -> bool:
        # Yield so concurrent handlers get a chance to interleave.
        await asyncio.sleep(0)
        self.sent.append((recipient, body))
        if self.raises is not None:
            raise self.raises
        return self.ok

    def bodies_for(self, recipient: str) -> list[str]:
        return [body for to, body in self.sent if to == recipient]


class FixedClock:
    def __init__(self, hour: int = 10):
        self.now = datetime(2024, 3, 11, hour, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def set_hour(self, hour: int) -> None:
        self.now = self.now.replace(hour=hour)


async def instant_sleep(delay_seconds: float) -> None:
    await asyncio.sleep(0)


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store(clock):
    return InMemorySessionStore(ttl_seconds=3600, clock=clock)


@pytest.fixture
def make_service(store, sender, clock):
    def _make(**overrides) -> DialogueService:
        kwargs = {
            "store": store,
            "sender": sender,
            "scheduler": EscalationScheduler(sleep_func=instant_sleep),
            "clock": clock,
        }
        kwargs.update(overrides)
        return DialogueService(**kwargs)

    return _make


"""Delayed follow-ups for the urgent call path.

After a sender allows a call, the office gets a fixed window to ring them; when
the window closes a single "call did not connect" message goes out. One pending
follow-up per sender: scheduling again replaces the previous one.
"""

import asyncio
from typing import Awaitable, Callable, Optional

from lexintake.logging_config import get_logger

logger = get_logger("escalation_service")

FollowUpAction = Callable[[], Awaitable[None]]


class EscalationScheduler:
    def __init__(self, sleep_func: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self._sleep = sleep_func
        self._tasks: dict[str, asyncio.Task] = {}

    def schedule(self, key: str, delay_seconds: float, action: FollowUpAction) -> asyncio.Task:
        """Run `action` after `delay_seconds`. Must be called from a running event loop."""
        if self.cancel(key):
            logger.info("Replaced pending follow-up", extra={"context": {"sender_id": key}})

        task = asyncio.create_task(self._run(key, delay_seconds, action), name=f"follow-up:{key}")
        self._tasks[key] = task
        logger.info(
            "Follow-up scheduled",
            extra={"context": {"sender_id": key, "delay_seconds": delay_seconds}},
        )
        return task

    async def _run(self, key: str, delay_seconds: float, action: FollowUpAction) -> None:
        try:
            await self._sleep(delay_seconds)
            await action()
            logger.info("Follow-up delivered", extra={"context": {"sender_id": key}})
        except asyncio.CancelledError:
            logger.info("Follow-up cancelled", extra={"context": {"sender_id": key}})
            raise
        except Exception as exc:
            logger.error(
                "Follow-up failed",
                extra={"context": {"sender_id": key, "error": str(exc)}},
            )
        finally:
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]

    def cancel(self, key: str) -> bool:
        task = self._tasks.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def pending(self, key: str) -> Optional[asyncio.Task]:
        task = self._tasks.get(key)
        if task is None or task.done():
            return None
        return task

    def pending_count(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Pending follow-ups cancelled on shutdown", extra={"context": {"count": len(tasks)}})

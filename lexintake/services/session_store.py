import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, Optional

import redis.asyncio as redis_async

from lexintake.config import Settings
from lexintake.logging_config import get_logger
from lexintake.schemas.session import Session

logger = get_logger("session_store")

DEFAULT_SESSION_TTL_SECONDS = 86400


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStore(ABC):
    """Sender id -> Session. A missing session means the sender is not mid-conversation."""

    @abstractmethod
    async def get(self, sender_id: str) -> Optional[Session]:
        pass

    @abstractmethod
    async def save(self, session: Session) -> None:
        pass

    @abstractmethod
    async def delete(self, sender_id: str) -> bool:
        pass

    @abstractmethod
    async def count(self) -> int:
        pass

    async def get_or_create(self, sender_id: str) -> Session:
        """Existing session, or a fresh unsaved one in the opening step."""
        session = await self.get(sender_id)
        if session is not None:
            return session
        now = self._now()
        return Session(sender_id=sender_id, created_at=now, updated_at=now)

    async def size_hint(self) -> Optional[int]:
        """Session count for /health, or None where counting means walking the keyspace."""
        return await self.count()

    async def purge_expired(self) -> int:
        return 0

    def _now(self) -> datetime:
        return _utcnow()


class InMemorySessionStore(SessionStore):
    """Process-local store with idle expiry. Lost on restart."""

    def __init__(
        self,
        ttl_seconds: Optional[float] = DEFAULT_SESSION_TTL_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._sessions: dict[str, Session] = {}
        self._ttl = timedelta(seconds=ttl_seconds) if ttl_seconds else None
        self._clock = clock

    def _now(self) -> datetime:
        return self._clock()

    def _is_expired(self, session: Session, now: datetime) -> bool:
        return self._ttl is not None and now - session.updated_at > self._ttl

    async def get(self, sender_id: str) -> Optional[Session]:
        session = self._sessions.get(sender_id)
        if session is None:
            return None
        if self._is_expired(session, self._now()):
            del self._sessions[sender_id]
            logger.info("Session expired", extra={"context": {"sender_id": sender_id, "step": session.step.value}})
            return None
        return session.model_copy()

    async def save(self, session: Session) -> None:
        self._sessions[session.sender_id] = session.model_copy()

    async def delete(self, sender_id: str) -> bool:
        return self._sessions.pop(sender_id, None) is not None

    async def count(self) -> int:
        return len(self._sessions)

    async def purge_expired(self) -> int:
        now = self._now()
        expired = [sender_id for sender_id, session in self._sessions.items() if self._is_expired(session, now)]
        for sender_id in expired:
            del self._sessions[sender_id]
        if expired:
            logger.info("Purged idle sessions", extra={"context": {"count": len(expired)}})
        return len(expired)


class RedisSessionStore(SessionStore):
    """Redis-backed store; idle expiry is the key TTL, refreshed on every save."""

    def __init__(
        self,
        redis_client,
        ttl_seconds: Optional[int] = DEFAULT_SESSION_TTL_SECONDS,
        key_prefix: str = "lexintake:session:",
    ):
        self._redis = redis_client
        self._ttl_seconds = int(ttl_seconds) if ttl_seconds else None
        self._key_prefix = key_prefix

    def _key(self, sender_id: str) -> str:
        return f"{self._key_prefix}{sender_id}"

    async def get(self, sender_id: str) -> Optional[Session]:
        raw = await self._redis.get(self._key(sender_id))
        if not raw:
            return None
        try:
            return Session.model_validate_json(raw)
        except ValueError as exc:
            logger.warning(
                "Discarding unreadable session",
                extra={"context": {"sender_id": sender_id, "error": str(exc)}},
            )
            await self._redis.delete(self._key(sender_id))
            return None

    async def save(self, session: Session) -> None:
        await self._redis.set(self._key(session.sender_id), session.model_dump_json(), ex=self._ttl_seconds)

    async def delete(self, sender_id: str) -> bool:
        return bool(await self._redis.delete(self._key(sender_id)))

    async def count(self) -> int:
        total = 0
        async for _ in self._redis.scan_iter(match=f"{self._key_prefix}*"):
            total += 1
        return total

    async def size_hint(self) -> Optional[int]:
        return None


def build_session_store(settings: Settings) -> SessionStore:
    backend = (settings.session_backend or "memory").strip().lower()
    if backend == "redis":
        client = redis_async.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=settings.redis_socket_timeout_seconds,
            socket_timeout=settings.redis_socket_timeout_seconds,
        )
        logger.info("Using Redis session store", extra={"context": {"ttl_seconds": settings.session_ttl_seconds}})
        return RedisSessionStore(client, ttl_seconds=settings.session_ttl_seconds)
    if backend != "memory":
        logger.warning(f"Unknown session backend '{backend}', falling back to memory")
    return InMemorySessionStore(ttl_seconds=settings.session_ttl_seconds)


class SenderLocks:
    """Per-sender asyncio locks: one inbound message per sender is processed at a time.

    Locks are FIFO, so messages from one sender are applied in arrival order.
    Entries are dropped once no task holds or waits for them.
    """

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, sender_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(sender_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[sender_id] = lock
        self._holders[sender_id] = self._holders.get(sender_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[sender_id] -= 1
            if self._holders[sender_id] == 0:
                del self._holders[sender_id]
                del self._locks[sender_id]

    def is_locked(self, sender_id: str) -> bool:
        lock = self._locks.get(sender_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)

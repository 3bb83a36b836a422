"""
Fast tier of the session store.

The cache is never the source of truth: anything missing here is
rehydrated from the durable backend on the next lookup.
"""
import json
import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional, Protocol

import redis
import redis.asyncio as aioredis

from portal_auth.core.errors import StoreUnavailable
from portal_auth.sessions.types import Session

logger = logging.getLogger(__name__)


class CacheBackend(Protocol):
    async def get(self, session_id: str) -> Optional[Session]:
        ...

    async def set(self, session: Session) -> None:
        ...

    async def delete(self, session_id: str) -> bool:
        """Drop one entry; returns whether it was present."""
        ...

    async def delete_many(self, session_ids: Iterable[str]) -> None:
        ...

    async def purge_stale(self, now: datetime, idle_cutoff: datetime) -> int:
        """Drop entries that are expired or idle since before ``idle_cutoff``."""
        ...

    async def ping(self) -> bool:
        ...


def _is_stale(session: Session, now: datetime, idle_cutoff: datetime) -> bool:
    return session.is_expired(now) or session.last_activity < idle_cutoff


class InMemoryCacheBackend:
    """Process-local map. Each operation completes without yielding to the loop."""

    def __init__(self):
        self._sessions: dict[str, Session] = {}

    async def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    async def set(self, session: Session) -> None:
        self._sessions[session.id] = session

    async def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    async def delete_many(self, session_ids: Iterable[str]) -> None:
        for session_id in session_ids:
            self._sessions.pop(session_id, None)

    async def purge_stale(self, now: datetime, idle_cutoff: datetime) -> int:
        stale = [
            session_id for session_id, session in self._sessions.items()
            if _is_stale(session, now, idle_cutoff)
        ]
        for session_id in stale:
            del self._sessions[session_id]
        return len(stale)

    async def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions


class RedisCacheBackend:
    """
    Redis-backed cache shared by every worker pointed at the same server.

    Entries are JSON documents under ``<prefix><session id>`` and carry a
    Redis TTL equal to the session lifetime.
    """

    def __init__(self, client: aioredis.Redis, ttl: timedelta, prefix: str = "session:"):
        self.client = client
        self.ttl = ttl
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, ttl: timedelta, prefix: str = "session:") -> "RedisCacheBackend":
        client = aioredis.from_url(url, decode_responses=True, socket_connect_timeout=2)
        return cls(client, ttl, prefix)

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}{session_id}"

    async def get(self, session_id: str) -> Optional[Session]:
        try:
            raw = await self.client.get(self._key(session_id))
        except redis.RedisError as e:
            raise StoreUnavailable(f"Redis read failed: {e}") from e
        if raw is None:
            return None
        return Session.from_dict(json.loads(raw))

    async def set(self, session: Session) -> None:
        try:
            await self.client.set(
                self._key(session.id),
                json.dumps(session.to_dict()),
                ex=int(self.ttl.total_seconds()),
            )
        except redis.RedisError as e:
            raise StoreUnavailable(f"Redis write failed: {e}") from e

    async def delete(self, session_id: str) -> bool:
        try:
            removed = await self.client.delete(self._key(session_id))
        except redis.RedisError as e:
            raise StoreUnavailable(f"Redis delete failed: {e}") from e
        return removed > 0

    async def delete_many(self, session_ids: Iterable[str]) -> None:
        keys = [self._key(session_id) for session_id in session_ids]
        if not keys:
            return
        try:
            await self.client.delete(*keys)
        except redis.RedisError as e:
            raise StoreUnavailable(f"Redis delete failed: {e}") from e

    async def purge_stale(self, now: datetime, idle_cutoff: datetime) -> int:
        stale = []
        try:
            async for key in self.client.scan_iter(match=f"{self.prefix}*"):
                raw = await self.client.get(key)
                if raw is None:
                    continue
                if _is_stale(Session.from_dict(json.loads(raw)), now, idle_cutoff):
                    stale.append(key)
            if stale:
                await self.client.delete(*stale)
        except redis.RedisError as e:
            raise StoreUnavailable(f"Redis sweep failed: {e}") from e
        return len(stale)

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except redis.RedisError:
            logger.warning("Redis session cache did not answer ping")
            return False

    async def close(self) -> None:
        await self.client.aclose()

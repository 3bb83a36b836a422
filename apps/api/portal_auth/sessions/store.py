"""
Two-tier session store: a cache in front of the durable table.
"""
from datetime import datetime, timedelta
from typing import Callable, Optional

from portal_auth.core.security import generate_csrf_token, generate_session_token
from portal_auth.sessions.cache import CacheBackend
from portal_auth.sessions.durable import DurableBackend
from portal_auth.sessions.fingerprint import generate_fingerprint, ip_subnet
from portal_auth.sessions.types import RequestContext, Session, utcnow

DEFAULT_SESSION_TTL = timedelta(hours=24)


class SessionStore:
    def __init__(
        self,
        cache: CacheBackend,
        durable: DurableBackend,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.cache = cache
        self.durable = durable
        self.ttl = ttl
        self.clock = clock

    async def create(self, user_id: str, ctx: RequestContext) -> Session:
        """Persist a new session, then make it visible in the cache."""
        now = self.clock()
        session = Session(
            id=generate_session_token(),
            user_id=user_id,
            fingerprint=generate_fingerprint(ctx.user_agent, ctx.ip),
            ip_address=ctx.ip,
            ip_subnet=ip_subnet(ctx.ip),
            user_agent=ctx.user_agent,
            csrf_token=generate_csrf_token(),
            created_at=now,
            last_activity=now,
            expires_at=now + self.ttl,
        )
        await self.durable.insert(session)
        await self.cache.set(session)
        return session

    async def lookup(self, session_id: str) -> Optional[Session]:
        """
        Resolve a session id.

        A cache miss falls through to the durable table and repopulates the
        cache, so a restarted process needs no warm-up.
        """
        session = await self.cache.get(session_id)
        if session is not None:
            return session

        session = await self.durable.get_active(session_id, self.clock())
        if session is not None:
            await self.cache.set(session)
        return session

    async def touch(self, session: Session) -> Session:
        now = self.clock()
        touched = session.touched(now)
        await self.cache.set(touched)
        await self.durable.touch(session.id, touched.last_activity)
        return touched

    async def delete(self, session_id: str) -> bool:
        """Remove a session from both tiers; returns whether either tier held it."""
        cached = await self.cache.delete(session_id)
        stored = await self.durable.delete(session_id)
        return cached or stored

    async def delete_for_user(self, user_id: str, except_id: Optional[str] = None) -> list[str]:
        """Batch-delete a user's durable rows. Cache eviction is left to the caller."""
        return await self.durable.delete_for_user(user_id, except_id)

    async def evict(self, session_id: str) -> None:
        await self.cache.delete(session_id)

    async def evict_many(self, session_ids: list[str]) -> None:
        await self.cache.delete_many(session_ids)

    async def purge_expired(self) -> tuple[int, int]:
        """Sweep both tiers. Returns (durable rows, cache entries) removed."""
        now = self.clock()
        rows = await self.durable.delete_expired(now)
        cached = await self.cache.purge_stale(now, now - self.ttl)
        return rows, cached

    async def list_for_user(self, user_id: str) -> list[Session]:
        return await self.durable.list_for_user(user_id, self.clock())

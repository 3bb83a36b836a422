"""
Session validation and lifecycle.

One ``SessionManager`` is built at application startup and shared through
``app.state``. It owns the revocation list and the periodic cleanup task.

Concurrency notes:
- Cache and revocation-list operations never await, so each one is atomic
  with respect to other request tasks. A validate call as a whole is not:
  two requests presenting the same token can both pass the revocation check
  before either of them revokes it. That race is accepted.
- Revocations are local to the process. Another instance sharing the
  database but holding the session in its own cache keeps honouring it
  until its cache entry goes away.
"""
import asyncio
import logging
from contextlib import suppress
from datetime import datetime, timedelta
from typing import Callable, Optional

from portal_auth.core.errors import StoreUnavailable
from portal_auth.sessions.audit import log_session_event
from portal_auth.sessions.cache import CacheBackend, InMemoryCacheBackend, RedisCacheBackend
from portal_auth.sessions.durable import DurableBackend, SqlAlchemyDurableBackend
from portal_auth.sessions.fingerprint import generate_fingerprint
from portal_auth.sessions.revocation import RevocationList
from portal_auth.sessions.store import DEFAULT_SESSION_TTL, SessionStore
from portal_auth.sessions.types import (
    RequestContext,
    Session,
    ValidationOutcome,
    ValidationResult,
    utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_CLEANUP_INTERVAL_SECONDS = 3600


class SessionManager:
    def __init__(
        self,
        cache: CacheBackend,
        durable: DurableBackend,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.clock = clock
        self.store = SessionStore(cache, durable, ttl=ttl, clock=clock)
        self.revocations = RevocationList(ttl, clock=clock)
        self._cleanup_task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings, session_factory) -> "SessionManager":
        ttl = timedelta(hours=settings.SESSION_TTL_HOURS)
        if settings.SESSION_CACHE_BACKEND == "redis":
            cache = RedisCacheBackend.from_url(settings.REDIS_URL, ttl)
        else:
            cache = InMemoryCacheBackend()
        return cls(cache, SqlAlchemyDurableBackend(session_factory), ttl=ttl)

    @property
    def cache(self) -> CacheBackend:
        return self.store.cache

    @property
    def durable(self) -> DurableBackend:
        return self.store.durable

    async def create(self, user_id: str, ctx: RequestContext) -> Session:
        session = await self.store.create(user_id, ctx)
        log_session_event("session.created", user_id=user_id, session_id=session.id, ip=ctx.ip)
        return session

    async def validate(self, session_id: str, ctx: RequestContext) -> ValidationResult:
        """
        Resolve a presented token to one of the validation outcomes.

        Checks run in a fixed order: revocation list, store lookup and
        expiry, then the fingerprint. A changed user-agent means another
        device or browser and kills the session; a changed IP alone does not.
        """
        if not session_id:
            return self._fail(ValidationOutcome.NOT_FOUND_OR_EXPIRED, None, session_id, ctx)

        if session_id in self.revocations:
            return self._fail(ValidationOutcome.REVOKED, None, session_id, ctx)

        session = await self.store.lookup(session_id)
        if session is None:
            return self._fail(ValidationOutcome.NOT_FOUND_OR_EXPIRED, None, session_id, ctx)
        if session.is_expired(self.clock()):
            await self.store.evict(session_id)
            return self._fail(ValidationOutcome.NOT_FOUND_OR_EXPIRED, session.user_id, session_id, ctx)

        if generate_fingerprint(ctx.user_agent, ctx.ip) != session.fingerprint:
            if ctx.user_agent != session.user_agent:
                await self.revoke(session_id, user_id=session.user_id, reason="fingerprint_mismatch")
                return self._fail(
                    ValidationOutcome.FINGERPRINT_MISMATCH,
                    session.user_id,
                    session_id,
                    ctx,
                    level=logging.WARNING,
                )
            logger.debug(f"Session network changed from subnet {session.ip_subnet} for user {session.user_id}")

        session = await self.store.touch(session)
        return ValidationResult(ValidationOutcome.VALID, session)

    def _fail(
        self,
        outcome: ValidationOutcome,
        user_id: Optional[str],
        session_id: Optional[str],
        ctx: RequestContext,
        level: int = logging.INFO,
    ) -> ValidationResult:
        log_session_event(
            "session.validation_failed",
            user_id=user_id,
            session_id=session_id,
            ip=ctx.ip,
            outcome=outcome.value,
            level=level,
        )
        return ValidationResult(outcome)

    async def revoke(self, session_id: str, user_id: Optional[str] = None, reason: str = "logout") -> None:
        """
        Revoke one session. Revoking an unknown or already revoked id is a no-op.

        Only ids one of the tiers actually held enter the revocation list, so
        arbitrary strings sent to logout cannot grow it.
        """
        try:
            removed = await self.store.delete(session_id)
        except StoreUnavailable:
            # The durable row may have survived; keep the id dead in this process
            self.revocations.add(session_id)
            raise
        if removed:
            self.revocations.add(session_id)
        log_session_event(
            "session.revoked",
            user_id=user_id,
            session_id=session_id,
            outcome="revoked" if removed else "absent",
            reason=reason,
        )

    async def revoke_all(self, user_id: str, except_id: Optional[str] = None) -> int:
        """
        Revoke every session of ``user_id`` except ``except_id``.

        The durable rows go in a single statement. If it fails the error
        propagates and nothing is marked revoked, so the caller can retry
        the whole operation.
        """
        try:
            removed = await self.store.delete_for_user(user_id, except_id)
        except StoreUnavailable:
            log_session_event(
                "session.revoked_all",
                user_id=user_id,
                session_id=except_id,
                outcome="failed",
                level=logging.ERROR,
            )
            raise

        for session_id in removed:
            self.revocations.add(session_id)
        await self.store.evict_many(removed)

        log_session_event(
            "session.revoked_all",
            user_id=user_id,
            session_id=except_id,
            outcome="revoked",
            count=len(removed),
        )
        return len(removed)

    async def rotate(self, old_id: str, ctx: RequestContext) -> Optional[Session]:
        """
        Replace a valid session with a fresh one for the same user.

        Returns None when the old session is not valid; nothing is written in
        that case.
        """
        result = await self.validate(old_id, ctx)
        if not result.is_valid:
            return None

        user_id = result.session.user_id
        session = await self.store.create(user_id, ctx)
        await self.revoke(old_id, user_id=user_id, reason="rotated")
        log_session_event("session.rotated", user_id=user_id, session_id=session.id, ip=ctx.ip)
        return session

    async def list_sessions(self, user_id: str) -> list[Session]:
        return await self.store.list_for_user(user_id)

    async def cleanup_expired(self) -> int:
        """Delete expired durable rows and stale cache/revocation entries."""
        rows, cached = await self.store.purge_expired()
        revoked = self.revocations.purge()
        if rows or cached or revoked:
            log_session_event(
                "session.cleanup",
                outcome="purged",
                rows=rows,
                cached=cached,
                revocations=revoked,
            )
        return rows

    def start_cleanup(self, interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS) -> asyncio.Task:
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop(interval_seconds))
        return self._cleanup_task

    async def _cleanup_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                await self.cleanup_expired()
            except StoreUnavailable:
                logger.error("Session cleanup failed, retrying next interval", exc_info=True)

    async def shutdown(self) -> None:
        """Stop the cleanup timer. The durable store is the source of truth, so nothing is flushed."""
        task, self._cleanup_task = self._cleanup_task, None
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        close = getattr(self.store.cache, "close", None)
        if close is not None:
            await close()

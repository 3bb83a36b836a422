"""
Durable tier of the session store: the ``user_sessions`` table.

Queries use the synchronous SQLAlchemy session like the rest of the API
and are pushed onto the threadpool so the event loop keeps serving other
requests while the database answers.
"""
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Optional, Protocol

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from portal_auth.core.errors import StoreUnavailable
from portal_auth.models.user_session import UserSession
from portal_auth.sessions.types import Session, as_utc


class DurableBackend(Protocol):
    async def insert(self, session: Session) -> None:
        ...

    async def get_active(self, session_id: str, now: datetime) -> Optional[Session]:
        ...

    async def touch(self, session_id: str, at: datetime) -> None:
        ...

    async def delete(self, session_id: str) -> bool:
        ...

    async def delete_for_user(self, user_id: str, except_id: Optional[str] = None) -> list[str]:
        """Delete a user's sessions in one statement; returns the removed ids."""
        ...

    async def delete_expired(self, now: datetime) -> int:
        ...

    async def list_for_user(self, user_id: str, now: datetime) -> list[Session]:
        ...

    async def ping(self) -> bool:
        ...


def _to_session(row: UserSession) -> Session:
    return Session(
        id=row.session_token,
        user_id=row.user_id,
        fingerprint=row.fingerprint,
        ip_address=row.ip_address or "",
        ip_subnet=row.ip_subnet or "",
        user_agent=row.user_agent or "",
        csrf_token=row.csrf_token,
        created_at=as_utc(row.created_at),
        last_activity=as_utc(row.last_activity),
        expires_at=as_utc(row.expires_at),
    )


class SqlAlchemyDurableBackend:
    def __init__(self, session_factory: Callable[[], DBSession]):
        self.session_factory = session_factory

    @contextmanager
    def _scope(self):
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreUnavailable(f"Session store query failed: {e}") from e
        finally:
            db.close()

    def _insert(self, session: Session) -> None:
        with self._scope() as db:
            db.add(UserSession(
                session_token=session.id,
                user_id=session.user_id,
                fingerprint=session.fingerprint,
                ip_address=session.ip_address,
                ip_subnet=session.ip_subnet,
                user_agent=session.user_agent,
                csrf_token=session.csrf_token,
                created_at=session.created_at,
                last_activity=session.last_activity,
                expires_at=session.expires_at,
            ))

    def _get_active(self, session_id: str, now: datetime) -> Optional[Session]:
        with self._scope() as db:
            row = db.execute(
                select(UserSession).where(
                    UserSession.session_token == session_id,
                    UserSession.expires_at > now,
                )
            ).scalar_one_or_none()
            return _to_session(row) if row is not None else None

    def _touch(self, session_id: str, at: datetime) -> None:
        with self._scope() as db:
            # The guard keeps last_activity monotonic when requests race
            db.execute(
                update(UserSession)
                .where(UserSession.session_token == session_id, UserSession.last_activity < at)
                .values(last_activity=at)
            )

    def _delete(self, session_id: str) -> bool:
        with self._scope() as db:
            result = db.execute(delete(UserSession).where(UserSession.session_token == session_id))
            return result.rowcount > 0

    def _delete_for_user(self, user_id: str, except_id: Optional[str]) -> list[str]:
        conditions = [UserSession.user_id == user_id]
        if except_id is not None:
            conditions.append(UserSession.session_token != except_id)
        with self._scope() as db:
            result = db.execute(
                delete(UserSession)
                .where(*conditions)
                .returning(UserSession.session_token)
                .execution_options(synchronize_session=False)
            )
            return list(result.scalars().all())

    def _delete_expired(self, now: datetime) -> int:
        with self._scope() as db:
            result = db.execute(delete(UserSession).where(UserSession.expires_at <= now))
            return result.rowcount

    def _list_for_user(self, user_id: str, now: datetime) -> list[Session]:
        with self._scope() as db:
            rows = db.execute(
                select(UserSession)
                .where(UserSession.user_id == user_id, UserSession.expires_at > now)
                .order_by(UserSession.last_activity.desc())
            ).scalars().all()
            return [_to_session(row) for row in rows]

    async def insert(self, session: Session) -> None:
        await run_in_threadpool(self._insert, session)

    async def get_active(self, session_id: str, now: datetime) -> Optional[Session]:
        return await run_in_threadpool(self._get_active, session_id, now)

    async def touch(self, session_id: str, at: datetime) -> None:
        await run_in_threadpool(self._touch, session_id, at)

    async def delete(self, session_id: str) -> bool:
        return await run_in_threadpool(self._delete, session_id)

    async def delete_for_user(self, user_id: str, except_id: Optional[str] = None) -> list[str]:
        return await run_in_threadpool(self._delete_for_user, user_id, except_id)

    async def delete_expired(self, now: datetime) -> int:
        return await run_in_threadpool(self._delete_expired, now)

    async def list_for_user(self, user_id: str, now: datetime) -> list[Session]:
        return await run_in_threadpool(self._list_for_user, user_id, now)

    async def ping(self) -> bool:
        try:
            await run_in_threadpool(self._ping)
        except StoreUnavailable:
            return False
        return True

    def _ping(self) -> None:
        with self._scope() as db:
            db.execute(select(1))

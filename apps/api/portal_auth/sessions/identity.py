"""
Read contract with the user-management service.
"""
from typing import Callable, Optional, Protocol

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from portal_auth.core.errors import StoreUnavailable
from portal_auth.models.user import User
from portal_auth.sessions.policy import get_role_permissions
from portal_auth.sessions.types import Identity


class IdentityStore(Protocol):
    async def get_active(self, user_id: str) -> Optional[Identity]:
        """Return the identity for ``user_id`` if it exists and is active."""
        ...

    async def get(self, user_id: str) -> Optional[Identity]:
        """Return the identity for ``user_id`` whether or not it is active."""
        ...


def identity_from_user(user: User) -> Identity:
    return Identity(
        id=str(user.id),
        role=user.role,
        permissions=get_role_permissions(user.role),
        is_active=bool(user.is_active),
        email=user.email,
        full_name=user.full_name,
    )


class SqlAlchemyIdentityStore:
    def __init__(self, session_factory: Callable[[], DBSession]):
        self.session_factory = session_factory

    def _get(self, user_id: str, active_only: bool) -> Optional[Identity]:
        query = select(User).where(User.id == user_id)
        if active_only:
            query = query.where(User.is_active.is_(True))

        db = self.session_factory()
        try:
            user = db.execute(query).scalar_one_or_none()
            return identity_from_user(user) if user is not None else None
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Identity lookup failed: {e}") from e
        finally:
            db.close()

    async def get_active(self, user_id: str) -> Optional[Identity]:
        return await run_in_threadpool(self._get, user_id, True)

    async def get(self, user_id: str) -> Optional[Identity]:
        return await run_in_threadpool(self._get, user_id, False)

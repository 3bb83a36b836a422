"""
Request-level authentication and authorization dependencies.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request

from portal_auth.core.config import get_settings
from portal_auth.core.errors import (
    FingerprintMismatch,
    NoTokenProvided,
    NotFoundOrExpired,
    PermissionDenied,
    Revoked,
    UserInactiveOrMissing,
)
from portal_auth.sessions import policy
from portal_auth.sessions.audit import log_session_event
from portal_auth.sessions.identity import IdentityStore
from portal_auth.sessions.manager import SessionManager
from portal_auth.sessions.types import Identity, RequestContext, Session, ValidationOutcome

SESSION_AUTH_SCHEME = "session"

_OUTCOME_ERRORS = {
    ValidationOutcome.REVOKED: Revoked,
    ValidationOutcome.NOT_FOUND_OR_EXPIRED: NotFoundOrExpired,
    ValidationOutcome.FINGERPRINT_MISMATCH: FingerprintMismatch,
}


@dataclass(frozen=True)
class AuthContext:
    identity: Identity
    session: Session


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_identity_store(request: Request) -> IdentityStore:
    return request.app.state.identity_store


def client_ip(request: Request) -> str:
    settings = get_settings()
    if settings.TRUST_FORWARDED_FOR:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


def get_request_context(request: Request) -> RequestContext:
    return RequestContext(
        user_agent=request.headers.get("user-agent", ""),
        ip=client_ip(request),
    )


def extract_session_token(request: Request) -> Optional[str]:
    """Session cookie first, then an ``Authorization: Session <token>`` header."""
    token = request.cookies.get(get_settings().SESSION_COOKIE_NAME)
    if token:
        return token

    header = request.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == SESSION_AUTH_SCHEME and credentials.strip():
        return credentials.strip()
    return None


async def get_current_auth(
    request: Request,
    manager: SessionManager = Depends(get_session_manager),
    identities: IdentityStore = Depends(get_identity_store),
) -> AuthContext:
    """
    Authenticate the request from its session token.

    On success the identity and session are also attached to
    ``request.state`` for handlers that do not take the dependency.
    """
    auth = await authenticate_token(extract_session_token(request), request, manager, identities)
    request.state.identity = auth.identity
    request.state.session = auth.session
    return auth


async def authenticate_token(
    token: Optional[str],
    request: Request,
    manager: SessionManager,
    identities: IdentityStore,
) -> AuthContext:
    """Validate ``token`` for this request and resolve its active identity."""
    ctx = get_request_context(request)
    if not token:
        log_session_event("session.validation_failed", ip=ctx.ip, outcome=NoTokenProvided.reason)
        raise NoTokenProvided()

    result = await manager.validate(token, ctx)
    if not result.is_valid:
        raise _OUTCOME_ERRORS[result.outcome]()

    session = result.session
    identity = await identities.get_active(session.user_id)
    if identity is None:
        # A session must not outlive its account
        await manager.revoke(session.id, user_id=session.user_id, reason="user_inactive")
        raise UserInactiveOrMissing()

    return AuthContext(identity=identity, session=session)


async def get_current_identity(auth: AuthContext = Depends(get_current_auth)) -> Identity:
    return auth.identity


def require_policy(
    roles: tuple = (),
    permissions: tuple = (),
    require_all: bool = False,
    minimum_role: Optional[str] = None,
):
    """Build a dependency that enforces ``policy.evaluate`` on the current identity."""
    async def dependency(auth: AuthContext = Depends(get_current_auth)) -> AuthContext:
        if not policy.evaluate(
            auth.identity,
            roles=roles,
            permissions=permissions,
            require_all=require_all,
            minimum_role=minimum_role,
        ):
            log_session_event(
                "authz.denied",
                user_id=auth.identity.id,
                session_id=auth.session.id,
                outcome="forbidden",
                role=auth.identity.role,
            )
            raise PermissionDenied()
        return auth

    return dependency


def require_roles(*roles: str):
    return require_policy(roles=roles)


def require_permissions(*permissions: str, require_all: bool = False):
    return require_policy(permissions=permissions, require_all=require_all)


def require_minimum_role(role: str):
    return require_policy(minimum_role=role)

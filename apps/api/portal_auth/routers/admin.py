"""
Administrative session controls.
"""
from fastapi import APIRouter, Depends, HTTPException, status

from portal_auth.core.deps import (
    AuthContext,
    get_identity_store,
    get_session_manager,
    require_permissions,
    require_roles,
)
from portal_auth.core.errors import PermissionDenied
from portal_auth.schemas.auth import ManageableRoles, RevokeResult
from portal_auth.sessions.audit import log_session_event
from portal_auth.sessions.identity import IdentityStore
from portal_auth.sessions.manager import SessionManager
from portal_auth.sessions.policy import ADMIN_ROLES, Permissions, can_manage_user, get_manageable_roles

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/roles/manageable", response_model=ManageableRoles)
async def list_manageable_roles(
    auth: AuthContext = Depends(require_roles(*ADMIN_ROLES)),
) -> ManageableRoles:
    """Roles whose users the caller may act on."""
    return ManageableRoles(roles=get_manageable_roles(auth.identity.role))


@router.post("/users/{user_id}/sessions/revoke", response_model=RevokeResult)
async def revoke_user_sessions(
    user_id: str,
    auth: AuthContext = Depends(require_permissions(Permissions.USER_UPDATE)),
    manager: SessionManager = Depends(get_session_manager),
    identities: IdentityStore = Depends(get_identity_store),
) -> RevokeResult:
    """
    Sign a user out everywhere, e.g. after a role change or suspension.

    Admins may only target roles they manage. Revoking your own sessions
    is always allowed and keeps the one making the call.
    """
    if user_id == auth.identity.id:
        revoked = await manager.revoke_all(user_id, except_id=auth.session.id)
        return RevokeResult(revoked=revoked)

    target = await identities.get(user_id)
    if target is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    if not can_manage_user(auth.identity.role, target.role):
        log_session_event(
            "authz.denied",
            user_id=auth.identity.id,
            session_id=auth.session.id,
            outcome="forbidden",
            role=auth.identity.role,
            target_role=target.role,
        )
        raise PermissionDenied()

    revoked = await manager.revoke_all(user_id)
    return RevokeResult(revoked=revoked)

"""
Role and permission policy.

All route-level authorization goes through ``evaluate`` so role lists and
permission checks are not re-implemented per router.
"""
from typing import Iterable, Optional

from portal_auth.sessions.types import Identity


class Roles:
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    OPS_MANAGER = "ops_manager"
    OPS_EXECUTIVE = "ops_executive"
    CUSTOMER_SERVICE = "customer_service"
    QC_EXECUTIVE = "qc_executive"
    ACCOUNTANT = "accountant"
    AGENT = "agent"
    CLIENT = "client"


# Only super admins manage these
ADMIN_ROLES = (Roles.SUPER_ADMIN, Roles.ADMIN)

# Roles an admin may manage
DELEGATED_ROLES = (
    Roles.OPS_MANAGER,
    Roles.OPS_EXECUTIVE,
    Roles.CUSTOMER_SERVICE,
    Roles.QC_EXECUTIVE,
    Roles.ACCOUNTANT,
    Roles.AGENT,
    Roles.CLIENT,
)

# Higher level = more authority
ROLE_HIERARCHY = {
    Roles.SUPER_ADMIN: 100,
    Roles.ADMIN: 90,
    Roles.OPS_MANAGER: 80,
    Roles.OPS_EXECUTIVE: 70,
    Roles.CUSTOMER_SERVICE: 60,
    Roles.QC_EXECUTIVE: 55,
    Roles.ACCOUNTANT: 50,
    Roles.AGENT: 40,
    Roles.CLIENT: 10,
}


class Permissions:
    USER_CREATE = "user:create"
    USER_READ = "user:read"
    USER_UPDATE = "user:update"
    USER_DELETE = "user:delete"
    USER_CREATE_ADMIN = "user:create_admin"
    USER_UPDATE_ADMIN = "user:update_admin"
    USER_DELETE_ADMIN = "user:delete_admin"
    USER_RESET_PASSWORD = "user:reset_password"

    CLIENT_CREATE = "client:create"
    CLIENT_READ = "client:read"
    CLIENT_UPDATE = "client:update"
    CLIENT_DELETE = "client:delete"

    SELF_DASHBOARD = "self:dashboard"
    SELF_DOCUMENTS_VIEW = "self:documents:view"
    SELF_DOCUMENTS_UPLOAD = "self:documents:upload"
    SELF_SERVICES_VIEW = "self:services:view"
    SELF_SERVICES_REQUEST = "self:services:request"
    SELF_COMPLIANCE_VIEW = "self:compliance:view"
    SELF_ACTIONS_COMPLETE = "self:actions:complete"
    SELF_PAYMENTS_VIEW = "self:payments:view"
    SELF_PAYMENTS_MAKE = "self:payments:make"
    SELF_PROFILE_VIEW = "self:profile:view"
    SELF_PROFILE_UPDATE = "self:profile:update"

    SERVICE_CREATE = "service:create"
    SERVICE_READ = "service:read"
    SERVICE_UPDATE = "service:update"
    SERVICE_DELETE = "service:delete"
    SERVICE_ASSIGN = "service:assign"
    SERVICE_COMPLETE = "service:complete"

    OPS_ASSIGN = "ops:assign"
    OPS_QC = "ops:qc"
    OPS_DELIVERY = "ops:delivery"
    OPS_MANAGE_TEAM = "ops:manage_team"

    ANALYTICS_VIEW = "analytics:view"
    ANALYTICS_EXPORT = "analytics:export"

    FINANCIAL_VIEW = "financial:view"
    FINANCIAL_MANAGE = "financial:manage"
    FINANCIAL_CONFIG = "financial:config"

    CONFIG_VIEW = "config:view"
    CONFIG_EDIT = "config:edit"

    WORKFLOW_VIEW = "workflow:view"
    WORKFLOW_EDIT = "workflow:edit"

    AUDIT_VIEW = "audit:view"
    AUDIT_EXPORT = "audit:export"

    INTEGRATIONS_VIEW = "integrations:view"
    INTEGRATIONS_MANAGE = "integrations:manage"

    AGENT_LEADS_READ = "agent:leads:read"
    AGENT_LEADS_CREATE = "agent:leads:create"
    AGENT_LEADS_UPDATE = "agent:leads:update"
    AGENT_COMMISSIONS_READ = "agent:commissions:read"
    AGENT_PERFORMANCE_READ = "agent:performance:read"
    AGENT_LEADERBOARD_READ = "agent:leaderboard:read"
    AGENT_ANNOUNCEMENTS_READ = "agent:announcements:read"


def _group(prefix: str) -> set[str]:
    return {
        value for name, value in vars(Permissions).items()
        if name.isupper() and value.startswith(prefix)
    }


_USER_ADMIN = {
    Permissions.USER_CREATE_ADMIN,
    Permissions.USER_UPDATE_ADMIN,
    Permissions.USER_DELETE_ADMIN,
}

_SUPER_ADMIN_PERMISSIONS = (
    _group("user:") | _group("client:") | _group("service:") | _group("ops:")
    | _group("analytics:") | _group("financial:") | _group("config:")
    | _group("workflow:") | _group("audit:") | _group("integrations:")
)

ROLE_PERMISSIONS: dict[str, frozenset] = {
    Roles.SUPER_ADMIN: frozenset(_SUPER_ADMIN_PERMISSIONS),
    Roles.ADMIN: frozenset(
        (_group("user:") - _USER_ADMIN)
        | _group("client:") | _group("service:") | _group("ops:")
        | _group("analytics:") | _group("workflow:")
        | {
            Permissions.FINANCIAL_VIEW,
            Permissions.FINANCIAL_MANAGE,
            Permissions.CONFIG_VIEW,
            Permissions.AUDIT_VIEW,
            Permissions.INTEGRATIONS_VIEW,
        }
    ),
    Roles.OPS_MANAGER: frozenset(
        _group("client:") | _group("service:") | _group("ops:")
        | {
            Permissions.USER_READ,
            Permissions.ANALYTICS_VIEW,
            Permissions.FINANCIAL_VIEW,
            Permissions.WORKFLOW_VIEW,
        }
    ),
    Roles.OPS_EXECUTIVE: frozenset({
        Permissions.CLIENT_READ,
        Permissions.CLIENT_UPDATE,
        Permissions.SERVICE_READ,
        Permissions.SERVICE_ASSIGN,
        Permissions.SERVICE_COMPLETE,
        Permissions.OPS_ASSIGN,
        Permissions.OPS_QC,
        Permissions.ANALYTICS_VIEW,
    }),
    Roles.CUSTOMER_SERVICE: frozenset({
        Permissions.CLIENT_READ,
        Permissions.CLIENT_UPDATE,
        Permissions.SERVICE_READ,
        Permissions.SERVICE_CREATE,
        Permissions.ANALYTICS_VIEW,
    }),
    Roles.QC_EXECUTIVE: frozenset({
        Permissions.CLIENT_READ,
        Permissions.SERVICE_READ,
        Permissions.OPS_QC,
        Permissions.OPS_DELIVERY,
        Permissions.ANALYTICS_VIEW,
    }),
    Roles.ACCOUNTANT: frozenset({
        Permissions.CLIENT_READ,
        Permissions.SERVICE_READ,
        Permissions.FINANCIAL_VIEW,
        Permissions.FINANCIAL_MANAGE,
        Permissions.ANALYTICS_VIEW,
        Permissions.ANALYTICS_EXPORT,
    }),
    # Agent permissions are scoped to the agent's own leads and commissions
    Roles.AGENT: frozenset(
        _group("agent:") | {Permissions.CLIENT_READ, Permissions.SERVICE_READ}
    ),
    # Clients only ever see their own data
    Roles.CLIENT: frozenset(_group("self:") | {Permissions.SERVICE_READ}),
}


def get_role_permissions(role: str) -> frozenset:
    return ROLE_PERMISSIONS.get(role, frozenset())


def has_permission(role: str, permission: str) -> bool:
    return permission in get_role_permissions(role)


def get_role_level(role: str) -> int:
    return ROLE_HIERARCHY.get(role, 0)


def is_admin_role(role: str) -> bool:
    return role in ADMIN_ROLES


def can_manage_user(manager_role: str, target_role: str) -> bool:
    """Super admins manage everyone, admins only delegated roles, others nobody."""
    if manager_role == Roles.SUPER_ADMIN:
        return True
    if manager_role == Roles.ADMIN:
        return target_role in DELEGATED_ROLES
    return False


def get_manageable_roles(manager_role: str) -> list[str]:
    if manager_role == Roles.SUPER_ADMIN:
        return [*ADMIN_ROLES, *DELEGATED_ROLES]
    if manager_role == Roles.ADMIN:
        return list(DELEGATED_ROLES)
    return []


def evaluate(
    identity: Optional[Identity],
    roles: Iterable[str] = (),
    permissions: Iterable[str] = (),
    require_all: bool = False,
    minimum_role: Optional[str] = None,
) -> bool:
    """
    Decide whether ``identity`` may proceed.

    Every given requirement must hold: the role must be one of ``roles``,
    the identity must hold any of ``permissions`` (all of them when
    ``require_all``), and its role level must reach ``minimum_role``.
    With no requirements any active identity is allowed.
    """
    if identity is None or not identity.is_active:
        return False

    roles = set(roles)
    if roles and identity.role not in roles:
        return False

    permissions = set(permissions)
    if permissions:
        held = identity.permissions & permissions
        if require_all and held != permissions:
            return False
        if not held:
            return False

    if minimum_role is not None and get_role_level(identity.role) < get_role_level(minimum_role):
        return False

    return True

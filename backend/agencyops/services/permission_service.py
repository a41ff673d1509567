"""
Role-based permission matrix for agency members.

Permissions are static: each ``resource:action`` maps to the roles allowed to
perform it. Ownership-sensitive resources carry ``_own``/``_all`` variants and
are resolved with the ``can_*_resource`` helpers.
"""
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Set, Any

from agencyops.models import MemberRole

OWNER = MemberRole.OWNER
ADMIN = MemberRole.ADMIN
MEMBER = MemberRole.MEMBER

ALL_ROLES = [OWNER, ADMIN, MEMBER]
MANAGERS = [OWNER, ADMIN]
OWNER_ONLY = [OWNER]

ROLE_HIERARCHY = {
    OWNER: 100,
    ADMIN: 50,
    MEMBER: 10,
}


def _owned_resource(resource: str, send: bool = False) -> Dict[str, List[str]]:
    perms = {
        f"{resource}:create": ALL_ROLES,
        f"{resource}:view_own": ALL_ROLES,
        f"{resource}:view_all": MANAGERS,
        f"{resource}:edit_own": ALL_ROLES,
        f"{resource}:edit_all": MANAGERS,
        f"{resource}:delete_own": ALL_ROLES,
        f"{resource}:delete_all": MANAGERS,
    }
    if send:
        perms[f"{resource}:send"] = ALL_ROLES
    return perms


PERMISSIONS: Dict[str, List[str]] = {
    **_owned_resource("consultation"),
    **_owned_resource("proposal", send=True),
    **_owned_resource("contract", send=True),
    **_owned_resource("quotation", send=True),

    # Invoices are agency-wide financial records
    "invoice:create": ALL_ROLES,
    "invoice:view_all": ALL_ROLES,
    "invoice:edit_own": ALL_ROLES,
    "invoice:edit_all": MANAGERS,
    "invoice:delete_own": ALL_ROLES,
    "invoice:delete_all": MANAGERS,
    "invoice:send": ALL_ROLES,
    "invoice:record_payment": MANAGERS,
    "invoice:cancel": MANAGERS,
    "invoice:refund": OWNER_ONLY,

    # Team
    "member:view": ALL_ROLES,
    "member:invite": MANAGERS,
    "member:remove": MANAGERS,
    "member:change_role": OWNER_ONLY,

    # Settings
    "settings:view": MANAGERS,
    "settings:edit": MANAGERS,
    "branding:view": ALL_ROLES,
    "branding:edit": MANAGERS,
    "form_options:view": ALL_ROLES,
    "form_options:edit": MANAGERS,
    "profile:view": MANAGERS,
    "profile:edit": MANAGERS,

    # Billing
    "billing:view": OWNER_ONLY,
    "billing:manage": OWNER_ONLY,
    "subscription:view": MANAGERS,
    "subscription:manage": OWNER_ONLY,

    # Templates
    "template:view": ALL_ROLES,
    "template:create": MANAGERS,
    "template:edit": MANAGERS,
    "template:delete": OWNER_ONLY,
    "contract_template:view": MANAGERS,
    "contract_template:create": MANAGERS,
    "contract_template:edit": MANAGERS,
    "contract_template:delete": OWNER_ONLY,

    # Products
    "packages:view": ALL_ROLES,
    "packages:create": MANAGERS,
    "packages:edit": MANAGERS,
    "packages:delete": OWNER_ONLY,
    "addons:view": ALL_ROLES,
    "addons:create": MANAGERS,
    "addons:edit": MANAGERS,
    "addons:delete": OWNER_ONLY,

    # Email
    "email:send": ALL_ROLES,
    "email:view_logs": MANAGERS,

    # Data
    "data:export": OWNER_ONLY,
    "agency:delete": OWNER_ONLY,
    "analytics:view": MANAGERS,
    "analytics:export": MANAGERS,
}


@dataclass
class AgencyContext:
    """Resolved tenant for the current request"""
    agency_id: int
    user_id: int
    role: str
    agency: Any = None
    user: Any = None
    is_impersonating: bool = False
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    permissions: Set[str] = field(default_factory=set)

    def __post_init__(self):
        if not self.permissions:
            self.permissions = get_permissions_for_role(self.role)

    def can(self, permission: str) -> bool:
        return permission in self.permissions


def has_permission(role: str, permission: str) -> bool:
    return role in PERMISSIONS.get(permission, [])


def has_all_permissions(role: str, permissions: List[str]) -> bool:
    return all(has_permission(role, p) for p in permissions)


def has_any_permission(role: str, permissions: List[str]) -> bool:
    return any(has_permission(role, p) for p in permissions)


def get_permissions_for_role(role: str) -> Set[str]:
    return {perm for perm, roles in PERMISSIONS.items() if role in roles}


def role_at_least(role: str, minimum: str) -> bool:
    return ROLE_HIERARCHY.get(role, 0) >= ROLE_HIERARCHY.get(minimum, 0)


def can_access_resource(role: str, resource: str, owner_id: Optional[int], user_id: int) -> bool:
    """View access: agency-wide view, or ownership plus view_own."""
    if has_permission(role, f"{resource}:view_all"):
        return True
    return owner_id == user_id and has_permission(role, f"{resource}:view_own")


def can_modify_resource(role: str, resource: str, owner_id: Optional[int], user_id: int) -> bool:
    if has_permission(role, f"{resource}:edit_all"):
        return True
    return owner_id == user_id and has_permission(role, f"{resource}:edit_own")


def can_delete_resource(role: str, resource: str, owner_id: Optional[int], user_id: int) -> bool:
    if has_permission(role, f"{resource}:delete_all"):
        return True
    return owner_id == user_id and has_permission(role, f"{resource}:delete_own")


def require_permission(ctx: AgencyContext, permission: str):
    if not has_permission(ctx.role, permission):
        raise PermissionError(f"Missing required permission: {permission}")


def require_role(ctx: AgencyContext, roles: List[str], message: str = "Insufficient permissions"):
    if ctx.role not in roles:
        raise PermissionError(message)


def require_access(ctx: AgencyContext, resource: str, owner_id: Optional[int]):
    if not can_access_resource(ctx.role, resource, owner_id, ctx.user_id):
        raise PermissionError(f"You do not have access to this {resource}")


def require_modify(ctx: AgencyContext, resource: str, owner_id: Optional[int]):
    if not can_modify_resource(ctx.role, resource, owner_id, ctx.user_id):
        raise PermissionError(f"You do not have permission to edit this {resource}")


def require_delete(ctx: AgencyContext, resource: str, owner_id: Optional[int]):
    if not can_delete_resource(ctx.role, resource, owner_id, ctx.user_id):
        raise PermissionError(f"You do not have permission to delete this {resource}")

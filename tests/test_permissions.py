import pytest

from agencyops.models import MemberRole
from agencyops.services.permission_service import (
    AgencyContext, can_access_resource, can_delete_resource, can_modify_resource, get_permissions_for_role,
    has_all_permissions, has_any_permission, has_permission, require_access, require_permission, role_at_least
)


def test_owner_only_permissions():
    assert has_permission(MemberRole.OWNER, "invoice:refund")
    assert not has_permission(MemberRole.ADMIN, "invoice:refund")
    assert not has_permission(MemberRole.MEMBER, "data:export")


def test_manager_permissions():
    for role in (MemberRole.OWNER, MemberRole.ADMIN):
        assert has_all_permissions(role, ["invoice:record_payment", "invoice:cancel", "proposal:view_all"])
    assert not has_permission(MemberRole.MEMBER, "invoice:record_payment")
    assert has_any_permission(MemberRole.MEMBER, ["invoice:record_payment", "invoice:create"])
    assert not has_any_permission(MemberRole.MEMBER, ["invoice:refund", "data:export"])


def test_unknown_permission_is_denied():
    assert not has_permission(MemberRole.OWNER, "spaceship:launch")


def test_role_hierarchy():
    assert role_at_least(MemberRole.OWNER, MemberRole.ADMIN)
    assert role_at_least(MemberRole.ADMIN, MemberRole.ADMIN)
    assert not role_at_least(MemberRole.MEMBER, MemberRole.ADMIN)


def test_member_sees_only_own_resources():
    assert can_access_resource(MemberRole.MEMBER, "proposal", owner_id=7, user_id=7)
    assert not can_access_resource(MemberRole.MEMBER, "proposal", owner_id=8, user_id=7)
    assert can_access_resource(MemberRole.ADMIN, "proposal", owner_id=8, user_id=7)


def test_member_modifies_and_deletes_only_own_resources():
    assert can_modify_resource(MemberRole.MEMBER, "contract", owner_id=3, user_id=3)
    assert not can_modify_resource(MemberRole.MEMBER, "contract", owner_id=4, user_id=3)
    assert not can_delete_resource(MemberRole.MEMBER, "quotation", owner_id=None, user_id=3)
    assert can_delete_resource(MemberRole.OWNER, "quotation", owner_id=None, user_id=3)


def test_context_permissions_follow_role():
    ctx = AgencyContext(agency_id=1, user_id=1, role=MemberRole.ADMIN)
    assert ctx.can("member:invite")
    assert not ctx.can("member:change_role")
    assert ctx.permissions == get_permissions_for_role(MemberRole.ADMIN)


def test_require_helpers_raise_permission_error():
    ctx = AgencyContext(agency_id=1, user_id=5, role=MemberRole.MEMBER)
    with pytest.raises(PermissionError):
        require_permission(ctx, "invoice:refund")
    with pytest.raises(PermissionError):
        require_access(ctx, "consultation", owner_id=6)
    require_access(ctx, "consultation", owner_id=5)

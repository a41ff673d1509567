from datetime import timedelta

import pytest

from agencyops.core.security import IMPERSONATION_COOKIE
from agencyops.core.utils import utcnow
from agencyops.models import AgencyStatus, BetaInviteStatus, MemberRole
from agencyops.services.beta_invite_service import BetaInviteService
from agencyops.services.super_admin_service import SuperAdminService

from conftest import headers_for, make_user


@pytest.fixture
def admin_headers(super_admin):
    return headers_for(super_admin)


def test_regular_users_are_refused(client, owner_headers):
    for path in ("/api/v1/super-admin/stats", "/api/v1/super-admin/agencies", "/api/v1/super-admin/users"):
        assert client.get(path, headers=owner_headers).status_code == 403


def test_stats_and_agency_list(client, agency, member_user, admin_headers):
    assert client.get("/api/v1/super-admin/stats", headers=admin_headers).status_code == 200

    body = client.get("/api/v1/super-admin/agencies", params={"search": "acme"}, headers=admin_headers).json()
    assert body["total"] == 1
    assert [row["member_count"] for row in body["agencies"]] == [2]


def test_impersonation_acts_as_owner(client, agency, admin_headers):
    response = client.post(f"/api/v1/super-admin/agencies/{agency.id}/impersonate", headers=admin_headers)
    assert response.status_code == 200
    assert response.cookies.get(IMPERSONATION_COOKIE) == str(agency.id)

    current = client.get("/api/v1/agencies/current", headers=admin_headers).json()
    assert current["agency"]["id"] == agency.id
    assert current["role"] == MemberRole.OWNER
    assert current["is_impersonating"] is True

    client.post("/api/v1/super-admin/stop-impersonation", headers=admin_headers)
    assert client.get("/api/v1/agencies/current", headers=admin_headers).status_code == 403


def test_impersonation_reaches_suspended_agency(client, db, agency, admin_headers):
    agency.status = AgencyStatus.SUSPENDED
    db.commit()
    client.post(f"/api/v1/super-admin/agencies/{agency.id}/impersonate", headers=admin_headers)
    assert client.get("/api/v1/invoices", headers=admin_headers).status_code == 200


def test_status_update_validation(client, agency, admin_headers):
    bad = client.patch(f"/api/v1/super-admin/agencies/{agency.id}/status", json={"status": "frozen"},
                       headers=admin_headers)
    assert bad.status_code == 400
    ok = client.patch(f"/api/v1/super-admin/agencies/{agency.id}/status", json={"status": "suspended"},
                      headers=admin_headers)
    assert ok.json()["status"] == AgencyStatus.SUSPENDED


class TestUserManagement:
    def test_cannot_act_on_self(self, db, super_admin):
        service = SuperAdminService(db)
        with pytest.raises(ValueError):
            service.suspend_user(super_admin.id, super_admin.id)
        with pytest.raises(ValueError):
            service.update_user_access(super_admin.id, super_admin.id, revoke_super_admin=True)
        with pytest.raises(ValueError):
            service.delete_user(super_admin.id, super_admin.id)

    def test_suspension_blocks_existing_tokens(self, client, member_user, member_headers, super_admin, admin_headers):
        response = client.post(f"/api/v1/super-admin/users/{member_user.id}/suspend", json={"reason": "Abuse"},
                               headers=admin_headers)
        assert response.status_code == 200
        assert client.get("/api/v1/auth/me", headers=member_headers).status_code == 403

        client.post(f"/api/v1/super-admin/users/{member_user.id}/unsuspend", headers=admin_headers)
        assert client.get("/api/v1/auth/me", headers=member_headers).status_code == 200

    def test_sole_owner_cannot_be_deleted(self, db, owner, agency, super_admin):
        with pytest.raises(ValueError, match="only owner"):
            SuperAdminService(db).delete_user(super_admin.id, owner.id)

    def test_grant_super_admin(self, db, super_admin):
        user = make_user(db, "ops@example.com")
        SuperAdminService(db).update_user_access(super_admin.id, user.id, grant_super_admin=True)
        assert user.is_super_admin


class TestFreemium:
    def test_grant_and_revoke(self, db, agency, super_admin):
        service = SuperAdminService(db)
        with pytest.raises(ValueError):
            service.grant_agency_freemium(agency.id, "because", super_admin.email)

        service.grant_agency_freemium(agency.id, "beta_tester", super_admin.email)
        assert agency.is_freemium is True
        assert agency.freemium_granted_by == "root@example.com"

        service.revoke_agency_freemium(agency.id)
        assert agency.is_freemium is False
        with pytest.raises(ValueError):
            service.revoke_agency_freemium(agency.id)


class TestBetaInvites:
    def test_duplicate_pending_invite(self, db, super_admin):
        service = BetaInviteService(db)
        service.create_beta_invite("Friend@Example.com", super_admin.id)
        with pytest.raises(ValueError):
            service.create_beta_invite("friend@example.com", super_admin.id)

    def test_expired_invite_is_persisted(self, db, super_admin):
        invite = BetaInviteService(db).create_beta_invite("late@example.com", super_admin.id)
        invite.expires_at = utcnow() - timedelta(days=1)
        db.flush()

        result = BetaInviteService(db).validate_invite_token(invite.token)
        assert result == {"valid": False, "reason": "This invite has expired"}
        assert invite.status == BetaInviteStatus.EXPIRED

    def test_signup_with_invite_marks_it_used(self, client, db, admin_headers):
        created = client.post("/api/v1/super-admin/beta-invites", json={"email": "beta@example.com"},
                              headers=admin_headers)
        assert created.status_code == 201
        token = created.json()["token"]

        assert client.get(f"/api/v1/public/invites/{token}/validate").json()["valid"] is True

        signup = client.post("/api/v1/auth/signup", json={
            "email": "beta@example.com", "password": "a-long-password",
            "agency_name": "Beta Studio", "invite_token": token,
        })
        assert signup.status_code == 201
        assert client.get(f"/api/v1/public/invites/{token}").json()["status"] == BetaInviteStatus.USED

        reuse = client.post("/api/v1/auth/signup", json={
            "email": "second@example.com", "password": "a-long-password", "invite_token": token,
        })
        assert reuse.status_code == 400

    def test_revoked_invite_cannot_be_resent(self, db, super_admin):
        service = BetaInviteService(db)
        invite = service.create_beta_invite("gone@example.com", super_admin.id)
        service.revoke_beta_invite(invite.id)
        with pytest.raises(ValueError):
            service.resend_beta_invite(invite.id)

from agencyops.models import AgencyStatus, MemberRole

from conftest import headers_for, make_user


class TestAuth:
    def test_signup_with_agency(self, client):
        response = client.post("/api/v1/auth/signup", json={
            "email": "New.Owner@Example.com",
            "password": "a-long-password",
            "agency_name": "Fresh Studio",
        })
        assert response.status_code == 201
        body = response.json()
        assert body["user"]["email"] == "new.owner@example.com"
        assert body["agency_id"] is not None

        me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
        assert me.status_code == 200
        assert me.json()["current_agency_id"] == body["agency_id"]
        assert me.json()["role"] == MemberRole.OWNER

    def test_duplicate_email(self, client, owner):
        response = client.post("/api/v1/auth/signup", json={"email": "owner@example.com", "password": "a-long-password"})
        assert response.status_code == 400

    def test_short_password(self, client):
        response = client.post("/api/v1/auth/signup", json={"email": "x@example.com", "password": "short"})
        assert response.status_code == 422

    def test_login(self, client, db, owner):
        db.commit()
        ok = client.post("/api/v1/auth/login", json={"email": "owner@example.com", "password": "password123"})
        assert ok.status_code == 200
        assert ok.json()["token_type"] == "bearer"

        bad = client.post("/api/v1/auth/login", json={"email": "owner@example.com", "password": "wrong"})
        assert bad.status_code == 401

    def test_suspended_user_cannot_log_in(self, client, db, owner):
        owner.suspended = True
        db.commit()
        response = client.post("/api/v1/auth/login", json={"email": "owner@example.com", "password": "password123"})
        assert response.status_code == 403

    def test_me_without_agency(self, client, db):
        user = make_user(db, "loner@example.com")
        db.commit()
        body = client.get("/api/v1/auth/me", headers=headers_for(user)).json()
        assert body["agencies"] == []
        assert body["current_agency_id"] is None

    def test_requires_token(self, client):
        assert client.get("/api/v1/auth/me").status_code == 401
        assert client.get("/api/v1/auth/me", headers={"Authorization": "Bearer junk"}).status_code == 401


class TestAgencyContext:
    def test_current_agency_permissions(self, client, member_headers):
        body = client.get("/api/v1/agencies/current", headers=member_headers).json()
        assert body["role"] == MemberRole.MEMBER
        assert "invoice:create" in body["permissions"]
        assert "invoice:refund" not in body["permissions"]

    def test_header_selects_agency(self, client, db, owner, owner_headers):
        client.post("/api/v1/agencies", json={"name": "Second Studio", "slug": "second"}, headers=owner_headers)
        agencies = client.get("/api/v1/agencies", headers=owner_headers).json()
        second = next(a for a in agencies if a["slug"] == "second")

        body = client.get("/api/v1/agencies/current", headers={**owner_headers, "X-Agency-Id": str(second["id"])}).json()
        assert body["agency"]["slug"] == "second"

    def test_foreign_agency_header_falls_back(self, client, db, agency, member_headers):
        outsider = make_user(db, "outsider@example.com")
        other = client.post("/api/v1/agencies", json={"name": "Other Studio", "slug": "other"},
                            headers=headers_for(outsider)).json()

        body = client.get("/api/v1/agencies/current",
                          headers={**member_headers, "X-Agency-Id": str(other["id"])}).json()
        assert body["agency"]["id"] == agency.id

    def test_switch_requires_membership(self, client, db, member_headers):
        outsider = make_user(db, "outsider@example.com")
        other = client.post("/api/v1/agencies", json={"name": "Other Studio"}, headers=headers_for(outsider)).json()
        response = client.post("/api/v1/agencies/switch", json={"agency_id": other["id"]}, headers=member_headers)
        assert response.status_code == 403

    def test_suspended_agency_is_blocked(self, client, db, agency, owner_headers):
        agency.status = AgencyStatus.SUSPENDED
        db.commit()
        response = client.get("/api/v1/invoices", headers=owner_headers)
        assert response.status_code == 403

    def test_slug_check(self, client, agency, owner_headers):
        assert client.get("/api/v1/agencies/check-slug", params={"slug": "acme"},
                          headers=owner_headers).json() == {"valid": True, "available": False}
        assert client.get("/api/v1/agencies/check-slug", params={"slug": "Bad Slug!"},
                          headers=owner_headers).json()["valid"] is False


class TestMembers:
    def test_invite_existing_user(self, client, db, owner_headers):
        make_user(db, "designer@example.com")
        db.commit()
        response = client.post("/api/v1/agencies/current/members",
                               json={"email": "designer@example.com", "role": "admin"}, headers=owner_headers)
        assert response.status_code == 201

        again = client.post("/api/v1/agencies/current/members",
                            json={"email": "designer@example.com"}, headers=owner_headers)
        assert again.status_code == 400

    def test_member_cannot_invite(self, client, db, member_headers):
        make_user(db, "designer@example.com")
        db.commit()
        response = client.post("/api/v1/agencies/current/members",
                               json={"email": "designer@example.com"}, headers=member_headers)
        assert response.status_code == 403

    def test_members_listed(self, client, owner_headers, admin_user, member_user):
        members = client.get("/api/v1/agencies/current/members", headers=owner_headers).json()
        assert len(members) == 3

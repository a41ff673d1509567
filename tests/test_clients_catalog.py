import pytest

from agencyops.models import Client, ClientStatus, ConsultationStatus
from agencyops.services.client_service import ClientService
from agencyops.services.consultation_service import ConsultationService
from agencyops.services.product_service import AddonService, PackageService


class TestClients:
    def test_create_normalises_email(self, db, owner_ctx):
        client = ClientService(db).create_client(owner_ctx, {
            "business_name": "Harbour Cafe", "email": " Sam@HarbourCafe.test ",
        })
        assert client.email == "sam@harbourcafe.test"
        assert client.status == ClientStatus.ACTIVE

        with pytest.raises(ValueError):
            ClientService(db).create_client(owner_ctx, {"business_name": "Dup", "email": "SAM@harbourcafe.test"})

    def test_get_or_create_reuses_existing(self, db, agency):
        service = ClientService(db)
        first, created = service.get_or_create_client(agency.id, "Harbour Cafe", "sam@harbourcafe.test")
        again, created_again = service.get_or_create_client(agency.id, "Other", "Sam@HarbourCafe.test")
        assert created is True
        assert created_again is False
        assert again.id == first.id

    def test_archive_restore_and_delete_roles(self, db, owner_ctx, member_ctx):
        service = ClientService(db)
        client = service.create_client(owner_ctx, {"business_name": "Harbour Cafe", "email": "sam@harbourcafe.test"})

        with pytest.raises(PermissionError):
            service.archive_client(member_ctx, client.id)
        assert service.archive_client(owner_ctx, client.id).status == ClientStatus.ARCHIVED
        assert service.get_clients(owner_ctx.agency_id) == []
        assert len(service.get_clients(owner_ctx.agency_id, status="all")) == 1

        service.restore_client(owner_ctx, client.id)
        assert service.get_client_count(owner_ctx.agency_id) == {"total": 1, "active": 1, "archived": 0}

        with pytest.raises(PermissionError):
            service.delete_client(member_ctx, client.id)
        assert service.delete_client(owner_ctx, client.id) is True

    def test_api_search_and_documents(self, client, owner_headers):
        created = client.post("/api/v1/clients", json={"business_name": "Harbour Cafe",
                                                       "email": "sam@harbourcafe.test"}, headers=owner_headers)
        assert created.status_code == 201

        found = client.get("/api/v1/clients/search", params={"q": "harbour"}, headers=owner_headers).json()
        assert [c["business_name"] for c in found] == ["Harbour Cafe"]

        documents = client.get(f"/api/v1/clients/{created.json()['id']}/documents", headers=owner_headers)
        assert documents.status_code == 200

        dup = client.post("/api/v1/clients", json={"business_name": "Again", "email": "sam@harbourcafe.test"},
                          headers=owner_headers)
        assert dup.status_code == 400


class TestConsultations:
    def test_steps_link_client_and_complete(self, db, member_ctx):
        service = ConsultationService(db)
        consultation = service.create_consultation(member_ctx, {"business_name": "Harbour Cafe"})
        assert consultation.status == ConsultationStatus.DRAFT
        assert consultation.client_id is None
        assert service.get_existing_draft(member_ctx).id == consultation.id

        service.update_contact_business(member_ctx, consultation.id, {"email": "sam@harbourcafe.test"})
        assert consultation.client_id is not None
        assert db.query(Client).one().business_name == "Harbour Cafe"

        service.update_situation(member_ctx, consultation.id, {"primary_challenges": ["No online bookings"]})
        assert consultation.primary_challenges == ["No online bookings"]

        service.complete_consultation(member_ctx, consultation.id)
        assert [c.id for c in service.get_completed_consultations(member_ctx)] == [consultation.id]

    def test_members_only_see_their_own(self, db, owner_ctx, member_ctx):
        service = ConsultationService(db)
        service.create_consultation(owner_ctx, {"business_name": "Owner lead"})
        mine = service.create_consultation(member_ctx, {"business_name": "Member lead"})

        assert [c.id for c in service.get_consultations(member_ctx)] == [mine.id]
        assert len(service.get_consultations(owner_ctx)) == 2

    def test_member_cannot_edit_others(self, db, owner_ctx, member_ctx):
        consultation = ConsultationService(db).create_consultation(owner_ctx, {"business_name": "Owner lead"})
        with pytest.raises(PermissionError):
            ConsultationService(db).update_goals_budget(member_ctx, consultation.id, {"budget_range": "5k-10k"})
        with pytest.raises(PermissionError):
            ConsultationService(db).delete_consultation(member_ctx, consultation.id)

    def test_api_flow(self, client, member_headers):
        created = client.post("/api/v1/consultations", json={"business_name": "Harbour Cafe"},
                              headers=member_headers)
        assert created.status_code == 201
        consultation_id = created.json()["id"]

        step = client.patch(f"/api/v1/consultations/{consultation_id}/goals-budget",
                            json={"primary_goals": ["More leads"], "budget_range": "5k-10k"}, headers=member_headers)
        assert step.json()["primary_goals"] == ["More leads"]

        done = client.post(f"/api/v1/consultations/{consultation_id}/complete", headers=member_headers)
        assert done.json()["status"] == ConsultationStatus.COMPLETED
        assert client.get("/api/v1/consultations/999", headers=member_headers).status_code == 404


class TestCatalog:
    def test_package_slug_and_validation(self, db, owner_ctx, member_ctx):
        service = PackageService(db)
        package = service.create(owner_ctx, {"name": "Growth Plan", "pricing_model": "subscription",
                                             "monthly_price": 199})
        assert package.slug == "growth-plan"

        with pytest.raises(ValueError):
            service.create(owner_ctx, {"name": "Growth Plan", "pricing_model": "subscription"})
        with pytest.raises(ValueError):
            service.create(owner_ctx, {"name": "Odd", "pricing_model": "barter"})
        with pytest.raises(PermissionError):
            service.create(member_ctx, {"name": "Mine", "pricing_model": "lump_sum"})

    def test_duplicate_and_reorder(self, db, owner_ctx):
        service = PackageService(db)
        first = service.create(owner_ctx, {"name": "Starter", "pricing_model": "lump_sum", "is_featured": True})
        second = service.create(owner_ctx, {"name": "Growth", "pricing_model": "subscription"})

        copy = service.duplicate(owner_ctx, first.id)
        assert copy.slug == "starter-copy"
        assert copy.name == "Starter (Copy)"
        assert copy.is_active is False
        assert copy.is_featured is False
        assert service.duplicate(owner_ctx, first.id).slug == "starter-copy-1"

        ordered = service.reorder(owner_ctx, [second.id, first.id])
        assert [p.id for p in ordered[:2]] == [second.id, first.id]

    def test_addons_for_package(self, db, owner_ctx):
        service = AddonService(db)
        service.create(owner_ctx, {"name": "Logo design", "price": 300, "pricing_type": "one_time"})
        service.create(owner_ctx, {"name": "SEO", "price": 150, "pricing_type": "monthly",
                                   "available_packages": ["growth"]})
        hidden = service.create(owner_ctx, {"name": "Old", "price": 10, "pricing_type": "one_time"})
        hidden.is_active = False
        db.flush()

        assert [a.name for a in service.get_addons_for_package(owner_ctx.agency_id, "starter")] == ["Logo design"]
        assert len(service.get_addons_for_package(owner_ctx.agency_id, "growth")) == 2

        with pytest.raises(ValueError):
            service.create(owner_ctx, {"name": "Bad", "price": 1, "pricing_type": "yearly"})

import pytest

from agencyops.models import FieldOptionSet, FormSubmission, SubmissionStatus
from agencyops.services.form_service import FormService, seed_field_option_sets

SCHEMA = {
    "steps": [
        {"id": "contact", "title": "Contact", "fields": [
            {"id": "business_name", "type": "text", "label": "Business name", "required": True},
            {"id": "industry", "type": "select", "label": "Industry", "optionSetSlug": "industries"},
        ]},
    ],
}


@pytest.fixture
def form(db, owner_ctx):
    form = FormService(db).create_form(owner_ctx, {
        "name": "Website enquiry", "slug": "website-enquiry", "form_type": "intake", "schema": SCHEMA,
    })
    db.commit()
    return form


def test_seed_is_idempotent(db):
    seed_field_option_sets(db)
    seed_field_option_sets(db)
    slugs = [s.slug for s in db.query(FieldOptionSet).all()]
    assert len(slugs) == len(set(slugs)) == 7
    assert "yes-no-maybe" in slugs


def test_agency_option_set_shadows_system_set(db, agency):
    seed_field_option_sets(db)
    db.add(FieldOptionSet(agency_id=agency.id, name="Industries", slug="industries",
                          options=[{"value": "cafes", "label": "Cafes"}]))
    db.flush()
    found = FormService(db).get_field_option_set(agency.id, "industries")
    assert found.agency_id == agency.id
    assert FormService(db).get_field_option_set(agency.id, "budget-ranges").is_system is True


def test_create_rules(db, owner_ctx, member_ctx, form):
    service = FormService(db)
    with pytest.raises(ValueError):
        service.create_form(owner_ctx, {"name": "Dup", "slug": "website-enquiry", "form_type": "intake",
                                        "schema": SCHEMA})
    with pytest.raises(ValueError):
        service.create_form(owner_ctx, {"name": "Odd", "slug": "odd", "form_type": "survey", "schema": SCHEMA})
    with pytest.raises(PermissionError):
        service.create_form(member_ctx, {"name": "Mine", "slug": "mine", "form_type": "intake", "schema": SCHEMA})


def test_single_default_per_type(db, owner_ctx, form):
    service = FormService(db)
    first = service.create_form(owner_ctx, {"name": "A", "slug": "a", "form_type": "feedback", "schema": SCHEMA,
                                            "is_default": True})
    second = service.create_form(owner_ctx, {"name": "B", "slug": "b", "form_type": "feedback", "schema": SCHEMA,
                                             "is_default": True})
    db.refresh(first)
    assert first.is_default is False
    assert second.is_default is True


class TestPublicForms:
    def test_view_and_submit(self, client, db, form):
        view = client.get("/api/v1/public/forms/acme/website-enquiry")
        assert view.status_code == 200
        assert view.json()["form"]["schema"] == SCHEMA

        response = client.post("/api/v1/public/forms/acme/website-enquiry/submit",
                               json={"data": {"business_name": "Harbour Cafe"}},
                               headers={"User-Agent": "pytest-browser"})
        assert response.status_code == 201

        submission = db.query(FormSubmission).one()
        assert submission.status == SubmissionStatus.COMPLETED
        assert submission.completion_percentage == 100
        assert submission.submission_metadata["user_agent"] == "pytest-browser"

    def test_submit_by_id(self, client, form):
        response = client.post(f"/api/v1/public/forms/{form.id}/submit", json={"data": {}})
        assert response.status_code == 201

    def test_auth_only_and_inactive_forms_are_hidden(self, client, db, form):
        form.requires_auth = True
        db.commit()
        assert client.get("/api/v1/public/forms/acme/website-enquiry").status_code == 404

        form.requires_auth = False
        form.is_active = False
        db.commit()
        assert client.post(f"/api/v1/public/forms/{form.id}/submit", json={"data": {}}).status_code == 404


class TestClientSubmissions:
    @pytest.fixture
    def draft(self, db, owner_ctx, form):
        submission = FormService(db).create_submission_for_client(owner_ctx, form.id, {
            "client_business_name": "Harbour Cafe", "client_email": "Sam@HarbourCafe.test",
        })
        db.commit()
        return submission

    def test_progress_then_complete(self, client, db, draft):
        assert draft.client_email == "sam@harbourcafe.test"

        saved = client.put(f"/api/v1/public/submissions/{draft.slug}/progress",
                           json={"data": {"business_name": "Harbour"}, "current_step": 1, "completion_percentage": 50})
        assert saved.status_code == 200
        assert saved.json()["completion_percentage"] == 50

        kept = client.put(f"/api/v1/public/submissions/{draft.slug}/progress",
                          json={"data": {"business_name": "Harbour Cafe"}, "current_step": 1})
        assert kept.json()["completion_percentage"] == 50

        done = client.post(f"/api/v1/public/submissions/{draft.slug}/complete",
                           json={"data": {"business_name": "Harbour Cafe"}})
        assert done.status_code == 200
        assert done.json()["status"] == SubmissionStatus.COMPLETED

        again = client.put(f"/api/v1/public/submissions/{draft.slug}/progress", json={"data": {}, "current_step": 0})
        assert again.status_code == 400
        assert client.post(f"/api/v1/public/submissions/{draft.slug}/complete", json={"data": {}}).status_code == 400

    def test_view(self, client, draft):
        body = client.get(f"/api/v1/public/submissions/{draft.slug}").json()
        assert body["submission"]["status"] == SubmissionStatus.DRAFT
        assert body["agency"]["slug"] == "acme"

    def test_member_cannot_delete(self, db, member_ctx, draft):
        with pytest.raises(PermissionError):
            FormService(db).delete_submission(member_ctx, draft.id)


def test_create_via_api_slugifies_name(client, owner_headers):
    response = client.post("/api/v1/forms", json={"name": "Project Brief", "form_type": "questionnaire",
                                                  "schema": SCHEMA}, headers=owner_headers)
    assert response.status_code == 201
    assert response.json()["slug"] == "project-brief"

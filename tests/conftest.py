"""
Shared fixtures: an in-memory database, an API client bound to it, and
agencies with users in each role.
"""
import os

os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-at-least-32-characters")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from agencyops.core.config import settings
from agencyops.core.database import Base, get_db
from agencyops.core.rate_limit import rate_limiter
from agencyops.core.security import create_access_token
from agencyops.main import app
from agencyops.models import AgencyMembership, MemberRole, MembershipStatus, UserAccess
from agencyops.services import pdf_service
from agencyops.services.agency_service import AgencyService
from agencyops.services.permission_service import AgencyContext
from agencyops.services.user_service import UserService

FAKE_PDF = b"%PDF-1.4 test document"


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    rate_limiter.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def no_outbound_calls(monkeypatch):
    """Render PDFs as a stub and leave every email provider unconfigured."""
    monkeypatch.setattr(pdf_service, "html_to_pdf", lambda html: FAKE_PDF)
    monkeypatch.setattr(settings, "RESEND_API_KEY", None)
    monkeypatch.setattr(settings, "SMTP_HOST", None)
    monkeypatch.setattr(settings, "PDF_SERVICE_URL", None)


def make_user(db, email, access=UserAccess.USER):
    return UserService(db).create(email=email, password="password123", display_name=email.split("@")[0],
                                  access=access)


def add_member(db, agency, user, role):
    db.add(AgencyMembership(user_id=user.id, agency_id=agency.id, role=role, status=MembershipStatus.ACTIVE))
    user.default_agency_id = agency.id
    db.flush()


def headers_for(user):
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user.id)})}"}


@pytest.fixture
def owner(db):
    return make_user(db, "owner@example.com")


@pytest.fixture
def agency(db, owner):
    agency = AgencyService(db).create_agency(owner, "Acme Web Studio", "acme")
    db.commit()
    return agency


@pytest.fixture
def admin_user(db, agency):
    user = make_user(db, "admin@example.com")
    add_member(db, agency, user, MemberRole.ADMIN)
    db.commit()
    return user


@pytest.fixture
def member_user(db, agency):
    user = make_user(db, "member@example.com")
    add_member(db, agency, user, MemberRole.MEMBER)
    db.commit()
    return user


@pytest.fixture
def super_admin(db):
    user = make_user(db, "root@example.com", access=UserAccess.USER | UserAccess.SUPER_ADMIN)
    db.commit()
    return user


@pytest.fixture
def owner_headers(owner, agency):
    return headers_for(owner)


@pytest.fixture
def member_headers(member_user):
    return headers_for(member_user)


@pytest.fixture
def owner_ctx(owner, agency):
    return AgencyContext(agency_id=agency.id, user_id=owner.id, role=MemberRole.OWNER, agency=agency, user=owner)


@pytest.fixture
def admin_ctx(admin_user, agency):
    return AgencyContext(agency_id=agency.id, user_id=admin_user.id, role=MemberRole.ADMIN, agency=agency,
                         user=admin_user)


@pytest.fixture
def member_ctx(member_user, agency):
    return AgencyContext(agency_id=agency.id, user_id=member_user.id, role=MemberRole.MEMBER, agency=agency,
                         user=member_user)

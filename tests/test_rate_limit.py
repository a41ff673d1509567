import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from agencyops.core.rate_limit import RateLimiter, RateLimitMiddleware


@pytest.fixture
def limited_client():
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, limiter=RateLimiter())

    @app.post("/api/v1/auth/login")
    async def login():
        return {"ok": True}

    @app.get("/api/v1/public/proposals/{slug}")
    async def view(slug: str):
        return {"slug": slug}

    @app.post("/api/v1/public/proposals/{slug}/accept")
    async def accept(slug: str):
        return {"slug": slug}

    return TestClient(app)


def test_login_limit(limited_client):
    for _ in range(5):
        response = limited_client.post("/api/v1/auth/login")
        assert response.status_code == 200
    assert response.headers["X-RateLimit-Remaining"] == "0"

    blocked = limited_client.post("/api/v1/auth/login")
    assert blocked.status_code == 429
    assert int(blocked.headers["Retry-After"]) >= 1


def test_reads_are_not_limited(limited_client):
    for _ in range(15):
        assert limited_client.get("/api/v1/public/proposals/abc").status_code == 200


def test_limits_are_per_path(limited_client):
    for _ in range(10):
        limited_client.post("/api/v1/public/proposals/abc/accept")
    assert limited_client.post("/api/v1/public/proposals/abc/accept").status_code == 429
    assert limited_client.post("/api/v1/public/proposals/xyz/accept").status_code == 200


def test_longest_prefix_wins():
    limiter = RateLimiter()
    assert limiter._limit_for("/api/v1/public/forms/acme/enquiry/submit") == (20, 60)
    assert limiter._limit_for("/api/v1/invoices") == (100, 60)

"""Tests for admin endpoints."""

from fastapi.testclient import TestClient

from tests.fakes import FakeClock, InMemoryDealRepository, make_deal
from wtb_deals.api.app import create_app
from wtb_deals.domain.deals import DealStatus
from wtb_deals.domain.sessions import UploadKind
from wtb_deals.services.sessions import InMemorySessionStore

HEADERS = {"X-Admin-Token": "admin-token"}


def test_admin_requires_token(container) -> None:
    client = TestClient(create_app(container))

    assert client.get("/admin/health").status_code == 401
    assert (
        client.get("/admin/health", headers={"X-Admin-Token": "wrong"}).status_code
        == 401
    )
    assert client.get("/admin/health", headers=HEADERS).json() == {"status": "ok"}


def test_admin_deal_detail(
    container, deal_repository: InMemoryDealRepository
) -> None:
    deal_repository.add(make_deal())
    client = TestClient(create_app(container))

    response = client.get("/admin/deals/rec1", headers=HEADERS)
    missing = client.get("/admin/deals/nope", headers=HEADERS)

    assert response.status_code == 200
    deal = response.json()["deal"]
    assert deal["id"] == "rec1"
    assert deal["status"] == "Outsource"
    assert missing.status_code == 404


def test_admin_sessions_endpoint(
    container, session_store: InMemorySessionStore
) -> None:
    session_store.open_upload("buyer-1", "rec1", UploadKind.PAYMENT_PROOF)
    client = TestClient(create_app(container))

    response = client.get("/admin/sessions", headers=HEADERS)

    assert response.status_code == 200
    assert response.json()["sessions"] == {"claims": 0, "uploads": 1}


def test_admin_expiry_sweep(
    container, deal_repository: InMemoryDealRepository, clock: FakeClock
) -> None:
    deal_repository.add(make_deal())
    clock.advance(hours=25)
    client = TestClient(create_app(container))

    response = client.post("/admin/expiry/sweep", headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == {"expired": ["rec1"], "skipped": [], "failed": []}
    assert deal_repository.get("rec1").status == DealStatus.EXPIRED

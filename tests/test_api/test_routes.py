"""API tests for the product, ZKP and health routes.

Each test gets a fresh factory, ledger and verifier through
``app.dependency_overrides``; the lifespan is not run.
"""

from __future__ import annotations

import pytest
from conftest import (
    BUYER,
    DEPOSIT,
    FACTORY_OWNER,
    FEE,
    PLACEHOLDER_COMMITMENT,
    PRICE,
    SELLER,
    STRANGER,
    TRANSPORTER,
    WINDOW,
    FakeClock,
    blinding_for,
    price_commitment_for,
)
from fastapi.testclient import TestClient

from provenance_escrow.api.deps import get_app_settings, get_factory, get_verifier
from provenance_escrow.config import Settings
from provenance_escrow.domain.binding import generate_binding_tag
from provenance_escrow.domain.factory import EscrowFactory
from provenance_escrow.main import create_app
from provenance_escrow.services.verification_service import ValueCommitmentVerifier

ESCROW = "0x1234567890123456789012345678901234567890"


@pytest.fixture
def client(factory: EscrowFactory, verifier: ValueCommitmentVerifier) -> TestClient:
    app = create_app()
    settings = Settings(prover_type="simulated", vc_cache_backend="memory")
    app.dependency_overrides[get_factory] = lambda: factory
    app.dependency_overrides[get_verifier] = lambda: verifier
    app.dependency_overrides[get_app_settings] = lambda: settings
    return TestClient(app)


def _create(client: TestClient, **overrides) -> dict:
    body = {"seller": SELLER, "name": "Olive oil", "price_commitment": PLACEHOLDER_COMMITMENT}
    body.update(overrides)
    response = client.post("/api/v1/products", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def _commit(client: TestClient, factory: EscrowFactory, address: str) -> None:
    escrow = factory.get_product(address)
    response = client.post(
        f"/api/v1/products/{address}/price-commitment",
        json={"caller": SELLER, "commitment": price_commitment_for(escrow)},
    )
    assert response.status_code == 200, response.text


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["prover"] == "simulated"
        assert data["redis"] == "not used"

    def test_request_id_echoed(self, client: TestClient) -> None:
        response = client.get("/health", headers={"X-Request-ID": "req-1"})
        assert response.headers["X-Request-ID"] == "req-1"


class TestProductRoutes:
    def test_create_and_get(self, client: TestClient) -> None:
        created = _create(client)
        assert created["product_id"] == 1
        assert created["phase"] == "LISTED"

        fetched = client.get(f"/api/v1/products/{created['address']}")
        assert fetched.status_code == 200
        assert fetched.json()["owner"] == SELLER

    def test_list_products(self, client: TestClient) -> None:
        for _ in range(3):
            _create(client)
        response = client.get("/api/v1/products", params={"offset": 1, "count": 5})
        data = response.json()
        assert data["total"] == 3
        assert [p["product_id"] for p in data["products"]] == [2, 3]

    def test_unknown_product_is_404(self, client: TestClient) -> None:
        response = client.get(f"/api/v1/products/{STRANGER}")
        assert response.status_code == 404
        assert response.json()["error"] == "PRODUCT_NOT_FOUND"

    def test_zero_commitment_is_422(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/products",
            json={"seller": SELLER, "name": "x", "price_commitment": "0x" + "00" * 32},
        )
        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_deterministic_matches_prediction(self, client: TestClient) -> None:
        salt = "0x" + "5a" * 32
        predicted = client.get(f"/api/v1/products/predict/{salt}").json()["address"]
        response = client.post(
            "/api/v1/products/deterministic",
            json={
                "seller": SELLER,
                "name": "Salted",
                "price_commitment": PLACEHOLDER_COMMITMENT,
                "salt": salt,
            },
        )
        assert response.status_code == 201
        assert response.json()["address"] == predicted


class TestLifecycleOverHttp:
    def test_full_lifecycle(self, client: TestClient, factory: EscrowFactory) -> None:
        address = _create(client)["address"]
        escrow = factory.get_product(address)
        base = f"/api/v1/products/{address}"

        r = client.post(
            f"{base}/price-commitment",
            json={"caller": SELLER, "commitment": price_commitment_for(escrow)},
        )
        assert r.json()["commitment_frozen"] is True

        r = client.post(f"{base}/purchase", json={"caller": BUYER, "value": PRICE})
        assert r.json()["phase"] == "PURCHASED"

        r = client.post(f"{base}/confirm-order", json={"caller": SELLER, "vc_cid": "QmP"})
        assert r.json()["vc_cids"]["PURCHASE"] == "QmP"

        client.post(f"{base}/transporters", json={"caller": TRANSPORTER, "fee": FEE})
        client.post(f"{base}/security-deposit", json={"caller": TRANSPORTER, "value": DEPOSIT})
        r = client.post(
            f"{base}/transporter",
            json={"caller": SELLER, "transporter": TRANSPORTER, "value": FEE},
        )
        assert r.json()["phase"] == "BOUND"
        assert r.json()["balance"] == PRICE + FEE + DEPOSIT

        r = client.post(
            f"{base}/confirm-delivery",
            json={
                "caller": BUYER,
                "value": PRICE,
                "blinding": "0x" + blinding_for(escrow),
                "vc_cid": "QmD",
            },
        )
        assert r.status_code == 200, r.text
        assert r.json()["phase"] == "DELIVERED"
        assert r.json()["balance"] == 0

        r = client.post(f"{base}/vc-after-delivery", json={"caller": BUYER, "vc_cid": "QmD2"})
        assert r.json()["vc_cids"]["DELIVERY"] == "QmD2"

        events = client.get(f"{base}/events").json()
        assert events[-1]["event_type"] == "VC_UPDATED"

    def test_error_mapping(self, client: TestClient, factory: EscrowFactory) -> None:
        address = _create(client)["address"]
        base = f"/api/v1/products/{address}"

        r = client.post(f"{base}/purchase", json={"caller": BUYER, "value": PRICE})
        assert r.status_code == 409
        assert r.json()["error"] == "COMMITMENT_NOT_SET"
        _commit(client, factory, address)

        r = client.post(f"{base}/purchase", json={"caller": SELLER, "value": PRICE})
        assert r.status_code == 403

        client.post(f"{base}/purchase", json={"caller": BUYER, "value": PRICE})
        r = client.post(f"{base}/purchase", json={"caller": STRANGER, "value": PRICE})
        assert r.status_code == 409
        assert r.json()["error"] == "ALREADY_PURCHASED"

        r = client.post(f"{base}/confirm-order", json={"caller": SELLER, "vc_cid": "QmP"})
        client.post(f"{base}/transporters", json={"caller": TRANSPORTER, "fee": FEE})
        r = client.post(
            f"{base}/transporter",
            json={"caller": SELLER, "transporter": TRANSPORTER, "value": FEE + 1},
        )
        assert r.status_code == 402
        assert r.json()["error"] == "WRONG_FEE"

    def test_timeout_route(
        self, client: TestClient, factory: EscrowFactory, clock: FakeClock
    ) -> None:
        address = _create(client)["address"]
        base = f"/api/v1/products/{address}"
        _commit(client, factory, address)
        client.post(f"{base}/purchase", json={"caller": BUYER, "value": PRICE})

        early = client.post(f"{base}/seller-timeout", json={"caller": BUYER})
        assert early.status_code == 409
        assert early.json()["error"] == "DEADLINE"

        clock.advance(WINDOW)
        r = client.post(f"{base}/seller-timeout", json={"caller": BUYER})
        assert r.status_code == 200
        assert r.json() == {"product_id": 1, "refunded": PRICE, "phase": "EXPIRED"}

    def test_unknown_operation(self, client: TestClient) -> None:
        address = _create(client)["address"]
        r = client.post(f"/api/v1/products/{address}/teleport", json={"caller": BUYER})
        assert r.status_code == 404

    def test_pause(self, client: TestClient) -> None:
        r = client.post("/api/v1/factory/pause", json={"caller": FACTORY_OWNER})
        assert r.json() == {"paused": True}
        r = client.post(
            "/api/v1/products",
            json={"seller": SELLER, "name": "x", "price_commitment": PLACEHOLDER_COMMITMENT},
        )
        assert r.status_code == 409
        r = client.post("/api/v1/factory/unpause", json={"caller": SELLER})
        assert r.status_code == 403


class TestZkpRoutes:
    def test_binding_tag_defaults_chain(self, client: TestClient) -> None:
        r = client.post(
            "/api/v1/binding-tag",
            json={"escrow_address": ESCROW, "product_id": 1, "stage": 0},
        )
        assert r.status_code == 200
        expected = generate_binding_tag(
            {"chain_id": 11155111, "escrow_address": ESCROW, "product_id": 1, "stage": 0}
        )
        assert r.json() == {"binding_tag": expected, "protocol_version": "zkp-bind-v1"}

    def test_binding_tag_v2(self, client: TestClient) -> None:
        r = client.post(
            "/api/v1/binding-tag",
            json={
                "escrow_address": ESCROW,
                "product_id": 1,
                "stage": 1,
                "previous_vc_cid": "QmListing",
            },
        )
        assert r.json()["protocol_version"] == "zkp-bind-v2"

    def test_generate_then_verify(self, client: TestClient) -> None:
        tag = "07" * 32
        proof = client.post(
            "/api/v1/zkp/generate",
            json={"value": 1000, "blinding": "42" * 32, "binding_tag": tag},
        ).json()
        body = {"commitment": proof["commitment"], "proof": proof["proof"]}

        assert client.post("/api/v1/zkp/verify", json={**body, "binding_tag": tag}).json() == {
            "verified": True
        }
        assert client.post("/api/v1/zkp/verify", json=body).json() == {"verified": False}

    def test_malformed_commitment_is_422(self, client: TestClient) -> None:
        r = client.post("/api/v1/zkp/verify", json={"commitment": "abc", "proof": "cd"})
        assert r.status_code == 422
        assert r.json()["field"] == "commitment"

import pytest
from fastapi.testclient import TestClient

from src.integrations.contracts.interfaces import WalletRole

from conftest import COMPANY, INSURED

API_KEY = "test-key"


@pytest.fixture
def client(monkeypatch, manager):
    monkeypatch.setenv("API_KEYS", API_KEY)
    from src.api.main import app

    app.state.session_manager = manager
    with TestClient(app, headers={"X-API-KEY": API_KEY}) as c:
        yield c


def test_requests_without_api_key_are_rejected(client):
    response = client.get("/api/v1/wallet/session", headers={"X-API-KEY": "wrong"})
    assert response.status_code == 401


def test_health_is_public(client):
    response = client.get("/health", headers={"X-API-KEY": ""})
    assert response.status_code == 200
    assert 31337 in response.json()["supported_chain_ids"]


def test_connect_and_disconnect(client):
    connected = client.post("/api/v1/wallet/connect").json()
    assert connected["connected"] is True
    assert connected["address"] == COMPANY
    assert connected["chain_id"] == 31337
    assert connected["role"] is None

    disconnected = client.post("/api/v1/wallet/disconnect").json()
    assert disconnected["connected"] is False
    assert disconnected["address"] is None


def test_policy_routes_need_a_connected_wallet(client):
    response = client.get("/api/v1/policies")
    assert response.status_code == 401
    assert response.json()["code"] == "wallet_not_connected"


def test_registration_then_conflict(client):
    client.post("/api/v1/wallet/connect")

    registered = client.post("/api/v1/wallet/registration", json={"role": "company"})
    assert registered.status_code == 200
    assert registered.json()["step"] == "done"
    assert registered.json()["history"] == ["resolving_identity", "creating_identity", "setting_role", "done"]

    conflict = client.post("/api/v1/wallet/registration", json={"role": "user"})
    assert conflict.status_code == 409
    body = conflict.json()
    assert body["code"] == "role_conflict"
    assert body["metadata"]["actual_role"] == "company"


def test_unknown_role_is_a_validation_error(client):
    client.post("/api/v1/wallet/connect")
    response = client.post("/api/v1/wallet/registration", json={"role": "admin"})
    assert response.status_code == 422
    assert response.json()["metadata"]["field"] == "role"


def test_deploy_list_and_detail(client, ledger, policy_payload):
    ledger.seed_identity(COMPANY, WalletRole.COMPANY)
    ledger.seed_identity(INSURED, WalletRole.USER)
    client.post("/api/v1/wallet/connect")

    invalid = client.post("/api/v1/policies", json=policy_payload(premium_amount="0"))
    assert invalid.status_code == 422
    assert "premium_amount" in invalid.json()["metadata"]["field_errors"]

    deployed = client.post("/api/v1/policies", json=policy_payload())
    assert deployed.status_code == 200
    outcome = deployed.json()
    assert outcome["complete"] is True

    listed = client.get("/api/v1/policies", params={"filter": "active"}).json()
    assert [p["address"] for p in listed["policies"]] == [outcome["policy_address"]]
    assert listed["expired"] == []

    detail = client.get(f"/api/v1/policies/{outcome['policy_address']}").json()
    assert detail["premium_amount"] == "1.5"
    assert detail["payout_amount"] == "100"
    assert detail["status"] == "pending"
    assert detail["sensor_conditions"] == [
        {"sensor_topic": "saref:Temperature", "operator": "at_least", "threshold": 35}
    ]


def test_unknown_policy_is_not_found(client):
    client.post("/api/v1/wallet/connect")
    response = client.get("/api/v1/policies/0x4444444444444444444444444444444444444444")
    assert response.status_code == 404


def test_refresh_expired_with_nothing_due(client, ledger):
    ledger.seed_identity(COMPANY, WalletRole.COMPANY)
    client.post("/api/v1/wallet/connect")

    response = client.post("/api/v1/policies/expired/refresh")

    assert response.json() == {"submitted": [], "count": 0}
    assert ledger.transactions() == []

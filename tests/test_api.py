"""HTTP surface tests: JSON payloads on success, {"error": ...} otherwise."""
import base64
from types import SimpleNamespace

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from solders.keypair import Keypair

from conftest import entry
from exchange.errors import BroadcastError, ConfigurationError, QuoteError
from main import create_app
from models.schemas import NATIVE_KEY, OrderResponse
from services.api_router import register_error_handlers, router


USER = str(Keypair().pubkey())


class StubSolana:
    def __init__(self):
        self.error = None

    async def read_balances(self, owner):
        if self.error:
            raise self.error
        if owner == "bad":
            raise ValueError("Invalid owner address: bad")
        return {
            NATIVE_KEY: entry("1000000000", 1.0),
            "MintA": entry("500000", 0.5, "AtaA"),
        }

    async def broadcast_signed_transaction(self, signed):
        if self.error:
            raise self.error
        return "broadcast-sig"

    async def build_close_account_transaction(self, owner, token_account):
        return base64.b64encode(f"close:{token_account}".encode()).decode()


class StubJupiter:
    def __init__(self):
        self.orders = []
        self.error = None

    async def create_order(self, taker, input_mint, output_mint, amount):
        if self.error:
            raise self.error
        self.orders.append(amount)
        return OrderResponse(transaction="dHg=", request_id="req-1")

    async def execute_order(self, signed, request_id):
        return f"sig-{request_id}"


@pytest.fixture
def stubs():
    return SimpleNamespace(solana=StubSolana(), jupiter=StubJupiter())


@pytest.fixture
def client(stubs):
    app = FastAPI()
    register_error_handlers(app)
    app.include_router(router)
    app.state.solana = stubs.solana
    app.state.jupiter = stubs.jupiter
    return TestClient(app)


def test_balances_uses_camel_case_keys(client):
    response = client.post("/api/balances", json={"user": USER})

    assert response.status_code == 200
    body = response.json()
    assert body["MintA"] == {"amount": 0.5, "rawAmount": "500000", "tokenAccount": "AtaA"}
    assert "tokenAccount" not in body[NATIVE_KEY]


def test_missing_user_is_an_error_object(client):
    response = client.post("/api/balances", json={})

    assert response.status_code == 422
    assert "error" in response.json()


def test_invalid_owner_is_bad_request(client):
    response = client.post("/api/balances", json={"user": "bad"})

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid owner address: bad"}


def test_no_endpoints_configured(client, stubs):
    stubs.solana.error = ConfigurationError("No Solana RPC endpoints configured (SOLANA_RPC_URLS)")

    response = client.post("/api/balances", json={"user": USER})

    assert response.status_code == 503


def test_order_passes_raw_amount(client, stubs):
    response = client.post(
        "/api/order",
        json={"user": USER, "inputMint": "MintA", "outputMint": "JUP", "amount": "123456"},
    )

    assert response.status_code == 200
    assert response.json() == {"transaction": "dHg=", "requestId": "req-1"}
    assert stubs.jupiter.orders == ["123456"]


def test_order_rejects_float_amount(client, stubs):
    response = client.post(
        "/api/order",
        json={"user": USER, "inputMint": "MintA", "outputMint": "JUP", "amount": 1.5},
    )

    assert response.status_code == 422
    assert stubs.jupiter.orders == []


def test_order_provider_error_message(client, stubs):
    stubs.jupiter.error = QuoteError('{"error":"No routes found"}', code=400)

    response = client.post(
        "/api/order",
        json={"user": USER, "inputMint": "MintA", "outputMint": "JUP", "amount": "1"},
    )

    assert response.status_code == 502
    assert response.json() == {"error": "No routes found"}


def test_execute(client):
    response = client.post("/api/execute", json={"signedTransaction": "c2ln", "requestId": "req-9"})

    assert response.status_code == 200
    assert response.json() == {"signature": "sig-req-9"}


def test_broadcast_failure(client, stubs):
    stubs.solana.error = BroadcastError("Blockhash not found")

    response = client.post("/api/broadcast", json={"signedTransaction": "c2ln"})

    assert response.status_code == 502
    assert response.json() == {"error": "Blockhash not found"}


def test_close_account(client):
    response = client.post("/api/closeAccount", json={"user": USER, "tokenAccount": "AtaB"})

    assert response.status_code == 200
    assert base64.b64decode(response.json()["transaction"]) == b"close:AtaB"


def test_unknown_route_is_an_error_object(client):
    response = client.get("/api/nope")

    assert response.status_code == 404
    assert "error" in response.json()


def test_create_app_health():
    config = {"solana": {"rpc_urls": ["https://a", "https://b"]}, "jupiter": {}}

    with TestClient(create_app(config)) as client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["rpc_endpoints"] == 2

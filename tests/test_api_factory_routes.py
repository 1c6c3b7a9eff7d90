from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

FEE = 10**16
FUNDED = 10**18


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, signed_executor):
    monkeypatch.setenv("LAUNCHPAD_MODE", "dev")
    monkeypatch.setenv("LAUNCHPAD_RL_DISABLE", "1")

    from launchpad.api.app import create_app

    app = create_app(boot_runtime=False)
    app.state.executor = signed_executor
    with TestClient(app) as c:
        yield c


def _create_body(token_args, wallets, who: str = "alice", **overrides) -> dict:
    fields = token_args()
    fields["payment"] = FEE
    fields.update(overrides)
    return wallets.body(who, "CREATE_TOKEN", fields)


def _create(client, token_args, wallets, who: str = "alice") -> str:
    r = client.post("/v1/factory/tokens", json=_create_body(token_args, wallets, who))
    assert r.status_code == 200, r.text
    return r.json()["token"]


def test_factory_info(client, wallets) -> None:
    r = client.get("/v1/factory")
    assert r.status_code == 200
    j = r.json()
    assert j["ok"] is True
    assert j["owner"] == wallets.address("owner")
    assert j["network"] == "sepolia"
    assert j["deployment_fee"] == FEE
    assert j["token_count"] == 0


def test_create_token_and_read_back(client, token_args, wallets) -> None:
    alice = wallets.address("alice")
    r = client.post("/v1/factory/tokens", json=_create_body(token_args, wallets))
    assert r.status_code == 200, r.text
    token = r.json()["token"]
    assert r.json()["seq"] == 1

    r = client.get(f"/v1/factory/users/{alice}/tokens")
    assert r.json()["tokens"] == [token]

    r = client.get(f"/v1/tokens/{token}")
    info = r.json()["token"]
    assert info["symbol"] == "TEST"
    assert info["sell_tax"] == 500
    assert "balances" not in info

    r = client.get(f"/v1/tokens/{token}/balances/{alice}")
    assert r.json()["balance"] == 1_000_000 * 10**18

    account = client.get(f"/v1/accounts/{alice}").json()
    assert account["native_balance"] == FUNDED - FEE
    assert account["nonce"] == 1


def test_insufficient_fee_maps_to_402(client, token_args, wallets) -> None:
    r = client.post("/v1/factory/tokens", json=_create_body(token_args, wallets, payment=9 * 10**15))
    assert r.status_code == 402
    j = r.json()
    assert j["ok"] is False
    assert j["error"]["code"] == "insufficient_fee"
    assert j["error"]["details"] == {"required": FEE, "provided": 9 * 10**15}


def test_payment_beyond_native_balance_maps_to_409(client, token_args, wallets) -> None:
    r = client.post("/v1/factory/tokens", json=_create_body(token_args, wallets, payment=FUNDED + 1))
    assert r.status_code == 409
    err = r.json()["error"]
    assert err["code"] == "insufficient_balance"
    assert err["reason"] == "payment_exceeds_native_balance"
    assert client.get("/v1/factory").json()["accumulated_fees"] == 0


def test_unfunded_creator_cannot_create(client, token_args, wallets) -> None:
    r = client.post("/v1/factory/tokens", json=_create_body(token_args, wallets, who="owner"))
    assert r.status_code == 409
    assert r.json()["error"]["details"]["balance"] == 0


def test_invalid_configuration_maps_to_400_with_field_errors(client, token_args, wallets) -> None:
    r = client.post("/v1/factory/tokens", json=_create_body(token_args, wallets, buy_tax=2600, symbol=""))
    assert r.status_code == 400
    err = r.json()["error"]
    assert err["code"] == "invalid_configuration"
    assert {e["field"] for e in err["details"]["errors"]} == {"symbol", "buy_tax"}


def test_unauthorized_maps_to_403(client, wallets) -> None:
    r = client.post("/v1/factory/fee", json=wallets.body("alice", "SET_DEPLOYMENT_FEE", {"fee": 0}))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "unauthorized"
    assert r.json()["error"]["reason"] == "caller_not_owner"


def test_claiming_the_owner_address_without_its_key_is_403(client, wallets) -> None:
    body = wallets.body("alice", "WITHDRAW_FEES", {})
    body["caller"] = wallets.address("owner")

    r = client.post("/v1/factory/withdraw", json=body)
    assert r.status_code == 403
    assert r.json()["error"]["reason"] == "signature_does_not_match_caller"


def test_tampered_payload_is_403(client, token_args, wallets) -> None:
    body = _create_body(token_args, wallets)
    body["payment"] = 2 * FEE

    r = client.post("/v1/factory/tokens", json=body)
    assert r.status_code == 403
    assert client.get("/v1/factory").json()["token_count"] == 0


def test_replayed_request_is_403(client, token_args, wallets) -> None:
    body = _create_body(token_args, wallets)
    assert client.post("/v1/factory/tokens", json=body).status_code == 200

    r = client.post("/v1/factory/tokens", json=body)
    assert r.status_code == 403
    assert r.json()["error"]["reason"] == "stale_nonce"
    assert client.get("/v1/factory").json()["token_count"] == 1


def test_rejected_call_does_not_consume_the_nonce(client, token_args, wallets) -> None:
    r = client.post("/v1/factory/tokens", json=_create_body(token_args, wallets, buy_tax=2600))
    assert r.status_code == 400
    assert client.get(f"/v1/accounts/{wallets.address('alice')}").json()["nonce"] == 0


def test_unsigned_body_is_422(client, token_args, wallets) -> None:
    body = token_args()
    body.update({"payment": FEE, "caller": wallets.address("alice")})
    r = client.post("/v1/factory/tokens", json=body)
    assert r.status_code == 422


def test_owner_routes(client, token_args, wallets) -> None:
    _create(client, token_args, wallets)

    r = client.post("/v1/factory/fee", json=wallets.body("owner", "SET_DEPLOYMENT_FEE", {"fee": 2 * FEE}))
    assert r.status_code == 200
    assert client.get("/v1/factory").json()["deployment_fee"] == 2 * FEE

    r = client.post("/v1/factory/withdraw", json=wallets.body("owner", "WITHDRAW_FEES", {}))
    assert r.status_code == 200
    assert r.json()["amount"] == FEE
    assert client.get(f"/v1/accounts/{wallets.address('owner')}").json()["native_balance"] == FEE

    carol = wallets.address("carol")
    r = client.post("/v1/factory/owner", json=wallets.body("owner", "TRANSFER_OWNERSHIP", {"new_owner": carol}))
    assert r.status_code == 200
    assert client.get("/v1/factory").json()["owner"] == carol


def test_withdraw_by_non_owner_signer_is_403(client, token_args, wallets) -> None:
    _create(client, token_args, wallets)
    r = client.post("/v1/factory/withdraw", json=wallets.body("bob", "WITHDRAW_FEES", {}))
    assert r.status_code == 403
    assert client.get("/v1/factory").json()["accumulated_fees"] == FEE


def test_deposit_route_funds_an_account(client, token_args, wallets) -> None:
    owner = wallets.address("owner")
    deposit = {"account": owner, "amount": FEE, "reference": "0x" + "ab" * 32}

    r = client.post("/v1/factory/deposits", json=wallets.body("owner", "CREDIT_NATIVE", deposit))
    assert r.status_code == 200, r.text
    assert r.json()["balance"] == FEE

    r = client.post("/v1/factory/deposits", json=wallets.body("owner", "CREDIT_NATIVE", deposit))
    assert r.status_code == 400
    assert r.json()["error"]["reason"] == "duplicate_deposit_reference"

    _create(client, token_args, wallets, who="owner")
    assert client.get(f"/v1/accounts/{owner}").json()["native_balance"] == 0


def test_validate_is_advisory(client, token_args) -> None:
    r = client.post("/v1/factory/validate", json=token_args(percentages=[1500, 1500]))
    assert r.status_code == 200
    j = r.json()
    assert j["valid"] is False
    assert j["errors"][0]["field"] == "allocation"
    assert j["allocated_bps"] == 11_000
    assert j["remaining_bps"] == 0
    assert client.get("/v1/factory").json()["token_count"] == 0

    r = client.post("/v1/factory/validate", json=token_args())
    assert r.json()["valid"] is True


def test_token_routes(client, token_args, wallets, addrs) -> None:
    alice, bob, carol = (wallets.address(n) for n in ("alice", "bob", "carol"))
    token = _create(client, token_args, wallets)

    body = wallets.body("alice", "TOKEN_SET_POOL", {"pool": addrs.pool, "enabled": True}, token=token)
    r = client.post(f"/v1/tokens/{token}/pools", json=body)
    assert r.status_code == 200, r.text

    body = wallets.body("alice", "TOKEN_TRANSFER", {"to": addrs.pool, "amount": 10_000}, token=token)
    r = client.post(f"/v1/tokens/{token}/transfer", json=body)
    assert r.status_code == 200
    assert r.json()["tax"] == 500

    body = wallets.body("alice", "TOKEN_APPROVE", {"spender": bob, "amount": 50}, token=token)
    r = client.post(f"/v1/tokens/{token}/approve", json=body)
    assert r.status_code == 200

    body = wallets.body("bob", "TOKEN_TRANSFER_FROM", {"from": alice, "to": carol, "amount": 20}, token=token)
    r = client.post(f"/v1/tokens/{token}/transfer_from", json=body)
    assert r.status_code == 200
    assert client.get(f"/v1/tokens/{token}/allowances/{alice}/{bob}").json()["allowance"] == 30

    body = wallets.body("bob", "TOKEN_TRANSFER", {"to": alice, "amount": 1}, token=token)
    r = client.post(f"/v1/tokens/{token}/transfer", json=body)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "insufficient_balance"


def test_signature_covers_the_token_in_the_path(client, token_args, wallets) -> None:
    t1 = _create(client, token_args, wallets)
    t2 = _create(client, token_args, wallets)

    body = wallets.body("alice", "TOKEN_TRANSFER", {"to": wallets.address("bob"), "amount": 5}, token=t1)
    r = client.post(f"/v1/tokens/{t2}/transfer", json=body)
    assert r.status_code == 403
    assert client.get(f"/v1/tokens/{t2}/balances/{wallets.address('bob')}").json()["balance"] == 0


def test_unknown_token_is_404(client, addrs) -> None:
    r = client.get(f"/v1/tokens/{addrs.carol}")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "not_found"


def test_events_route(client, token_args, wallets) -> None:
    _create(client, token_args, wallets)
    _create(client, token_args, wallets, who="bob")

    r = client.get("/v1/events", params={"name": "TokenCreated", "limit": 1})
    j = r.json()
    assert len(j["events"]) == 1
    assert j["events"][0]["data"]["creator"] == wallets.address("alice")

    r = client.get("/v1/events", params={"name": "TokenCreated", "since": j["next_since"]})
    assert [e["data"]["creator"] for e in r.json()["events"]] == [wallets.address("bob")]


def test_health_and_ready(client) -> None:
    h = client.get("/v1/health").json()
    assert h["ok"] is True
    assert h["network"] == "sepolia"
    assert client.get("/v1/ready").json()["ok"] is True


def test_metrics_route(client, token_args, wallets, monkeypatch: pytest.MonkeyPatch) -> None:
    assert client.get("/v1/metrics").status_code == 404

    monkeypatch.setenv("LAUNCHPAD_METRICS_ENABLED", "1")
    _create(client, token_args, wallets)

    text = client.get("/v1/metrics").text
    assert "launchpad_tokens_created 1" in text
    assert "launchpad_token_count 1" in text

    j = client.get("/v1/metrics", params={"format": "json"}).json()
    assert j["metrics"]["counters"]["calls_applied"] == 1

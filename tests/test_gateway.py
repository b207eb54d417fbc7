import datetime
import importlib
from decimal import Decimal
from unittest import mock

import jwt
import pytest
import requests
from flask import g

from conftest import make_transaction
from service_gateway.ledger import INCOME, EXPENSE, PENDING, APPROVED


@pytest.fixture
def ledger(fake_client):
    fake_client.add_account(1, santri_id=12, balance="30000")
    fake_client.add_transaction(make_transaction(1, INCOME, "50000", APPROVED))
    fake_client.add_transaction(make_transaction(2, EXPENSE, "20000", APPROVED))
    fake_client.add_transaction(make_transaction(3, INCOME, "10000", PENDING))
    return fake_client


def test_requires_token(gateway_client, ledger):
    assert gateway_client.get("/api/tabungan/1").status_code == 401


def test_rejects_expired_token(gateway_client, gateway_app, ledger):
    token = jwt.encode(
        {"user_id": 7, "exp": datetime.datetime.utcnow() - datetime.timedelta(minutes=1)},
        gateway_app.config["JWT_SECRET"], algorithm="HS256",
    )
    res = gateway_client.get("/api/tabungan/1", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 401
    assert res.get_json()["message"] == "Token expired"


def test_rejects_token_with_wrong_secret(gateway_client, ledger):
    token = jwt.encode({"user_id": 7}, "bukan-secret", algorithm="HS256")
    res = gateway_client.get("/api/tabungan/1", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 401


def test_detail_shows_computed_and_server_balance(gateway_client, auth_headers, ledger):
    res = gateway_client.get("/api/tabungan/1", headers=auth_headers)
    assert res.status_code == 200
    body = res.get_json()
    assert body["summary"] == {"total_income": "50000", "total_expense": "20000", "net_balance": "30000"}
    assert body["reconciliation"]["matches"] is True
    assert [t["id"] for t in body["pending"]] == [3]


def test_detail_reports_mismatch_without_failing(gateway_client, auth_headers, ledger):
    ledger.add_account(1, santri_id=12, balance="45000")
    body = gateway_client.get("/api/tabungan/1", headers=auth_headers).get_json()
    assert body["reconciliation"]["matches"] is False
    assert body["account"]["balance"] == "45000"
    assert body["summary"]["net_balance"] == "30000"


def test_list_and_open_accounts(gateway_client, auth_headers, fake_client):
    res = gateway_client.post("/api/tabungan", json={"santri_id": 12, "santri_name": "Ahmad"},
                              headers=auth_headers)
    assert res.status_code == 201
    accounts = gateway_client.get("/api/tabungan", headers=auth_headers).get_json()
    assert [a["santri_name"] for a in accounts] == ["Ahmad"]

    res = gateway_client.post("/api/tabungan", json={"santri_id": "dua belas"}, headers=auth_headers)
    assert res.status_code == 400


def test_balance_by_santri(gateway_client, auth_headers, ledger):
    body = gateway_client.get("/api/tabungan/balance/12", headers=auth_headers).get_json()
    assert body["balance"] == "30000"


def test_transaction_list_with_summary(gateway_client, auth_headers, ledger):
    body = gateway_client.get("/api/tabungan/1/transaksi", headers=auth_headers).get_json()
    assert len(body["transactions"]) == 3
    assert body["summary"]["net_balance"] == "30000"


def test_create_transaction_validates_before_store(gateway_client, auth_headers, ledger):
    res = gateway_client.post("/api/tabungan/1/transaksi",
                              json={"type": "INCOME", "amount": 500, "description": "too small"},
                              headers=auth_headers)
    assert res.status_code == 400
    assert ledger.submitted == []

    res = gateway_client.post("/api/tabungan/1/transaksi",
                              json={"type": "INCOME", "amount": 1000, "description": " "},
                              headers=auth_headers)
    assert res.status_code == 400


def test_create_transaction_is_pending(gateway_client, auth_headers, ledger):
    res = gateway_client.post("/api/tabungan/1/transaksi",
                              json={"type": "INCOME", "amount": 1000, "description": "ok"},
                              headers=auth_headers)
    assert res.status_code == 201
    body = res.get_json()
    assert body["transaction"]["status"] == "PENDING"
    assert body["transaction"]["created_by"] == 7
    assert "Menunggu approval" in body["message"]


def test_approve_recomputes_ledger(gateway_client, auth_headers, ledger):
    res = gateway_client.patch("/api/tabungan/transaksi/3/approve", json={"approve": True},
                               headers=auth_headers)
    assert res.status_code == 200
    body = res.get_json()
    assert body["transaction"]["status"] == "APPROVED"
    assert body["ledger"]["summary"]["total_income"] == "60000"
    assert body["ledger"]["summary"]["net_balance"] == "40000"
    assert body["ledger"]["reconciliation"]["matches"] is True
    assert ledger.status_calls == [(3, "APPROVED", 7)]


def test_reject(gateway_client, auth_headers, ledger):
    res = gateway_client.patch("/api/tabungan/transaksi/3/approve", json={"approve": False},
                               headers=auth_headers)
    assert res.get_json()["transaction"]["status"] == "REJECTED"
    assert res.get_json()["ledger"]["summary"]["net_balance"] == "30000"


def test_double_approval_is_conflict(gateway_client, auth_headers, ledger):
    url = "/api/tabungan/transaksi/3/approve"
    assert gateway_client.patch(url, json={"approve": True}, headers=auth_headers).status_code == 200

    res = gateway_client.patch(url, json={"approve": True}, headers=auth_headers)
    assert res.status_code == 409
    assert res.get_json()["status"] == "APPROVED"
    assert len(ledger.status_calls) == 1


def test_approve_needs_boolean(gateway_client, auth_headers, ledger):
    res = gateway_client.patch("/api/tabungan/transaksi/3/approve", json={"approve": "ya"},
                               headers=auth_headers)
    assert res.status_code == 400


def test_store_conflict_is_forwarded(gateway_client, auth_headers, ledger, monkeypatch):
    # store sudah memproses transaksi ini, tapi gateway masih melihat PENDING
    stale = ledger.fetch_transaction(3)
    ledger.set_transaction_status(3, "REJECTED", 8)
    monkeypatch.setattr(ledger, "fetch_transaction", lambda transaction_id: stale)

    res = gateway_client.patch("/api/tabungan/transaksi/3/approve", json={"approve": True},
                               headers=auth_headers)
    assert res.status_code == 409
    assert "REJECTED" in res.get_json()["message"]


def test_store_unreachable_is_503(gateway_client, auth_headers, ledger, monkeypatch):
    def down(account_id):
        raise requests.exceptions.ConnectionError("connection refused")
    monkeypatch.setattr(ledger, "fetch_account", down)

    res = gateway_client.get("/api/tabungan/1", headers=auth_headers)
    assert res.status_code == 503


def test_index(gateway_client):
    assert "tabungan" in gateway_client.get("/").get_json()["services"]


def test_clients_share_one_http_session_without_leaking_tokens(gateway_app):
    from service_gateway.app import get_savings_client, http_session

    ok = requests.models.Response()
    ok.status_code = 200
    ok._content = b'{"id": 3, "savings_id": 1, "type": "INCOME", "amount": "10000", "status": "PENDING"}'
    sent = mock.Mock(return_value=ok)

    with mock.patch.object(http_session, "request", sent):
        with gateway_app.test_request_context():
            g.token = "token-admin-a"
            first = get_savings_client()
            first.fetch_transaction(3)
            g.token = "token-admin-b"
            second = get_savings_client()
            second.fetch_transaction(3)

    assert first.http is http_session
    assert second.http is http_session
    assert "Authorization" not in http_session.headers
    tokens = [call.kwargs["headers"]["Authorization"] for call in sent.call_args_list]
    assert tokens == ["Bearer token-admin-a", "Bearer token-admin-b"]


def test_minimum_amount_keeps_decimal_precision(monkeypatch):
    import service_gateway.config as config_module

    monkeypatch.setenv("MINIMUM_TRANSACTION_AMOUNT", "1500.50")
    try:
        assert importlib.reload(config_module).Config.MINIMUM_TRANSACTION_AMOUNT == Decimal("1500.50")
    finally:
        monkeypatch.undo()
        importlib.reload(config_module)

    assert config_module.Config.MINIMUM_TRANSACTION_AMOUNT == Decimal("1000")

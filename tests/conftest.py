import json
import os
from decimal import Decimal
from urllib.parse import urlsplit

# Harus di-set sebelum service di-import (Config membaca env saat import)
os.environ["DATABASE_URL_TABUNGAN"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"

import jwt
import pytest
import requests

from service_gateway.ledger import (SavingsAccount, SavingsTransaction,
                                    INCOME, PENDING, APPROVED)
from service_gateway.savings_client import ApiSession, SavingsClient, TransactionConflict


def make_transaction(id, type=INCOME, amount="10000", status=APPROVED, savings_id=1,
                     created_at=None, description="setoran"):
    return SavingsTransaction(
        id=id,
        savings_id=savings_id,
        type=type,
        amount=Decimal(str(amount)),
        status=status,
        description=description,
        created_at=created_at or f"2024-01-{id:02d}T08:00:00",
    )


class FakeSavingsClient:
    """In-memory stand-in for service-tabungan, first decision wins."""

    def __init__(self):
        self.accounts = {}
        self.transactions = {}
        self.status_calls = []
        self.submitted = []

    def add_account(self, id, santri_id, balance="0"):
        self.accounts[id] = SavingsAccount(id=id, santri_id=santri_id, balance=Decimal(balance))
        return self.accounts[id]

    def add_transaction(self, transaction):
        self.transactions[transaction.id] = transaction
        return transaction

    def list_accounts(self):
        return list(self.accounts.values())

    def create_account(self, santri_id, santri_name=None):
        account = SavingsAccount(id=len(self.accounts) + 1, santri_id=santri_id,
                                 balance=Decimal("0"), santri_name=santri_name)
        self.accounts[account.id] = account
        return account

    def fetch_account(self, account_id):
        return self.accounts[account_id]

    def fetch_balance(self, santri_id):
        account = next(a for a in self.accounts.values() if a.santri_id == santri_id)
        return {"santri_id": santri_id, "balance": account.balance,
                "total_income": account.balance, "total_expense": Decimal("0")}

    def fetch_transactions(self, account_id):
        return [t for t in self.transactions.values() if t.savings_id == account_id]

    def fetch_transaction(self, transaction_id):
        return self.transactions[transaction_id]

    def submit_transaction(self, account_id, transaction_type, amount, description,
                           proof_ref=None, actor_id=None):
        transaction = SavingsTransaction(
            id=len(self.transactions) + 1,
            savings_id=account_id,
            type=transaction_type,
            amount=Decimal(str(amount)),
            status=PENDING,
            description=description,
            proof_url=proof_ref,
            created_by=actor_id,
        )
        self.submitted.append(transaction)
        self.transactions[transaction.id] = transaction
        return transaction

    def set_transaction_status(self, transaction_id, decision, actor_id):
        self.status_calls.append((transaction_id, decision, actor_id))
        current = self.transactions[transaction_id]
        if current.status != PENDING:
            response = requests.models.Response()
            response.status_code = 409
            response._content = json.dumps({"message": f"Transaksi sudah {current.status}"}).encode()
            raise TransactionConflict(f"Transaksi sudah {current.status}", response=response)
        updated = current.with_status(decision)
        self.transactions[transaction_id] = updated
        if decision == APPROVED:
            account = self.accounts.get(current.savings_id)
            if account is not None:
                delta = current.amount if current.type == INCOME else -current.amount
                self.accounts[account.id] = SavingsAccount(
                    id=account.id, santri_id=account.santri_id,
                    balance=account.balance + delta)
        return updated


class FlaskTestTransport:
    """Minimal requests.Session look-alike that sends requests to a Flask test client."""

    def __init__(self, test_client):
        self.test_client = test_client
        self.headers = {}

    def request(self, method, url, json=None, headers=None, timeout=None):
        path = urlsplit(url).path
        merged = dict(self.headers)
        merged.update(headers or {})
        result = self.test_client.open(path, method=method, json=json, headers=merged)

        response = requests.models.Response()
        response.status_code = result.status_code
        response._content = result.get_data()
        response.headers.update(dict(result.headers))
        response.url = url
        response.reason = result.status.split(" ", 1)[1] if " " in result.status else ""
        return response


@pytest.fixture
def fake_client():
    return FakeSavingsClient()


@pytest.fixture(scope="session")
def store_app():
    from service_tabungan.app import app
    app.config["TESTING"] = True
    return app


@pytest.fixture
def store_client(store_app):
    from service_tabungan.models import db
    with store_app.app_context():
        db.drop_all()
        db.create_all()
    yield store_app.test_client()
    with store_app.app_context():
        db.session.remove()


@pytest.fixture
def savings_client(store_client):
    """Real SavingsClient talking to service-tabungan through its test client."""
    transport = FlaskTestTransport(store_client)
    return SavingsClient(ApiSession("http://tabungan.test", token="abc"), http=transport)


@pytest.fixture(scope="session")
def gateway_app():
    from service_gateway.app import app
    app.config["TESTING"] = True
    app.config["JWT_SECRET"] = "test-secret"
    app.config["MINIMUM_TRANSACTION_AMOUNT"] = 1000
    return app


@pytest.fixture
def gateway_client(gateway_app, fake_client, monkeypatch):
    import service_gateway.app as gateway_module
    monkeypatch.setattr(gateway_module, "get_savings_client", lambda: fake_client)
    return gateway_app.test_client()


@pytest.fixture
def auth_headers(gateway_app):
    token = jwt.encode({"user_id": 7}, gateway_app.config["JWT_SECRET"], algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}

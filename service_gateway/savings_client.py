# savings_client.py
"""
HTTP client for service-tabungan.

This is the only place where store responses are decoded. Whatever envelope
the store answers with ({"success": ..., "data": ...}, {"data": ...} or the
bare object) is unwrapped here and turned into ledger records, so routes and
the approval workflow only ever see typed values.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

import requests

from .ledger import SavingsAccount, SavingsTransaction, parse_balance

logger = logging.getLogger(__name__)


class SavingsServiceError(Exception):
    """The store answered with something we cannot use."""


class TransactionConflict(requests.exceptions.HTTPError):
    """The store refused a status change because the transaction is already final."""


@dataclass(frozen=True)
class ApiSession:
    """Where to reach the store and as whom. Built once per incoming request."""
    base_url: str
    token: Optional[str] = None
    timeout: float = 10

    def url(self, path):
        base = self.base_url[:-1] if self.base_url.endswith("/") else self.base_url
        if path.startswith("/"):
            path = path[1:]
        return f"{base}/{path}"

    @property
    def authorization(self):
        if not self.token:
            return None
        return self.token if self.token.startswith("Bearer ") else f"Bearer {self.token}"


def unwrap_envelope(payload):
    if isinstance(payload, dict):
        if "success" in payload:
            if not payload["success"]:
                raise SavingsServiceError(payload.get("error") or payload.get("message") or "Request gagal")
            return payload.get("data")
        if "data" in payload and "id" not in payload:
            return payload["data"]
    return payload


def error_message(response):
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason
    if isinstance(body, dict):
        return body.get("message") or body.get("error") or response.reason
    return response.reason


def _decode(record_cls, data):
    try:
        return record_cls.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise SavingsServiceError(f"Data {record_cls.__name__} tidak valid: {data!r}") from e


def _decode_list(record_cls, data):
    if not isinstance(data, list):
        raise SavingsServiceError(f"Data {record_cls.__name__} array tidak valid: {data!r}")
    return [_decode(record_cls, item) for item in data]


class SavingsClient:

    def __init__(self, api_session: ApiSession, http=None):
        self.api_session = api_session
        # http may be shared between requests: per-user headers go on each call
        self.http = http or requests.Session()

    def _request(self, method, path, json=None, actor_id=None):
        url = self.api_session.url(path)
        headers = {}
        if self.api_session.authorization:
            headers["Authorization"] = self.api_session.authorization
        if actor_id is not None:
            headers["X-User-Id"] = str(actor_id)

        logger.info("[Gateway] -> %s %s actor=%s", method, url, actor_id or "-")
        response = self.http.request(method, url, json=json, headers=headers,
                                     timeout=self.api_session.timeout)

        if response.status_code == 409:
            message = error_message(response)
            logger.warning("Conflict from %s: %s", url, message)
            raise TransactionConflict(message, response=response)
        if not response.ok:
            logger.warning("%s %s failed with %s", method, url, response.status_code)
        response.raise_for_status()

        try:
            payload = response.json()
        except ValueError as e:
            raise SavingsServiceError(f"Respon bukan JSON dari {url}") from e
        return unwrap_envelope(payload)

    # --- rekening ---

    def list_accounts(self) -> List[SavingsAccount]:
        return _decode_list(SavingsAccount, self._request("GET", "savings/"))

    def create_account(self, santri_id, santri_name=None) -> SavingsAccount:
        payload = {"santri_id": santri_id}
        if santri_name:
            payload["santri_name"] = santri_name
        return _decode(SavingsAccount, self._request("POST", "savings/", json=payload))

    def fetch_account(self, account_id) -> SavingsAccount:
        return _decode(SavingsAccount, self._request("GET", f"savings/{account_id}"))

    def fetch_balance(self, santri_id):
        data = self._request("GET", f"savings/balance/{santri_id}")
        if not isinstance(data, dict) or "balance" not in data:
            raise SavingsServiceError(f"Data saldo tabungan tidak valid: {data!r}")
        return {
            "santri_id": data.get("santri_id", santri_id),
            "balance": parse_balance(data.get("balance")),
            "total_income": parse_balance(data.get("total_income")),
            "total_expense": parse_balance(data.get("total_expense")),
        }

    # --- transaksi ---

    def fetch_transactions(self, account_id) -> List[SavingsTransaction]:
        return _decode_list(SavingsTransaction,
                            self._request("GET", f"savings/{account_id}/transactions"))

    def fetch_transaction(self, transaction_id) -> SavingsTransaction:
        return _decode(SavingsTransaction,
                       self._request("GET", f"savings/transactions/{transaction_id}"))

    def submit_transaction(self, account_id, transaction_type, amount, description,
                           proof_ref=None, actor_id=None) -> SavingsTransaction:
        payload = {
            "type": transaction_type,
            "amount": str(amount),
            "description": description,
        }
        if proof_ref:
            payload["proof_url"] = proof_ref
        data = self._request("POST", f"savings/{account_id}/transactions",
                             json=payload, actor_id=actor_id)
        return _decode(SavingsTransaction, data)

    def set_transaction_status(self, transaction_id, decision, actor_id) -> SavingsTransaction:
        data = self._request("PATCH", f"savings/transactions/{transaction_id}/status",
                             json={"decision": decision}, actor_id=actor_id)
        return _decode(SavingsTransaction, data)

# approval.py
"""
Approval workflow for savings transactions.

Every transaction is created PENDING and only becomes money after a second
person approves it:

    PENDING --approve--> APPROVED
    PENDING --reject---> REJECTED

APPROVED and REJECTED are final. The store (service-tabungan) is the one that
actually performs the transition; this module refuses transitions it already
knows to be invalid and validates new transactions before they leave the
gateway.
"""
import logging
from decimal import Decimal, InvalidOperation

from .ledger import (APPROVED, REJECTED, PENDING, TRANSACTION_TYPES,
                     SavingsTransaction)

logger = logging.getLogger(__name__)

DEFAULT_MINIMUM_AMOUNT = Decimal("1000")


class TabunganError(Exception):
    """Base class for savings workflow errors."""


class InvalidStateTransition(TabunganError):
    def __init__(self, transaction, decision):
        self.transaction = transaction
        self.decision = decision
        super().__init__(
            f"Transaksi {transaction.id} berstatus {transaction.status}, "
            f"tidak bisa diubah menjadi {decision}."
        )


class TransactionValidationError(TabunganError):
    """Input rejected before anything is sent to the store."""


class BelowMinimumAmount(TransactionValidationError):
    def __init__(self, amount, minimum):
        self.amount = amount
        self.minimum = minimum
        super().__init__(f"Jumlah minimal transaksi adalah {minimum}, diterima {amount}.")


class MissingDescription(TransactionValidationError):
    def __init__(self):
        super().__init__("Keterangan transaksi wajib diisi.")


class InvalidTransactionType(TransactionValidationError):
    def __init__(self, transaction_type):
        self.transaction_type = transaction_type
        super().__init__(f'Tipe harus "INCOME" atau "EXPENSE", diterima {transaction_type!r}.')


class ApprovalWorkflow:
    """
    Creates, approves and rejects savings transactions through a client
    exposing submit_transaction() and set_transaction_status().

    Nothing here retries: a failed call to the store propagates unchanged so
    a financial mutation is never sent twice by accident.
    """

    def __init__(self, client, minimum_amount=DEFAULT_MINIMUM_AMOUNT):
        self.client = client
        self.minimum_amount = Decimal(str(minimum_amount))

    def validate(self, transaction_type, amount, description):
        if transaction_type not in TRANSACTION_TYPES:
            raise InvalidTransactionType(transaction_type)
        try:
            value = Decimal(str(amount).strip())
        except (InvalidOperation, ValueError):
            raise BelowMinimumAmount(amount, self.minimum_amount)
        if not value.is_finite() or value < self.minimum_amount:
            raise BelowMinimumAmount(amount, self.minimum_amount)
        if description is None or not str(description).strip():
            raise MissingDescription()
        return value, str(description).strip()

    def create(self, account_id, transaction_type, amount, description,
               proof_ref=None, actor_id=None) -> SavingsTransaction:
        value, description = self.validate(transaction_type, amount, description)
        transaction = self.client.submit_transaction(
            account_id, transaction_type, value, description, proof_ref, actor_id=actor_id
        )
        logger.info("Transaction %s submitted for account %s, waiting for approval",
                    transaction.id, account_id)
        return transaction

    def approve(self, transaction: SavingsTransaction, actor_id) -> SavingsTransaction:
        return self._decide(transaction, APPROVED, actor_id)

    def reject(self, transaction: SavingsTransaction, actor_id) -> SavingsTransaction:
        return self._decide(transaction, REJECTED, actor_id)

    def _decide(self, transaction, decision, actor_id):
        if transaction.status != PENDING:
            raise InvalidStateTransition(transaction, decision)
        updated = self.client.set_transaction_status(transaction.id, decision, actor_id)
        logger.info("Transaction %s %s by user %s", transaction.id, decision, actor_id)
        return updated

# ledger.py
"""
Savings ledger view model.

Recomputes an account balance from its transaction list and puts it next to
the balance reported by service-tabungan. The computed value is a cross-check
for the admin, it never replaces the server balance.
"""
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional

INCOME = "INCOME"
EXPENSE = "EXPENSE"
TRANSACTION_TYPES = (INCOME, EXPENSE)

PENDING = "PENDING"
APPROVED = "APPROVED"
REJECTED = "REJECTED"
TERMINAL_STATUSES = (APPROVED, REJECTED)

ZERO = Decimal("0")


def read_decimal(value) -> Optional[Decimal]:
    """Read a money value sent as string, int, float or Decimal; None if unreadable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        parsed = value
    else:
        try:
            parsed = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None
    return parsed if parsed.is_finite() else None


def parse_balance(value) -> Decimal:
    """
    Read a balance or amount sent as string, int, float or Decimal.
    Unreadable values become 0, the same leniency the dashboard always had.
    """
    parsed = read_decimal(value)
    return ZERO if parsed is None else parsed


@dataclass(frozen=True)
class SavingsAccount:
    id: int
    santri_id: int
    # None when the store sent something that is not a number
    balance: Optional[Decimal]
    santri_name: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def display_name(self):
        return self.santri_name or f"Santri {self.santri_id}"

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=int(data["id"]),
            santri_id=int(data["santri_id"]),
            balance=read_decimal(data.get("balance")),
            santri_name=data.get("santri_name"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "santri_id": self.santri_id,
            "santri_name": self.display_name,
            "balance": str(self.balance) if self.balance is not None else None,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class SavingsTransaction:
    id: int
    savings_id: int
    type: str
    amount: Decimal
    status: str
    description: str = ""
    proof_url: Optional[str] = None
    created_by: Optional[int] = None
    approved_by: Optional[int] = None
    approved_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_pending(self):
        return self.status == PENDING

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=int(data["id"]),
            savings_id=int(data["savings_id"]),
            type=data["type"],
            amount=parse_balance(data.get("amount")),
            status=data["status"],
            description=data.get("description") or "",
            proof_url=data.get("proof_url"),
            created_by=data.get("created_by"),
            approved_by=data.get("approved_by"),
            approved_at=data.get("approved_at"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    def with_status(self, status):
        return replace(self, status=status)

    def to_dict(self):
        return {
            "id": self.id,
            "savings_id": self.savings_id,
            "type": self.type,
            "amount": str(self.amount),
            "status": self.status,
            "description": self.description,
            "proof_url": self.proof_url,
            "created_by": self.created_by,
            "approved_by": self.approved_by,
            "approved_at": self.approved_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class BalanceSummary:
    total_income: Decimal = ZERO
    total_expense: Decimal = ZERO
    net_balance: Decimal = ZERO

    def to_dict(self):
        return {
            "total_income": str(self.total_income),
            "total_expense": str(self.total_expense),
            "net_balance": str(self.net_balance),
        }


@dataclass(frozen=True)
class Reconciliation:
    server_balance: object
    computed_net_balance: Decimal
    matches: bool

    def to_dict(self):
        return {
            "server_balance": str(self.server_balance) if self.server_balance is not None else None,
            "computed_net_balance": str(self.computed_net_balance),
            "matches": self.matches,
        }


def compute_balance(transactions: Iterable[SavingsTransaction]) -> BalanceSummary:
    """
    Sum approved income and expense of one account.

    PENDING and REJECTED entries are skipped entirely, as are entries whose
    type is neither INCOME nor EXPENSE. The net balance is not clamped at zero.
    """
    total_income = ZERO
    total_expense = ZERO
    for transaction in transactions:
        if transaction.status != APPROVED:
            continue
        if transaction.type == INCOME:
            total_income += transaction.amount
        elif transaction.type == EXPENSE:
            total_expense += transaction.amount
    return BalanceSummary(total_income, total_expense, total_income - total_expense)


def reconcile(server_balance, computed_net_balance) -> Reconciliation:
    """Compare the server balance with the computed one. Never raises."""
    try:
        server = Decimal(str(server_balance).strip())
        computed = Decimal(str(computed_net_balance).strip())
        matches = server.is_finite() and computed.is_finite() and server == computed
    except (InvalidOperation, ValueError):
        matches = False
    return Reconciliation(server_balance, computed_net_balance, matches)


def patch_transaction(transactions: Iterable[SavingsTransaction],
                      updated: SavingsTransaction) -> List[SavingsTransaction]:
    """Return a new list with the entry sharing updated.id swapped for updated."""
    return [updated if t.id == updated.id else t for t in transactions]


@dataclass(frozen=True)
class LedgerView:
    account: SavingsAccount
    transactions: List[SavingsTransaction] = field(default_factory=list)
    summary: BalanceSummary = field(default_factory=BalanceSummary)
    reconciliation: Optional[Reconciliation] = None

    @property
    def pending(self):
        return [t for t in self.transactions if t.is_pending]

    def to_dict(self):
        return {
            "account": self.account.to_dict(),
            "summary": self.summary.to_dict(),
            "reconciliation": self.reconciliation.to_dict() if self.reconciliation else None,
            "pending": [t.to_dict() for t in self.pending],
            "transactions": [t.to_dict() for t in self.transactions],
        }


def build_ledger_view(account: SavingsAccount,
                      transactions: Iterable[SavingsTransaction]) -> LedgerView:
    # newest first; entries without a timestamp sort last
    ordered = sorted(transactions, key=lambda t: (t.created_at or "", t.id), reverse=True)
    summary = compute_balance(ordered)
    return LedgerView(
        account=account,
        transactions=ordered,
        summary=summary,
        reconciliation=reconcile(account.balance, summary.net_balance),
    )

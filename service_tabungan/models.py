# service_tabungan/models.py

from flask_sqlalchemy import SQLAlchemy
from datetime import datetime
from decimal import Decimal # Wajib untuk uang

db = SQLAlchemy()

# Tipe & status transaksi (string apa adanya di DB dan JSON)
INCOME = 'INCOME'
EXPENSE = 'EXPENSE'
TRANSACTION_TYPES = (INCOME, EXPENSE)

PENDING = 'PENDING'
APPROVED = 'APPROVED'
REJECTED = 'REJECTED'
DECISIONS = (APPROVED, REJECTED)


class SavingsAccount(db.Model):
    __tablename__ = 'savings_accounts'

    id = db.Column(db.Integer, primary_key=True)
    # Satu santri hanya boleh punya SATU rekening tabungan
    santri_id = db.Column(db.Integer, unique=True, nullable=False)
    santri_name = db.Column(db.String(150), nullable=True)
    # Saldo resmi dari server. Gunakan Numeric/Decimal untuk uang, BUKAN float
    balance = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal('0.00'))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    transactions = db.relationship('SavingsTransaction', backref='savings', lazy=True)

    def to_dict(self):
        return {
            'id': self.id,
            'santri_id': self.santri_id,
            'santri_name': self.santri_name,
            'balance': str(self.balance), # Selalu kirim uang sebagai string di JSON
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat()
        }


class SavingsTransaction(db.Model):
    __tablename__ = 'savings_transactions'

    id = db.Column(db.Integer, primary_key=True)
    savings_id = db.Column(db.Integer, db.ForeignKey('savings_accounts.id'), nullable=False, index=True)

    type = db.Column(db.String(10), nullable=False) # 'INCOME', 'EXPENSE'
    amount = db.Column(db.Numeric(15, 2), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    # Bukti transfer (URL), hanya ditampilkan
    proof_url = db.Column(db.String(500), nullable=True)

    # Status transaksi: 'PENDING' -> 'APPROVED' / 'REJECTED' (sekali saja)
    status = db.Column(db.String(10), nullable=False, default=PENDING, index=True)
    created_by = db.Column(db.Integer, nullable=True)
    approved_by = db.Column(db.Integer, nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'savings_id': self.savings_id,
            'type': self.type,
            'amount': str(self.amount),
            'description': self.description,
            'proof_url': self.proof_url,
            'status': self.status,
            'created_by': self.created_by,
            'approved_by': self.approved_by,
            'approved_at': self.approved_at.isoformat() if self.approved_at else None,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat()
        }

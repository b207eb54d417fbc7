# service_tabungan/app.py

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation

from flask import Flask, request
from flask_restx import Api, Resource, fields
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

# Import dari file kita sendiri
from .config import Config
from .models import (db, SavingsAccount, SavingsTransaction,
                     INCOME, EXPENSE, TRANSACTION_TYPES, PENDING, APPROVED, DECISIONS)

logger = logging.getLogger(__name__)

# --- 1. INISIALISASI APLIKASI ---
app = Flask(__name__)
app.config.from_object(Config)

db.init_app(app)
api = Api(app,
          doc='/api-docs/',
          title='Tabungan Service API',
          description='Layanan untuk menyimpan Rekening Tabungan santri, Transaksi, dan Saldo resmi.')

# --- 2. MODEL API (Flask-RESTX) ---
savings_ns = api.namespace('savings', description='Operasi Rekening & Transaksi Tabungan (dipanggil lewat Gateway)')

# Model untuk output (rekening + saldo resmi)
account_model = api.model('SavingsAccount', {
    'id': fields.Integer,
    'santri_id': fields.Integer,
    'santri_name': fields.String,
    'balance': fields.String,
    'created_at': fields.String,
    'updated_at': fields.String
})

# Model untuk output (ringkasan saldo per santri)
balance_model = api.model('SavingsBalance', {
    'santri_id': fields.Integer,
    'balance': fields.String,
    'total_income': fields.String,
    'total_expense': fields.String
})

transaction_model = api.model('SavingsTransaction', {
    'id': fields.Integer,
    'savings_id': fields.Integer,
    'type': fields.String,
    'amount': fields.String,
    'description': fields.String,
    'proof_url': fields.String,
    'status': fields.String,
    'created_by': fields.Integer,
    'approved_by': fields.Integer,
    'approved_at': fields.String,
    'created_at': fields.String,
    'updated_at': fields.String
})

# Model untuk input (buka rekening baru)
account_input_model = api.model('SavingsAccountInput', {
    'santri_id': fields.Integer(required=True, description='ID santri pemilik rekening'),
    'santri_name': fields.String(description='Nama santri (untuk tampilan)')
})

# Model untuk input (transaksi baru, selalu PENDING)
transaction_input_model = api.model('SavingsTransactionInput', {
    'type': fields.String(required=True, enum=list(TRANSACTION_TYPES)),
    'amount': fields.String(required=True, description='Jumlah uang (desimal sebagai string)'),
    'description': fields.String(required=True, description='Keterangan transaksi'),
    'proof_url': fields.String(description='URL bukti transaksi')
})

# Model untuk input (approve / reject)
status_input_model = api.model('TransactionStatusInput', {
    'decision': fields.String(required=True, enum=list(DECISIONS))
})

# --- 3. HELPER ---
# Gateway sudah memvalidasi JWT dan mengirim ID user di header 'X-User-Id'
def get_user_id_from_header(required=True):
    user_id = request.headers.get('X-User-Id')
    if not user_id:
        if not required:
            return None
        api.abort(401, 'Header X-User-Id tidak ada. Request harus melalui API Gateway.')
    try:
        return int(user_id)
    except ValueError:
        api.abort(400, 'Header X-User-Id harus berupa angka.')

def get_account_or_404(savings_id):
    account = db.session.get(SavingsAccount, savings_id)
    if not account:
        api.abort(404, f'Rekening tabungan {savings_id} tidak ditemukan.')
    return account

def sum_approved(savings_id, transaction_type):
    total = db.session.query(db.func.sum(SavingsTransaction.amount)).filter(
        SavingsTransaction.savings_id == savings_id,
        SavingsTransaction.type == transaction_type,
        SavingsTransaction.status == APPROVED
    ).scalar()
    return Decimal(str(total)) if total is not None else Decimal('0.00')

# --- 4. ENDPOINTS REKENING ---
@savings_ns.route('/')
class SavingsAccountList(Resource):
    @savings_ns.doc('list_savings_accounts')
    @savings_ns.marshal_list_with(account_model)
    def get(self):
        """(R)EAD: Daftar semua rekening tabungan"""
        accounts = SavingsAccount.query.order_by(SavingsAccount.created_at.desc()).all()
        return [a.to_dict() for a in accounts]

    @savings_ns.doc('create_savings_account')
    @savings_ns.expect(account_input_model)
    @savings_ns.marshal_with(account_model, code=201)
    def post(self):
        """(C)REATE: Membuka rekening tabungan untuk santri"""
        data = api.payload or {}
        santri_id = data.get('santri_id')
        if not isinstance(santri_id, int):
            api.abort(400, 'santri_id wajib diisi (angka).')

        account = SavingsAccount(santri_id=santri_id,
                                 santri_name=data.get('santri_name'),
                                 balance=Decimal('0.00'))
        db.session.add(account)
        try:
            db.session.commit()
        except IntegrityError:
            # santri_id unik di DB: request kedua (termasuk yang bersamaan) ditolak di sini
            db.session.rollback()
            api.abort(400, f'Rekening untuk santri_id {santri_id} sudah ada.')
        logger.info('Rekening %s dibuka untuk santri %s', account.id, santri_id)
        return account.to_dict(), 201


@savings_ns.route('/<int:savings_id>')
class SavingsAccountDetail(Resource):
    @savings_ns.doc('get_savings_account')
    @savings_ns.marshal_with(account_model)
    def get(self, savings_id):
        """(R)EAD: Detail rekening, termasuk saldo resmi"""
        return get_account_or_404(savings_id).to_dict()


@savings_ns.route('/balance/<int:santri_id>')
class SavingsBalance(Resource):
    @savings_ns.doc('get_santri_balance')
    @savings_ns.marshal_with(balance_model)
    def get(self, santri_id):
        """(R)EAD: Ringkasan saldo santri (hanya transaksi APPROVED)"""
        account = SavingsAccount.query.filter_by(santri_id=santri_id).first()
        if not account:
            api.abort(404, f'Rekening untuk santri_id {santri_id} tidak ditemukan.')
        return {
            'santri_id': santri_id,
            'balance': str(account.balance),
            'total_income': str(sum_approved(account.id, INCOME)),
            'total_expense': str(sum_approved(account.id, EXPENSE))
        }

# --- 5. ENDPOINTS TRANSAKSI ---
@savings_ns.route('/<int:savings_id>/transactions')
class SavingsTransactionList(Resource):
    @savings_ns.doc('list_savings_transactions')
    @savings_ns.marshal_list_with(transaction_model)
    def get(self, savings_id):
        """(R)EAD: Semua transaksi rekening (semua status, terbaru dulu)"""
        get_account_or_404(savings_id)
        transactions = SavingsTransaction.query.filter_by(savings_id=savings_id)\
            .order_by(SavingsTransaction.created_at.desc(), SavingsTransaction.id.desc()).all()
        return [t.to_dict() for t in transactions]

    @savings_ns.doc('create_savings_transaction')
    @savings_ns.expect(transaction_input_model)
    @savings_ns.marshal_with(transaction_model, code=201)
    def post(self, savings_id):
        """(C)REATE: Mencatat transaksi baru (status PENDING, menunggu approval)"""
        get_account_or_404(savings_id)
        data = api.payload or {}

        if data.get('type') not in TRANSACTION_TYPES:
            api.abort(400, 'Tipe harus "INCOME" atau "EXPENSE".')
        try:
            amount = Decimal(str(data.get('amount')))
        except InvalidOperation:
            api.abort(400, 'Jumlah transaksi tidak valid.')
        if not amount.is_finite() or amount <= 0:
            api.abort(400, 'Jumlah transaksi harus positif.')
        description = (data.get('description') or '').strip()
        if not description:
            api.abort(400, 'Keterangan transaksi wajib diisi.')

        transaction = SavingsTransaction(
            savings_id=savings_id,
            type=data['type'],
            amount=amount,
            description=description,
            proof_url=data.get('proof_url'),
            status=PENDING,
            created_by=get_user_id_from_header(required=False)
        )
        db.session.add(transaction)
        db.session.commit()
        logger.info('Transaksi %s (%s %s) dicatat untuk rekening %s',
                    transaction.id, transaction.type, amount, savings_id)
        return transaction.to_dict(), 201


@savings_ns.route('/transactions/<int:transaction_id>')
class SavingsTransactionDetail(Resource):
    @savings_ns.doc('get_savings_transaction')
    @savings_ns.marshal_with(transaction_model)
    def get(self, transaction_id):
        """(R)EAD: Detail satu transaksi"""
        transaction = db.session.get(SavingsTransaction, transaction_id)
        if not transaction:
            api.abort(404, 'Transaksi tidak ditemukan.')
        return transaction.to_dict()


@savings_ns.route('/transactions/<int:transaction_id>/status')
class SavingsTransactionStatus(Resource):
    @savings_ns.doc('set_transaction_status')
    @savings_ns.expect(status_input_model)
    @savings_ns.marshal_with(transaction_model)
    def patch(self, transaction_id):
        """(U)PDATE: Approve / reject transaksi PENDING (hanya sekali)"""
        actor_id = get_user_id_from_header()
        decision = (api.payload or {}).get('decision')
        if decision not in DECISIONS:
            api.abort(400, 'Keputusan harus "APPROVED" atau "REJECTED".')

        transaction = db.session.get(SavingsTransaction, transaction_id)
        if not transaction:
            api.abort(404, 'Transaksi tidak ditemukan.')
        if transaction.status != PENDING:
            api.abort(409, f'Transaksi sudah {transaction.status}, tidak bisa diubah lagi.')

        try:
            # Update bersyarat: hanya berhasil jika status di DB masih PENDING
            # (request pertama yang menang, request berikutnya dapat 409)
            result = db.session.execute(
                db.update(SavingsTransaction)
                .where(SavingsTransaction.id == transaction_id,
                       SavingsTransaction.status == PENDING)
                .values(status=decision, approved_by=actor_id, approved_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            failure = None
            if result.rowcount == 0:
                failure = (409, 'Transaksi sudah diproses oleh admin lain.')
            elif decision == APPROVED:
                balance_update = db.update(SavingsAccount).where(SavingsAccount.id == transaction.savings_id)
                if transaction.type == INCOME:
                    balance_update = balance_update.values(balance=SavingsAccount.balance + transaction.amount)
                else:
                    # Saldo dicek di dalam UPDATE yang sama, bukan dibaca duluan
                    balance_update = balance_update.where(SavingsAccount.balance >= transaction.amount)\
                        .values(balance=SavingsAccount.balance - transaction.amount)
                balance_result = db.session.execute(
                    balance_update.execution_options(synchronize_session=False)
                )
                if balance_result.rowcount == 0:
                    failure = (400, 'Saldo tidak mencukupi.')

            if failure:
                db.session.rollback()
            else:
                db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error('Gagal mengubah status transaksi %s: %s', transaction_id, e)
            api.abort(500, f'Terjadi error internal: {e}')

        if failure:
            api.abort(*failure)

        db.session.refresh(transaction)
        logger.info('Transaksi %s -> %s oleh user %s', transaction_id, decision, actor_id)
        return transaction.to_dict()


@api.route('/health')
class Health(Resource):
    def get(self):
        """Cek status service"""
        return {'status': 'healthy'}


# --- 6. BUAT TABEL & JALANKAN SERVER ---
with app.app_context():
    db.create_all()

if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    # Port 3004 untuk service-tabungan
    app.run(port=app.config['PORT'], debug=True)

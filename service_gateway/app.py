# service_gateway/app.py
import logging

from flask import Flask, request, jsonify, g
from flask_cors import CORS
import requests

from .config import Config
from .jwt_utils import require_jwt, get_actor_id  # JWT middleware
from .ledger import build_ledger_view
from .approval import ApprovalWorkflow, InvalidStateTransition, TransactionValidationError
from .savings_client import ApiSession, SavingsClient, SavingsServiceError

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config.from_object(Config)

# Izinkan SEMUA origin (untuk frontend dashboard admin)
CORS(app, resources={r"/*": {"origins": "*"}})

# Satu koneksi pool untuk semua request; token dikirim per request, bukan disimpan di sini
http_session = requests.Session()


# =============================
# HELPER
# =============================
def get_savings_client():
    # Token dari request yang sedang berjalan diteruskan ke service-tabungan
    session = ApiSession(
        base_url=app.config["SAVINGS_SERVICE_URL"],
        token=g.get("token"),
        timeout=app.config["REQUEST_TIMEOUT"],
    )
    return SavingsClient(session, http=http_session)


def get_workflow(client):
    return ApprovalWorkflow(client, app.config["MINIMUM_TRANSACTION_AMOUNT"])


def load_ledger(client, savings_id):
    account = client.fetch_account(savings_id)
    transactions = client.fetch_transactions(savings_id)
    return build_ledger_view(account, transactions)


# =============================
# ERROR HANDLERS
# =============================
@app.errorhandler(TransactionValidationError)
def handle_validation_error(e):
    return jsonify({"message": str(e)}), 400


@app.errorhandler(InvalidStateTransition)
def handle_invalid_transition(e):
    return jsonify({"message": str(e), "status": e.transaction.status}), 409


@app.errorhandler(requests.exceptions.HTTPError)
def handle_store_http_error(e):
    # Error dari service-tabungan (404, 400, 409 ...) diteruskan apa adanya
    response = e.response
    if response is None:
        return jsonify({"message": str(e)}), 502
    try:
        body = response.json()
        message = body.get("message", "Error eksternal") if isinstance(body, dict) else "Error eksternal"
    except ValueError:
        message = response.text or "Error eksternal"
    return jsonify({"message": message}), response.status_code


@app.errorhandler(requests.exceptions.RequestException)
def handle_store_unreachable(e):
    logger.error("service-tabungan tidak terjangkau: %s", e)
    return jsonify({"message": f"Layanan tabungan tidak tersedia: {e}"}), 503


@app.errorhandler(SavingsServiceError)
def handle_bad_store_response(e):
    logger.error("Respon service-tabungan tidak valid: %s", e)
    return jsonify({"message": str(e)}), 502


# =============================
# ROUTES REKENING
# =============================
@app.route("/api/tabungan", methods=["GET"])
@require_jwt
def tabungan_list():
    accounts = get_savings_client().list_accounts()
    return jsonify([a.to_dict() for a in accounts])


@app.route("/api/tabungan", methods=["POST"])
@require_jwt
def tabungan_create():
    data = request.get_json(silent=True) or {}
    santri_id = data.get("santri_id")
    if not isinstance(santri_id, int) or isinstance(santri_id, bool):
        return jsonify({"message": "santri_id wajib diisi (angka)"}), 400
    account = get_savings_client().create_account(santri_id, data.get("santri_name"))
    return jsonify(account.to_dict()), 201


@app.route("/api/tabungan/<int:savings_id>", methods=["GET"])
@require_jwt
def tabungan_detail(savings_id):
    """Detail rekening: saldo server, saldo hitungan, dan transaksi PENDING."""
    view = load_ledger(get_savings_client(), savings_id)
    if not view.reconciliation.matches:
        logger.warning(
            "Saldo rekening %s tidak cocok: server=%s hitungan=%s",
            savings_id, view.reconciliation.server_balance,
            view.reconciliation.computed_net_balance,
        )
    return jsonify(view.to_dict())


@app.route("/api/tabungan/balance/<int:santri_id>", methods=["GET"])
@require_jwt
def tabungan_balance(santri_id):
    balance = get_savings_client().fetch_balance(santri_id)
    return jsonify({
        "santri_id": balance["santri_id"],
        "balance": str(balance["balance"]),
        "total_income": str(balance["total_income"]),
        "total_expense": str(balance["total_expense"]),
    })


# =============================
# ROUTES TRANSAKSI
# =============================
@app.route("/api/tabungan/<int:savings_id>/transaksi", methods=["GET"])
@require_jwt
def transaksi_list(savings_id):
    view = load_ledger(get_savings_client(), savings_id)
    return jsonify({
        "transactions": [t.to_dict() for t in view.transactions],
        "summary": view.summary.to_dict(),
    })


@app.route("/api/tabungan/<int:savings_id>/transaksi", methods=["POST"])
@require_jwt
def transaksi_create(savings_id):
    data = request.get_json(silent=True) or {}
    workflow = get_workflow(get_savings_client())
    transaction = workflow.create(
        savings_id,
        data.get("type"),
        data.get("amount"),
        data.get("description"),
        data.get("proof_url"),
        actor_id=get_actor_id(),
    )
    return jsonify({
        "message": "Transaksi berhasil dibuat! Menunggu approval admin.",
        "transaction": transaction.to_dict(),
    }), 201


@app.route("/api/tabungan/transaksi/<int:transaction_id>/approve", methods=["PATCH"])
@require_jwt
def transaksi_approve(transaction_id):
    data = request.get_json(silent=True) or {}
    approve = data.get("approve")
    if not isinstance(approve, bool):
        return jsonify({"message": "Field 'approve' harus true atau false"}), 400

    client = get_savings_client()
    workflow = get_workflow(client)
    transaction = client.fetch_transaction(transaction_id)
    if approve:
        updated = workflow.approve(transaction, get_actor_id())
    else:
        updated = workflow.reject(transaction, get_actor_id())

    # Keputusan sudah tersimpan; saldo dihitung ulang dari data terbaru
    try:
        ledger = load_ledger(client, updated.savings_id).to_dict()
    except (requests.exceptions.RequestException, SavingsServiceError) as e:
        logger.warning("Gagal memuat ulang rekening %s setelah approval: %s", updated.savings_id, e)
        ledger = None

    return jsonify({
        "message": f"Transaksi berhasil {'disetujui' if approve else 'ditolak'}",
        "transaction": updated.to_dict(),
        "ledger": ledger,
    })


# HEALTH CHECK
@app.route("/health")
def health():
    try:
        r = requests.get(f"{app.config['SAVINGS_SERVICE_URL']}/health", timeout=2)
        tabungan = "healthy" if r.status_code == 200 else "error"
    except requests.exceptions.RequestException:
        tabungan = "offline"
    return jsonify({"gateway": "healthy", "services": {"tabungan": tabungan}})


@app.route("/")
def index():
    return jsonify({
        "message": "Tabungan Santri API Gateway with JWT",
        "services": {"tabungan": app.config["SAVINGS_SERVICE_URL"]},
    })


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    app.run(host="0.0.0.0", port=app.config["PORT"], debug=True)

"""
JSON API consumed by the pages' forms and by the payment gateway.
"""
import hmac

from flask import Blueprint, request, jsonify, Response
from werkzeug.exceptions import HTTPException

from config import config
from db import Role, TransactionRepository
from services import (
    wallet_service, auth_service, treasurer_service, admin_service, report_service,
    sweep_expired, preview_expired
)
from services import audit_service
from web.auth import current_user, login_user, logout_user, login_required, roles_required
from web.helpers import run_async, request_context, request_ip, json_body
from utils.logger import get_logger
from utils.exceptions import VibraKasException, AuthenticationException, PermissionDeniedException

logger = get_logger("api")

api_bp = Blueprint("api", __name__, url_prefix="/api")

STAFF = (Role.ADMIN, Role.BENDAHARA)


# ============ Error handling ============

@api_bp.errorhandler(VibraKasException)
def handle_app_error(e: VibraKasException):
    if e.status_code >= 500:
        logger.error(f"{request.method} {request.path} failed: {e.message}", **e.details)
    return jsonify({"message": e.message}), e.status_code


@api_bp.errorhandler(413)
def handle_too_large(e):
    return jsonify({"message": "Ukuran file terlalu besar"}), 413


@api_bp.errorhandler(HTTPException)
def handle_http_error(e: HTTPException):
    return jsonify({"message": e.description}), e.code


@api_bp.errorhandler(Exception)
def handle_unexpected(e: Exception):
    logger.error(f"Unhandled error on {request.method} {request.path}", exc_info=True, error=str(e))
    return jsonify({"message": "Terjadi kesalahan server"}), 500


# ============ Auth ============

@api_bp.route("/auth/login", methods=["POST"])
def login():
    data = json_body()
    user = run_async(auth_service.login(data.get("email"), data.get("password"), request_ip()))
    login_user(user)
    return jsonify({
        "message": "Login berhasil",
        "user": {"id": user.id, "name": user.name, "email": user.email, "balance": user.balance}
    })


@api_bp.route("/auth/logout", methods=["POST"])
def logout():
    logout_user()
    return jsonify({"message": "Logout berhasil"})


@api_bp.route("/auth/register/request-otp", methods=["POST"])
def register_request_otp():
    data = json_body()
    verification = run_async(auth_service.request_registration_otp(
        data.get("name"), data.get("email"), data.get("password")
    ))
    return jsonify({
        "message": "OTP telah dikirim ke email Anda. Silakan cek inbox email Anda.",
        "verificationId": verification.id
    })


@api_bp.route("/auth/register/verify-otp", methods=["POST"])
def register_verify_otp():
    data = json_body()
    user = run_async(auth_service.verify_registration_otp(
        data.get("verificationId"), data.get("otpCode")
    ))
    login_user(user)
    return jsonify({
        "message": "Registrasi berhasil! Email Anda telah diverifikasi.",
        "user": {"id": user.id, "name": user.name, "email": user.email}
    })


@api_bp.route("/auth/change-email/request-otp", methods=["POST"])
@login_required
def change_email_request_otp():
    verification = run_async(auth_service.request_change_email_otp(current_user()))
    return jsonify({
        "message": "Kode OTP telah dikirim ke email Anda saat ini",
        "verificationId": verification.id
    })


@api_bp.route("/auth/change-email/verify-and-update", methods=["POST"])
@login_required
def change_email_verify():
    data = json_body()
    user = run_async(auth_service.verify_and_update_email(
        current_user(), request_context(),
        data.get("verificationId"), data.get("otpCode"), data.get("newEmail")
    ))
    return jsonify({"message": "Email berhasil diperbarui", "email": user.email})


@api_bp.route("/me")
@login_required
def me():
    return jsonify({"user": current_user().to_dict()})


# ============ Payments ============

@api_bp.route("/payment/create", methods=["POST"])
@login_required
def payment_create():
    data = json_body()
    txn = run_async(wallet_service.create_gateway_payment(
        current_user(), data.get("amount"), data.get("method"),
        treasurer_account_id=data.get("treasurerAccountId")
    ))
    return jsonify({"message": "Transaksi berhasil dibuat", "transactionId": txn.id})


@api_bp.route("/payment/check/<txn_id>", methods=["POST"])
@login_required
def payment_check(txn_id: str):
    result = run_async(wallet_service.check_payment(current_user(), txn_id))
    return jsonify(result.to_dict())


@api_bp.route("/payment/status/<txn_id>")
@login_required
def payment_status(txn_id: str):
    result = run_async(wallet_service.get_payment_status(current_user(), txn_id))
    return jsonify(result.to_dict())


def _is_internal_request() -> bool:
    token = config.INTERNAL_API_TOKEN
    supplied = request.headers.get("X-Internal-Request", "")
    return bool(token) and hmac.compare_digest(supplied, token)


@api_bp.route("/payment/cleanup-expired", methods=["GET", "POST"])
def payment_cleanup_expired():
    """POST expires what is due; GET previews it."""
    if not _is_internal_request():
        user = current_user()
        if user is None:
            raise AuthenticationException()
        if not user.is_staff:
            raise PermissionDeniedException()

    if request.method == "GET":
        pending = run_async(TransactionRepository.list_pending())
        expired = run_async(preview_expired())
        return jsonify({
            "totalPending": len(pending),
            "expiredCount": len(expired),
            "expiredTransactions": [
                {
                    "id": txn.id,
                    "userId": txn.user_id,
                    "userName": txn.user_name,
                    "userEmail": txn.user_email,
                    "method": txn.method.value,
                    "amount": txn.amount,
                    "createdAt": txn.created_at.isoformat(),
                    "expiredAt": txn.expired_at.isoformat() if txn.expired_at else None
                }
                for txn in expired
            ]
        })

    result = run_async(sweep_expired())
    return jsonify({
        "success": True,
        "message": f"Berhasil mengubah {result.expired_count} transaksi expired menjadi failed",
        **result.to_dict()
    })


@api_bp.route("/payment/verify-treasurer", methods=["GET", "POST"])
@roles_required(*STAFF)
def payment_verify_treasurer():
    if request.method == "GET":
        pending = run_async(wallet_service.list_pending_treasurer_payments())
        return jsonify({
            "transactions": [txn.to_dict() for txn in pending],
            "count": len(pending)
        })

    data = json_body()
    result = run_async(wallet_service.verify_treasurer_payment(
        request_context(), data.get("transactionId"), data.get("action")
    ))
    return jsonify({"success": True, **result.to_dict()})


# ============ Manual transfer ============

@api_bp.route("/manual-transfer/create", methods=["POST"])
@login_required
def manual_transfer_create():
    txn = run_async(wallet_service.create_manual_transfer(
        current_user(),
        request.form.get("amount"),
        request.files.get("proof"),
        treasurer_account_id=request.form.get("treasurerAccountId"),
        notes=request.form.get("notes")
    ))
    return jsonify({
        "message": "Transaksi berhasil dibuat. Menunggu konfirmasi bendahara.",
        "transactionId": txn.id
    })


@api_bp.route("/manual-transfer/confirm", methods=["POST"])
@roles_required(*STAFF)
def manual_transfer_confirm():
    data = json_body()
    action = data.get("action")
    run_async(wallet_service.confirm_manual_transfer(
        request_context(), data.get("transactionId"), action
    ))
    verb = "setujui" if action == "approve" else "tolak"
    return jsonify({"message": f"Transaksi berhasil di{verb}"})


# ============ Transactions ============

@api_bp.route("/transactions")
@login_required
def transactions():
    txns = run_async(wallet_service.list_transactions(
        current_user(),
        status=request.args.get("status"),
        method=request.args.get("method"),
        txn_type=request.args.get("type")
    ))
    return jsonify({"transactions": [txn.to_dict() for txn in txns], "count": len(txns)})


@api_bp.route("/transactions/adjust", methods=["POST"])
@roles_required(*STAFF)
def transactions_adjust():
    data = json_body()
    result = run_async(wallet_service.adjust_balance(
        request_context(), data.get("userId"), data.get("amount"), data.get("reason")
    ))
    return jsonify({"success": True, "message": "Saldo berhasil disesuaikan", **result.to_dict()})


@api_bp.route("/transactions/delete", methods=["POST"])
@roles_required(*STAFF)
def transactions_delete():
    data = json_body()
    result = run_async(wallet_service.soft_delete_transaction(
        request_context(), data.get("transactionId"), data.get("reason")
    ))
    return jsonify({"success": True, "message": "Transaksi berhasil dihapus", **result.to_dict()})


# ============ Treasurer accounts ============

@api_bp.route("/treasurer/get")
@login_required
def treasurer_get():
    if current_user().is_staff and request.args.get("all") == "true":
        accounts = run_async(treasurer_service.list_all())
    else:
        accounts = run_async(treasurer_service.list_active())
    return jsonify({"data": [account.to_dict() for account in accounts]})


@api_bp.route("/treasurer/update", methods=["POST"])
@roles_required(*STAFF)
def treasurer_update():
    form = request.form if request.form else json_body()
    account = run_async(treasurer_service.save_account(
        request_context(), form, request.files.get("qrisImage")
    ))
    return jsonify({"message": "Rekening berhasil disimpan", "data": account.to_dict()})


@api_bp.route("/treasurer/delete", methods=["POST"])
@roles_required(*STAFF)
def treasurer_delete():
    data = json_body()
    run_async(treasurer_service.delete_account(request_context(), data.get("id")))
    return jsonify({"message": "Rekening berhasil dihapus"})


# ============ Administration ============

@api_bp.route("/admin/users")
@roles_required(*STAFF)
def admin_users():
    users = run_async(admin_service.list_users())
    return jsonify({"users": [user.to_dict() for user in users]})


@api_bp.route("/admin/users/update-role", methods=["POST"])
@roles_required(*STAFF)
def admin_update_role():
    data = json_body()
    user = run_async(admin_service.update_role(
        request_context(), data.get("userId"), data.get("role")
    ))
    return jsonify({"message": "Role berhasil diperbarui", "user": user.to_dict()})


@api_bp.route("/admin/users/delete", methods=["POST"])
@roles_required(Role.ADMIN)
def admin_delete_user():
    data = json_body()
    user = run_async(admin_service.delete_user(
        request_context(), data.get("userId"), data.get("reason")
    ))
    return jsonify({
        "success": True,
        "message": f"User {user.name} berhasil dihapus",
        "deletedUser": {"id": user.id, "name": user.name, "email": user.email}
    })


@api_bp.route("/admin/reset-data", methods=["GET", "POST"])
@roles_required(Role.ADMIN)
def admin_reset_data():
    if request.method == "GET":
        return jsonify(run_async(admin_service.reset_statistics()))

    data = json_body()
    summary = run_async(admin_service.reset_all_data(
        request_context(), data.get("confirmText"), data.get("adminPassword"), data.get("reason")
    ))
    return jsonify({"success": True, "message": "Data berhasil direset", "summary": summary.to_dict()})


@api_bp.route("/audit-logs")
@roles_required(*STAFF)
def audit_logs():
    try:
        limit = min(max(int(request.args.get("limit", 100)), 1), 500)
    except ValueError:
        limit = 100
    logs = run_async(audit_service.list_recent(limit))
    return jsonify({"logs": [log.to_dict() for log in logs]})


# ============ Reports ============

@api_bp.route("/dashboard")
@login_required
def dashboard():
    return jsonify(run_async(report_service.dashboard_summary(current_user())))


@api_bp.route("/reports")
@login_required
def reports():
    report = run_async(report_service.financial_report(
        current_user(), request.args.get("startDate"), request.args.get("endDate")
    ))
    return jsonify(report.to_dict())


@api_bp.route("/reports/export")
@login_required
def reports_export():
    report = run_async(report_service.financial_report(
        current_user(), request.args.get("startDate"), request.args.get("endDate")
    ))
    filename = f"laporan-{report.start.date().isoformat()}-{report.end.date().isoformat()}.csv"
    return Response(
        report_service.report_csv(report),
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


@api_bp.route("/reports/top-spenders")
@login_required
def reports_top_spenders():
    try:
        limit = min(max(int(request.args.get("limit", 10)), 1), 100)
    except ValueError:
        limit = 10
    return jsonify({"data": run_async(report_service.top_spenders(limit))})


# ============ Gateway callback ============

@api_bp.route("/webhook/payment", methods=["POST"])
def webhook_payment():
    payload = request.get_json(silent=True) or {}
    signature = request.headers.get("X-Callback-Signature") or request.headers.get("X-Signature")
    result = run_async(wallet_service.process_webhook(payload, signature))
    return jsonify(result)

"""
Server-rendered pages.
"""
from flask import Blueprint, request, redirect, url_for, flash, get_flashed_messages
from jinja2 import Environment, DictLoader, select_autoescape

from config import config
from db import Role
from services import (
    wallet_service, treasurer_service, admin_service, report_service, sweep_expired
)
from services import audit_service
from web.auth import current_user, logout_user, login_required, roles_required
from web.helpers import run_async
from web.templates import TEMPLATES
from utils.logger import get_logger
from utils.exceptions import VibraKasException

logger = get_logger("pages")

pages_bp = Blueprint("pages", __name__)

STAFF = (Role.ADMIN, Role.BENDAHARA)


def rupiah(value) -> str:
    value = int(value or 0)
    sign = "-" if value < 0 else ""
    return f"{sign}Rp {abs(value):,}".replace(",", ".")


_env = Environment(loader=DictLoader(TEMPLATES), autoescape=select_autoescape(default=True))
_env.filters["rupiah"] = rupiah
_env.globals.update(get_flashed_messages=get_flashed_messages, url_for=url_for)


def render(name: str, **kwargs) -> str:
    """Render a page with the signed-in user available to the layout."""
    kwargs.setdefault("user", current_user())
    return _env.get_template(name).render(**kwargs)


def _safe_next(target: str) -> str:
    if target and target.startswith("/") and not target.startswith("//"):
        return target
    return url_for("pages.dashboard")


# ============ Public ============

@pages_bp.route("/")
def index():
    if current_user():
        return redirect(url_for("pages.dashboard"))
    return redirect(url_for("pages.login"))


@pages_bp.route("/login")
def login():
    if current_user():
        return redirect(url_for("pages.dashboard"))
    return render("login", title="Login", user=None, next_url=_safe_next(request.args.get("next")))


@pages_bp.route("/register")
def register():
    return render("register", title="Daftar", user=None)


@pages_bp.route("/register/verify")
def verify():
    verification_id = request.args.get("id")
    if not verification_id:
        return redirect(url_for("pages.register"))
    return render(
        "verify", title="Verifikasi", user=None,
        verification_id=verification_id, email=request.args.get("email", "")
    )


@pages_bp.route("/logout")
def logout():
    logout_user()
    flash("Anda telah logout.", "success")
    return redirect(url_for("pages.login"))


# ============ Members ============

@pages_bp.route("/dashboard")
@login_required
def dashboard():
    summary = run_async(report_service.dashboard_summary(current_user()))
    return render("dashboard", title="Dashboard", summary=summary)


@pages_bp.route("/transactions")
@login_required
def transactions():
    user = current_user()
    expired_count = 0
    if user.is_staff:
        expired_count = run_async(sweep_expired()).expired_count

    status = request.args.get("status")
    try:
        txns = run_async(wallet_service.list_transactions(user, status=status))
    except VibraKasException as e:
        flash(e.message, "error")
        return redirect(url_for("pages.transactions"))
    return render(
        "transactions", title="Transaksi",
        transactions=txns, status=status, expired_count=expired_count
    )


@pages_bp.route("/topup")
@login_required
def topup():
    accounts = run_async(treasurer_service.list_active())
    return render("topup", title="Setor Saldo", accounts=accounts, min_amount=config.MIN_TOPUP_AMOUNT)


@pages_bp.route("/payment/<txn_id>")
@login_required
def payment_detail(txn_id: str):
    try:
        txn = run_async(wallet_service.get_transaction(current_user(), txn_id))
    except VibraKasException as e:
        flash(e.message, "error")
        return redirect(url_for("pages.transactions"))
    return render("payment", title="Pembayaran", txn=txn)


@pages_bp.route("/reports")
@login_required
def reports():
    try:
        report = run_async(report_service.financial_report(
            current_user(), request.args.get("startDate"), request.args.get("endDate")
        ))
    except VibraKasException as e:
        flash(e.message, "error")
        return redirect(url_for("pages.reports"))
    return render("reports", title="Laporan", report=report)


@pages_bp.route("/top-contributors")
@login_required
def top_contributors():
    contributors = run_async(report_service.top_spenders(10))
    return render("top_contributors", title="Top Kontributor", contributors=contributors)


@pages_bp.route("/settings")
@login_required
def settings():
    return render("settings", title="Pengaturan")


# ============ Staff ============

@pages_bp.route("/approvals")
@roles_required(*STAFF)
def approvals():
    manual = run_async(wallet_service.list_pending_manual())
    treasurer = run_async(wallet_service.list_pending_treasurer_payments())
    return render("approvals", title="Persetujuan", manual=manual, treasurer=treasurer)


@pages_bp.route("/adjustment")
@roles_required(*STAFF)
def adjustment():
    members = run_async(admin_service.list_users())
    return render("adjustment", title="Penyesuaian Saldo", members=members)


@pages_bp.route("/audit-log")
@roles_required(*STAFF)
def audit_log():
    logs = run_async(audit_service.list_recent(100))
    return render("audit_log", title="Audit Log", logs=logs)


@pages_bp.route("/treasurer")
@roles_required(*STAFF)
def treasurer():
    accounts = run_async(treasurer_service.list_all())
    return render("treasurer", title="Rekening Bendahara", accounts=accounts)


@pages_bp.route("/users")
@roles_required(*STAFF)
def users():
    members = run_async(admin_service.list_users())
    return render(
        "users", title="Pengguna", members=members,
        roles=[role.value for role in Role], reset_text=config.RESET_CONFIRM_TEXT
    )

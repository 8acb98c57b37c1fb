"""
Business logic services layer.
"""
from services.audit_service import RequestContext
from services.payment_gateway import (
    payment_gateway, PaymentGatewayService, PaymentResult, PaymentStatus
)
from services.expiry_service import SweepResult, sweep_expired, preview_expired
from services.wallet_service import (
    wallet_service, WalletService, CheckResult, BalanceChangeResult
)
from services.email_service import email_service, EmailService
from services.auth_service import auth_service, AuthService, hash_password, verify_password
from services.treasurer_service import treasurer_service, TreasurerService
from services.admin_service import admin_service, AdminService, ResetSummary
from services.report_service import report_service, ReportService, FinancialReport

__all__ = [
    "RequestContext",
    # Gateway
    "payment_gateway", "PaymentGatewayService", "PaymentResult", "PaymentStatus",
    # Expiry
    "SweepResult", "sweep_expired", "preview_expired",
    # Wallet
    "wallet_service", "WalletService", "CheckResult", "BalanceChangeResult",
    # Accounts
    "email_service", "EmailService",
    "auth_service", "AuthService", "hash_password", "verify_password",
    # Administration
    "treasurer_service", "TreasurerService",
    "admin_service", "AdminService", "ResetSummary",
    # Reporting
    "report_service", "ReportService", "FinancialReport"
]

"""
Database models and schema definitions.
Money columns are INTEGER rupiah; timestamps are naive UTC ISO strings.
"""
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
import uuid


def _new_id() -> str:
    return str(uuid.uuid4())


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ============ Enums ============

class Role(Enum):
    """User roles. Bendahara (treasurer) shares most admin powers."""
    ADMIN = "admin"
    BENDAHARA = "bendahara"
    ANGGOTA = "anggota"

    @classmethod
    def staff(cls) -> tuple:
        return (cls.ADMIN, cls.BENDAHARA)


class TransactionType(Enum):
    IN = "in"
    OUT = "out"


class TransactionMethod(Enum):
    QRIS = "qris"
    VA = "va"
    MANUAL = "manual"
    ADJUSTMENT = "adjustment"


class TransactionStatus(Enum):
    """
    Transaction lifecycle.

    PENDING -> SUCCESS (approval, gateway paid, webhook)
            -> FAILED  (rejection, gateway failure, expiry)
    Adjustments are created directly as SUCCESS.
    """
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class VerificationPurpose(Enum):
    REGISTER = "register"
    CHANGE_EMAIL = "change_email"


class AuditAction(Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ADJUST = "adjust"
    APPROVE = "approve"
    REJECT = "reject"
    RESET = "reset"


class EntityType(Enum):
    TRANSACTION = "transaction"
    USER = "user"
    BALANCE = "balance"
    TREASURER = "treasurer"
    SYSTEM = "system"


# ============ Data Classes ============

@dataclass
class User:
    """Member or staff account."""
    id: str = field(default_factory=_new_id)
    name: str = ""
    email: str = ""
    password_hash: str = ""
    role: Role = Role.ANGGOTA
    balance: int = 0
    email_verified: bool = False
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_staff(self) -> bool:
        return self.role in Role.staff()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "balance": self.balance,
            "email_verified": self.email_verified,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at)
        }


@dataclass
class Transaction:
    """
    Balance movement.
    Only SUCCESS, non-deleted rows count towards a user's balance.
    """
    id: str = field(default_factory=_new_id)
    user_id: str = ""
    type: TransactionType = TransactionType.IN
    method: TransactionMethod = TransactionMethod.MANUAL
    amount: int = 0
    fee: int = 0
    total_amount: int = 0
    status: TransactionStatus = TransactionStatus.PENDING

    # Gateway
    payment_id: Optional[str] = None
    qris_code: Optional[str] = None
    va_number: Optional[str] = None
    expired_at: Optional[datetime] = None

    # Manual transfer
    proof_image: Optional[str] = None
    treasurer_account_id: Optional[str] = None
    notes: Optional[str] = None

    # Adjustment
    is_adjustment: bool = False
    adjustment_reason: Optional[str] = None
    original_balance: Optional[int] = None
    new_balance: Optional[int] = None

    # Review
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None

    # Soft delete
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None
    delete_reason: Optional[str] = None

    last_modified_by: Optional[str] = None
    last_modified_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    # Joined from users, not persisted
    user_name: Optional[str] = None
    user_email: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == TransactionStatus.PENDING

    @property
    def is_treasurer_payment(self) -> bool:
        return bool(self.payment_id and self.payment_id.startswith("TREASURER-"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "user_email": self.user_email,
            "type": self.type.value,
            "method": self.method.value,
            "amount": self.amount,
            "fee": self.fee,
            "total_amount": self.total_amount,
            "status": self.status.value,
            "payment_id": self.payment_id,
            "qris_code": self.qris_code,
            "va_number": self.va_number,
            "expired_at": _iso(self.expired_at),
            "proof_image": self.proof_image,
            "treasurer_account_id": self.treasurer_account_id,
            "notes": self.notes,
            "is_adjustment": self.is_adjustment,
            "adjustment_reason": self.adjustment_reason,
            "original_balance": self.original_balance,
            "new_balance": self.new_balance,
            "approved_by": self.approved_by,
            "approved_at": _iso(self.approved_at),
            "rejected_by": self.rejected_by,
            "rejected_at": _iso(self.rejected_at),
            "is_deleted": self.is_deleted,
            "deleted_at": _iso(self.deleted_at),
            "deleted_by": self.deleted_by,
            "delete_reason": self.delete_reason,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at)
        }


@dataclass
class TreasurerAccount:
    """Bank account members transfer to; at most three active at once."""
    id: str = field(default_factory=_new_id)
    bank_name: str = ""
    account_name: str = ""
    account_number: str = ""
    notes: Optional[str] = None
    qris_image: Optional[str] = None
    is_active: bool = True
    display_order: int = 0
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bank_name": self.bank_name,
            "account_name": self.account_name,
            "account_number": self.account_number,
            "notes": self.notes,
            "qris_image": self.qris_image,
            "is_active": self.is_active,
            "order": self.display_order,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at)
        }


@dataclass
class AuditLog:
    """Record of an administrative mutation; values are JSON snapshots."""
    id: str = field(default_factory=_new_id)
    action: AuditAction = AuditAction.UPDATE
    entity_type: EntityType = EntityType.SYSTEM
    entity_id: str = ""
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    reason: Optional[str] = None
    performed_by: str = ""
    performed_at: datetime = field(default_factory=datetime.utcnow)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    performer_name: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action.value,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "reason": self.reason,
            "performed_by": self.performed_by,
            "performer_name": self.performer_name or "Unknown",
            "performed_at": _iso(self.performed_at),
            "ip_address": self.ip_address,
            "user_agent": self.user_agent
        }


@dataclass
class EmailVerification:
    """Pending OTP for registration or email change."""
    id: str = field(default_factory=_new_id)
    email: str = ""
    otp_code: str = ""
    otp_expires: datetime = field(default_factory=datetime.utcnow)
    purpose: VerificationPurpose = VerificationPurpose.REGISTER
    user_id: Optional[str] = None
    registration_data: Optional[str] = None
    is_verified: bool = False
    verified_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class DataResetLog:
    """Snapshot of counts taken right before a full data wipe."""
    id: str = field(default_factory=_new_id)
    performed_by: str = ""
    reason: str = ""
    data_summary: Optional[str] = None
    total_transactions: int = 0
    total_users: int = 0
    total_audit_logs: int = 0
    total_balance: int = 0
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    performed_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "performed_by": self.performed_by,
            "reason": self.reason,
            "data_summary": self.data_summary,
            "total_transactions": self.total_transactions,
            "total_users": self.total_users,
            "total_audit_logs": self.total_audit_logs,
            "total_balance": self.total_balance,
            "performed_at": _iso(self.performed_at)
        }


# ============ SQL Schema ============

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT UNIQUE NOT NULL,
    password_hash TEXT NOT NULL,
    role TEXT NOT NULL DEFAULT 'anggota',
    balance INTEGER NOT NULL DEFAULT 0,
    email_verified INTEGER DEFAULT 0,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS treasurer_accounts (
    id TEXT PRIMARY KEY,
    bank_name TEXT NOT NULL,
    account_name TEXT NOT NULL,
    account_number TEXT NOT NULL,
    notes TEXT,
    qris_image TEXT,
    is_active INTEGER DEFAULT 1,
    display_order INTEGER DEFAULT 0,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    type TEXT NOT NULL,
    method TEXT NOT NULL,
    amount INTEGER NOT NULL,
    fee INTEGER NOT NULL DEFAULT 0,
    total_amount INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    payment_id TEXT,
    qris_code TEXT,
    va_number TEXT,
    expired_at TEXT,
    proof_image TEXT,
    treasurer_account_id TEXT,
    notes TEXT,
    is_adjustment INTEGER DEFAULT 0,
    adjustment_reason TEXT,
    original_balance INTEGER,
    new_balance INTEGER,
    approved_by TEXT,
    approved_at TEXT,
    rejected_by TEXT,
    rejected_at TEXT,
    is_deleted INTEGER DEFAULT 0,
    deleted_at TEXT,
    deleted_by TEXT,
    delete_reason TEXT,
    last_modified_by TEXT,
    last_modified_at TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (user_id) REFERENCES users(id),
    FOREIGN KEY (treasurer_account_id) REFERENCES treasurer_accounts(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS audit_logs (
    id TEXT PRIMARY KEY,
    action TEXT NOT NULL,
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    old_value TEXT,
    new_value TEXT,
    reason TEXT,
    performed_by TEXT NOT NULL,
    performed_at TEXT DEFAULT CURRENT_TIMESTAMP,
    ip_address TEXT,
    user_agent TEXT
);

CREATE TABLE IF NOT EXISTS email_verifications (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL,
    otp_code TEXT NOT NULL,
    otp_expires TEXT NOT NULL,
    purpose TEXT NOT NULL,
    user_id TEXT,
    registration_data TEXT,
    is_verified INTEGER DEFAULT 0,
    verified_at TEXT,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS data_reset_logs (
    id TEXT PRIMARY KEY,
    performed_by TEXT NOT NULL,
    reason TEXT NOT NULL,
    data_summary TEXT,
    total_transactions INTEGER DEFAULT 0,
    total_users INTEGER DEFAULT 0,
    total_audit_logs INTEGER DEFAULT 0,
    total_balance INTEGER DEFAULT 0,
    ip_address TEXT,
    user_agent TEXT,
    performed_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_transactions_user_id ON transactions(user_id);
CREATE INDEX IF NOT EXISTS idx_transactions_status ON transactions(status);
CREATE INDEX IF NOT EXISTS idx_transactions_payment_id ON transactions(payment_id);
CREATE INDEX IF NOT EXISTS idx_transactions_created ON transactions(created_at);
CREATE INDEX IF NOT EXISTS idx_audit_logs_entity ON audit_logs(entity_type, entity_id);
CREATE INDEX IF NOT EXISTS idx_audit_logs_performed ON audit_logs(performed_at);
CREATE INDEX IF NOT EXISTS idx_email_verifications_email ON email_verifications(email, purpose);
"""

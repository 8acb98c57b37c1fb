"""
Database repository layer with async SQLite operations.
Methods that take `conn` join the caller's transaction; without it they open their own.
"""
import aiosqlite
from pathlib import Path
from typing import Optional, List, Tuple, Dict, Any
from datetime import datetime
from contextlib import asynccontextmanager

from config import config
from db.models import (
    User, Transaction, TreasurerAccount, AuditLog, EmailVerification, DataResetLog,
    Role, TransactionType, TransactionMethod, TransactionStatus,
    VerificationPurpose, AuditAction, EntityType,
    SCHEMA_SQL
)
from utils.logger import get_logger
from utils.exceptions import DatabaseException

logger = get_logger("repository")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class Database:
    """
    Async SQLite database manager.
    Every call opens a short-lived connection; requests run in their own event loop.
    """

    def __init__(self, db_path: str = None):
        self.db_path = db_path or config.DATABASE_PATH

    async def initialize(self):
        """Create the database file and schema."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        async with self.connection() as conn:
            await conn.executescript(SCHEMA_SQL)
            await conn.commit()
            logger.info(f"Database initialized at {self.db_path}")

    @asynccontextmanager
    async def connection(self):
        conn = await aiosqlite.connect(self.db_path, timeout=10)
        conn.row_factory = aiosqlite.Row
        try:
            yield conn
        finally:
            await conn.close()

    @asynccontextmanager
    async def transaction(self):
        """
        Transaction context manager with automatic commit/rollback.
        Usage:
            async with db.transaction() as conn:
                await conn.execute(...)
        """
        async with self.connection() as conn:
            try:
                yield conn
                await conn.commit()
            except Exception as e:
                await conn.rollback()
                logger.error(f"Transaction rolled back: {e}")
                raise

    @asynccontextmanager
    async def session(self, conn: Optional[aiosqlite.Connection] = None):
        """Reuse the caller's connection or open a new transaction."""
        if conn is not None:
            yield conn
        else:
            async with self.transaction() as new_conn:
                yield new_conn


# Global database instance
db = Database()


# ============ User Repository ============

class UserRepository:
    """User CRUD and balance updates."""

    @staticmethod
    async def create(user: User, conn=None) -> User:
        async with db.session(conn) as c:
            await c.execute(
                """
                INSERT INTO users (id, name, email, password_hash, role, balance,
                    email_verified, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (user.id, user.name, user.email, user.password_hash, user.role.value,
                 user.balance, int(user.email_verified),
                 _iso(user.created_at), _iso(user.updated_at))
            )
        logger.info(f"Created user: {user.id}", role=user.role.value)
        return user

    @staticmethod
    async def get_by_id(user_id: str, conn=None) -> Optional[User]:
        async with db.session(conn) as c:
            cursor = await c.execute("SELECT * FROM users WHERE id = ?", (user_id,))
            row = await cursor.fetchone()
        return UserRepository._row_to_user(row) if row else None

    @staticmethod
    async def get_by_email(email: str) -> Optional[User]:
        async with db.connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM users WHERE email = ?", (email.lower(),)
            )
            row = await cursor.fetchone()
        return UserRepository._row_to_user(row) if row else None

    @staticmethod
    async def list_all() -> List[User]:
        async with db.connection() as conn:
            cursor = await conn.execute("SELECT * FROM users ORDER BY created_at DESC")
            rows = await cursor.fetchall()
        return [UserRepository._row_to_user(row) for row in rows]

    @staticmethod
    async def count() -> int:
        async with db.connection() as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM users")
            row = await cursor.fetchone()
        return row[0]

    @staticmethod
    async def count_by_role(role: Role, conn=None) -> int:
        async with db.session(conn) as c:
            cursor = await c.execute(
                "SELECT COUNT(*) FROM users WHERE role = ?", (role.value,)
            )
            row = await cursor.fetchone()
        return row[0]

    @staticmethod
    async def update_role(user_id: str, role: Role) -> bool:
        async with db.transaction() as conn:
            cursor = await conn.execute(
                "UPDATE users SET role = ?, updated_at = ? WHERE id = ?",
                (role.value, _iso(datetime.utcnow()), user_id)
            )
            return cursor.rowcount > 0

    @staticmethod
    async def update_email(user_id: str, email: str, conn=None) -> bool:
        async with db.session(conn) as c:
            cursor = await c.execute(
                "UPDATE users SET email = ?, email_verified = 1, updated_at = ? WHERE id = ?",
                (email.lower(), _iso(datetime.utcnow()), user_id)
            )
            return cursor.rowcount > 0

    @staticmethod
    async def add_balance(user_id: str, delta: int, conn=None) -> Tuple[int, int]:
        """
        Add `delta` (may be negative) to a balance.
        Returns (balance_before, balance_after).
        """
        async with db.session(conn) as c:
            cursor = await c.execute("SELECT balance FROM users WHERE id = ?", (user_id,))
            row = await cursor.fetchone()
            if row is None:
                raise DatabaseException(f"User {user_id} disappeared during balance update")
            before = row["balance"]
            await c.execute(
                "UPDATE users SET balance = balance + ?, updated_at = ? WHERE id = ?",
                (delta, _iso(datetime.utcnow()), user_id)
            )
        return before, before + delta

    @staticmethod
    async def delete(user_id: str) -> bool:
        async with db.transaction() as conn:
            await conn.execute(
                "DELETE FROM email_verifications WHERE user_id = ?", (user_id,)
            )
            cursor = await conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            return cursor.rowcount > 0

    @staticmethod
    async def total_balance() -> int:
        async with db.connection() as conn:
            cursor = await conn.execute("SELECT COALESCE(SUM(balance), 0) FROM users")
            row = await cursor.fetchone()
        return row[0]

    @staticmethod
    async def reset_all_balances(conn=None) -> int:
        async with db.session(conn) as c:
            cursor = await c.execute(
                "UPDATE users SET balance = 0, updated_at = ?", (_iso(datetime.utcnow()),)
            )
            return cursor.rowcount

    @staticmethod
    async def balances_snapshot() -> List[Dict[str, Any]]:
        async with db.connection() as conn:
            cursor = await conn.execute(
                "SELECT id, name, email, role, balance FROM users ORDER BY name"
            )
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    @staticmethod
    def _row_to_user(row: aiosqlite.Row) -> User:
        return User(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            password_hash=row["password_hash"],
            role=Role(row["role"]),
            balance=row["balance"],
            email_verified=bool(row["email_verified"]),
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"])
        )


# ============ Transaction Repository ============

_TRANSACTION_SELECT = """
    SELECT t.*, u.name AS user_name, u.email AS user_email
    FROM transactions t
    LEFT JOIN users u ON u.id = t.user_id
"""

# Columns a status transition may stamp alongside the new status
_TRANSITION_COLUMNS = frozenset({
    "approved_by", "approved_at", "rejected_by", "rejected_at",
    "last_modified_by", "last_modified_at", "notes"
})


class TransactionRepository:
    """Transaction CRUD, status transitions and report aggregates."""

    @staticmethod
    async def create(txn: Transaction, conn=None) -> Transaction:
        async with db.session(conn) as c:
            await c.execute(
                """
                INSERT INTO transactions (
                    id, user_id, type, method, amount, fee, total_amount, status,
                    payment_id, qris_code, va_number, expired_at,
                    proof_image, treasurer_account_id, notes,
                    is_adjustment, adjustment_reason, original_balance, new_balance,
                    approved_by, approved_at, rejected_by, rejected_at,
                    is_deleted, last_modified_by, last_modified_at, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (txn.id, txn.user_id, txn.type.value, txn.method.value, txn.amount,
                 txn.fee, txn.total_amount, txn.status.value,
                 txn.payment_id, txn.qris_code, txn.va_number, _iso(txn.expired_at),
                 txn.proof_image, txn.treasurer_account_id, txn.notes,
                 int(txn.is_adjustment), txn.adjustment_reason, txn.original_balance, txn.new_balance,
                 txn.approved_by, _iso(txn.approved_at), txn.rejected_by, _iso(txn.rejected_at),
                 int(txn.is_deleted), txn.last_modified_by, _iso(txn.last_modified_at),
                 _iso(txn.created_at), _iso(txn.updated_at))
            )
        return txn

    @staticmethod
    async def get_by_id(txn_id: str, conn=None) -> Optional[Transaction]:
        async with db.session(conn) as c:
            cursor = await c.execute(f"{_TRANSACTION_SELECT} WHERE t.id = ?", (txn_id,))
            row = await cursor.fetchone()
        return TransactionRepository._row_to_transaction(row) if row else None

    @staticmethod
    async def find(
        user_id: Optional[str] = None,
        status: Optional[TransactionStatus] = None,
        method: Optional[TransactionMethod] = None,
        txn_type: Optional[TransactionType] = None,
        include_deleted: bool = False,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> List[Transaction]:
        """Newest first, filtered by whichever arguments are given."""
        clauses, params = [], []
        if not include_deleted:
            clauses.append("t.is_deleted = 0")
        if user_id:
            clauses.append("t.user_id = ?")
            params.append(user_id)
        if status:
            clauses.append("t.status = ?")
            params.append(status.value)
        if method:
            clauses.append("t.method = ?")
            params.append(method.value)
        if txn_type:
            clauses.append("t.type = ?")
            params.append(txn_type.value)
        if start:
            clauses.append("t.created_at >= ?")
            params.append(_iso(start))
        if end:
            clauses.append("t.created_at <= ?")
            params.append(_iso(end))

        query = _TRANSACTION_SELECT
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY t.created_at DESC"
        if limit:
            query += " LIMIT ?"
            params.append(limit)

        async with db.connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
        return [TransactionRepository._row_to_transaction(row) for row in rows]

    @staticmethod
    async def list_pending() -> List[Transaction]:
        return await TransactionRepository.find(status=TransactionStatus.PENDING)

    @staticmethod
    async def list_pending_treasurer() -> List[Transaction]:
        async with db.connection() as conn:
            cursor = await conn.execute(
                f"""{_TRANSACTION_SELECT}
                WHERE t.status = 'pending' AND t.method = 'qris'
                    AND t.is_deleted = 0 AND t.payment_id LIKE 'TREASURER-%'
                ORDER BY t.created_at DESC"""
            )
            rows = await cursor.fetchall()
        return [TransactionRepository._row_to_transaction(row) for row in rows]

    @staticmethod
    async def count(user_id: Optional[str] = None) -> int:
        """Counts every row, soft-deleted ones included."""
        async with db.connection() as conn:
            if user_id:
                cursor = await conn.execute(
                    "SELECT COUNT(*) FROM transactions WHERE user_id = ?", (user_id,)
                )
            else:
                cursor = await conn.execute("SELECT COUNT(*) FROM transactions")
            row = await cursor.fetchone()
        return row[0]

    @staticmethod
    async def update_gateway_details(
        txn_id: str,
        payment_id: Optional[str],
        qris_code: Optional[str],
        va_number: Optional[str],
        expired_at: Optional[datetime]
    ):
        async with db.transaction() as conn:
            await conn.execute(
                """
                UPDATE transactions SET payment_id = ?, qris_code = ?, va_number = ?,
                    expired_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (payment_id, qris_code, va_number, _iso(expired_at),
                 _iso(datetime.utcnow()), txn_id)
            )

    @staticmethod
    async def transition_status(
        txn_id: str,
        new_status: TransactionStatus,
        conn=None,
        **fields
    ) -> bool:
        """
        Move a PENDING transaction to `new_status`.
        Returns False when the row was no longer pending or has been soft-deleted.
        """
        unknown = set(fields) - _TRANSITION_COLUMNS
        if unknown:
            raise ValueError(f"Cannot set columns on transition: {sorted(unknown)}")

        assignments = ["status = ?", "updated_at = ?"]
        params: List[Any] = [new_status.value, _iso(datetime.utcnow())]
        for column, value in fields.items():
            assignments.append(f"{column} = ?")
            params.append(_iso(value) if isinstance(value, datetime) else value)
        params.append(txn_id)

        async with db.session(conn) as c:
            cursor = await c.execute(
                f"UPDATE transactions SET {', '.join(assignments)} "
                "WHERE id = ? AND status = 'pending' AND is_deleted = 0",
                params
            )
            return cursor.rowcount > 0

    @staticmethod
    async def mark_deleted(txn_id: str, deleted_by: str, reason: str, conn=None) -> bool:
        now = _iso(datetime.utcnow())
        async with db.session(conn) as c:
            cursor = await c.execute(
                """
                UPDATE transactions SET is_deleted = 1, deleted_at = ?, deleted_by = ?,
                    delete_reason = ?, last_modified_by = ?, last_modified_at = ?, updated_at = ?
                WHERE id = ? AND is_deleted = 0
                """,
                (now, deleted_by, reason, deleted_by, now, now, txn_id)
            )
            return cursor.rowcount > 0

    @staticmethod
    async def delete_all(conn=None) -> int:
        async with db.session(conn) as c:
            cursor = await c.execute("DELETE FROM transactions")
            return cursor.rowcount

    @staticmethod
    async def export_all() -> List[Dict[str, Any]]:
        async with db.connection() as conn:
            cursor = await conn.execute("SELECT * FROM transactions ORDER BY created_at")
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    # ============ Aggregates ============

    @staticmethod
    async def sum_by_type(
        user_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> Tuple[int, int]:
        """(income, expense) over successful, non-deleted transactions."""
        clauses = ["status = 'success'", "is_deleted = 0"]
        params: List[Any] = []
        if user_id:
            clauses.append("user_id = ?")
            params.append(user_id)
        if start:
            clauses.append("created_at >= ?")
            params.append(_iso(start))
        if end:
            clauses.append("created_at <= ?")
            params.append(_iso(end))

        async with db.connection() as conn:
            cursor = await conn.execute(
                f"""
                SELECT
                    COALESCE(SUM(CASE WHEN type = 'in' THEN amount END), 0) AS income,
                    COALESCE(SUM(CASE WHEN type = 'out' THEN amount END), 0) AS expense
                FROM transactions WHERE {' AND '.join(clauses)}
                """,
                params
            )
            row = await cursor.fetchone()
        return row["income"], row["expense"]

    @staticmethod
    async def daily_totals(since: datetime, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Per-day income/expense rows ({day, income, expense}) since `since`."""
        clauses = ["status = 'success'", "is_deleted = 0", "created_at >= ?"]
        params: List[Any] = [_iso(since)]
        if user_id:
            clauses.append("user_id = ?")
            params.append(user_id)

        async with db.connection() as conn:
            cursor = await conn.execute(
                f"""
                SELECT substr(created_at, 1, 10) AS day,
                    COALESCE(SUM(CASE WHEN type = 'in' THEN amount END), 0) AS income,
                    COALESCE(SUM(CASE WHEN type = 'out' THEN amount END), 0) AS expense
                FROM transactions WHERE {' AND '.join(clauses)}
                GROUP BY day ORDER BY day
                """,
                params
            )
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    @staticmethod
    async def top_contributors(limit: int = 10) -> List[Dict[str, Any]]:
        async with db.connection() as conn:
            cursor = await conn.execute(
                """
                SELECT u.id AS user_id, u.name, u.email,
                    SUM(t.amount) AS total, COUNT(t.id) AS count
                FROM transactions t JOIN users u ON u.id = t.user_id
                WHERE t.status = 'success' AND t.type = 'in' AND t.is_deleted = 0
                GROUP BY u.id, u.name, u.email
                HAVING SUM(t.amount) > 0
                ORDER BY total DESC
                LIMIT ?
                """,
                (limit,)
            )
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    @staticmethod
    def _row_to_transaction(row: aiosqlite.Row) -> Transaction:
        keys = row.keys()
        return Transaction(
            id=row["id"],
            user_id=row["user_id"],
            type=TransactionType(row["type"]),
            method=TransactionMethod(row["method"]),
            amount=row["amount"],
            fee=row["fee"],
            total_amount=row["total_amount"],
            status=TransactionStatus(row["status"]),
            payment_id=row["payment_id"],
            qris_code=row["qris_code"],
            va_number=row["va_number"],
            expired_at=_dt(row["expired_at"]),
            proof_image=row["proof_image"],
            treasurer_account_id=row["treasurer_account_id"],
            notes=row["notes"],
            is_adjustment=bool(row["is_adjustment"]),
            adjustment_reason=row["adjustment_reason"],
            original_balance=row["original_balance"],
            new_balance=row["new_balance"],
            approved_by=row["approved_by"],
            approved_at=_dt(row["approved_at"]),
            rejected_by=row["rejected_by"],
            rejected_at=_dt(row["rejected_at"]),
            is_deleted=bool(row["is_deleted"]),
            deleted_at=_dt(row["deleted_at"]),
            deleted_by=row["deleted_by"],
            delete_reason=row["delete_reason"],
            last_modified_by=row["last_modified_by"],
            last_modified_at=_dt(row["last_modified_at"]),
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
            user_name=row["user_name"] if "user_name" in keys else None,
            user_email=row["user_email"] if "user_email" in keys else None
        )


# ============ Treasurer Account Repository ============

class TreasurerAccountRepository:
    """Destination bank accounts for manual transfers."""

    @staticmethod
    async def create(account: TreasurerAccount) -> TreasurerAccount:
        async with db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO treasurer_accounts (id, bank_name, account_name, account_number,
                    notes, qris_image, is_active, display_order, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (account.id, account.bank_name, account.account_name, account.account_number,
                 account.notes, account.qris_image, int(account.is_active), account.display_order,
                 _iso(account.created_at), _iso(account.updated_at))
            )
        return account

    @staticmethod
    async def update(account: TreasurerAccount) -> TreasurerAccount:
        account.updated_at = datetime.utcnow()
        async with db.transaction() as conn:
            await conn.execute(
                """
                UPDATE treasurer_accounts SET bank_name = ?, account_name = ?, account_number = ?,
                    notes = ?, qris_image = ?, is_active = ?, display_order = ?, updated_at = ?
                WHERE id = ?
                """,
                (account.bank_name, account.account_name, account.account_number,
                 account.notes, account.qris_image, int(account.is_active),
                 account.display_order, _iso(account.updated_at), account.id)
            )
        return account

    @staticmethod
    async def get_by_id(account_id: str) -> Optional[TreasurerAccount]:
        async with db.connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM treasurer_accounts WHERE id = ?", (account_id,)
            )
            row = await cursor.fetchone()
        return TreasurerAccountRepository._row_to_account(row) if row else None

    @staticmethod
    async def list_active() -> List[TreasurerAccount]:
        async with db.connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM treasurer_accounts WHERE is_active = 1 "
                "ORDER BY display_order ASC, created_at ASC"
            )
            rows = await cursor.fetchall()
        return [TreasurerAccountRepository._row_to_account(row) for row in rows]

    @staticmethod
    async def list_all() -> List[TreasurerAccount]:
        async with db.connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM treasurer_accounts ORDER BY is_active DESC, display_order ASC, created_at ASC"
            )
            rows = await cursor.fetchall()
        return [TreasurerAccountRepository._row_to_account(row) for row in rows]

    @staticmethod
    async def count_active(exclude_id: Optional[str] = None) -> int:
        async with db.connection() as conn:
            cursor = await conn.execute(
                "SELECT COUNT(*) FROM treasurer_accounts WHERE is_active = 1 AND id != ?",
                (exclude_id or "",)
            )
            row = await cursor.fetchone()
        return row[0]

    @staticmethod
    async def delete(account_id: str) -> bool:
        async with db.transaction() as conn:
            await conn.execute(
                "UPDATE transactions SET treasurer_account_id = NULL WHERE treasurer_account_id = ?",
                (account_id,)
            )
            cursor = await conn.execute(
                "DELETE FROM treasurer_accounts WHERE id = ?", (account_id,)
            )
            return cursor.rowcount > 0

    @staticmethod
    def _row_to_account(row: aiosqlite.Row) -> TreasurerAccount:
        return TreasurerAccount(
            id=row["id"],
            bank_name=row["bank_name"],
            account_name=row["account_name"],
            account_number=row["account_number"],
            notes=row["notes"],
            qris_image=row["qris_image"],
            is_active=bool(row["is_active"]),
            display_order=row["display_order"],
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"])
        )


# ============ Audit Log Repository ============

class AuditRepository:
    """Append-only audit trail (cleared only by a full data reset)."""

    @staticmethod
    async def create(log: AuditLog, conn=None) -> AuditLog:
        async with db.session(conn) as c:
            await c.execute(
                """
                INSERT INTO audit_logs (id, action, entity_type, entity_id, old_value, new_value,
                    reason, performed_by, performed_at, ip_address, user_agent)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (log.id, log.action.value, log.entity_type.value, log.entity_id,
                 log.old_value, log.new_value, log.reason, log.performed_by,
                 _iso(log.performed_at), log.ip_address, log.user_agent)
            )
        return log

    @staticmethod
    async def list_recent(limit: int = 100, entity_id: Optional[str] = None) -> List[AuditLog]:
        query = """
            SELECT a.*, u.name AS performer_name
            FROM audit_logs a LEFT JOIN users u ON u.id = a.performed_by
        """
        params: List[Any] = []
        if entity_id:
            query += " WHERE a.entity_id = ?"
            params.append(entity_id)
        query += " ORDER BY a.performed_at DESC LIMIT ?"
        params.append(limit)

        async with db.connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
        return [AuditRepository._row_to_log(row) for row in rows]

    @staticmethod
    async def count() -> int:
        async with db.connection() as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM audit_logs")
            row = await cursor.fetchone()
        return row[0]

    @staticmethod
    async def delete_all(conn=None) -> int:
        async with db.session(conn) as c:
            cursor = await c.execute("DELETE FROM audit_logs")
            return cursor.rowcount

    @staticmethod
    async def export_all() -> List[Dict[str, Any]]:
        async with db.connection() as conn:
            cursor = await conn.execute("SELECT * FROM audit_logs ORDER BY performed_at")
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    @staticmethod
    def _row_to_log(row: aiosqlite.Row) -> AuditLog:
        return AuditLog(
            id=row["id"],
            action=AuditAction(row["action"]),
            entity_type=EntityType(row["entity_type"]),
            entity_id=row["entity_id"],
            old_value=row["old_value"],
            new_value=row["new_value"],
            reason=row["reason"],
            performed_by=row["performed_by"],
            performed_at=_dt(row["performed_at"]),
            ip_address=row["ip_address"],
            user_agent=row["user_agent"],
            performer_name=row["performer_name"] if "performer_name" in row.keys() else None
        )


# ============ Email Verification Repository ============

class EmailVerificationRepository:
    """OTP records for registration and email change."""

    @staticmethod
    async def create(verification: EmailVerification) -> EmailVerification:
        async with db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO email_verifications (id, email, otp_code, otp_expires, purpose,
                    user_id, registration_data, is_verified, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (verification.id, verification.email, verification.otp_code,
                 _iso(verification.otp_expires), verification.purpose.value,
                 verification.user_id, verification.registration_data,
                 int(verification.is_verified), _iso(verification.created_at))
            )
        return verification

    @staticmethod
    async def get_by_id(verification_id: str) -> Optional[EmailVerification]:
        async with db.connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM email_verifications WHERE id = ?", (verification_id,)
            )
            row = await cursor.fetchone()
        return EmailVerificationRepository._row_to_verification(row) if row else None

    @staticmethod
    async def delete_unverified(
        purpose: VerificationPurpose,
        email: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> int:
        """Drop earlier unverified records for an email or a user."""
        if email is None and user_id is None:
            raise ValueError("email or user_id is required")
        column, value = ("email", email.lower()) if email is not None else ("user_id", user_id)
        async with db.transaction() as conn:
            cursor = await conn.execute(
                f"DELETE FROM email_verifications WHERE {column} = ? AND purpose = ? AND is_verified = 0",
                (value, purpose.value)
            )
            return cursor.rowcount

    @staticmethod
    async def mark_verified(verification_id: str, conn=None) -> bool:
        async with db.session(conn) as c:
            cursor = await c.execute(
                "UPDATE email_verifications SET is_verified = 1, verified_at = ? "
                "WHERE id = ? AND is_verified = 0",
                (_iso(datetime.utcnow()), verification_id)
            )
            return cursor.rowcount > 0

    @staticmethod
    def _row_to_verification(row: aiosqlite.Row) -> EmailVerification:
        return EmailVerification(
            id=row["id"],
            email=row["email"],
            otp_code=row["otp_code"],
            otp_expires=_dt(row["otp_expires"]),
            purpose=VerificationPurpose(row["purpose"]),
            user_id=row["user_id"],
            registration_data=row["registration_data"],
            is_verified=bool(row["is_verified"]),
            verified_at=_dt(row["verified_at"]),
            created_at=_dt(row["created_at"])
        )


# ============ Data Reset Log Repository ============

class DataResetLogRepository:

    @staticmethod
    async def create(log: DataResetLog, conn=None) -> DataResetLog:
        async with db.session(conn) as c:
            await c.execute(
                """
                INSERT INTO data_reset_logs (id, performed_by, reason, data_summary,
                    total_transactions, total_users, total_audit_logs, total_balance,
                    ip_address, user_agent, performed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (log.id, log.performed_by, log.reason, log.data_summary,
                 log.total_transactions, log.total_users, log.total_audit_logs,
                 log.total_balance, log.ip_address, log.user_agent, _iso(log.performed_at))
            )
        return log

    @staticmethod
    async def list_recent(limit: int = 10) -> List[DataResetLog]:
        async with db.connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM data_reset_logs ORDER BY performed_at DESC LIMIT ?", (limit,)
            )
            rows = await cursor.fetchall()
        return [
            DataResetLog(
                id=row["id"],
                performed_by=row["performed_by"],
                reason=row["reason"],
                data_summary=row["data_summary"],
                total_transactions=row["total_transactions"],
                total_users=row["total_users"],
                total_audit_logs=row["total_audit_logs"],
                total_balance=row["total_balance"],
                ip_address=row["ip_address"],
                user_agent=row["user_agent"],
                performed_at=_dt(row["performed_at"])
            )
            for row in rows
        ]

"""
User management and the full data reset.
"""
import asyncio
import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import config
from db import (
    db, User, DataResetLog, Role, AuditAction, EntityType,
    UserRepository, TransactionRepository, AuditRepository, DataResetLogRepository
)
from services import audit_service
from services.audit_service import RequestContext
from services.auth_service import verify_password
from utils.logger import get_logger
from utils.validators import validate_reason
from utils.exceptions import (
    ValidationException, NotFoundException, AuthenticationException
)

logger = get_logger("admin_service")

BACKUP_FAILED = "Backup gagal dibuat"


@dataclass
class ResetSummary:
    deleted_transactions: int
    reset_balances: int
    deleted_audit_logs: int
    backup_path: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deletedTransactions": self.deleted_transactions,
            "resetBalances": self.reset_balances,
            "deletedAuditLogs": self.deleted_audit_logs,
            "backupPath": self.backup_path
        }


class AdminService:

    async def list_users(self) -> List[User]:
        return await UserRepository.list_all()

    async def update_role(self, ctx: RequestContext, user_id: Optional[str], role: Optional[str]) -> User:
        if not user_id or not role:
            raise ValidationException("userId dan role wajib diisi")
        try:
            new_role = Role(role)
        except ValueError:
            raise ValidationException("Role tidak valid")

        user = await UserRepository.get_by_id(user_id)
        if not user:
            raise NotFoundException("User tidak ditemukan")

        old_role = user.role
        await UserRepository.update_role(user_id, new_role)
        await audit_service.record(
            AuditAction.UPDATE, EntityType.USER, user_id, ctx,
            old_value={"role": old_role.value},
            new_value={"role": new_role.value},
            reason="Role changed"
        )
        logger.audit_admin_action(
            "update_role", ctx.actor_id, target=user_id,
            old_role=old_role.value, new_role=new_role.value
        )
        user.role = new_role
        return user

    async def delete_user(self, ctx: RequestContext, user_id: Optional[str], reason: Optional[str]) -> User:
        """
        Remove a user who has no transactions. The audit entry is written first
        so the snapshot survives the delete.
        """
        if not user_id:
            raise ValidationException("userId wajib diisi")
        reason = validate_reason(reason)

        user = await UserRepository.get_by_id(user_id)
        if not user:
            raise NotFoundException("User tidak ditemukan")
        if user.id == ctx.actor_id:
            raise ValidationException("Anda tidak dapat menghapus akun Anda sendiri")
        if await TransactionRepository.count(user_id=user.id) > 0:
            raise ValidationException(
                "User tidak dapat dihapus karena memiliki riwayat transaksi"
            )

        await audit_service.record(
            AuditAction.DELETE, EntityType.USER, user.id, ctx,
            old_value=user.to_dict(), reason=reason
        )
        await UserRepository.delete(user.id)
        logger.audit_admin_action("delete_user", ctx.actor_id, target=user.id, reason=reason)
        return user

    # ============ Data reset ============

    async def reset_statistics(self) -> Dict[str, Any]:
        recent = await TransactionRepository.find(include_deleted=True, limit=10)
        return {
            "statistics": {
                "totalTransactions": await TransactionRepository.count(),
                "totalAuditLogs": await AuditRepository.count(),
                "totalUsers": await UserRepository.count(),
                "totalBalance": await UserRepository.total_balance()
            },
            "recentTransactions": [txn.to_dict() for txn in recent],
            "recentResets": [log.to_dict() for log in await DataResetLogRepository.list_recent(5)]
        }

    async def create_backup(self) -> str:
        """Write every transaction, audit log and balance to a JSON file; returns its path."""
        transactions = await TransactionRepository.export_all()
        audit_logs = await AuditRepository.export_all()
        balances = await UserRepository.balances_snapshot()

        now = datetime.utcnow()
        data = {
            "timestamp": now.isoformat() + "Z",
            "transactions": transactions,
            "auditLogs": audit_logs,
            "userBalances": balances,
            "summary": {
                "totalTransactions": len(transactions),
                "totalAuditLogs": len(audit_logs),
                "totalUsers": len(balances),
                "totalBalance": sum(user["balance"] for user in balances)
            }
        }

        backup_dir = Path(config.BACKUP_DIR)
        path = backup_dir / f"reset-backup-{now.strftime('%Y-%m-%dT%H-%M-%S-%f')}.json"

        def _write():
            backup_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(data, indent=2, default=str, ensure_ascii=False), encoding="utf-8")

        await asyncio.to_thread(_write)
        logger.info("Backup created", path=str(path))
        return str(path)

    async def reset_all_data(
        self,
        ctx: RequestContext,
        confirm_text: Optional[str],
        password: Optional[str],
        reason: Optional[str]
    ) -> ResetSummary:
        """
        Delete every transaction and audit log and zero every balance.
        Users and treasurer accounts are kept. A backup is attempted first;
        its failure is recorded but does not stop the reset.
        """
        if confirm_text != config.RESET_CONFIRM_TEXT:
            raise ValidationException(
                f'Konfirmasi tidak valid. Ketik "{config.RESET_CONFIRM_TEXT}" dengan benar.'
            )
        if not password:
            raise ValidationException("Password admin diperlukan")
        reason = (reason or "").strip()
        if len(reason) < config.MIN_RESET_REASON_LENGTH:
            raise ValidationException(
                f"Alasan reset diperlukan (minimal {config.MIN_RESET_REASON_LENGTH} karakter)"
            )

        admin = await UserRepository.get_by_id(ctx.actor_id)
        if not admin:
            raise NotFoundException("User tidak ditemukan")
        if not verify_password(password, admin.password_hash):
            logger.audit_security_event("RESET_PASSWORD_FAILED", user_id=admin.id, ip_address=ctx.ip_address)
            raise AuthenticationException("Password admin salah")

        summary = {
            "totalTransactions": await TransactionRepository.count(),
            "totalAuditLogs": await AuditRepository.count(),
            "totalUsers": await UserRepository.count(),
            "totalBalance": await UserRepository.total_balance(),
        }

        try:
            backup_path = await self.create_backup()
        except (OSError, TypeError, ValueError) as e:
            logger.error("Backup before reset failed", exc_info=True, error=str(e))
            backup_path = BACKUP_FAILED

        async with db.transaction() as conn:
            await DataResetLogRepository.create(DataResetLog(
                performed_by=admin.id,
                reason=reason,
                data_summary=json.dumps({**summary, "backupPath": backup_path}),
                total_transactions=summary["totalTransactions"],
                total_users=summary["totalUsers"],
                total_audit_logs=summary["totalAuditLogs"],
                total_balance=summary["totalBalance"],
                ip_address=ctx.ip_address,
                user_agent=ctx.user_agent
            ), conn=conn)
            deleted_transactions = await TransactionRepository.delete_all(conn=conn)
            reset_balances = await UserRepository.reset_all_balances(conn=conn)
            deleted_audit_logs = await AuditRepository.delete_all(conn=conn)

        logger.audit_admin_action(
            "reset_all_data", admin.id, target="system",
            reason=reason, backup_path=backup_path, **summary
        )
        return ResetSummary(
            deleted_transactions=deleted_transactions,
            reset_balances=reset_balances,
            deleted_audit_logs=deleted_audit_logs,
            backup_path=backup_path
        )


# Global service instance
admin_service = AdminService()

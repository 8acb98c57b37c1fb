"""
Wallet service: top-ups, approvals, gateway callbacks, adjustments and soft deletes.

Every balance change is written in the same database transaction as the
status change that causes it, and status changes out of PENDING are
conditional, so a transaction is credited at most once.
"""
from datetime import datetime
from typing import Optional, List, Dict, Any
from dataclasses import dataclass

from werkzeug.datastructures import FileStorage

from config import config
from db import (
    db, User, Transaction,
    TransactionType, TransactionMethod, TransactionStatus, AuditAction, EntityType,
    UserRepository, TransactionRepository, TreasurerAccountRepository
)
from services import audit_service
from services.audit_service import RequestContext
from services.payment_gateway import payment_gateway, calculate_fee, default_expiry, verify_callback_signature
from utils.logger import get_logger
from utils.uploads import check_upload, save_upload
from utils.validators import parse_amount, validate_reason, validate_topup_amount
from utils.exceptions import (
    ValidationException, NotFoundException, PermissionDeniedException,
    TransactionStateException, PaymentGatewayException, PaymentVerificationException
)

logger = get_logger("wallet_service")

PAID_STATUSES = ("PAID", "SETTLEMENT")
FAILED_STATUSES = ("FAILED", "EXPIRE", "EXPIRED")
REVIEW_ACTIONS = ("approve", "reject")


@dataclass
class CheckResult:
    """Outcome of polling the gateway for one transaction."""
    status: str
    updated: bool = False
    expired: bool = False
    gateway_status: Optional[str] = None
    message: Optional[str] = None
    transaction: Optional[Transaction] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"status": self.status, "updated": self.updated}
        if self.expired:
            data["expired"] = True
        if self.gateway_status:
            data["gatewayStatus"] = self.gateway_status
        if self.message:
            data["message"] = self.message
        if self.transaction:
            data["amount"] = self.transaction.amount
            data["totalAmount"] = self.transaction.total_amount
        return data


@dataclass
class BalanceChangeResult:
    """Result of an adjustment or a soft delete."""
    transaction: Transaction
    balance_adjusted: bool
    old_balance: Optional[int] = None
    new_balance: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction": self.transaction.to_dict(),
            "balanceAdjusted": self.balance_adjusted,
            "oldBalance": self.old_balance,
            "newBalance": self.new_balance
        }


def _parse_enum(enum_cls, value: Optional[str], label: str):
    if value in (None, "", "all"):
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationException(f"{label} tidak valid")


def ensure_can_view(actor: User, txn: Transaction):
    """Members only see their own transactions."""
    if not actor.is_staff and txn.user_id != actor.id:
        raise PermissionDeniedException()


class WalletService:
    """
    Transaction lifecycle operations.

    Lifecycle:
        create (pending) -> approve / gateway paid / webhook  -> success (balance credited)
                         -> reject / gateway failed / expiry -> failed
        success -> soft delete (balance reversed)
    """

    # ============ Lookups ============

    async def get_transaction(self, actor: User, txn_id: str) -> Transaction:
        txn = await TransactionRepository.get_by_id(txn_id)
        if not txn:
            raise NotFoundException("Transaksi tidak ditemukan")
        ensure_can_view(actor, txn)
        return txn

    async def list_transactions(
        self,
        actor: User,
        status: Optional[str] = None,
        method: Optional[str] = None,
        txn_type: Optional[str] = None
    ) -> List[Transaction]:
        """Non-deleted transactions, newest first; members get only their own."""
        return await TransactionRepository.find(
            user_id=None if actor.is_staff else actor.id,
            status=_parse_enum(TransactionStatus, status, "Status"),
            method=_parse_enum(TransactionMethod, method, "Metode"),
            txn_type=_parse_enum(TransactionType, txn_type, "Tipe")
        )

    async def list_pending_manual(self) -> List[Transaction]:
        return await TransactionRepository.find(
            status=TransactionStatus.PENDING, method=TransactionMethod.MANUAL
        )

    async def list_pending_treasurer_payments(self) -> List[Transaction]:
        return await TransactionRepository.list_pending_treasurer()

    # ============ Status transitions ============

    async def _complete(
        self,
        txn: Transaction,
        actor_id: Optional[str] = None,
        ctx: Optional[RequestContext] = None,
        source: str = "approval"
    ) -> bool:
        """
        PENDING -> SUCCESS and credit `txn.amount` (the fee is never credited).
        Returns False if another request already settled the transaction.
        """
        now = datetime.utcnow()
        fields = {}
        if actor_id:
            fields.update(approved_by=actor_id, approved_at=now,
                          last_modified_by=actor_id, last_modified_at=now)

        async with db.transaction() as conn:
            flipped = await TransactionRepository.transition_status(
                txn.id, TransactionStatus.SUCCESS, conn=conn, **fields
            )
            if not flipped:
                return False
            delta = txn.amount if txn.type == TransactionType.IN else -txn.amount
            before, after = await UserRepository.add_balance(txn.user_id, delta, conn=conn)
            if ctx:
                await audit_service.record(
                    AuditAction.APPROVE, EntityType.TRANSACTION, txn.id, ctx,
                    old_value={"status": TransactionStatus.PENDING.value, "balance": before},
                    new_value={"status": TransactionStatus.SUCCESS.value, "balance": after},
                    conn=conn
                )

        txn.status = TransactionStatus.SUCCESS
        logger.audit_transaction_state_change(
            txn.id, TransactionStatus.PENDING.value, TransactionStatus.SUCCESS.value,
            reason=source, actor_id=actor_id
        )
        logger.audit_balance_change(
            user_id=txn.user_id, change_type=source, amount=delta,
            balance_before=before, balance_after=after, transaction_id=txn.id
        )
        logger.audit_payment_received(
            user_id=txn.user_id, method=txn.method.value, amount=txn.amount,
            reference=txn.payment_id, source=source
        )
        return True

    async def _fail(
        self,
        txn: Transaction,
        actor_id: Optional[str] = None,
        ctx: Optional[RequestContext] = None,
        reason: str = "rejected"
    ) -> bool:
        """PENDING -> FAILED. Returns False if the transaction was no longer pending."""
        now = datetime.utcnow()
        fields = {}
        if actor_id:
            fields.update(rejected_by=actor_id, rejected_at=now,
                          last_modified_by=actor_id, last_modified_at=now)

        async with db.transaction() as conn:
            flipped = await TransactionRepository.transition_status(
                txn.id, TransactionStatus.FAILED, conn=conn, **fields
            )
            if flipped and ctx:
                await audit_service.record(
                    AuditAction.REJECT, EntityType.TRANSACTION, txn.id, ctx,
                    old_value={"status": TransactionStatus.PENDING.value},
                    new_value={"status": TransactionStatus.FAILED.value},
                    conn=conn
                )

        if flipped:
            txn.status = TransactionStatus.FAILED
            logger.audit_transaction_state_change(
                txn.id, TransactionStatus.PENDING.value, TransactionStatus.FAILED.value,
                reason=reason, actor_id=actor_id
            )
        return flipped

    # ============ Top-up creation ============

    async def create_gateway_payment(
        self,
        user: User,
        amount: Any,
        method: Any,
        treasurer_account_id: Optional[str] = None
    ) -> Transaction:
        """
        Create a pending QRIS/VA top-up and register it with the gateway.

        QRIS through the gateway is behind config.QRIS_ENABLED; QRIS backed by a
        treasurer account is always available and is confirmed by staff.
        """
        amount = validate_topup_amount(amount)
        if method not in (TransactionMethod.QRIS.value, TransactionMethod.VA.value):
            raise ValidationException("Metode pembayaran tidak valid")
        method = TransactionMethod(method)

        treasurer_account = None
        if method == TransactionMethod.QRIS:
            if treasurer_account_id:
                treasurer_account = await TreasurerAccountRepository.get_by_id(treasurer_account_id)
                if not treasurer_account or not treasurer_account.is_active:
                    raise ValidationException("Rekening bendahara tidak valid atau tidak aktif")
            elif not config.QRIS_ENABLED:
                raise ValidationException(
                    "Fitur QRIS sedang dalam tahap pengembangan. "
                    "Silakan gunakan metode Transfer Manual."
                )

        fee = calculate_fee(amount, method)
        txn = Transaction(
            user_id=user.id,
            type=TransactionType.IN,
            method=method,
            amount=amount,
            fee=fee,
            total_amount=amount + fee,
            status=TransactionStatus.PENDING,
            treasurer_account_id=treasurer_account.id if treasurer_account else None
        )
        await TransactionRepository.create(txn)
        logger.audit_transaction_created(
            txn.id, method.value, user.id, amount, fee=fee, total=txn.total_amount
        )

        result = await payment_gateway.create_payment(
            order_id=txn.id,
            amount=amount,
            method=method,
            customer_name=user.name,
            customer_email=user.email,
            treasurer_account=treasurer_account
        )

        if not result.success:
            await self._fail(txn, reason="gateway_error")
            raise PaymentGatewayException(
                result.message or "Gagal membuat pembayaran", payment_ref=txn.id
            )

        txn.payment_id = result.reference
        txn.qris_code = result.qris_code
        txn.va_number = result.va_number
        txn.expired_at = result.expired_at or default_expiry(method)
        await TransactionRepository.update_gateway_details(
            txn.id, txn.payment_id, txn.qris_code, txn.va_number, txn.expired_at
        )
        return txn

    async def create_manual_transfer(
        self,
        user: User,
        amount: Any,
        proof_file: Optional[FileStorage],
        treasurer_account_id: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Transaction:
        """Pending manual transfer with an uploaded proof, waiting for staff review."""
        amount = validate_topup_amount(amount)
        check_upload(proof_file, config.ALLOWED_PROOF_EXTENSIONS, "Bukti transfer")

        if treasurer_account_id:
            account = await TreasurerAccountRepository.get_by_id(treasurer_account_id)
            if not account or not account.is_active:
                raise ValidationException("Rekening bendahara tidak valid atau tidak aktif")

        proof_path = save_upload(proof_file, "proof", "proofs")

        txn = Transaction(
            user_id=user.id,
            type=TransactionType.IN,
            method=TransactionMethod.MANUAL,
            amount=amount,
            fee=0,
            total_amount=amount,
            status=TransactionStatus.PENDING,
            proof_image=proof_path,
            treasurer_account_id=treasurer_account_id or None,
            notes=(notes or "").strip() or None
        )
        await TransactionRepository.create(txn)
        logger.audit_transaction_created(
            txn.id, TransactionMethod.MANUAL.value, user.id, amount, proof=proof_path
        )
        return txn

    # ============ Staff review ============

    async def confirm_manual_transfer(
        self,
        ctx: RequestContext,
        txn_id: str,
        action: str
    ) -> Transaction:
        """Approve (credit) or reject a pending transfer."""
        if not txn_id or not action:
            raise ValidationException("transactionId dan action wajib diisi")
        if action not in REVIEW_ACTIONS:
            raise ValidationException("Action tidak valid")

        txn = await TransactionRepository.get_by_id(txn_id)
        if not txn:
            raise NotFoundException("Transaksi tidak ditemukan")
        if txn.is_deleted or txn.method == TransactionMethod.ADJUSTMENT:
            raise ValidationException("Transaksi tidak dapat dikonfirmasi")
        if not txn.is_pending:
            raise TransactionStateException(txn.id, txn.status.value, action)

        if action == "approve":
            changed = await self._complete(txn, actor_id=ctx.actor_id, ctx=ctx, source="approval")
        else:
            changed = await self._fail(txn, actor_id=ctx.actor_id, ctx=ctx, reason="rejected")
        if not changed:
            raise TransactionStateException(txn.id, "processed", action)

        return await TransactionRepository.get_by_id(txn_id)

    async def verify_treasurer_payment(
        self,
        ctx: RequestContext,
        txn_id: str,
        action: str
    ) -> CheckResult:
        """Staff confirmation of a QRIS payment made to a treasurer account."""
        if not txn_id or action not in REVIEW_ACTIONS:
            raise ValidationException("transactionId dan action (approve/reject) wajib diisi")

        txn = await TransactionRepository.get_by_id(txn_id)
        if not txn:
            raise NotFoundException("Transaksi tidak ditemukan")
        if txn.method != TransactionMethod.QRIS or not txn.is_treasurer_payment:
            raise ValidationException("Transaksi ini bukan pembayaran QRIS rekening bendahara")
        if txn.is_deleted:
            raise ValidationException("Transaksi tidak dapat dikonfirmasi")
        if not txn.is_pending:
            return CheckResult(
                status=txn.status.value,
                message=f"Transaksi sudah {txn.status.value}",
                transaction=txn
            )

        if action == "approve":
            updated = await self._complete(txn, actor_id=ctx.actor_id, ctx=ctx, source="treasurer_qris")
            message = "Pembayaran berhasil diverifikasi"
        else:
            updated = await self._fail(txn, actor_id=ctx.actor_id, ctx=ctx, reason="rejected")
            message = "Pembayaran ditolak"
        return CheckResult(status=txn.status.value, updated=updated, message=message, transaction=txn)

    # ============ Gateway polling ============

    def _needs_gateway_check(self, txn: Transaction) -> bool:
        return (
            txn.is_pending
            and not txn.is_deleted
            and bool(txn.payment_id)
            and txn.method in (TransactionMethod.QRIS, TransactionMethod.VA)
            and not txn.is_treasurer_payment
        )

    async def _apply_gateway_status(self, txn: Transaction) -> CheckResult:
        gateway = await payment_gateway.check_payment_status(txn.payment_id)
        updated = False
        if gateway.paid:
            updated = await self._complete(txn, source="gateway_check")
        elif gateway.status in FAILED_STATUSES:
            updated = await self._fail(txn, reason=f"gateway_{gateway.status.lower()}")
        return CheckResult(
            status=txn.status.value,
            updated=updated,
            gateway_status=gateway.status,
            transaction=txn
        )

    async def check_payment(self, actor: User, txn_id: str) -> CheckResult:
        """Manual "check now" for a gateway payment."""
        txn = await self.get_transaction(actor, txn_id)
        if not self._needs_gateway_check(txn):
            return CheckResult(
                status=txn.status.value,
                message="Transaksi tidak perlu dicek",
                transaction=txn
            )
        result = await self._apply_gateway_status(txn)
        result.message = (
            "Pembayaran berhasil dikonfirmasi" if txn.status == TransactionStatus.SUCCESS
            else "Status pembayaran diperbarui" if result.updated
            else "Pembayaran belum diterima"
        )
        return result

    async def get_payment_status(self, actor: User, txn_id: str) -> CheckResult:
        """Status poll used by the payment page: expiry first, then the gateway."""
        txn = await self.get_transaction(actor, txn_id)

        if (
            txn.is_pending
            and txn.method in (TransactionMethod.QRIS, TransactionMethod.VA)
            and txn.expired_at
            and datetime.utcnow() > txn.expired_at
        ):
            updated = await self._fail(txn, reason="expired")
            return CheckResult(status=txn.status.value, updated=updated, expired=True, transaction=txn)

        if self._needs_gateway_check(txn):
            return await self._apply_gateway_status(txn)

        return CheckResult(status=txn.status.value, transaction=txn)

    # ============ Webhook ============

    async def process_webhook(self, payload: Dict[str, Any], signature: Optional[str]) -> Dict[str, Any]:
        """Gateway callback. Only pending transactions are changed."""
        merchant_ref = payload.get("merchant_ref") or payload.get("order_id")
        status = str(payload.get("status") or "").upper()

        if not payment_gateway.mock_mode and not verify_callback_signature(
            merchant_ref or "", payload.get("status") or "", signature
        ):
            logger.audit_security_event("INVALID_WEBHOOK_SIGNATURE", reference=merchant_ref)
            raise PaymentVerificationException("payment_gateway", "Invalid signature", merchant_ref)

        if not merchant_ref:
            raise ValidationException("merchant_ref wajib diisi")

        txn = await TransactionRepository.get_by_id(merchant_ref)
        if not txn:
            raise NotFoundException("Transaction not found")
        if not txn.is_pending or txn.is_deleted:
            return {"success": True, "message": "Already processed", "status": txn.status.value}

        if status in PAID_STATUSES:
            await self._complete(txn, source="webhook")
        elif status in FAILED_STATUSES:
            await self._fail(txn, reason=f"webhook_{status.lower()}")
        else:
            logger.info("Webhook status ignored", transaction_id=txn.id, status=status)

        return {"success": True, "message": "Webhook processed", "status": txn.status.value}

    # ============ Adjustments & deletes ============

    async def adjust_balance(
        self,
        ctx: RequestContext,
        target_user_id: str,
        amount: Any,
        reason: Optional[str]
    ) -> BalanceChangeResult:
        """
        Add (positive) or remove (negative) balance with a recorded reason.
        Creates a SUCCESS adjustment transaction so the balance stays derivable.
        """
        if not target_user_id:
            raise ValidationException("User tujuan wajib dipilih")
        delta = parse_amount(amount, allow_negative=True)
        if delta == 0:
            raise ValidationException("Jumlah penyesuaian tidak boleh 0")
        reason = validate_reason(reason)

        target = await UserRepository.get_by_id(target_user_id)
        if not target:
            raise NotFoundException("User tidak ditemukan")

        now = datetime.utcnow()
        async with db.transaction() as conn:
            before, after = await UserRepository.add_balance(target.id, delta, conn=conn)
            txn = Transaction(
                user_id=target.id,
                type=TransactionType.IN if delta > 0 else TransactionType.OUT,
                method=TransactionMethod.ADJUSTMENT,
                amount=abs(delta),
                fee=0,
                total_amount=abs(delta),
                status=TransactionStatus.SUCCESS,
                is_adjustment=True,
                adjustment_reason=reason,
                original_balance=before,
                new_balance=after,
                approved_by=ctx.actor_id,
                approved_at=now,
                last_modified_by=ctx.actor_id,
                last_modified_at=now
            )
            await TransactionRepository.create(txn, conn=conn)
            await audit_service.record(
                AuditAction.ADJUST, EntityType.BALANCE, target.id, ctx,
                old_value={"balance": before},
                new_value={"balance": after, "adjustment": delta},
                reason=reason, conn=conn
            )
            await audit_service.record(
                AuditAction.CREATE, EntityType.TRANSACTION, txn.id, ctx,
                new_value={
                    "type": txn.type.value, "method": txn.method.value,
                    "amount": txn.amount, "status": txn.status.value
                },
                reason=reason, conn=conn
            )

        logger.audit_transaction_created(
            txn.id, TransactionMethod.ADJUSTMENT.value, target.id, delta, actor_id=ctx.actor_id
        )
        logger.audit_balance_change(
            user_id=target.id, change_type="adjustment", amount=delta,
            balance_before=before, balance_after=after, transaction_id=txn.id
        )
        txn.user_name, txn.user_email = target.name, target.email
        return BalanceChangeResult(txn, balance_adjusted=True, old_balance=before, new_balance=after)

    async def soft_delete_transaction(
        self,
        ctx: RequestContext,
        txn_id: str,
        reason: Optional[str]
    ) -> BalanceChangeResult:
        """
        Hide a transaction and, when it had been credited or debited, undo its
        effect on the balance.
        """
        if not txn_id:
            raise ValidationException("transactionId wajib diisi")
        reason = validate_reason(reason)

        existing = await TransactionRepository.get_by_id(txn_id)
        if not existing:
            raise NotFoundException("Transaksi tidak ditemukan")
        if existing.is_deleted:
            raise ValidationException("Transaksi sudah dihapus")

        before = after = None
        async with db.transaction() as conn:
            if not await TransactionRepository.mark_deleted(txn_id, ctx.actor_id, reason, conn=conn):
                raise ValidationException("Transaksi sudah dihapus")
            # Re-read under the write lock so the status can't change underneath us
            txn = await TransactionRepository.get_by_id(txn_id, conn=conn)

            await audit_service.record(
                AuditAction.DELETE, EntityType.TRANSACTION, txn.id, ctx,
                old_value=existing.to_dict(),
                new_value={"is_deleted": True},
                reason=reason, conn=conn
            )

            if txn.status == TransactionStatus.SUCCESS:
                delta = -txn.amount if txn.type == TransactionType.IN else txn.amount
                before, after = await UserRepository.add_balance(txn.user_id, delta, conn=conn)
                await audit_service.record(
                    AuditAction.ADJUST, EntityType.BALANCE, txn.user_id, ctx,
                    old_value={"balance": before},
                    new_value={"balance": after, "reversedTransaction": txn.id},
                    reason=f"Reversal karena penghapusan transaksi: {reason}",
                    conn=conn
                )

        if before is not None:
            logger.audit_balance_change(
                user_id=txn.user_id, change_type="delete_reversal", amount=after - before,
                balance_before=before, balance_after=after, transaction_id=txn.id
            )
        logger.audit_admin_action("delete_transaction", ctx.actor_id, target=txn.id, reason=reason)
        return BalanceChangeResult(
            txn, balance_adjusted=before is not None, old_balance=before, new_balance=after
        )


# Global service instance
wallet_service = WalletService()

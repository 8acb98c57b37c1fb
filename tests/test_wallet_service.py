"""
Tests for the wallet service: top-ups, reviews, webhooks, adjustments and deletes.
"""
import asyncio
import hashlib
import io

import pytest
from werkzeug.datastructures import FileStorage

from config import config
from db import (
    TransactionMethod, TransactionStatus, TransactionType, AuditAction,
    TransactionRepository, UserRepository, AuditRepository
)
from services.audit_service import RequestContext
from services.wallet_service import WalletService
from utils.exceptions import (
    ValidationException, NotFoundException, PermissionDeniedException,
    TransactionStateException, PaymentVerificationException
)


def _proof(filename: str = "bukti.png") -> FileStorage:
    return FileStorage(stream=io.BytesIO(b"\x89PNG fake"), filename=filename, content_type="image/png")


def _callback_signature(merchant_ref: str, status: str) -> str:
    return hashlib.sha256(f"{merchant_ref}{status}private-key".encode()).hexdigest()


@pytest.fixture
def wallet():
    return WalletService()


@pytest.fixture
def staff_ctx(bendahara) -> RequestContext:
    return RequestContext(actor_id=bendahara.id, ip_address="10.0.0.1", user_agent="pytest")


async def _balance(user_id: str) -> int:
    return (await UserRepository.get_by_id(user_id)).balance


class TestManualTransfer:

    @pytest.mark.asyncio
    async def test_create_saves_proof(self, wallet, member, treasurer_account):
        txn = await wallet.create_manual_transfer(
            member, "25000", _proof(), treasurer_account.id, notes="  iuran Juli  "
        )

        stored = await TransactionRepository.get_by_id(txn.id)
        assert stored.status == TransactionStatus.PENDING
        assert stored.method == TransactionMethod.MANUAL
        assert stored.amount == 25000
        assert stored.fee == 0
        assert stored.notes == "iuran Juli"
        assert stored.proof_image.startswith("/uploads/proofs/proof-")
        assert (config.UPLOAD_DIR / "proofs").is_dir()

    @pytest.mark.asyncio
    async def test_minimum_amount(self, wallet, member):
        with pytest.raises(ValidationException, match="Minimum setor saldo"):
            await wallet.create_manual_transfer(member, 9999, _proof())

    @pytest.mark.asyncio
    async def test_proof_required_and_typed(self, wallet, member):
        with pytest.raises(ValidationException, match="wajib diupload"):
            await wallet.create_manual_transfer(member, 10000, None)
        with pytest.raises(ValidationException, match="tidak didukung"):
            await wallet.create_manual_transfer(member, 10000, _proof("bukti.exe"))

    @pytest.mark.asyncio
    async def test_inactive_treasurer_account_rejected(self, wallet, member):
        with pytest.raises(ValidationException, match="Rekening bendahara"):
            await wallet.create_manual_transfer(member, 10000, _proof(), "missing-id")


class TestReview:

    @pytest.mark.asyncio
    async def test_approve_credits_once(self, wallet, member, staff_ctx):
        txn = await wallet.create_manual_transfer(member, 20000, _proof())

        approved = await wallet.confirm_manual_transfer(staff_ctx, txn.id, "approve")

        assert approved.status == TransactionStatus.SUCCESS
        assert approved.approved_by == staff_ctx.actor_id
        assert await _balance(member.id) == 70000

        with pytest.raises(TransactionStateException):
            await wallet.confirm_manual_transfer(staff_ctx, txn.id, "approve")
        assert await _balance(member.id) == 70000

        logs = await AuditRepository.list_recent(entity_id=txn.id)
        assert [log.action for log in logs] == [AuditAction.APPROVE]

    @pytest.mark.asyncio
    async def test_concurrent_approvals_credit_once(self, wallet, member, staff_ctx):
        txn = await wallet.create_manual_transfer(member, 15000, _proof())

        results = await asyncio.gather(
            wallet.confirm_manual_transfer(staff_ctx, txn.id, "approve"),
            wallet.confirm_manual_transfer(staff_ctx, txn.id, "approve"),
            return_exceptions=True
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], TransactionStateException)
        assert await _balance(member.id) == 65000

    @pytest.mark.asyncio
    async def test_reject(self, wallet, member, staff_ctx):
        txn = await wallet.create_manual_transfer(member, 20000, _proof())

        rejected = await wallet.confirm_manual_transfer(staff_ctx, txn.id, "reject")

        assert rejected.status == TransactionStatus.FAILED
        assert rejected.rejected_by == staff_ctx.actor_id
        assert await _balance(member.id) == 50000

    @pytest.mark.asyncio
    async def test_bad_input(self, wallet, staff_ctx):
        with pytest.raises(ValidationException):
            await wallet.confirm_manual_transfer(staff_ctx, "", "approve")
        with pytest.raises(ValidationException, match="Action tidak valid"):
            await wallet.confirm_manual_transfer(staff_ctx, "x", "maybe")
        with pytest.raises(NotFoundException):
            await wallet.confirm_manual_transfer(staff_ctx, "missing", "approve")


class TestGatewayPayment:

    @pytest.mark.asyncio
    async def test_qris_disabled_without_treasurer_account(self, wallet, member):
        with pytest.raises(ValidationException, match="Transfer Manual"):
            await wallet.create_gateway_payment(member, 10000, "qris")

    @pytest.mark.asyncio
    async def test_unknown_method(self, wallet, member):
        with pytest.raises(ValidationException, match="Metode pembayaran"):
            await wallet.create_gateway_payment(member, 10000, "manual")

    @pytest.mark.asyncio
    async def test_mock_va(self, wallet, member):
        txn = await wallet.create_gateway_payment(member, 20000, "va")

        stored = await TransactionRepository.get_by_id(txn.id)
        assert stored.status == TransactionStatus.PENDING
        assert stored.fee == 60
        assert stored.total_amount == 20060
        assert stored.payment_id.startswith(f"MOCK-{txn.id}-")
        assert stored.va_number
        assert stored.expired_at is not None

    @pytest.mark.asyncio
    async def test_treasurer_qris_verification(self, wallet, member, staff_ctx, treasurer_account):
        txn = await wallet.create_gateway_payment(member, 10000, "qris", treasurer_account.id)
        assert txn.payment_id.startswith("TREASURER-")
        assert txn.total_amount == 10050

        pending = await wallet.list_pending_treasurer_payments()
        assert [t.id for t in pending] == [txn.id]

        result = await wallet.verify_treasurer_payment(staff_ctx, txn.id, "approve")
        assert result.updated
        assert result.status == "success"
        # The fee is never credited
        assert await _balance(member.id) == 60000

        again = await wallet.verify_treasurer_payment(staff_ctx, txn.id, "approve")
        assert again.updated is False
        assert await _balance(member.id) == 60000

    @pytest.mark.asyncio
    async def test_verify_rejects_non_treasurer_payment(self, wallet, member, staff_ctx):
        txn = await wallet.create_gateway_payment(member, 10000, "va")
        with pytest.raises(ValidationException, match="bukan pembayaran QRIS"):
            await wallet.verify_treasurer_payment(staff_ctx, txn.id, "approve")

    @pytest.mark.asyncio
    async def test_mock_check_leaves_pending(self, wallet, member):
        txn = await wallet.create_gateway_payment(member, 10000, "va")
        result = await wallet.check_payment(member, txn.id)
        assert result.status == "pending"
        assert result.updated is False

    @pytest.mark.asyncio
    async def test_member_cannot_view_others(self, wallet, member, other_member):
        txn = await wallet.create_gateway_payment(member, 10000, "va")
        with pytest.raises(PermissionDeniedException):
            await wallet.get_payment_status(other_member, txn.id)


class TestWebhook:

    @pytest.mark.asyncio
    async def test_paid_then_already_processed(self, wallet, member):
        txn = await wallet.create_gateway_payment(member, 10000, "va")
        payload = {"merchant_ref": txn.id, "status": "PAID"}

        first = await wallet.process_webhook(payload, None)
        second = await wallet.process_webhook(payload, None)

        assert first["status"] == "success"
        assert second["message"] == "Already processed"
        assert await _balance(member.id) == 60000

    @pytest.mark.asyncio
    async def test_failed_status(self, wallet, member):
        txn = await wallet.create_gateway_payment(member, 10000, "va")
        result = await wallet.process_webhook({"merchant_ref": txn.id, "status": "EXPIRED"}, None)
        assert result["status"] == "failed"
        assert await _balance(member.id) == 50000

    @pytest.mark.asyncio
    async def test_signature_checked_in_live_mode(self, wallet, member, monkeypatch):
        txn = await wallet.create_gateway_payment(member, 10000, "va")
        monkeypatch.setattr(config, "PAYMENT_API_KEY", "live-key")
        payload = {"merchant_ref": txn.id, "status": "PAID"}

        with pytest.raises(PaymentVerificationException):
            await wallet.process_webhook(payload, "bad-signature")

        result = await wallet.process_webhook(payload, _callback_signature(txn.id, "PAID"))
        assert result["status"] == "success"

    @pytest.mark.asyncio
    async def test_unknown_reference(self, wallet, database):
        with pytest.raises(NotFoundException):
            await wallet.process_webhook({"merchant_ref": "nope", "status": "PAID"}, None)

    @pytest.mark.asyncio
    async def test_deleted_pending_is_not_credited(self, wallet, member, admin_ctx):
        txn = await wallet.create_gateway_payment(member, 10000, "va")
        await wallet.soft_delete_transaction(admin_ctx, txn.id, "Tagihan dibuat ganda")

        result = await wallet.process_webhook({"merchant_ref": txn.id, "status": "PAID"}, None)

        assert result["message"] == "Already processed"
        assert (await TransactionRepository.get_by_id(txn.id)).status == TransactionStatus.PENDING
        assert await _balance(member.id) == 50000


class TestAdjustAndDelete:

    @pytest.mark.asyncio
    async def test_adjust_may_go_negative(self, wallet, member, admin_ctx):
        result = await wallet.adjust_balance(admin_ctx, member.id, "-80000", "Koreksi salah input kas")

        assert result.old_balance == 50000
        assert result.new_balance == -30000
        assert result.transaction.type == TransactionType.OUT
        assert result.transaction.amount == 80000
        assert result.transaction.is_adjustment
        assert await _balance(member.id) == -30000

        actions = {log.action for log in await AuditRepository.list_recent()}
        assert {AuditAction.ADJUST, AuditAction.CREATE} <= actions

    @pytest.mark.asyncio
    async def test_adjust_validation(self, wallet, member, admin_ctx):
        with pytest.raises(ValidationException, match="tidak boleh 0"):
            await wallet.adjust_balance(admin_ctx, member.id, 0, "Alasan yang cukup panjang")
        with pytest.raises(ValidationException, match="Alasan minimal 10 karakter"):
            await wallet.adjust_balance(admin_ctx, member.id, 1000, "pendek")
        with pytest.raises(NotFoundException):
            await wallet.adjust_balance(admin_ctx, "missing", 1000, "Alasan yang cukup panjang")

    @pytest.mark.asyncio
    async def test_adjust_amount_parsing(self, wallet, member, admin_ctx):
        for amount in ("1e30", "10000000000000001", -10 ** 13):
            with pytest.raises(ValidationException, match="batas maksimum"):
                await wallet.adjust_balance(admin_ctx, member.id, amount, "Alasan yang cukup panjang")
        for amount in ("abc", "nan", "Infinity"):
            with pytest.raises(ValidationException, match="Jumlah tidak valid"):
                await wallet.adjust_balance(admin_ctx, member.id, amount, "Alasan yang cukup panjang")
        with pytest.raises(ValidationException, match="bilangan bulat"):
            await wallet.adjust_balance(admin_ctx, member.id, "1500.5", "Alasan yang cukup panjang")

        result = await wallet.adjust_balance(admin_ctx, member.id, "999999999999", "Hibah donatur tahunan")
        assert result.new_balance == 50000 + 999999999999

    @pytest.mark.asyncio
    async def test_delete_success_reverses_balance(self, wallet, member, admin_ctx, staff_ctx):
        txn = await wallet.create_manual_transfer(member, 20000, _proof())
        await wallet.confirm_manual_transfer(staff_ctx, txn.id, "approve")
        assert await _balance(member.id) == 70000

        result = await wallet.soft_delete_transaction(admin_ctx, txn.id, "Transfer ganda tercatat")

        assert result.balance_adjusted
        assert result.new_balance == 50000
        assert await _balance(member.id) == 50000
        assert (await wallet.list_transactions(member)) == []

        with pytest.raises(ValidationException, match="sudah dihapus"):
            await wallet.soft_delete_transaction(admin_ctx, txn.id, "Transfer ganda tercatat")

    @pytest.mark.asyncio
    async def test_delete_pending_keeps_balance(self, wallet, member, admin_ctx):
        txn = await wallet.create_manual_transfer(member, 20000, _proof())
        result = await wallet.soft_delete_transaction(admin_ctx, txn.id, "Bukti tidak terbaca")
        assert result.balance_adjusted is False
        assert await _balance(member.id) == 50000

    @pytest.mark.asyncio
    async def test_deleted_pending_cannot_be_approved(self, wallet, member, admin_ctx, staff_ctx, treasurer_account):
        manual = await wallet.create_manual_transfer(member, 20000, _proof())
        qris = await wallet.create_gateway_payment(member, 20000, "qris", treasurer_account.id)
        for txn in (manual, qris):
            await wallet.soft_delete_transaction(admin_ctx, txn.id, "Bukti tidak terbaca")

        with pytest.raises(ValidationException, match="tidak dapat dikonfirmasi"):
            await wallet.confirm_manual_transfer(staff_ctx, manual.id, "approve")
        with pytest.raises(ValidationException, match="tidak dapat dikonfirmasi"):
            await wallet.verify_treasurer_payment(staff_ctx, qris.id, "approve")

        assert await TransactionRepository.transition_status(qris.id, TransactionStatus.SUCCESS) is False
        assert await _balance(member.id) == 50000


class TestListing:

    @pytest.mark.asyncio
    async def test_members_see_own_staff_see_all(self, wallet, member, other_member, bendahara):
        await wallet.create_manual_transfer(member, 10000, _proof())
        await wallet.create_manual_transfer(other_member, 10000, _proof())

        assert len(await wallet.list_transactions(member)) == 1
        assert len(await wallet.list_transactions(bendahara)) == 2
        assert len(await wallet.list_transactions(bendahara, status="success")) == 0

    @pytest.mark.asyncio
    async def test_bad_filter(self, wallet, bendahara):
        with pytest.raises(ValidationException, match="Status tidak valid"):
            await wallet.list_transactions(bendahara, status="weird")

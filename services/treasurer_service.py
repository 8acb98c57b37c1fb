"""
Treasurer (bendahara) bank accounts shown as transfer destinations.
"""
from typing import Optional, Mapping, List

from werkzeug.datastructures import FileStorage

from config import config
from db import TreasurerAccount, AuditAction, EntityType, TreasurerAccountRepository
from services import audit_service
from services.audit_service import RequestContext
from utils.logger import get_logger
from utils.uploads import check_upload, save_upload
from utils.exceptions import ValidationException, NotFoundException, ConflictException

logger = get_logger("treasurer_service")


def _truthy(value, default: bool = True) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "on", "yes")


def _order(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        raise ValidationException("Urutan harus berupa angka")


class TreasurerService:

    async def list_active(self) -> List[TreasurerAccount]:
        return await TreasurerAccountRepository.list_active()

    async def list_all(self) -> List[TreasurerAccount]:
        return await TreasurerAccountRepository.list_all()

    async def save_account(
        self,
        ctx: RequestContext,
        form: Mapping[str, str],
        qris_file: Optional[FileStorage] = None
    ) -> TreasurerAccount:
        """
        Create (no `id`) or update an account from form fields.
        No more than MAX_ACTIVE_TREASURER_ACCOUNTS may be active at once.
        """
        account_id = (form.get("id") or "").strip() or None
        bank_name = (form.get("bankName") or "").strip()
        account_name = (form.get("accountName") or "").strip()
        account_number = (form.get("accountNumber") or "").strip()
        if not bank_name or not account_name or not account_number:
            raise ValidationException("Nama bank, nama pemilik, dan nomor rekening wajib diisi")

        is_active = _truthy(form.get("isActive"))
        display_order = _order(form.get("order"))

        existing = None
        if account_id:
            existing = await TreasurerAccountRepository.get_by_id(account_id)
            if not existing:
                raise NotFoundException("Rekening tidak ditemukan")

        if is_active:
            active_others = await TreasurerAccountRepository.count_active(exclude_id=account_id)
            if active_others >= config.MAX_ACTIVE_TREASURER_ACCOUNTS:
                raise ConflictException(
                    f"Maksimal {config.MAX_ACTIVE_TREASURER_ACCOUNTS} rekening aktif. "
                    "Nonaktifkan rekening lain terlebih dahulu."
                )

        qris_image = existing.qris_image if existing else None
        if qris_file is not None and qris_file.filename:
            check_upload(qris_file, config.ALLOWED_IMAGE_EXTENSIONS, "Gambar QRIS")
            qris_image = save_upload(qris_file, "qris")

        if existing:
            old_value = existing.to_dict()
            existing.bank_name = bank_name
            existing.account_name = account_name
            existing.account_number = account_number
            existing.notes = (form.get("notes") or "").strip() or None
            existing.qris_image = qris_image
            existing.is_active = is_active
            existing.display_order = display_order
            account = await TreasurerAccountRepository.update(existing)
            action = AuditAction.UPDATE
        else:
            old_value = None
            account = await TreasurerAccountRepository.create(TreasurerAccount(
                bank_name=bank_name,
                account_name=account_name,
                account_number=account_number,
                notes=(form.get("notes") or "").strip() or None,
                qris_image=qris_image,
                is_active=is_active,
                display_order=display_order
            ))
            action = AuditAction.CREATE

        await audit_service.record(
            action, EntityType.TREASURER, account.id, ctx,
            old_value=old_value, new_value=account.to_dict()
        )
        logger.audit_admin_action(f"treasurer_{action.value}", ctx.actor_id, target=account.id)
        return account

    async def delete_account(self, ctx: RequestContext, account_id: Optional[str]):
        if not account_id:
            raise ValidationException("ID rekening wajib diisi")
        account = await TreasurerAccountRepository.get_by_id(account_id)
        if not account:
            raise NotFoundException("Rekening tidak ditemukan")

        await TreasurerAccountRepository.delete(account_id)
        await audit_service.record(
            AuditAction.DELETE, EntityType.TREASURER, account_id, ctx,
            old_value=account.to_dict()
        )
        logger.audit_admin_action("treasurer_delete", ctx.actor_id, target=account_id)


# Global service instance
treasurer_service = TreasurerService()

"""
Tests for treasurer account management.
"""
import io

import pytest
from werkzeug.datastructures import FileStorage

from db import AuditAction, AuditRepository, TreasurerAccountRepository
from services.treasurer_service import TreasurerService
from utils.exceptions import ConflictException, NotFoundException, ValidationException


def _form(**overrides) -> dict:
    form = {
        "bankName": "Bank Mandiri",
        "accountName": "Bendahara Vibra",
        "accountNumber": "1400012345678",
        "isActive": "true",
        "order": "2"
    }
    form.update(overrides)
    return form


@pytest.fixture
def treasurer():
    return TreasurerService()


class TestSaveAccount:

    @pytest.mark.asyncio
    async def test_create_with_qris_image(self, treasurer, admin_ctx):
        image = FileStorage(stream=io.BytesIO(b"img"), filename="qris.png")

        account = await treasurer.save_account(admin_ctx, _form(notes=" a.n. kas "), image)

        assert account.is_active
        assert account.display_order == 2
        assert account.notes == "a.n. kas"
        assert account.qris_image.startswith("/uploads/qris-")
        logs = await AuditRepository.list_recent(entity_id=account.id)
        assert logs[0].action == AuditAction.CREATE

    @pytest.mark.asyncio
    async def test_required_fields(self, treasurer, admin_ctx):
        with pytest.raises(ValidationException):
            await treasurer.save_account(admin_ctx, _form(bankName=" "))

    @pytest.mark.asyncio
    async def test_order_must_be_numeric(self, treasurer, admin_ctx):
        with pytest.raises(ValidationException, match="Urutan"):
            await treasurer.save_account(admin_ctx, _form(order="dua"))

    @pytest.mark.asyncio
    async def test_image_type_checked(self, treasurer, admin_ctx):
        doc = FileStorage(stream=io.BytesIO(b"%PDF"), filename="qris.pdf")
        with pytest.raises(ValidationException, match="tidak didukung"):
            await treasurer.save_account(admin_ctx, _form(), doc)

    @pytest.mark.asyncio
    async def test_at_most_three_active(self, treasurer, admin_ctx):
        for number in ("1", "2", "3"):
            await treasurer.save_account(admin_ctx, _form(accountNumber=number))

        with pytest.raises(ConflictException, match="Maksimal 3 rekening aktif"):
            await treasurer.save_account(admin_ctx, _form(accountNumber="4"))

        inactive = await treasurer.save_account(admin_ctx, _form(accountNumber="4", isActive="false"))
        assert inactive.is_active is False

        with pytest.raises(ConflictException):
            await treasurer.save_account(admin_ctx, _form(id=inactive.id, accountNumber="4"))

    @pytest.mark.asyncio
    async def test_update_keeps_image_and_skips_self_in_limit(self, treasurer, admin_ctx, treasurer_account):
        for number in ("2", "3"):
            await treasurer.save_account(admin_ctx, _form(accountNumber=number))

        updated = await treasurer.save_account(
            admin_ctx, _form(id=treasurer_account.id, accountName="Bendahara Baru")
        )

        assert updated.account_name == "Bendahara Baru"
        assert updated.qris_image == "/uploads/qris-1.png"
        stored = await TreasurerAccountRepository.get_by_id(treasurer_account.id)
        assert stored.account_name == "Bendahara Baru"

    @pytest.mark.asyncio
    async def test_update_unknown(self, treasurer, admin_ctx):
        with pytest.raises(NotFoundException):
            await treasurer.save_account(admin_ctx, _form(id="missing"))


class TestListAndDelete:

    @pytest.mark.asyncio
    async def test_active_listing_ordered(self, treasurer, admin_ctx):
        await treasurer.save_account(admin_ctx, _form(accountNumber="b", order="5"))
        await treasurer.save_account(admin_ctx, _form(accountNumber="a", order="1"))
        await treasurer.save_account(admin_ctx, _form(accountNumber="x", isActive="0"))

        active = await treasurer.list_active()
        assert [a.account_number for a in active] == ["a", "b"]
        assert len(await treasurer.list_all()) == 3

    @pytest.mark.asyncio
    async def test_delete(self, treasurer, admin_ctx, treasurer_account):
        await treasurer.delete_account(admin_ctx, treasurer_account.id)

        assert await TreasurerAccountRepository.get_by_id(treasurer_account.id) is None
        logs = await AuditRepository.list_recent(entity_id=treasurer_account.id)
        assert logs[0].action == AuditAction.DELETE

        with pytest.raises(NotFoundException):
            await treasurer.delete_account(admin_ctx, treasurer_account.id)
        with pytest.raises(ValidationException):
            await treasurer.delete_account(admin_ctx, "")

"""
Tests for login, OTP registration, email change and the email sender.
"""
import smtplib
from datetime import timedelta

import pytest

from config import config
from conftest import PASSWORD
from db import Role, UserRepository, EmailVerificationRepository, AuditRepository, AuditAction
from services.audit_service import RequestContext
from services.auth_service import AuthService, hash_password, verify_password
from services.email_service import EmailService, generate_otp
from utils.exceptions import (
    ValidationException, AuthenticationException, ConflictException,
    NotFoundException, PermissionDeniedException
)


@pytest.fixture
def auth():
    return AuthService()


class TestPasswords:

    def test_hash_and_verify(self, database):
        hashed = hash_password("rahasia123")
        assert hashed != "rahasia123"
        assert verify_password("rahasia123", hashed)
        assert not verify_password("salah", hashed)

    def test_malformed_hash(self, database):
        assert verify_password("rahasia123", "not-a-hash") is False
        assert verify_password("", "whatever") is False


class TestLogin:

    @pytest.mark.asyncio
    async def test_login_ok_case_insensitive(self, auth, member):
        user = await auth.login("  ANGGOTA@example.com ", PASSWORD)
        assert user.id == member.id

    @pytest.mark.asyncio
    async def test_wrong_password_and_unknown_email_look_alike(self, auth, member):
        with pytest.raises(AuthenticationException) as wrong:
            await auth.login(member.email, "salah-total")
        with pytest.raises(AuthenticationException) as unknown:
            await auth.login("siapa@example.com", PASSWORD)
        assert wrong.value.message == unknown.value.message == "Email atau password salah"

    @pytest.mark.asyncio
    async def test_missing_fields(self, auth, database):
        with pytest.raises(ValidationException):
            await auth.login("", "")


class TestRegistration:

    @pytest.mark.asyncio
    async def test_first_account_becomes_admin(self, auth, database):
        verification = await auth.request_registration_otp("Pengurus Pertama", "first@example.com", "rahasia1")
        user = await auth.verify_registration_otp(verification.id, verification.otp_code)

        assert user.role == Role.ADMIN
        assert user.email_verified
        assert user.balance == 0
        stored = await UserRepository.get_by_email("first@example.com")
        assert verify_password("rahasia1", stored.password_hash)

    @pytest.mark.asyncio
    async def test_later_accounts_are_members(self, auth, admin):
        verification = await auth.request_registration_otp("Anggota Baru", "baru@example.com", "rahasia1")
        user = await auth.verify_registration_otp(verification.id, verification.otp_code)
        assert user.role == Role.ANGGOTA

    @pytest.mark.asyncio
    async def test_otp_is_single_use(self, auth, admin):
        verification = await auth.request_registration_otp("Anggota Baru", "baru@example.com", "rahasia1")
        await auth.verify_registration_otp(verification.id, verification.otp_code)
        with pytest.raises(ValidationException, match="sudah digunakan"):
            await auth.verify_registration_otp(verification.id, verification.otp_code)

    @pytest.mark.asyncio
    async def test_wrong_otp(self, auth, admin):
        verification = await auth.request_registration_otp("Anggota Baru", "baru@example.com", "rahasia1")
        wrong = "000000" if verification.otp_code != "000000" else "111111"
        with pytest.raises(ValidationException, match="Kode OTP salah"):
            await auth.verify_registration_otp(verification.id, wrong)

    @pytest.mark.asyncio
    async def test_expired_otp(self, auth, admin, monkeypatch):
        monkeypatch.setattr(config, "OTP_EXPIRY", timedelta(seconds=-1))
        verification = await auth.request_registration_otp("Anggota Baru", "baru@example.com", "rahasia1")
        with pytest.raises(ValidationException, match="kedaluwarsa"):
            await auth.verify_registration_otp(verification.id, verification.otp_code)

    @pytest.mark.asyncio
    async def test_new_request_replaces_old(self, auth, admin):
        old = await auth.request_registration_otp("Anggota Baru", "baru@example.com", "rahasia1")
        await auth.request_registration_otp("Anggota Baru", "baru@example.com", "rahasia1")
        assert await EmailVerificationRepository.get_by_id(old.id) is None

    @pytest.mark.asyncio
    async def test_duplicate_email(self, auth, member):
        with pytest.raises(ConflictException):
            await auth.request_registration_otp("Orang Lain", member.email, "rahasia1")

    @pytest.mark.asyncio
    async def test_input_validation(self, auth, database):
        with pytest.raises(ValidationException, match="Nama minimal 3 karakter"):
            await auth.request_registration_otp("Al", "al@example.com", "rahasia1")
        with pytest.raises(ValidationException, match="Password minimal 6 karakter"):
            await auth.request_registration_otp("Alya", "al@example.com", "123")
        with pytest.raises(ValidationException, match="Format email"):
            await auth.request_registration_otp("Alya", "bukan-email", "rahasia1")

    @pytest.mark.asyncio
    async def test_unknown_verification(self, auth, database):
        with pytest.raises(NotFoundException):
            await auth.verify_registration_otp("missing", "123456")


class TestChangeEmail:

    @pytest.mark.asyncio
    async def test_change_email_flow(self, auth, member):
        ctx = RequestContext(actor_id=member.id, ip_address="127.0.0.1")
        verification = await auth.request_change_email_otp(member)
        assert verification.email == member.email

        user = await auth.verify_and_update_email(
            member, ctx, verification.id, verification.otp_code, "Baru@Example.com"
        )

        assert user.email == "baru@example.com"
        assert (await UserRepository.get_by_id(member.id)).email == "baru@example.com"
        logs = await AuditRepository.list_recent(entity_id=member.id)
        assert logs[0].action == AuditAction.UPDATE

    @pytest.mark.asyncio
    async def test_cannot_use_another_users_verification(self, auth, member, other_member):
        ctx = RequestContext(actor_id=other_member.id)
        verification = await auth.request_change_email_otp(member)
        with pytest.raises(PermissionDeniedException):
            await auth.verify_and_update_email(
                other_member, ctx, verification.id, verification.otp_code, "x@example.com"
            )

    @pytest.mark.asyncio
    async def test_taken_or_same_email(self, auth, member, other_member):
        ctx = RequestContext(actor_id=member.id)
        verification = await auth.request_change_email_otp(member)
        with pytest.raises(ValidationException, match="sama dengan email saat ini"):
            await auth.verify_and_update_email(
                member, ctx, verification.id, verification.otp_code, member.email
            )
        with pytest.raises(ConflictException):
            await auth.verify_and_update_email(
                member, ctx, verification.id, verification.otp_code, other_member.email
            )


class FakeSMTP:
    sent = []

    def __init__(self, host, port, timeout=None):
        self.host, self.port = host, port

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        pass

    def sendmail(self, sender, recipients, message):
        FakeSMTP.sent.append((sender, recipients, message))


class TestEmailService:

    def test_otp_format(self):
        for _ in range(20):
            otp = generate_otp()
            assert len(otp) == 6
            assert otp.isdigit()

    @pytest.mark.asyncio
    async def test_logged_when_smtp_not_configured(self, database):
        assert await EmailService().send_registration_otp("a@example.com", "123456", "Alya") is True

    @pytest.mark.asyncio
    async def test_sends_over_starttls(self, database, monkeypatch):
        monkeypatch.setattr(config, "SMTP_HOST", "smtp.test")
        monkeypatch.setattr(config, "SMTP_PORT", 587)
        monkeypatch.setattr(config, "SMTP_USER", "kas@example.com")
        monkeypatch.setattr(config, "SMTP_PASS", "secret")
        monkeypatch.setattr(config, "SMTP_FROM", "Kas <bendahara@example.com>")
        monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
        FakeSMTP.sent = []

        assert await EmailService().send_change_email_otp("a@example.com", "654321", "Alya")

        sender, recipients, message = FakeSMTP.sent[0]
        assert sender == "bendahara@example.com"
        assert recipients == ["a@example.com"]
        assert "Verifikasi Ganti Email" in message

    @pytest.mark.asyncio
    async def test_smtp_failure_returns_false(self, database, monkeypatch):
        monkeypatch.setattr(config, "SMTP_HOST", "smtp.test")
        monkeypatch.setattr(config, "SMTP_PORT", 587)
        monkeypatch.setattr(config, "SMTP_USER", "kas@example.com")
        monkeypatch.setattr(config, "SMTP_PASS", "secret")

        def refuse(*args, **kwargs):
            raise OSError("connection refused")

        monkeypatch.setattr(smtplib, "SMTP", refuse)
        assert await EmailService().send("a@example.com", "Tes", "<p>Halo</p>") is False

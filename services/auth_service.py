"""
Accounts: password hashing, login, OTP registration and email change.
"""
import json
from datetime import datetime
from typing import Optional

import bcrypt

from config import config
from db import (
    db, User, EmailVerification, Role, VerificationPurpose, AuditAction, EntityType,
    UserRepository, EmailVerificationRepository
)
from services import audit_service
from services.audit_service import RequestContext
from services.email_service import email_service, generate_otp
from utils.logger import get_logger
from utils.validators import validate_email, validate_name, validate_password, normalize_email
from utils.exceptions import (
    ValidationException, AuthenticationException, NotFoundException,
    PermissionDeniedException, ConflictException
)

logger = get_logger("auth_service")

INVALID_LOGIN = "Email atau password salah"


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against its hash."""
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        logger.warning("Malformed password hash encountered")
        return False


def _check_otp(verification: EmailVerification, otp_code: Optional[str]):
    if verification.is_verified:
        raise ValidationException("Kode OTP sudah digunakan")
    if datetime.utcnow() > verification.otp_expires:
        raise ValidationException("Kode OTP sudah kedaluwarsa. Silakan minta kode baru.")
    if (otp_code or "").strip() != verification.otp_code:
        raise ValidationException("Kode OTP salah")


class AuthService:
    """Login and email-verification flows."""

    async def login(self, email: Optional[str], password: Optional[str], ip_address: str = None) -> User:
        if not email or not password:
            raise ValidationException("Email dan password wajib diisi")

        user = await UserRepository.get_by_email(normalize_email(email))
        if not user or not verify_password(password, user.password_hash):
            logger.audit_security_event(
                "LOGIN_FAILED", user_id=user.id if user else None,
                ip_address=ip_address, email=normalize_email(email)
            )
            raise AuthenticationException(INVALID_LOGIN)

        logger.info(f"User logged in: {user.id}", role=user.role.value)
        return user

    # ============ Registration ============

    async def request_registration_otp(
        self,
        name: Optional[str],
        email: Optional[str],
        password: Optional[str]
    ) -> EmailVerification:
        """Store the pending registration and email its OTP."""
        if not name or not email or not password:
            raise ValidationException("Nama, email, dan password wajib diisi")
        name = validate_name(name)
        password = validate_password(password)
        email = validate_email(email)

        if await UserRepository.get_by_email(email):
            raise ConflictException("Email sudah terdaftar")

        await EmailVerificationRepository.delete_unverified(VerificationPurpose.REGISTER, email=email)

        verification = EmailVerification(
            email=email,
            otp_code=generate_otp(),
            otp_expires=datetime.utcnow() + config.OTP_EXPIRY,
            purpose=VerificationPurpose.REGISTER,
            registration_data=json.dumps({
                "name": name,
                "email": email,
                "passwordHash": hash_password(password)
            })
        )
        await EmailVerificationRepository.create(verification)

        sent = await email_service.send_registration_otp(email, verification.otp_code, name)
        if not sent:
            logger.warning("Registration OTP email failed", email=email, verification_id=verification.id)
        return verification

    async def verify_registration_otp(
        self,
        verification_id: Optional[str],
        otp_code: Optional[str]
    ) -> User:
        """
        Create the account once the OTP matches.
        The first account becomes admin while no admin exists.
        """
        if not verification_id or not otp_code:
            raise ValidationException("Verification ID dan kode OTP wajib diisi")

        verification = await EmailVerificationRepository.get_by_id(verification_id)
        if not verification or verification.purpose != VerificationPurpose.REGISTER:
            raise NotFoundException("Data verifikasi tidak ditemukan")
        _check_otp(verification, otp_code)

        try:
            data = json.loads(verification.registration_data or "")
        except ValueError:
            raise ValidationException("Data registrasi tidak valid")
        if not isinstance(data, dict) or not all(data.get(k) for k in ("name", "email", "passwordHash")):
            raise ValidationException("Data registrasi tidak valid")
        if normalize_email(data["email"]) != verification.email:
            raise ValidationException("Email tidak cocok dengan data verifikasi")

        if await UserRepository.get_by_email(verification.email):
            raise ConflictException("Email sudah terdaftar")

        async with db.transaction() as conn:
            has_admin = await UserRepository.count_by_role(Role.ADMIN, conn=conn) > 0
            user = User(
                name=data["name"],
                email=verification.email,
                password_hash=data["passwordHash"],
                role=Role.ANGGOTA if has_admin else Role.ADMIN,
                balance=0,
                email_verified=True
            )
            await UserRepository.create(user, conn=conn)
            if not await EmailVerificationRepository.mark_verified(verification.id, conn=conn):
                raise ValidationException("Kode OTP sudah digunakan")

        logger.audit_admin_action("register", user.id, target=user.email, role=user.role.value)
        return user

    # ============ Change email ============

    async def request_change_email_otp(self, user: User) -> EmailVerification:
        """OTP goes to the current address; the new one is supplied at verification."""
        await EmailVerificationRepository.delete_unverified(
            VerificationPurpose.CHANGE_EMAIL, user_id=user.id
        )
        verification = EmailVerification(
            email=user.email,
            otp_code=generate_otp(),
            otp_expires=datetime.utcnow() + config.OTP_EXPIRY,
            purpose=VerificationPurpose.CHANGE_EMAIL,
            user_id=user.id
        )
        await EmailVerificationRepository.create(verification)

        sent = await email_service.send_change_email_otp(user.email, verification.otp_code, user.name)
        if not sent:
            logger.warning("Change-email OTP email failed", user_id=user.id)
        return verification

    async def verify_and_update_email(
        self,
        user: User,
        ctx: RequestContext,
        verification_id: Optional[str],
        otp_code: Optional[str],
        new_email: Optional[str]
    ) -> User:
        if not verification_id or not otp_code or not new_email:
            raise ValidationException("Verification ID, kode OTP, dan email baru wajib diisi")
        new_email = validate_email(new_email)

        verification = await EmailVerificationRepository.get_by_id(verification_id)
        if not verification or verification.purpose != VerificationPurpose.CHANGE_EMAIL:
            raise NotFoundException("Data verifikasi tidak ditemukan")
        if verification.user_id != user.id:
            raise PermissionDeniedException("Verifikasi ini bukan milik Anda")
        _check_otp(verification, otp_code)

        if new_email == user.email:
            raise ValidationException("Email baru sama dengan email saat ini")
        if await UserRepository.get_by_email(new_email):
            raise ConflictException("Email sudah digunakan oleh akun lain")

        old_email = user.email
        async with db.transaction() as conn:
            await UserRepository.update_email(user.id, new_email, conn=conn)
            if not await EmailVerificationRepository.mark_verified(verification.id, conn=conn):
                raise ValidationException("Kode OTP sudah digunakan")
            await audit_service.record(
                AuditAction.UPDATE, EntityType.USER, user.id, ctx,
                old_value={"email": old_email},
                new_value={"email": new_email},
                reason="User changed email address",
                conn=conn
            )

        user.email = new_email
        logger.audit_security_event("EMAIL_CHANGED", user_id=user.id, ip_address=ctx.ip_address)
        return user


# Global service instance
auth_service = AuthService()

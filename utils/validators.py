"""
Input validation shared by services.
Messages are user-facing (Indonesian), raised as ValidationException.
"""
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from config import config
from utils.exceptions import ValidationException

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def validate_email(email: Optional[str]) -> str:
    email = normalize_email(email)
    if not EMAIL_PATTERN.match(email):
        raise ValidationException("Format email tidak valid")
    return email


def validate_password(password: Optional[str]) -> str:
    if not password or len(password) < 6:
        raise ValidationException("Password minimal 6 karakter")
    return password


def validate_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if len(name) < 3:
        raise ValidationException("Nama minimal 3 karakter")
    return name


def validate_reason(reason: Optional[str], min_length: int = None) -> str:
    min_length = min_length or config.MIN_REASON_LENGTH
    reason = (reason or "").strip()
    if len(reason) < min_length:
        raise ValidationException(f"Alasan minimal {min_length} karakter")
    return reason


def parse_amount(value: Any, allow_negative: bool = False) -> int:
    """Parse a rupiah amount into an int; rejects fractions and garbage."""
    if isinstance(value, bool) or value is None or value == "":
        raise ValidationException("Jumlah tidak valid")
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationException("Jumlah tidak valid")
    if not number.is_finite():
        raise ValidationException("Jumlah tidak valid")
    if abs(number) > config.MAX_AMOUNT:
        raise ValidationException("Jumlah melebihi batas maksimum")
    if number != number.to_integral_value():
        raise ValidationException("Jumlah harus bilangan bulat")
    amount = int(number)
    if not allow_negative and amount < 0:
        raise ValidationException("Jumlah tidak valid")
    return amount


def validate_topup_amount(value: Any) -> int:
    amount = parse_amount(value)
    if amount < config.MIN_TOPUP_AMOUNT:
        raise ValidationException("Minimum setor saldo adalah Rp 10.000")
    return amount

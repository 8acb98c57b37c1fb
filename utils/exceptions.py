"""
Custom exceptions for Vibra Kas.
Every exception carries a user-facing message and the HTTP status the API returns for it.
"""
from typing import Optional, Dict, Any


class VibraKasException(Exception):
    """Base exception for all application errors."""

    status_code = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


# ============ Request Exceptions ============

class ValidationException(VibraKasException):
    """Input failed validation."""
    status_code = 400


class AuthenticationException(VibraKasException):
    """Missing or invalid session / credentials."""
    status_code = 401

    def __init__(self, message: str = "Unauthorized", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class PermissionDeniedException(VibraKasException):
    """Authenticated user lacks the required role."""
    status_code = 403

    def __init__(self, message: str = "Forbidden", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class NotFoundException(VibraKasException):
    """Requested entity does not exist."""
    status_code = 404


class ConflictException(VibraKasException):
    """Request clashes with existing data (duplicate email, active account limit...)."""
    status_code = 400


# ============ Transaction Exceptions ============

class TransactionException(VibraKasException):
    """Base exception for transaction errors."""
    status_code = 400

    def __init__(self, message: str, transaction_id: Optional[str] = None, **kwargs):
        details = {"transaction_id": transaction_id, **kwargs}
        super().__init__(message, details)
        self.transaction_id = transaction_id


class TransactionStateException(TransactionException):
    """Transaction is not in a state that allows the requested change."""

    def __init__(
        self,
        transaction_id: str,
        current_state: str,
        attempted_state: str,
        message: str = "Transaksi sudah diproses"
    ):
        super().__init__(
            message,
            transaction_id=transaction_id,
            current_state=current_state,
            attempted_state=attempted_state
        )


# ============ Payment Exceptions ============

class PaymentException(VibraKasException):
    """Base exception for payment errors."""
    status_code = 400


class PaymentGatewayException(PaymentException):
    """Payment gateway refused or failed to create a payment."""

    def __init__(self, reason: str, payment_ref: Optional[str] = None):
        super().__init__(reason, {"payment_ref": payment_ref})


class PaymentVerificationException(PaymentException):
    """Webhook or callback could not be verified."""
    status_code = 401

    def __init__(self, provider: str, reason: str, payment_ref: Optional[str] = None):
        super().__init__(
            reason,
            {"provider": provider, "payment_ref": payment_ref}
        )


# ============ Network & API Exceptions ============

class NetworkException(VibraKasException):
    """Network-related errors (connection, timeout)."""
    status_code = 502


class APITimeoutException(NetworkException):
    """API request timed out."""

    def __init__(self, service: str, timeout: float):
        super().__init__(
            f"Request to {service} timed out after {timeout}s",
            {"service": service, "timeout": timeout}
        )


class APIConnectionException(NetworkException):
    """Failed to connect to API."""

    def __init__(self, service: str, reason: str):
        super().__init__(
            f"Failed to connect to {service}: {reason}",
            {"service": service, "reason": reason}
        )


class APIResponseException(NetworkException):
    """Invalid or unexpected API response."""

    def __init__(self, service: str, status_code: int, response: Any):
        super().__init__(
            f"{service} returned unexpected response (status: {status_code})",
            {"service": service, "status_code": status_code, "response": str(response)[:500]}
        )


# ============ Database Exceptions ============

class DatabaseException(VibraKasException):
    """Database operation failed."""
    status_code = 500

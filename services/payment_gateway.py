"""
Payment gateway client (Tripay-style API) with retry and circuit breaker.
Falls back to a local mock when no real API key is configured.
"""
import asyncio
import hashlib
import hmac
import random
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any

import requests

from config import config
from db.models import TransactionMethod, TreasurerAccount
from services.qris import build_transfer_info
from utils.logger import get_logger
from utils.retry import with_retry, get_circuit_breaker
from utils.exceptions import (
    APITimeoutException, APIConnectionException, APIResponseException,
    NetworkException
)

logger = get_logger("payment_gateway")

SERVICE_NAME = "payment_gateway"

gateway_circuit = get_circuit_breaker(
    SERVICE_NAME,
    failure_threshold=5,
    recovery_timeout=60.0
)

CHANNEL_CODES = {
    TransactionMethod.QRIS: "QRIS",
    TransactionMethod.VA: "BCAVA",
}


@dataclass
class PaymentResult:
    """Outcome of a create-payment call."""
    success: bool
    reference: Optional[str] = None
    qris_code: Optional[str] = None
    va_number: Optional[str] = None
    expired_at: Optional[datetime] = None
    total_amount: int = 0
    message: Optional[str] = None


@dataclass
class PaymentStatus:
    """Gateway view of a payment: PAID, UNPAID, EXPIRED, FAILED, PENDING, ERROR..."""
    paid: bool
    status: str
    raw: Optional[Dict[str, Any]] = None


def calculate_fee(amount: int, method: TransactionMethod) -> int:
    """QRIS 0.5 %, VA 0.3 %, both rounded up; other methods are free."""
    if method == TransactionMethod.QRIS:
        permille = config.QRIS_FEE_PERMILLE
    elif method == TransactionMethod.VA:
        permille = config.VA_FEE_PERMILLE
    else:
        return 0
    return -(-amount * permille // 1000)


def default_expiry(method: TransactionMethod, now: Optional[datetime] = None) -> datetime:
    now = now or datetime.utcnow()
    return now + (config.VA_EXPIRY if method == TransactionMethod.VA else config.QRIS_EXPIRY)


def _parse_expired_time(value: Any, method: TransactionMethod) -> datetime:
    """Gateways send either a unix timestamp or an ISO string."""
    if isinstance(value, (int, float)) and value > 0:
        return datetime.utcfromtimestamp(value)
    if isinstance(value, str) and value:
        if value.isdigit():
            return datetime.utcfromtimestamp(int(value))
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.warning("Unparseable gateway expiry, using default", value=value)
            return default_expiry(method)
        if parsed.tzinfo is not None:
            parsed = (parsed - parsed.utcoffset()).replace(tzinfo=None)
        return parsed
    return default_expiry(method)


def verify_callback_signature(merchant_ref: str, status: str, signature: Optional[str]) -> bool:
    """Callback signature: sha256(merchant_ref + status + private_key)."""
    if not signature:
        return False
    expected = hashlib.sha256(
        f"{merchant_ref}{status}{config.PAYMENT_PRIVATE_KEY}".encode("utf-8")
    ).hexdigest()
    return hmac.compare_digest(expected, signature)


class PaymentGatewayService:
    """
    Async payment gateway client.

    Modes:
    - treasurer: QRIS built locally from a treasurer account, confirmed by staff
    - mock: no credentials configured, references start with MOCK-
    - production: real HTTP calls, retried on network errors
    """

    def __init__(
        self,
        base_url: str = None,
        api_key: str = None,
        private_key: str = None,
        merchant_code: str = None,
        timeout: float = None
    ):
        self._base_url = base_url
        self._api_key = api_key
        self._private_key = private_key
        self._merchant_code = merchant_code
        self._timeout = timeout

    # Read lazily so config overrides apply to the shared instance
    @property
    def base_url(self) -> str:
        return (self._base_url or config.PAYMENT_BASE_URL).rstrip("/")

    @property
    def api_key(self) -> str:
        return self._api_key or config.PAYMENT_API_KEY

    @property
    def private_key(self) -> str:
        return self._private_key or config.PAYMENT_PRIVATE_KEY

    @property
    def merchant_code(self) -> str:
        return self._merchant_code or config.PAYMENT_MERCHANT_CODE

    @property
    def timeout(self) -> float:
        return self._timeout or config.PAYMENT_TIMEOUT

    @property
    def mock_mode(self) -> bool:
        return not self.api_key or self.api_key == "test-api-key"

    def signature(self, order_id: str, amount: int) -> str:
        return hashlib.sha256(
            f"{self.merchant_code}{order_id}{amount}{self.private_key}".encode("utf-8")
        ).hexdigest()

    async def _request(
        self,
        action: str,
        path: str,
        method: str = "POST",
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Call the gateway and return its JSON body.
        Network failures raise NetworkException subclasses so with_retry can retry them.
        """
        start_time = time.time()
        url = f"{self.base_url}{path}"
        headers = {"Authorization": f"Bearer {self.api_key}"}

        def _do_req():
            if method.upper() == "GET":
                return requests.get(url, headers=headers, params=params, timeout=self.timeout)
            return requests.post(url, headers=headers, json=payload, timeout=self.timeout)

        try:
            response = await asyncio.to_thread(_do_req)
        except requests.Timeout as e:
            logger.audit_api_call(
                service=SERVICE_NAME, action=action, success=False,
                duration_ms=(time.time() - start_time) * 1000, error="timeout"
            )
            raise APITimeoutException(SERVICE_NAME, self.timeout) from e
        except requests.ConnectionError as e:
            logger.audit_api_call(
                service=SERVICE_NAME, action=action, success=False,
                duration_ms=(time.time() - start_time) * 1000, error="connection_failed"
            )
            raise APIConnectionException(SERVICE_NAME, str(e)) from e

        duration_ms = (time.time() - start_time) * 1000
        logger.audit_api_call(
            service=SERVICE_NAME,
            action=action,
            success=response.status_code < 400,
            duration_ms=duration_ms,
            status_code=response.status_code
        )

        if response.status_code >= 500:
            raise APIResponseException(SERVICE_NAME, response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise APIResponseException(SERVICE_NAME, response.status_code, response.text) from e

        if not isinstance(data, dict):
            raise APIResponseException(SERVICE_NAME, response.status_code, data)
        return data

    @with_retry(
        max_retries=2,
        exceptions=(NetworkException,),
        circuit_breaker_name=SERVICE_NAME
    )
    async def _create_remote(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("create_transaction", "/transaction/create", payload=payload)

    @with_retry(
        max_retries=2,
        exceptions=(NetworkException,),
        circuit_breaker_name=SERVICE_NAME
    )
    async def _detail_remote(self, reference: str) -> Dict[str, Any]:
        return await self._request(
            "transaction_detail", "/transaction/detail",
            method="GET", params={"reference": reference}
        )

    # ============ API Methods ============

    async def create_payment(
        self,
        order_id: str,
        amount: int,
        method: TransactionMethod,
        customer_name: str,
        customer_email: str,
        treasurer_account: Optional[TreasurerAccount] = None
    ) -> PaymentResult:
        """
        Create a payment for `amount` plus fee.
        Never raises for gateway-side problems; failures come back as success=False.
        """
        fee = calculate_fee(amount, method)
        total = amount + fee
        stamp = int(time.time() * 1000)

        if treasurer_account is not None and method == TransactionMethod.QRIS:
            logger.info("Treasurer QRIS generated", order_id=order_id, bank=treasurer_account.bank_name)
            return PaymentResult(
                success=True,
                reference=f"TREASURER-{order_id}-{stamp}",
                qris_code=build_transfer_info(treasurer_account, total),
                expired_at=datetime.utcnow() + config.QRIS_EXPIRY,
                total_amount=total
            )

        if self.mock_mode:
            logger.info("Mock payment created", order_id=order_id, method=method.value)
            is_qris = method == TransactionMethod.QRIS
            return PaymentResult(
                success=True,
                reference=f"MOCK-{order_id}-{stamp}",
                qris_code=(
                    "00020101021226650016COM.VIBRAKAS.WWW0118936009140000000000"
                    f"MOCK{stamp}" if is_qris else None
                ),
                va_number=None if is_qris else f"1234567890{random.randint(0, 9999):04d}",
                expired_at=default_expiry(method),
                total_amount=total
            )

        payload = {
            "method": CHANNEL_CODES[method],
            "merchant_ref": order_id,
            "amount": total,
            "customer_name": customer_name,
            "customer_email": customer_email,
            "order_items": [
                {"name": "Top Up Saldo", "price": total, "quantity": 1}
            ],
            "signature": self.signature(order_id, total),
        }

        try:
            data = await self._create_remote(payload)
        except NetworkException as e:
            logger.error("Payment creation failed", order_id=order_id, error=e.message)
            return PaymentResult(success=False, message="Payment gateway error", total_amount=total)

        if not data.get("success"):
            logger.warning("Gateway refused payment", order_id=order_id, gateway_message=data.get("message"))
            return PaymentResult(
                success=False,
                message=data.get("message") or "Failed to create payment",
                total_amount=total
            )

        body = data.get("data") or {}
        return PaymentResult(
            success=True,
            reference=body.get("reference"),
            qris_code=body.get("qr_string") or None,
            va_number=body.get("pay_code") or None,
            expired_at=_parse_expired_time(body.get("expired_time"), method),
            total_amount=total
        )

    async def check_payment_status(self, reference: str) -> PaymentStatus:
        """Ask the gateway whether a payment was made. Mock references stay PENDING."""
        if self.mock_mode or not reference or reference.startswith(("MOCK-", "TREASURER-")):
            return PaymentStatus(paid=False, status="PENDING")

        try:
            data = await self._detail_remote(reference)
        except NetworkException as e:
            logger.error("Payment status check failed", reference=reference, error=e.message)
            return PaymentStatus(paid=False, status="ERROR")

        if not data.get("success"):
            return PaymentStatus(paid=False, status="UNKNOWN", raw=data)

        status = str((data.get("data") or {}).get("status", "UNKNOWN")).upper()
        return PaymentStatus(paid=status == "PAID", status=status, raw=data)


# Global service instance
payment_gateway = PaymentGatewayService()

"""
Expiry sweep for pending transactions.

A pending transaction expires when its gateway deadline (expired_at) has
passed, or when it has been pending longer than its method's window:
QRIS 15 minutes, VA 24 hours, manual transfer 7 days.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from config import config
from db.models import Transaction, TransactionMethod, TransactionStatus
from db.repository import TransactionRepository
from utils.logger import get_logger

logger = get_logger("expiry_service")


@dataclass
class SweepResult:
    expired_ids: List[str] = field(default_factory=list)
    total_checked: int = 0

    @property
    def expired_count(self) -> int:
        return len(self.expired_ids)

    def to_dict(self) -> dict:
        return {
            "expiredCount": self.expired_count,
            "expiredIds": self.expired_ids,
            "totalChecked": self.total_checked
        }


def expected_window(method: TransactionMethod) -> timedelta:
    if method == TransactionMethod.VA:
        return config.VA_EXPIRY
    if method == TransactionMethod.MANUAL:
        return config.MANUAL_EXPIRY
    return config.QRIS_EXPIRY


def is_expired(txn: Transaction, now: Optional[datetime] = None) -> bool:
    if txn.status != TransactionStatus.PENDING:
        return False
    now = now or datetime.utcnow()
    if txn.expired_at and now > txn.expired_at:
        return True
    return now - txn.created_at > expected_window(txn.method)


async def preview_expired(now: Optional[datetime] = None) -> List[Transaction]:
    """Pending transactions the next sweep would expire."""
    now = now or datetime.utcnow()
    pending = await TransactionRepository.list_pending()
    return [txn for txn in pending if is_expired(txn, now)]


async def sweep_expired(now: Optional[datetime] = None) -> SweepResult:
    """
    Fail every expired pending transaction.
    Safe to run concurrently: each flip is conditional on the row still being pending.
    """
    now = now or datetime.utcnow()
    pending = await TransactionRepository.list_pending()
    result = SweepResult(total_checked=len(pending))

    for txn in pending:
        if not is_expired(txn, now):
            continue
        flipped = await TransactionRepository.transition_status(
            txn.id, TransactionStatus.FAILED, last_modified_at=now
        )
        if flipped:
            result.expired_ids.append(txn.id)
            logger.audit_transaction_state_change(
                txn.id, TransactionStatus.PENDING.value, TransactionStatus.FAILED.value,
                reason="expired"
            )

    if result.expired_ids:
        logger.info(
            f"Expired {result.expired_count} transaction(s)",
            checked=result.total_checked
        )
    return result

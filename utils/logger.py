"""
Structured logging for treasury operations.
Every balance mutation and administrative action also lands in an append-only JSON audit file.
"""
import logging
import sys
from datetime import datetime
from typing import Any, Dict, Optional
from pathlib import Path
import json

from config import config


class FinancialLogger:
    """
    Logger wrapper used by every module.
    Plain messages go to the console and app.log; audit_* events go to audit.log as JSON lines.
    """

    def __init__(self, name: str):
        self.name = name
        self._setup_loggers()

    def _setup_loggers(self):
        """Setup separate loggers for different concerns."""
        log_dir = Path(config.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger(f"vibrakas.{self.name}")
        self.logger.setLevel(logging.DEBUG)

        self.audit_logger = logging.getLogger(f"audit.{self.name}")
        self.audit_logger.setLevel(logging.INFO)
        self.audit_logger.propagate = False

        formatter = logging.Formatter(
            '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        if not any(type(h) is logging.StreamHandler for h in self.logger.handlers):
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(logging.INFO)
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)

        if not any(isinstance(h, logging.FileHandler) for h in self.logger.handlers):
            file_handler = logging.FileHandler(log_dir / "app.log", encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

        if not self.audit_logger.handlers:
            audit_handler = logging.FileHandler(log_dir / "audit.log", encoding="utf-8")
            audit_handler.setLevel(logging.INFO)
            audit_handler.setFormatter(logging.Formatter('%(message)s'))
            self.audit_logger.addHandler(audit_handler)

    def _format_audit_entry(self, event: str, data: Dict[str, Any]) -> str:
        entry = {
            "timestamp": datetime.utcnow().isoformat(),
            "logger": self.name,
            "event": event,
            **data
        }
        return json.dumps(entry, default=str, ensure_ascii=False)

    # ============ Standard Logging ============

    def debug(self, message: str, **kwargs):
        self.logger.debug(f"{message} | {kwargs}" if kwargs else message)

    def info(self, message: str, **kwargs):
        self.logger.info(f"{message} | {kwargs}" if kwargs else message)

    def warning(self, message: str, **kwargs):
        self.logger.warning(f"{message} | {kwargs}" if kwargs else message)

    def error(self, message: str, exc_info: bool = False, **kwargs):
        self.logger.error(f"{message} | {kwargs}" if kwargs else message, exc_info=exc_info)

    def critical(self, message: str, exc_info: bool = True, **kwargs):
        self.logger.critical(f"{message} | {kwargs}" if kwargs else message, exc_info=exc_info)

    # ============ Audit Logging ============

    def audit_transaction_created(
        self,
        transaction_id: str,
        method: str,
        user_id: str,
        amount: int,
        **extra
    ):
        """Log creation of a pending or adjustment transaction."""
        self.audit_logger.info(self._format_audit_entry(
            "TRANSACTION_CREATED",
            {
                "transaction_id": transaction_id,
                "method": method,
                "user_id": user_id,
                "amount": amount,
                **extra
            }
        ))
        self.info(
            f"Transaction created: {transaction_id}",
            method=method,
            user_id=user_id,
            amount=amount
        )

    def audit_transaction_state_change(
        self,
        transaction_id: str,
        from_state: str,
        to_state: str,
        reason: Optional[str] = None,
        actor_id: Optional[str] = None
    ):
        self.audit_logger.info(self._format_audit_entry(
            "TRANSACTION_STATE_CHANGE",
            {
                "transaction_id": transaction_id,
                "from_state": from_state,
                "to_state": to_state,
                "reason": reason,
                "actor_id": actor_id
            }
        ))
        self.info(
            f"Transaction {transaction_id}: {from_state} -> {to_state}",
            reason=reason
        )

    def audit_payment_received(
        self,
        user_id: str,
        method: str,
        amount: int,
        reference: Optional[str],
        **extra
    ):
        self.audit_logger.info(self._format_audit_entry(
            "PAYMENT_RECEIVED",
            {
                "user_id": user_id,
                "method": method,
                "amount": amount,
                "reference": reference,
                **extra
            }
        ))
        self.info(
            f"Payment received for user {user_id}",
            method=method,
            amount=amount,
            reference=reference
        )

    def audit_api_call(
        self,
        service: str,
        action: str,
        success: bool,
        duration_ms: float,
        **extra
    ):
        """Log external API call."""
        self.audit_logger.info(self._format_audit_entry(
            "API_CALL",
            {
                "service": service,
                "action": action,
                "success": success,
                "duration_ms": duration_ms,
                **extra
            }
        ))

    def audit_balance_change(
        self,
        user_id: str,
        change_type: str,
        amount: int,
        balance_before: int,
        balance_after: int,
        transaction_id: Optional[str] = None
    ):
        self.audit_logger.info(self._format_audit_entry(
            "BALANCE_CHANGE",
            {
                "user_id": user_id,
                "change_type": change_type,
                "amount": amount,
                "balance_before": balance_before,
                "balance_after": balance_after,
                "transaction_id": transaction_id
            }
        ))

    def audit_admin_action(
        self,
        action: str,
        actor_id: str,
        target: Optional[str] = None,
        **extra
    ):
        """Log administrative actions (role changes, resets, deletions)."""
        self.audit_logger.info(self._format_audit_entry(
            "ADMIN_ACTION",
            {
                "action": action,
                "actor_id": actor_id,
                "target": target,
                **extra
            }
        ))
        self.info(f"Admin action {action} by {actor_id}", target=target)

    def audit_security_event(
        self,
        event_type: str,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        **extra
    ):
        """Log security-related events."""
        self.audit_logger.info(self._format_audit_entry(
            f"SECURITY_{event_type}",
            {
                "user_id": user_id,
                "ip_address": ip_address,
                **extra
            }
        ))
        self.warning(f"Security event: {event_type}", user_id=user_id)


def get_logger(name: str) -> FinancialLogger:
    """Get a logger instance for a module."""
    return FinancialLogger(name)

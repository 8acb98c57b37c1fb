"""
Database module with models and repository layer.
"""
from db.models import (
    User, Transaction, TreasurerAccount, AuditLog, EmailVerification, DataResetLog,
    Role, TransactionType, TransactionMethod, TransactionStatus,
    VerificationPurpose, AuditAction, EntityType
)
from db.repository import (
    db, Database,
    UserRepository, TransactionRepository, TreasurerAccountRepository,
    AuditRepository, EmailVerificationRepository, DataResetLogRepository
)

__all__ = [
    # Models
    "User", "Transaction", "TreasurerAccount", "AuditLog", "EmailVerification", "DataResetLog",
    # Enums
    "Role", "TransactionType", "TransactionMethod", "TransactionStatus",
    "VerificationPurpose", "AuditAction", "EntityType",
    # Repository
    "db", "Database",
    "UserRepository", "TransactionRepository", "TreasurerAccountRepository",
    "AuditRepository", "EmailVerificationRepository", "DataResetLogRepository"
]

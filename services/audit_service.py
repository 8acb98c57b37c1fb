"""
Audit trail writer.
Recording an audit entry must never break the operation being audited.
"""
import json
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from db.models import AuditLog, AuditAction, EntityType
from db.repository import AuditRepository
from utils.logger import get_logger

logger = get_logger("audit_service")


@dataclass
class RequestContext:
    """Who did it and from where."""
    actor_id: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def client_ip(headers: Mapping[str, str], remote_addr: Optional[str] = None) -> Optional[str]:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket address."""
    forwarded = headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return remote_addr


def _serialize(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str, ensure_ascii=False)


def build_entry(
    action: AuditAction,
    entity_type: EntityType,
    entity_id: str,
    ctx: RequestContext,
    old_value: Any = None,
    new_value: Any = None,
    reason: Optional[str] = None
) -> AuditLog:
    return AuditLog(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        old_value=_serialize(old_value),
        new_value=_serialize(new_value),
        reason=reason,
        performed_by=ctx.actor_id,
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent
    )


async def record(
    action: AuditAction,
    entity_type: EntityType,
    entity_id: str,
    ctx: RequestContext,
    old_value: Any = None,
    new_value: Any = None,
    reason: Optional[str] = None,
    conn=None
) -> Optional[AuditLog]:
    """
    Persist an audit entry. Returns None (and logs) if the write fails.
    Pass `conn` to make the entry part of the caller's transaction.
    """
    entry = build_entry(action, entity_type, entity_id, ctx, old_value, new_value, reason)
    try:
        await AuditRepository.create(entry, conn=conn)
    except Exception as e:
        if conn is not None:
            raise
        logger.error(
            "Failed to write audit log",
            exc_info=True,
            action=action.value,
            entity=f"{entity_type.value}:{entity_id}",
            error=str(e)
        )
        return None
    return entry


async def list_recent(limit: int = 100) -> List[AuditLog]:
    return await AuditRepository.list_recent(limit=limit)

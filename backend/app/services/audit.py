"""
Audit logging service for tracking ledger mutations.

Audit rows are written in the caller's transaction so they commit or roll
back together with the change they describe.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    ADVANCE_CREATED = "ADVANCE_CREATED"
    ADVANCE_UPDATED = "ADVANCE_UPDATED"
    ADVANCE_DELETED = "ADVANCE_DELETED"
    ADVANCE_RESTORED = "ADVANCE_RESTORED"
    ADVANCE_PURGED = "ADVANCE_PURGED"
    ADVANCE_DEDUCTED = "ADVANCE_DEDUCTED"
    ADVANCE_REFUNDED = "ADVANCE_REFUNDED"
    EXPENSE_RECORDED = "EXPENSE_RECORDED"


async def log_event(
    db: AsyncSession,
    action: str,
    entity_type: str,
    entity_id: Optional[int] = None,
    actor: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Add an audit row to the current transaction.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        entity_type: Kind of record touched ("advance", "expense")
        entity_id: ID of the record touched
        actor: Who performed the action, if known
        metadata: Additional context as JSON

    Returns:
        The flushed AuditLog instance (not committed)
    """
    audit_log = AuditLog(
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_data=metadata
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Args:
        db: Database session
        entity_type: Filter by record kind
        entity_id: Filter by record ID
        action: Filter by action type
        limit: Maximum number of records to return

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)

    if entity_id is not None:
        query = query.where(AuditLog.entity_id == entity_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()

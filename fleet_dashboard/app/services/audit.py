"""
Audit logging service for tracking status-changing fleet actions.

Provides centralized logging of takes, returns, reservations and admin edits.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from fleet_dashboard.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    # Trip workflow
    VEHICLE_TAKEN = "VEHICLE_TAKEN"
    VEHICLE_RETURNED = "VEHICLE_RETURNED"

    # Reservations
    RESERVATION_CREATED = "RESERVATION_CREATED"
    RESERVATION_CANCELLED = "RESERVATION_CANCELLED"

    # Admin fleet management
    VEHICLE_CREATED = "VEHICLE_CREATED"
    VEHICLE_UPDATED = "VEHICLE_UPDATED"
    VEHICLE_DELETED = "VEHICLE_DELETED"
    VEHICLE_STATUS_CHANGED = "VEHICLE_STATUS_CHANGED"

    # Photos
    PHOTO_DELETED = "PHOTO_DELETED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_username: Optional[str] = None,
    vehicle_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
    commit: bool = True
) -> AuditLog:
    """
    Log a fleet event to the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_username: Driver name or "admin"
        vehicle_id: Vehicle affected (if applicable)
        metadata: Additional context as JSON
        commit: Commit immediately; pass False to join the caller's transaction

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_username=actor_username,
        action=action,
        vehicle_id=vehicle_id,
        meta_data=metadata
    )

    db.add(audit_log)
    if commit:
        await db.commit()
        await db.refresh(audit_log)
    else:
        await db.flush()

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    vehicle_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Args:
        db: Database session
        vehicle_id: Filter by vehicle
        action: Filter by action type
        limit: Maximum number of records to return

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if vehicle_id:
        query = query.where(AuditLog.vehicle_id == vehicle_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())

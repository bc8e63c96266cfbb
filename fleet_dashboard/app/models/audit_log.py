"""
Audit Log Database Model.

Tracks status-changing fleet actions for later review.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from fleet_dashboard.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for tracking fleet actions.

    Events logged:
    - VEHICLE_TAKEN / VEHICLE_RETURNED
    - RESERVATION_CREATED / RESERVATION_CANCELLED
    - VEHICLE_CREATED / VEHICLE_UPDATED / VEHICLE_DELETED / VEHICLE_STATUS_CHANGED
    - PHOTO_DELETED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (driver name, "admin", or None for system actions)
    actor_username = Column(String(100), nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Which vehicle was affected
    vehicle_id = Column(Integer, index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_username}, vehicle={self.vehicle_id})>"

"""
Reservation database model.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Enum, ForeignKey
from sqlalchemy.sql import func
from fleet_dashboard.app.db.session import Base
from fleet_dashboard.app.models.vehicle_enums import ReservationStatus


class Reservation(Base):
    """A driver's hold on a vehicle for a future time window."""
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    vehicle_id = Column(Integer, ForeignKey('cars.id', ondelete="CASCADE"), nullable=False, index=True)
    driver_id = Column(String(50), nullable=False)  # driver code
    driver_name = Column(String(100), nullable=False)

    reserved_from = Column(DateTime, nullable=False)
    reserved_to = Column(DateTime, nullable=False)

    status = Column(
        Enum(ReservationStatus, values_callable=lambda e: [m.value for m in e]),
        default=ReservationStatus.ACTIVE,
        nullable=False,
        index=True
    )
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Reservation(id={self.id}, vehicle_id={self.vehicle_id}, status='{self.status.value}')>"

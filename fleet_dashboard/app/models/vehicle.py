"""
Vehicle database model.

Fleet vehicles with their current availability, driver and reservation window.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Enum
from sqlalchemy.sql import func
from fleet_dashboard.app.db.session import Base
from fleet_dashboard.app.models.vehicle_enums import VehicleStatus


class Vehicle(Base):
    """
    Vehicle model.

    The stored status is authoritative for transitions. The status shown in
    listings may be overridden by an active schedule entry (see
    domain.vehicle_state.schedule_override).
    """
    __tablename__ = "cars"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Identification
    plate_number = Column(String(20), unique=True, nullable=False, index=True)
    model = Column(String(100), nullable=False)

    # Status
    status = Column(
        Enum(VehicleStatus, values_callable=lambda e: [m.value for m in e]),
        default=VehicleStatus.FREE,
        nullable=False,
        index=True
    )
    maintenance_reason = Column(Text, nullable=True)

    # Location
    location = Column(String(200), nullable=True)
    floor = Column(String(50), nullable=True)
    side = Column(String(50), nullable=True)

    # Levels
    battery_level = Column(Integer, default=100, nullable=False)
    fuel_level = Column(Integer, default=100, nullable=False)
    mileage = Column(Integer, default=0, nullable=False)
    pickup_charge_level = Column(Integer, nullable=True)
    return_charge_level = Column(Integer, nullable=True)

    # Current driver (set only while busy)
    driver_name = Column(String(100), nullable=True)
    driver_id = Column(String(50), nullable=True)

    # Reservation window (set only while reserved)
    reserved_by = Column(String(100), nullable=True)
    reserved_by_id = Column(String(50), nullable=True)
    reserved_from = Column(DateTime, nullable=True)
    reserved_to = Column(DateTime, nullable=True)

    notes = Column(Text, nullable=True)

    # Timestamps
    last_updated = Column(DateTime, server_default=func.now(), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Vehicle(id={self.id}, plate='{self.plate_number}', status='{self.status.value}')>"

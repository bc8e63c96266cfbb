"""
Schedule entry (shift roster) database model.

An admin assigns a driver to a vehicle for a time window on a given day.
"""

from sqlalchemy import Column, Integer, String, Text, Date, Time, DateTime, Enum
from sqlalchemy.sql import func
from fleet_dashboard.app.db.session import Base
from fleet_dashboard.app.models.vehicle_enums import ScheduleStatus


class ScheduleEntry(Base):
    """Schedule entry model, keyed to the vehicle by plate number."""
    __tablename__ = "schedule_entries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    driver_name = Column(String(100), nullable=False)
    driver_id = Column(String(50), nullable=True)
    vehicle_plate = Column(String(20), nullable=True, index=True)

    date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    status = Column(
        Enum(ScheduleStatus, values_callable=lambda e: [m.value for m in e]),
        default=ScheduleStatus.SCHEDULED,
        nullable=False,
        index=True
    )
    shift_number = Column(Integer, default=1, nullable=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<ScheduleEntry(id={self.id}, plate='{self.vehicle_plate}', date={self.date})>"

"""
Driver database model.

Backs the database driver directory. Drivers sign in with a code and their name.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum
from sqlalchemy.sql import func
from fleet_dashboard.app.db.session import Base
from fleet_dashboard.app.models.vehicle_enums import DriverStatus


class Driver(Base):
    """Driver model."""
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    name = Column(String(100), nullable=False, index=True)
    driver_code = Column(String(50), nullable=False, index=True)

    phone_number = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    license_number = Column(String(50), unique=True, nullable=True)

    status = Column(
        Enum(DriverStatus, values_callable=lambda e: [m.value for m in e]),
        default=DriverStatus.ACTIVE,
        nullable=False,
        index=True
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Driver(id={self.id}, name='{self.name}', status='{self.status.value}')>"

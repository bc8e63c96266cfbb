"""
Trip photo database model.

Records one stored inspection photo taken at pickup or return.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey
from fleet_dashboard.app.db.session import Base
from fleet_dashboard.app.models.vehicle_enums import TripType, PhotoPosition


class TripPhoto(Base):
    """Trip photo model."""
    __tablename__ = "photos"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    vehicle_id = Column(Integer, ForeignKey('cars.id', ondelete="CASCADE"), nullable=False, index=True)
    driver_name = Column(String(100), nullable=False)

    trip_type = Column(
        Enum(TripType, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True
    )
    photo_position = Column(
        Enum(PhotoPosition, values_callable=lambda e: [m.value for m in e]),
        nullable=False
    )

    storage_path = Column(String(500), nullable=False)
    file_name = Column(String(200), nullable=False)

    uploaded_at = Column(DateTime, nullable=False, index=True)

    def __repr__(self):
        return f"<TripPhoto(id={self.id}, vehicle_id={self.vehicle_id}, {self.trip_type.value}/{self.photo_position.value})>"

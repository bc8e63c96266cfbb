"""
FastAPI dependencies wiring services to the request's database session.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_dashboard.app.db.session import get_db
from fleet_dashboard.app.core.redis_client import get_redis
from fleet_dashboard.app.services.change_feed import ChangeFeed, change_feed
from fleet_dashboard.app.services.driver_directory import DriverDirectory, build_driver_directory
from fleet_dashboard.app.services.fleet_gateway import FleetGateway
from fleet_dashboard.app.services.fleet_view import FleetView, fleet_view
from fleet_dashboard.app.services.photo_service import PhotoService
from fleet_dashboard.app.services.photo_storage import PhotoStorage, LocalPhotoStorage
from fleet_dashboard.app.services.reservation_manager import ReservationManager
from fleet_dashboard.app.services.trip_workflow import TripWorkflowService, TripWorkflowStore


def get_change_feed() -> ChangeFeed:
    return change_feed


def get_fleet_view() -> FleetView:
    return fleet_view


def get_gateway(
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed)
) -> FleetGateway:
    """Gateway bound to this request's session."""
    return FleetGateway(db, feed)


def get_driver_directory(db: AsyncSession = Depends(get_db)) -> DriverDirectory:
    return build_driver_directory(db)


def get_photo_storage() -> PhotoStorage:
    return LocalPhotoStorage()


def get_photo_service(
    db: AsyncSession = Depends(get_db),
    storage: PhotoStorage = Depends(get_photo_storage)
) -> PhotoService:
    return PhotoService(db, storage)


async def get_trip_workflow_service(
    gateway: FleetGateway = Depends(get_gateway),
    directory: DriverDirectory = Depends(get_driver_directory),
    photo_service: PhotoService = Depends(get_photo_service),
    redis=Depends(get_redis)
) -> TripWorkflowService:
    return TripWorkflowService(TripWorkflowStore(redis), gateway, directory, photo_service)


def get_reservation_manager(
    gateway: FleetGateway = Depends(get_gateway),
    directory: DriverDirectory = Depends(get_driver_directory)
) -> ReservationManager:
    return ReservationManager(gateway, directory)

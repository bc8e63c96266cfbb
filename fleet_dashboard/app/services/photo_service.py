"""
Trip photo service.

Uploads inspection photos, keeps their records and serves the admin photo
views. Each photo in an upload succeeds or fails on its own.
"""

import base64
import binascii
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_dashboard.app.core.clock import fleet_now
from fleet_dashboard.app.core.exceptions import UpstreamFailureError
from fleet_dashboard.app.core.reliability import CircuitBreaker, CircuitOpenError, storage_circuit_breaker
from fleet_dashboard.app.models.trip_photo import TripPhoto
from fleet_dashboard.app.models.vehicle_enums import TripType, PhotoPosition
from fleet_dashboard.app.schemas.photo import PhotoResponse, PhotoUploadResult, PhotoStats
from fleet_dashboard.app.services.photo_storage import PhotoStorage, LocalPhotoStorage

logger = logging.getLogger(__name__)


def decode_image_data(image_data: str) -> bytes:
    """
    Decode a base64 string or a base64 `data:` URL.

    Raises:
        ValueError: If the data is not valid base64
    """
    payload = image_data.strip()
    if payload.startswith("data:"):
        header, _, payload = payload.partition(",")
        if ";base64" not in header:
            raise ValueError("only base64 data URLs are supported")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"invalid base64 image data: {e}")


class PhotoService:
    """Photo uploads and records for one database session."""

    def __init__(
        self,
        db: AsyncSession,
        storage: Optional[PhotoStorage] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.db = db
        self.storage = storage or LocalPhotoStorage()
        self.breaker = breaker or storage_circuit_breaker

    async def upload_trip_photos(
        self,
        photos: Dict[str, str],
        vehicle_id: int,
        trip_type: TripType,
        driver_name: str,
        now: Optional[datetime] = None,
    ) -> List[PhotoUploadResult]:
        """
        Upload photos keyed by position and record each stored one.

        Returns one result per photo, in input order.
        """
        timestamp = now or fleet_now()
        date_str = timestamp.strftime("%Y-%m-%dT%H-%M-%S")
        trip_type = TripType(trip_type)
        results = []

        for position, image_data in photos.items():
            try:
                content = decode_image_data(image_data)
            except ValueError as e:
                results.append(PhotoUploadResult(
                    position=position, success=False,
                    error=f"Failed to convert {position} photo data: {e}"
                ))
                continue

            if not content:
                results.append(PhotoUploadResult(
                    position=position, success=False,
                    error=f"Failed to upload {position} photo: image is empty"
                ))
                continue

            file_name = f"{position}_{date_str}.jpg"
            storage_path = f"{vehicle_id}/{trip_type.value}/{file_name}"

            try:
                await self.breaker.call(self.storage.save, storage_path, content)
            except CircuitOpenError:
                results.append(PhotoUploadResult(
                    position=position, success=False,
                    error=f"Failed to upload {position} photo: photo storage unavailable"
                ))
                continue
            except Exception as e:
                logger.warning(
                    "Photo upload failed",
                    extra={"vehicle_id": vehicle_id, "position": position, "error": str(e)}
                )
                results.append(PhotoUploadResult(
                    position=position, success=False,
                    error=f"Failed to upload {position} photo: {e}"
                ))
                continue

            record = TripPhoto(
                vehicle_id=vehicle_id,
                driver_name=driver_name,
                trip_type=trip_type,
                photo_position=PhotoPosition(position),
                storage_path=storage_path,
                file_name=file_name,
                uploaded_at=timestamp,
            )
            try:
                self.db.add(record)
                await self.db.commit()
                await self.db.refresh(record)
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(
                    "Photo record could not be saved",
                    extra={"vehicle_id": vehicle_id, "position": position, "error": str(e)}
                )
                results.append(PhotoUploadResult(
                    position=position, success=False,
                    error=f"Failed to save {position} photo record"
                ))
                continue

            results.append(PhotoUploadResult(
                position=position, success=True,
                photo=PhotoResponse.model_validate(record)
            ))

        logger.info(
            "Trip photos uploaded",
            extra={
                "vehicle_id": vehicle_id,
                "trip_type": trip_type.value,
                "uploaded": sum(1 for r in results if r.success),
                "failed": sum(1 for r in results if not r.success),
            }
        )
        return results

    async def get_photo(self, photo_id: int) -> Optional[TripPhoto]:
        result = await self.db.execute(select(TripPhoto).where(TripPhoto.id == photo_id))
        return result.scalar_one_or_none()

    async def delete_photo(self, photo_id: int) -> bool:
        """
        Delete a photo file and its record.

        Returns False if there is no such photo. A storage failure is logged
        and the record is deleted anyway.
        """
        photo = await self.get_photo(photo_id)
        if not photo:
            return False

        try:
            await self.breaker.call(self.storage.delete, photo.storage_path)
        except Exception as e:
            logger.warning(
                "Photo file could not be removed; deleting record anyway",
                extra={"photo_id": photo_id, "storage_path": photo.storage_path, "error": str(e)}
            )

        try:
            await self.db.delete(photo)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise UpstreamFailureError("Could not delete photo record", details={"photo_id": photo_id}) from e
        return True

    async def bulk_delete(self, photo_ids: List[int]) -> Tuple[List[int], List[int]]:
        """Delete several photos; returns (deleted ids, failed ids)."""
        deleted, failed = [], []
        for photo_id in photo_ids:
            try:
                ok = await self.delete_photo(photo_id)
            except UpstreamFailureError:
                ok = False
            (deleted if ok else failed).append(photo_id)
        return deleted, failed

    async def list_for_vehicle(self, vehicle_id: int, trip_type: Optional[TripType] = None) -> List[TripPhoto]:
        query = select(TripPhoto).where(TripPhoto.vehicle_id == vehicle_id)
        if trip_type is not None:
            query = query.where(TripPhoto.trip_type == TripType(trip_type))
        query = query.order_by(desc(TripPhoto.uploaded_at), desc(TripPhoto.id))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def recent(self, limit: int = 20) -> List[TripPhoto]:
        result = await self.db.execute(
            select(TripPhoto).order_by(desc(TripPhoto.uploaded_at), desc(TripPhoto.id)).limit(limit)
        )
        return list(result.scalars().all())

    async def stats(self, now: Optional[datetime] = None) -> PhotoStats:
        now = now or fleet_now()
        week_ago = now - timedelta(days=7)

        async def count(*conditions) -> int:
            query = select(func.count(TripPhoto.id))
            if conditions:
                query = query.where(*conditions)
            result = await self.db.execute(query)
            return result.scalar() or 0

        return PhotoStats(
            total=await count(),
            pickup=await count(TripPhoto.trip_type == TripType.PICKUP),
            returns=await count(TripPhoto.trip_type == TripType.RETURN),
            last_7_days=await count(TripPhoto.uploaded_at >= week_ago),
        )

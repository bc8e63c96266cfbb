"""
Driver credential check.

Drivers sign in with a shared code and their name. No session or token is
issued; every status-changing action validates the pair again.
"""

import logging
import re
from dataclasses import dataclass, asdict
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_dashboard.app.core.config import settings
from fleet_dashboard.app.core.exceptions import ValidationError, InvalidCredentialsError
from fleet_dashboard.app.models.driver import Driver
from fleet_dashboard.app.models.vehicle_enums import DriverStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DriverIdentity:
    """A validated driver."""
    id: str
    name: str
    code: str
    phone_number: Optional[str] = None
    email: Optional[str] = None
    license_number: Optional[str] = None
    status: DriverStatus = DriverStatus.ACTIVE

    def to_dict(self) -> dict:
        return asdict(self)


class DriverDirectory(Protocol):
    async def validate(self, code: str, name: str) -> Optional[DriverIdentity]:
        ...


class SampleDriverDirectory:
    """Built-in demo drivers: code 1234 with names "Bruker 1" .. "Bruker 10" (exact case)."""

    SAMPLE_CODE = "1234"
    NAME_PATTERN = re.compile(r"^Bruker (10|[1-9])$")

    async def validate(self, code: str, name: str) -> Optional[DriverIdentity]:
        if code != self.SAMPLE_CODE:
            return None
        match = self.NAME_PATTERN.match(name)
        if not match:
            return None
        return self.sample_driver(int(match.group(1)))

    @classmethod
    def sample_driver(cls, number: int) -> DriverIdentity:
        return DriverIdentity(
            id=f"sample-driver-{number}",
            name=f"Bruker {number}",
            code=cls.SAMPLE_CODE,
            phone_number=f"+47 123 45 {number:03d}",
            email=f"bruker{number}@taxi.no",
            license_number=f"DL{number:06d}",
        )

    @classmethod
    def all_drivers(cls) -> list[DriverIdentity]:
        return [cls.sample_driver(n) for n in range(1, 11)]


class DatabaseDriverDirectory:
    """Active drivers from the drivers table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def validate(self, code: str, name: str) -> Optional[DriverIdentity]:
        result = await self.db.execute(
            select(Driver).where(
                Driver.driver_code == code,
                Driver.name == name,
                Driver.status == DriverStatus.ACTIVE
            ).order_by(Driver.id).limit(1)
        )
        driver = result.scalar_one_or_none()
        if not driver:
            return None
        return DriverIdentity(
            id=str(driver.id),
            name=driver.name,
            code=driver.driver_code,
            phone_number=driver.phone_number,
            email=driver.email,
            license_number=driver.license_number,
            status=driver.status,
        )


def build_driver_directory(db: AsyncSession, backend: Optional[str] = None) -> DriverDirectory:
    """Pick the directory named by `driver_directory_backend`."""
    backend = backend or settings.driver_directory_backend
    if backend == "sample":
        return SampleDriverDirectory()
    if backend == "database":
        return DatabaseDriverDirectory(db)
    raise ValueError(f"Unknown driver directory backend: {backend}")


async def authenticate_driver(directory: DriverDirectory, code: str, name: str) -> DriverIdentity:
    """
    Validate a driver code and name.

    Raises:
        ValidationError: If either field is blank
        InvalidCredentialsError: If the pair is not in the directory
    """
    code = (code or "").strip()
    name = (name or "").strip()

    missing = [field for field, value in (("driver_code", code), ("driver_name", name)) if not value]
    if missing:
        raise ValidationError(
            "Please enter both driver ID and driver name",
            details={"missing": missing}
        )

    identity = await directory.validate(code, name)
    if identity is None:
        logger.info("Driver sign-in rejected", extra={"driver_name": name})
        raise InvalidCredentialsError()

    return identity

"""
Driver API Endpoints.
"""

from fastapi import APIRouter, Depends

from fleet_dashboard.app.core.dependencies import get_driver_directory
from fleet_dashboard.app.schemas.driver import DriverCredentials, DriverIdentityResponse
from fleet_dashboard.app.services.driver_directory import DriverDirectory, authenticate_driver

router = APIRouter(prefix="/drivers", tags=["Drivers"])


@router.post("/validate", response_model=DriverIdentityResponse)
async def validate_driver(
    credentials: DriverCredentials,
    directory: DriverDirectory = Depends(get_driver_directory)
):
    """
    Check a driver ID and name.

    Nothing is issued; status-changing requests check the pair again.
    """
    identity = await authenticate_driver(directory, credentials.driver_code, credentials.driver_name)
    return DriverIdentityResponse(**identity.to_dict())

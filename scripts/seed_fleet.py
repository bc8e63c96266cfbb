"""
Database seeding script for a demo fleet.

Creates sample vehicles and directory drivers for development.
Run from the repository root after the database is set up:

    python -m scripts.seed_fleet
"""

import asyncio

from sqlalchemy import select

from fleet_dashboard.app.core.clock import fleet_now
from fleet_dashboard.app.db.session import AsyncSessionLocal, engine, Base
from fleet_dashboard.app.models.driver import Driver
from fleet_dashboard.app.models.vehicle import Vehicle
from fleet_dashboard.app.models.vehicle_enums import VehicleStatus, DriverStatus
from fleet_dashboard.app.services.driver_directory import SampleDriverDirectory


SAMPLE_VEHICLES = [
    ("EL12345", "Tesla Model 3", VehicleStatus.FREE, 85, 90, 15000),
    ("EL67890", "Tesla Model Y", VehicleStatus.FREE, 65, 75, 22000),
    ("EL13579", "Tesla Model S", VehicleStatus.FREE, 45, 60, 31000),
    ("EL24680", "Tesla Model X", VehicleStatus.MAINTENANCE, 20, 30, 48000),
    ("EL97531", "Tesla Model 3", VehicleStatus.FREE, 95, 100, 8000),
]


async def seed_fleet():
    """
    Seed the demo fleet.

    Creates:
    - 5 vehicles (one in maintenance)
    - the 10 sample drivers in the drivers table
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting fleet seeding...")

        result = await db.execute(select(Vehicle).where(Vehicle.plate_number == SAMPLE_VEHICLES[0][0]))
        if result.scalar_one_or_none():
            print("ℹ️  Demo fleet already exists, skipping seeding")
            return

        now = fleet_now()
        for plate, model, status, battery, fuel, mileage in SAMPLE_VEHICLES:
            db.add(Vehicle(
                plate_number=plate,
                model=model,
                status=status,
                location="Service Center" if status == VehicleStatus.MAINTENANCE else "SNØ P-hus | APCOA PARKING",
                battery_level=battery,
                fuel_level=fuel,
                mileage=mileage,
                maintenance_reason="Scheduled service" if status == VehicleStatus.MAINTENANCE else None,
                last_updated=now,
            ))
            print(f"✅ Created vehicle {plate} ({model}, {status.value})")

        for identity in SampleDriverDirectory.all_drivers():
            db.add(Driver(
                name=identity.name,
                driver_code=identity.code,
                phone_number=identity.phone_number,
                email=identity.email,
                license_number=identity.license_number,
                status=DriverStatus.ACTIVE,
            ))
        print("✅ Created drivers Bruker 1 .. Bruker 10 (driver ID 1234)")

        await db.commit()
        print("🎉 Fleet seeding complete")


if __name__ == "__main__":
    asyncio.run(seed_fleet())

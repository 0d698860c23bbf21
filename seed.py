"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 8 sample drivers around Silchar (mix of verified, pending, offline)
  - 3 requested rides and 2 requested deliveries waiting for a driver
  - 1 completed ride with its pending payment record
"""

import asyncio
from datetime import timedelta

from sqlalchemy import func, select

from dispatch.domain.entities import utcnow
from dispatch.domain.enums import (
    PackageType,
    PaymentStatus,
    RideCategory,
    TripKind,
    TripStatus,
    VerificationStatus,
)
from dispatch.infrastructure.database import async_session_factory, engine
from dispatch.infrastructure.models import DriverModel, PaymentModel, TripModel

# Silchar city centre (approx)
CENTRE_LAT, CENTRE_LNG = 24.33, 92.01


DRIVERS = [
    {"driver_id": "drv-anil", "name": "Anil Das", "category": RideCategory.ECONOMY, "lat": 24.3310, "lng": 92.0120, "status": VerificationStatus.VERIFIED, "online": True},
    {"driver_id": "drv-bina", "name": "Bina Roy", "category": RideCategory.ECONOMY, "lat": 24.3380, "lng": 92.0050, "status": VerificationStatus.VERIFIED, "online": True},
    {"driver_id": "drv-chandan", "name": "Chandan Nath", "category": RideCategory.COMFORT, "lat": 24.3250, "lng": 92.0200, "status": VerificationStatus.VERIFIED, "online": True},
    {"driver_id": "drv-deepa", "name": "Deepa Sinha", "category": RideCategory.XL, "lat": 24.3450, "lng": 92.0300, "status": VerificationStatus.VERIFIED, "online": True},
    {"driver_id": "drv-emon", "name": "Emon Laskar", "category": RideCategory.ECONOMY, "lat": 24.3600, "lng": 92.0600, "status": VerificationStatus.VERIFIED, "online": False},
    {"driver_id": "drv-farhan", "name": "Farhan Choudhury", "category": RideCategory.COMFORT, "lat": 24.3200, "lng": 91.9950, "status": VerificationStatus.PENDING, "online": False},
    {"driver_id": "drv-gita", "name": "Gita Paul", "category": RideCategory.ECONOMY, "lat": 24.3150, "lng": 92.0010, "status": VerificationStatus.VERIFIED, "online": True},
    {"driver_id": "drv-hari", "name": "Hari Dey", "category": RideCategory.XL, "lat": 24.3500, "lng": 92.0150, "status": VerificationStatus.PENDING, "online": False},
]

TRIPS = [
    # Requested rides
    {"kind": TripKind.RIDE, "requester": "usr-aarav", "pickup": (24.3300, 92.0100), "destination": (24.3700, 92.1700), "category": RideCategory.ECONOMY.value, "fare": 164.0},
    {"kind": TripKind.RIDE, "requester": "usr-priya", "pickup": (24.3350, 92.0000), "destination": (24.8200, 92.7900), "category": RideCategory.COMFORT.value, "fare": 980.0},
    {"kind": TripKind.RIDE, "requester": "usr-rohan", "pickup": (24.3200, 92.0300), "destination": (24.3000, 92.0500), "category": RideCategory.XL.value, "fare": 120.0},
    # Requested deliveries
    {"kind": TripKind.DELIVERY, "requester": "usr-sneha", "pickup": (24.3280, 92.0150), "destination": (24.3420, 92.0400), "category": PackageType.DOCUMENT.value, "fare": 60.0, "recipient": ("Meera Nair", "+919876543210")},
    {"kind": TripKind.DELIVERY, "requester": "usr-vikram", "pickup": (24.3400, 92.0080), "destination": (24.3100, 91.9900), "category": PackageType.FOOD.value, "fare": 85.0, "recipient": ("Karan Joshi", "+918765432109")},
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(select(func.count()).select_from(DriverModel))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        now = utcnow()

        # ── Drivers ───────────────────────────────────────────────────
        for d in DRIVERS:
            session.add(
                DriverModel(
                    driver_id=d["driver_id"],
                    name=d["name"],
                    vehicle_category=d["category"],
                    verification_status=d["status"],
                    verified_at=now if d["status"] is VerificationStatus.VERIFIED else None,
                    is_online=d["online"],
                    is_available=True,
                    current_lat=d["lat"],
                    current_lng=d["lng"],
                    location_updated_at=now,
                    location_version=1,
                    rating=4.5,
                    created_at=now,
                    updated_at=now,
                )
            )
        await session.flush()
        print(f"  Created {len(DRIVERS)} drivers")

        # ── Requested trips ───────────────────────────────────────────
        for t in TRIPS:
            recipient_name, recipient_phone = t.get("recipient", (None, None))
            session.add(
                TripModel(
                    kind=t["kind"],
                    requester_id=t["requester"],
                    pickup_lat=t["pickup"][0],
                    pickup_lng=t["pickup"][1],
                    pickup_address=f"{t['pickup'][0]}, {t['pickup'][1]}",
                    destination_lat=t["destination"][0],
                    destination_lng=t["destination"][1],
                    destination_address=f"{t['destination'][0]}, {t['destination'][1]}",
                    category=t["category"],
                    fare=t["fare"],
                    status=TripStatus.REQUESTED,
                    recipient_name=recipient_name,
                    recipient_phone=recipient_phone,
                    created_at=now,
                    updated_at=now,
                )
            )
        await session.flush()
        print(f"  Created {len(TRIPS)} requested trips")

        # ── Completed ride ────────────────────────────────────────────
        accepted = now - timedelta(minutes=40)
        done = TripModel(
            kind=TripKind.RIDE,
            requester_id="usr-meera",
            driver_id="drv-anil",
            pickup_lat=CENTRE_LAT,
            pickup_lng=CENTRE_LNG,
            pickup_address="Silchar Railway Station",
            destination_lat=24.7440,
            destination_lng=92.8000,
            destination_address="Silchar Airport",
            category=RideCategory.ECONOMY.value,
            fare=450.0,
            status=TripStatus.COMPLETED,
            accepted_at=accepted,
            started_at=accepted + timedelta(minutes=5),
            completed_at=now - timedelta(minutes=5),
            created_at=accepted - timedelta(minutes=1),
            updated_at=now - timedelta(minutes=5),
        )
        session.add(done)
        await session.flush()
        session.add(
            PaymentModel(
                trip_id=done.id,
                kind=TripKind.RIDE,
                requester_id=done.requester_id,
                driver_id="drv-anil",
                amount=done.fare,
                status=PaymentStatus.PENDING,
                created_at=done.completed_at,
            )
        )
        anil = await session.get(DriverModel, "drv-anil")
        anil.total_rides = 1
        anil.total_earnings = done.fare
        print("  Created 1 completed ride with payment")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())

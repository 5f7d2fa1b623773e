"""Script to seed an admin, a doctor and a patient, printing a bearer token for each."""

import asyncio

from app.core.exceptions import ConflictException
from app.core.security import create_access_token
from app.database import AsyncSessionLocal, engine
from app.schemas.users import IdentityCreate, UserRole
from app.services.identity_service import IdentityService

DEMO_USERS = [
    IdentityCreate(email="admin@citago.local", full_name="Demo Admin", role=UserRole.ADMIN),
    IdentityCreate(
        email="doctor@citago.local",
        full_name="Dra. Ana Ruiz",
        role=UserRole.DOCTOR,
        profile={
            "specialty": "Cardiology",
            "consultation_duration": 30,
            "availability": [
                {
                    "day": day,
                    "timeSlots": [
                        {"from": "09:00", "to": "13:00", "location": "Central Clinic"},
                        {"from": "15:00", "to": "18:00", "location": "North Clinic"},
                    ],
                }
                for day in ("Monday", "Wednesday", "Friday")
            ],
        },
    ),
    IdentityCreate(
        email="patient@citago.local",
        full_name="Luis Gomez",
        phone="+34600000000",
        role=UserRole.PATIENT,
    ),
]


async def seed() -> None:
    """Create the demo users, skipping those that already exist."""
    async with AsyncSessionLocal() as db:
        service = IdentityService(db)
        for data in DEMO_USERS:
            try:
                identity = await service.create_identity(data)
            except ConflictException:
                print(f"- {data.email} already exists")
                continue
            token = create_access_token({"sub": str(identity.id)})
            print(f"✓ {identity.role.value:<8} {identity.email} {identity.id}\n  token: {token}")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())

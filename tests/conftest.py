import os
from collections.abc import AsyncGenerator
from datetime import UTC, date, datetime, timedelta

# Settings are read once at import, so the test configuration must come first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["CACHE_ENABLED"] = "false"
os.environ["REMINDERS_ENABLED"] = "false"

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Fill in anything else from .env without overriding the values above
load_dotenv()

from app.core.mailer import MailDeliveryError, Mailer, get_mailer
from app.core.security import create_access_token
from app.database import get_db
from app.main import app
from app.models import metadata
from app.schemas.users import Identity, IdentityCreate, UserRole
from app.services.identity_service import IdentityService

# One in-memory database shared by every connection of a test
test_engine = create_async_engine(
    "sqlite+aiosqlite://",
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)

TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

DOCTOR_SCHEDULE = [
    {
        "day": "Monday",
        "timeSlots": [{"from": "09:00", "to": "12:00", "location": "Clinic A"}],
    },
    {
        "day": "Wednesday",
        "timeSlots": [{"from": "15:00", "to": "17:00", "location": "Clinic B"}],
    },
]


class RecordingMailer(Mailer):
    """Mailer keeping sent messages in memory."""

    def __init__(self) -> None:
        super().__init__(host="smtp.test", port=25, use_tls=False, sender="no-reply@test")
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    async def send(self, recipient: str, subject: str, body: str) -> None:
        if self.fail:
            raise MailDeliveryError("SMTP server unavailable")
        self.sent.append((recipient, subject, body))


def bearer(identity: Identity) -> dict:
    """Authorization header for an identity."""
    token = create_access_token(data={"sub": str(identity.id)}, expires_delta=timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}


def next_weekday(weekday: int, today: date | None = None) -> date:
    """The next date (strictly after today) falling on ``weekday`` (Monday is 0)."""
    today = today or datetime.now(UTC).date()
    days_ahead = (weekday - today.weekday()) % 7 or 7
    return today + timedelta(days=days_ahead)


def at(day: date, hhmm: str) -> datetime:
    """UTC instant of a time of day on a date."""
    hour, minute = hhmm.split(":")
    return datetime(day.year, day.month, day.day, int(hour), int(minute), tzinfo=UTC)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    mailer: RecordingMailer,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def doctor(db_session: AsyncSession) -> Identity:
    """A doctor seeing patients Monday mornings at Clinic A and Wednesday afternoons at Clinic B."""
    return await IdentityService(db_session).create_identity(
        IdentityCreate(
            email="doctor@example.com",
            full_name="Dra. Ana Ruiz",
            role=UserRole.DOCTOR,
            profile={
                "specialty": "Cardiology",
                "consultation_duration": 30,
                "availability": DOCTOR_SCHEDULE,
            },
        )
    )


@pytest_asyncio.fixture
async def other_doctor(db_session: AsyncSession) -> Identity:
    return await IdentityService(db_session).create_identity(
        IdentityCreate(
            email="other.doctor@example.com",
            full_name="Dr. Pablo Soto",
            role=UserRole.DOCTOR,
            profile={"availability": DOCTOR_SCHEDULE},
        )
    )


@pytest_asyncio.fixture
async def patient(db_session: AsyncSession) -> Identity:
    return await IdentityService(db_session).create_identity(
        IdentityCreate(
            email="patient@example.com",
            full_name="Luis Gomez",
            phone="+34600000000",
            role=UserRole.PATIENT,
        )
    )


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> Identity:
    return await IdentityService(db_session).create_identity(
        IdentityCreate(email="admin@example.com", full_name="Admin", role=UserRole.ADMIN)
    )


@pytest_asyncio.fixture
async def clinic(db_session: AsyncSession, doctor: Identity) -> Identity:
    return await IdentityService(db_session).create_identity(
        IdentityCreate(
            email="clinic@example.com",
            full_name="Clinic A",
            role=UserRole.CLINIC,
            profile={"doctors_managed": [str(doctor.id)]},
        )
    )


@pytest.fixture
def next_monday() -> date:
    return next_weekday(0)

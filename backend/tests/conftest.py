"""
Pytest fixtures for testing.
"""
import os
import tempfile
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

# Import database module BEFORE app to allow override
import medmatch.database
from medmatch.database import Base
# Import ALL models so Base.metadata knows about all tables
from medmatch.models.organization import Organization
from medmatch.models.posting import Posting, PostingStatus, PostingType
from medmatch.models.professional import Professional, Specialization
from medmatch.models.response import Response
from medmatch.models.work_connection import WorkConnection
from medmatch.services.matching import MatchingService

# Now import app (after we can override database)
from medmatch.main import app as fastapi_app


# Bangalore fixture coordinates
ORG_LAT, ORG_LNG = 12.90, 77.60
NEAR_LAT, NEAR_LNG = 12.91, 77.61  # ~1.5 km from the organization
FAR_LAT, FAR_LNG = 13.50, 78.00  # ~79 km from the organization

# Generous bound so lock waits in concurrency tests never count as timeouts
TEST_TRANSACTION_TIMEOUT = 20.0


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """
    Create a fresh file-backed database for each test.

    A file (not :memory:) with NullPool gives every session its own
    connection, so concurrent transactions contend on real SQLite locks
    the way they would on a shared database.
    """
    fd, path = tempfile.mkstemp(suffix=".db", prefix="medmatch_test_")
    os.close(fd)

    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{path}",
        connect_args={"timeout": 15},
        poolclass=NullPool,
    )

    # Create all tables FIRST
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # THEN replace the app's engine and sessionmaker
    original_engine = medmatch.database.engine
    original_sessionmaker = medmatch.database.AsyncSessionLocal

    factory = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    medmatch.database.engine = test_engine
    medmatch.database.AsyncSessionLocal = factory

    try:
        yield factory
    finally:
        medmatch.database.engine = original_engine
        medmatch.database.AsyncSessionLocal = original_sessionmaker
        await test_engine.dispose()
        Path(path).unlink(missing_ok=True)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for seeding and asserting directly against the database."""
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def service(session_factory) -> MatchingService:
    """Matching service bound to the test database, notifications disabled."""
    return MatchingService(session_factory, timeout=TEST_TRANSACTION_TIMEOUT)


@pytest_asyncio.fixture
async def async_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing endpoints.

    The session_factory fixture already replaced medmatch.database.AsyncSessionLocal,
    so all endpoints will automatically use the test database.
    """
    transport = ASGITransport(app=fastapi_app)

    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        follow_redirects=True  # Follow 307 redirects for trailing slashes
    ) as client:
        yield client


# =============================================================================
# Seed helpers
# =============================================================================

async def create_organization(db: AsyncSession, index: int = 1, lat=ORG_LAT, lng=ORG_LNG, **kwargs) -> Organization:
    organization = Organization(
        email=f"clinic{index}@example.com",
        name=kwargs.pop("name", f"Clinic {index}"),
        address=kwargs.pop("address", f"{index} MG Road, Bangalore"),
        latitude=lat,
        longitude=lng,
        **kwargs,
    )
    db.add(organization)
    await db.commit()
    await db.refresh(organization)
    return organization


async def create_professional(
    db: AsyncSession,
    index: int = 1,
    lat=NEAR_LAT,
    lng=NEAR_LNG,
    specialization: Specialization = Specialization.CARDIOLOGIST,
    experience_years: int = 5,
    **kwargs,
) -> Professional:
    professional = Professional(
        email=f"doctor{index}@example.com",
        full_name=kwargs.pop("full_name", f"Dr. Doctor {index}"),
        specialization=specialization.value,
        experience_years=experience_years,
        latitude=lat,
        longitude=lng,
        **kwargs,
    )
    db.add(professional)
    await db.commit()
    await db.refresh(professional)
    return professional


async def create_posting(
    db: AsyncSession,
    organization: Organization,
    title: str = "Cardiologist needed",
    posting_type: PostingType = PostingType.FULLTIME,
    specialization=Specialization.CARDIOLOGIST,
    status: PostingStatus = PostingStatus.POSTED,
    **kwargs,
) -> Posting:
    posting = Posting(
        organization_id=organization.id,
        title=title,
        posting_type=posting_type.value,
        specialization=specialization.value if specialization else None,
        description=kwargs.pop("description", "Join our team"),
        location=organization.address,
        status=status.value,
        **kwargs,
    )
    db.add(posting)
    await db.commit()
    await db.refresh(posting)
    return posting


# =============================================================================
# Fixtures
# =============================================================================

@pytest_asyncio.fixture
async def organization(db) -> Organization:
    return await create_organization(db)


@pytest_asyncio.fixture
async def other_organization(db) -> Organization:
    return await create_organization(db, index=2, name="Other Clinic")


@pytest_asyncio.fixture
async def near_professional(db) -> Professional:
    return await create_professional(db, index=1, full_name="Dr. Asha Rao")


@pytest_asyncio.fixture
async def far_professional(db) -> Professional:
    return await create_professional(db, index=2, lat=FAR_LAT, lng=FAR_LNG, full_name="Dr. Vikram Shah")


@pytest_asyncio.fixture
async def posting(db, organization) -> Posting:
    return await create_posting(db, organization)

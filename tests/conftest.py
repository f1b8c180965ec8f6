"""
Shared fixtures: an isolated in-memory database per test, seeded with the
role/permission catalog, and an HTTP client bound to the application.
"""

import os

os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("PASSWORD_BCRYPT_ROUNDS", "4")
os.environ.setdefault("SMTP_HOST", "")

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.database import Database  # noqa: E402
from app.services.account import CredentialsAssertion, ProviderAssertion, account_service  # noqa: E402
from app.services.catalog import seed_catalog  # noqa: E402

PASSWORD = "longenough1"


@pytest_asyncio.fixture
async def database():
    database = Database(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await database.create_all()
    async with database.session_factory() as session:
        await seed_catalog(session)
    yield database
    await database.dispose()


@pytest_asyncio.fixture
async def db(database):
    async with database.session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(database):
    from app.main import app

    app.state.database = database
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def provider_assertion():
    def build(email="b@x.com", subject="google-sub-1", name="Bee", image=None, access_token="ya29.test"):
        return ProviderAssertion(
            provider="google",
            subject=subject,
            email=email,
            name=name,
            image=image,
            access_token=access_token,
        )

    return build


@pytest_asyncio.fixture
async def verified_user(db):
    """A password account that has completed email verification"""
    registration = await account_service.register(db, email="a@x.com", password=PASSWORD, name="Ada")
    await account_service.verify_email(db, registration.verification_token)
    result = await account_service.authenticate_credentials(
        db, CredentialsAssertion(email="a@x.com", password=PASSWORD)
    )
    return result.user

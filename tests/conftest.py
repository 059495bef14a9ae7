"""
Pytest fixtures for the billing test suite.

Beanie runs on an in-memory mongomock-motor client, so no MongoDB server is
needed. Contract documents are written to a temporary directory.
"""
import os
import tempfile

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["CONTRACTS_DIR"] = tempfile.mkdtemp(prefix="contracts-")
os.environ["S3_BUCKET_CONTRACTS"] = ""

from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from beanie import init_beanie
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from school_billing.context import RequestContext
from school_billing.models import DOCUMENT_MODELS, Enrollment, User, UserRole
from school_billing.services.credentials import create_access_token, get_password_hash
from school_billing.services.roles import ensure_default_roles

ADMIN_PASSWORD = "admin-pass"


@pytest_asyncio.fixture
async def db():
    client = AsyncMongoMockClient()
    await init_beanie(database=client["school_billing_test"], document_models=DOCUMENT_MODELS)
    yield client
    client.close()


@pytest_asyncio.fixture
async def enrollment(db) -> Enrollment:
    e = Enrollment(
        student_name="Ana Souza",
        student_email="ana@example.com",
        date_of_birth=date(2012, 5, 4),
        annual_tuition=Decimal("12000.00"),
        registration_fee=Decimal("1200.00"),
        due_day=10,
        start_date=date(2025, 2, 15),
    )
    await e.insert()
    return e


@pytest_asyncio.fixture
async def student_user(enrollment) -> User:
    user = User(
        email=enrollment.student_email,
        hashed_password=get_password_hash("04052012"),
        role=UserRole.PENDING_STUDENT,
        full_name=enrollment.student_name,
        enrollment_id=str(enrollment.id),
    )
    await user.insert()
    enrollment.student_user_id = str(user.id)
    await enrollment.save()
    return user


@pytest_asyncio.fixture
async def admin_user(db) -> User:
    user = User(
        email="admin@example.com",
        hashed_password=get_password_hash(ADMIN_PASSWORD),
        role=UserRole.ADMIN,
        full_name="Admin",
    )
    await user.insert()
    return user


@pytest.fixture
def admin_ctx(admin_user) -> RequestContext:
    return RequestContext(user_id=str(admin_user.id), role=UserRole.ADMIN, ip_address="10.0.0.1")


@pytest.fixture
def student_ctx(student_user) -> RequestContext:
    return RequestContext(
        user_id=str(student_user.id),
        role=student_user.role,
        enrollment_id=student_user.enrollment_id,
        ip_address="203.0.113.7",
    )


@pytest_asyncio.fixture
async def client(db):
    from school_billing.main import app

    await ensure_default_roles()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def bearer(user: User) -> dict:
    token = create_access_token(str(user.id), user.role.value, user.enrollment_id)
    return {"Authorization": f"Bearer {token}"}

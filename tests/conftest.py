"""Test configuration and fixtures.

Each test gets its own SQLite database file (aiosqlite) with tables created
from the ORM metadata. Every HTTP request opens its own session, the same as
production, so concurrent requests in one test really contend for rows.
Redis is replaced by an AsyncMock whose token bucket always allows.
"""

import json
import uuid
from collections.abc import AsyncGenerator
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.config import settings
from app.database import Base, get_db
from app.main import app
from app.models.user import User, UserRole, UserStatus
from app.redis import get_redis
from app.services.blob_store import LocalBlobStore
from app.services.razorpay import RazorpayProcessor, compute_signature

TEST_RAZORPAY_KEY = "rzp_test_key"
TEST_RAZORPAY_SECRET = "test-razorpay-secret"


@pytest.fixture(autouse=True)
def _isolate_settings(tmp_path: Path) -> None:
    """Snapshot settings before each test and restore after to prevent mutation bleed."""
    original = settings.model_dump()
    staging = tmp_path / "staging"
    staging.mkdir()
    object.__setattr__(settings, "upload_staging_dir", str(staging))
    object.__setattr__(settings, "razorpay_key_id", TEST_RAZORPAY_KEY)
    object.__setattr__(settings, "razorpay_key_secret", TEST_RAZORPAY_SECRET)
    yield  # type: ignore[misc]
    for key, value in original.items():
        object.__setattr__(settings, key, value)


@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"timeout": 15},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Session for seeding and inspecting rows directly."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def redis_mock() -> AsyncMock:
    redis = AsyncMock()
    redis.eval.return_value = [1, 99, 0]
    return redis


def _razorpay_handler(request: httpx.Request) -> httpx.Response:
    """Stand-in for the Razorpay Orders API."""
    body = json.loads(request.content)
    return httpx.Response(200, json={
        "id": f"order_{uuid.uuid4().hex[:14]}",
        "entity": "order",
        "amount": body["amount"],
        "currency": body["currency"],
        "receipt": body["receipt"],
        "status": "created",
    })


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    redis_mock: AsyncMock,
    tmp_path: Path,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP test client with overridden DB, Redis and outbound adapters."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    async def override_get_redis() -> AsyncGenerator[AsyncMock, None]:
        yield redis_mock

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    processor_client = httpx.AsyncClient(transport=httpx.MockTransport(_razorpay_handler))
    app.state.blob_store = LocalBlobStore(str(tmp_path / "blobs"), "http://blobs.test")
    app.state.payment_processor = RazorpayProcessor(
        processor_client, TEST_RAZORPAY_KEY, TEST_RAZORPAY_SECRET, "https://razorpay.test/v1"
    )

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await processor_client.aclose()
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def make_user(
    session_factory: async_sessionmaker[AsyncSession],
    role: UserRole = UserRole.CLIENT,
    status: UserStatus = UserStatus.ACTIVE,
    name: str | None = None,
    email: str | None = None,
) -> User:
    """Insert a user and return it."""
    suffix = uuid.uuid4().hex[:8]
    user = User(
        user_id=uuid.uuid4(),
        name=name or f"{role.value.title()} {suffix}",
        email=email or f"{role.value}-{suffix}@example.com",
        role=role,
        status=status,
    )
    async with session_factory() as session:
        session.add(user)
        await session.commit()
    return user


@pytest_asyncio.fixture
async def users(session_factory: async_sessionmaker[AsyncSession]) -> SimpleNamespace:
    """One admin, one client and two contributors."""
    return SimpleNamespace(
        admin=await make_user(session_factory, UserRole.ADMIN, name="Ada Admin"),
        client=await make_user(session_factory, UserRole.CLIENT, name="Cora Client"),
        contributor=await make_user(session_factory, UserRole.CONTRIBUTOR, name="Finn Freelancer"),
        other_contributor=await make_user(session_factory, UserRole.CONTRIBUTOR, name="Olga Other"),
    )


def auth(user: User) -> dict[str, str]:
    return {"X-Actor-Id": str(user.user_id)}


def sign_payment(order_id: str, payment_id: str) -> str:
    return compute_signature(TEST_RAZORPAY_SECRET, order_id, payment_id)


def verify_body(order_id: str, payment_id: str, payment_type: str, signature: str | None = None) -> dict:
    return {
        "razorpay_order_id": order_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": signature or sign_payment(order_id, payment_id),
        "paymentType": payment_type,
    }


async def post_job(client: AsyncClient, owner: User, price: str = "1000.00", **fields) -> dict:
    body = {"title": "Logo design", "description": "A clean vector logo", "price": price}
    body.update(fields)
    resp = await client.post("/jobs", json=body, headers=auth(owner))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


async def approved_job(client: AsyncClient, cast: SimpleNamespace, **fields) -> dict:
    job = await post_job(client, cast.client, **fields)
    resp = await client.post(f"/jobs/{job['jobId']}/approve", headers=auth(cast.admin))
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


async def pay(
    client: AsyncClient, owner: User, job_id: str, payment_type: str, payment_id: str | None = None
) -> dict:
    """Open an order for one leg and verify a correctly signed payment against it."""
    resp = await client.post(f"/payments/{payment_type}-order", json={"jobId": job_id}, headers=auth(owner))
    assert resp.status_code == 200, resp.text
    order_id = resp.json()["data"]["orderId"]
    payment_id = payment_id or f"pay_{uuid.uuid4().hex[:14]}"
    resp = await client.post(
        "/payments/verify", json=verify_body(order_id, payment_id, payment_type), headers=auth(owner)
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


async def funded_job(client: AsyncClient, cast: SimpleNamespace, **fields) -> dict:
    """A job that is approved and deposit-paid, ready to be claimed."""
    job = await approved_job(client, cast, **fields)
    return (await pay(client, cast.client, job["jobId"], "deposit"))["data"]


async def assigned_job(client: AsyncClient, cast: SimpleNamespace, **fields) -> dict:
    job = await funded_job(client, cast, **fields)
    resp = await client.post(f"/jobs/{job['jobId']}/apply", headers=auth(cast.contributor))
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


def upload_files(*names: str) -> list[tuple[str, tuple[str, bytes, str]]]:
    return [("files", (name, f"contents of {name}".encode(), "text/plain")) for name in names]


async def submit(
    client: AsyncClient,
    freelancer: User,
    job_id: str,
    names: tuple[str, ...] = ("logo.svg",),
    message: str = "Here you go",
    revision_id: str | None = None,
) -> httpx.Response:
    data = {"message": message}
    if revision_id is not None:
        data["revisionId"] = revision_id
    return await client.post(
        f"/jobs/{job_id}/submit-work",
        files=upload_files(*names),
        data=data,
        headers=auth(freelancer),
    )


async def delivered_job(client: AsyncClient, cast: SimpleNamespace, **fields) -> dict:
    job = await assigned_job(client, cast, **fields)
    resp = await submit(client, cast.contributor, job["jobId"])
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]

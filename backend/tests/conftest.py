"""
Pytest configuration: SQLite in-memory DB, in-memory Redis/Blob fakes
"""
from datetime import datetime
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
import redis
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fleetcare.core.database import Base, get_db
from fleetcare.core.rate_limit import limiter
from fleetcare.core.storage import BlobStore, get_blob_store
from fleetcare.models.plan import Plan
from fleetcare.models.user import User
from fleetcare.routers.deps import Identity, get_current_identity
from fleetcare.services import event_service, payment_service, subscription_service
import fleetcare.models  # noqa: F401

limiter.enabled = False

T0 = datetime(2024, 1, 15, 9, 0, 0)


class FakeRedis:
    """publish / set だけを記録する同期Redisの代用"""

    def __init__(self):
        self.published: list[tuple[str, str]] = []
        self.store: dict[str, str] = {}
        self.fail = False

    def publish(self, channel: str, message: str) -> int:
        if self.fail:
            raise redis.ConnectionError("redis down")
        self.published.append((channel, message))
        return 1

    def set(self, key: str, value: str, ex: int = None) -> bool:
        self.store[key] = value
        return True

    def channels(self) -> list[str]:
        return [c for c, _ in self.published]


class FakeBlobStore(BlobStore):
    """put/delete をメモリ上で行う。fail_after 件目以降の put は失敗させる"""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.fail_after = None
        self.puts = 0

    def put(self, path: str, data: bytes, content_type: str) -> str:
        if self.fail_after is not None and self.puts >= self.fail_after:
            raise OSError("storage unavailable")
        self.puts += 1
        self.objects[path] = data
        return f"https://media.test/{path}"

    def delete(self, path: str) -> None:
        self.deleted.append(path)
        self.objects.pop(path, None)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch) -> FakeRedis:
    fake = FakeRedis()
    monkeypatch.setattr(event_service, "get_sync_redis", lambda: fake)
    return fake


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


# --- シードデータ ---

def make_user(db, role: str, email: str, full_name: str = "", phone: str = None) -> User:
    user = User(email=email, full_name=full_name or email.split("@")[0], phone=phone, role=role, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_plan(db, price: int = 100, billing_cycle: str = "monthly", max_vehicles: int = 3,
              plan_name: str = "Basic Care", is_active: bool = True) -> Plan:
    plan = Plan(
        plan_name=plan_name,
        plan_type="standard",
        plan_category="cardoc",
        billing_cycle=billing_cycle,
        price=price,
        visits_per_month=1,
        max_vehicles=max_vehicles,
        is_active=is_active,
    )
    db.add(plan)
    db.commit()
    db.refresh(plan)
    return plan


@pytest.fixture
def customer(db) -> User:
    return make_user(db, "customer", "customer@example.com", "Dana Customer", "+1-555-0100")


@pytest.fixture
def admin(db) -> User:
    return make_user(db, "admin", "admin@example.com")


@pytest.fixture
def technician(db) -> User:
    return make_user(db, "technician", "tech-a@example.com")


@pytest.fixture
def technician_b(db) -> User:
    return make_user(db, "technician", "tech-b@example.com")


@pytest.fixture
def plan(db) -> Plan:
    return make_plan(db)


@pytest.fixture
def pending_subscription(db, customer, plan):
    return subscription_service.create_subscription(
        db, customer.id, plan.id, vehicle_count=1,
        vehicles=[{"make": "Toyota", "model": "Corolla", "year": 2019}],
        now=T0,
    )


@pytest.fixture
def active_subscription(db, pending_subscription, admin):
    payment_service.submit_payment_evidence(db, pending_subscription.id, pending_subscription.customer_id,
                                            "bank_transfer", "TX123")
    payment_service.confirm_payment(db, pending_subscription.id, admin.id)
    db.refresh(pending_subscription)
    return pending_subscription


# --- API ---

@pytest.fixture
def app(engine):
    from fleetcare.main import app

    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def _override_get_db():
        session = factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def login(app):
    """login(user) で以降のリクエストをそのユーザーとして送る。login(None) で未ログイン"""

    def _login(user):
        identity = Identity(user_id=user.id, role=user.role) if user else None
        app.dependency_overrides[get_current_identity] = lambda: identity

    _login(None)
    return _login


@pytest.fixture
def api_blob_store(app, blob_store) -> FakeBlobStore:
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    return blob_store


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client

"""
Pytest configuration and fixtures for Butik tests.

Each test gets its own in-memory SQLite database (aiosqlite) with the full
schema created, so services run against real SQL rather than mocks.
"""
import os
import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-for-unit-tests-only-0123456789"

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from butik.core.config import settings
from butik.core.database import build_sessionmaker, init_models
from butik.models import Order, OrderItem, Product, User


@pytest.fixture
def mock_db() -> AsyncMock:
    """Create mock async database session."""
    db = AsyncMock()
    db.add = MagicMock()
    db.flush = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.execute = AsyncMock()
    return db


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path))
    return tmp_path


@pytest.fixture
def make_user(session_factory):
    async def _make(name: str = "Budi", role: str = "user", email: str = None) -> User:
        async with session_factory() as session:
            user = User(name=name, email=email or f"{uuid.uuid4().hex[:10]}@example.com", role=role)
            session.add(user)
            await session.commit()
            return user
    return _make


@pytest.fixture
def make_product(session_factory):
    async def _make(name: str = "Kemeja Batik", price: str = "150000", stock: int = 10) -> Product:
        async with session_factory() as session:
            product = Product(name=name, price=Decimal(price), stock=stock)
            session.add(product)
            await session.commit()
            return product
    return _make


@pytest.fixture
def make_order(session_factory):
    """Insert an order directly, bypassing the service, e.g. with a fixed created_at."""
    async def _make(user_id: int, lines, status: str = "belum_bayar",
                    shipping_cost: str = "0", created_at=None, transfer_proof: str = None) -> Order:
        async with session_factory() as session:
            items = [
                OrderItem(
                    product_id=product_id,
                    product_name=name,
                    quantity=quantity,
                    unit_price=Decimal(price),
                )
                for product_id, name, quantity, price in lines
            ]
            subtotal = sum((item.unit_price * item.quantity for item in items), Decimal("0"))
            order = Order(
                user_id=user_id,
                status=status,
                shipping_method="JNE",
                shipping_address="Jl. Merdeka 1, Bandung",
                shipping_cost=Decimal(shipping_cost),
                total_price=subtotal + Decimal(shipping_cost),
                transfer_proof=transfer_proof,
                items=items,
            )
            if created_at is not None:
                order.created_at = created_at
            session.add(order)
            await session.commit()
            return order
    return _make


@pytest.fixture
async def client(session_factory, upload_dir):
    """HTTP client against the app with get_db bound to the test database."""
    from httpx import ASGITransport, AsyncClient

    from butik.core.database import get_db
    from butik.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    from butik.core.security import create_access_token

    def _headers(user: User) -> dict:
        token = create_access_token({"sub": user.id, "role": user.role})
        return {"Authorization": f"Bearer {token}"}
    return _headers

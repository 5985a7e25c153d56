import os
import tempfile

# Settings are read at import time, so the environment has to be ready first
_DB_PATH = os.path.join(tempfile.gettempdir(), f"auction_commerce_test_{os.getpid()}.db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_PATH}"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["INTERNAL_API_KEY"] = "test-internal-key"
os.environ["TRACING_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["AUCTION_SCHEDULER_ENABLED"] = "false"
os.environ["AUCTION_SWEEP_CONCURRENCY"] = "1"

from datetime import timedelta
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from helpers import FakeGateway
from main import app
from services.auth_service.models import User
from services.bid_service.models import Bid
from services.payment_service.gateway import get_payment_gateway
from services.product_service.models import Product, ProductKind
from shared.config.database import AsyncSessionLocal, Base, engine
from shared.timeutils import utcnow


@pytest.fixture(autouse=True)
async def database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


@pytest.fixture
async def db():
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
def gateway():
    fake = FakeGateway()
    app.dependency_overrides[get_payment_gateway] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_payment_gateway, None)


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_user(db):
    async def _make(name="Buyer", email=None):
        user = User(
            name=name,
            email=email or f"{name.lower().replace(' ', '.')}@example.com",
            hashed_password="not-a-real-hash",
        )
        db.add(user)
        await db.commit()
        return user
    return _make


@pytest.fixture
def make_fixed_product(db):
    async def _make(price="10.00", stock=5, name="Mug"):
        product = Product(
            name=name,
            description=f"{name} for sale",
            kind=ProductKind.FIXED_PRICE.value,
            price=Decimal(price),
            stock=stock,
        )
        db.add(product)
        await db.commit()
        return product
    return _make


@pytest.fixture
def make_auction(db):
    async def _make(starting_price="100.00", ends_in=timedelta(hours=1), name="Painting"):
        product = Product(
            name=name,
            description=f"{name} up for auction",
            kind=ProductKind.AUCTION.value,
            starting_price=Decimal(starting_price),
            auction_end_time=utcnow() + ends_in,
        )
        db.add(product)
        await db.commit()
        return product
    return _make


@pytest.fixture
def make_bid(db):
    async def _make(product, user, amount, created_at=None):
        bid = Bid(product_id=product.id, user_id=user.id, amount=Decimal(amount), created_at=created_at or utcnow())
        db.add(bid)
        await db.commit()
        return bid
    return _make

"""Pytest fixtures for the order core tests."""

import os
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.database import Base, build_engine, get_db
from app.main import app
from app.models import (
    Coupon,
    FlashSale,
    FlashSaleEntry,
    Order,
    Product,
    ProductStatus,
    Vendor,
)
from app.schemas.auth import Actor, UserRole
from app.schemas.checkout import CartLineInput, CheckoutRequest, ShippingAddress
from app.services.checkout_service import CheckoutService
from app.services.order_service import OrderService

# Full lifecycle of a home delivery after checkout
TO_DELIVERED = ("ready-for-pickup", "picked-up", "at-depot", "out-for-delivery", "delivered")


# ==================== Database ====================

@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite so separate sessions see each other's commits."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    """API client bound to the test database."""
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
def strict_transitions(monkeypatch):
    """Force a strictness setting for one test."""
    def _set(value: bool):
        monkeypatch.setattr(settings, "ORDER_STRICT_TRANSITIONS", value)
    return _set


# ==================== Actors ====================

@pytest.fixture
def customer():
    return Actor(id=uuid.uuid4(), name="Awa", role=UserRole.CUSTOMER)


@pytest.fixture
def seller():
    return Actor(id=uuid.uuid4(), name="Jean", role=UserRole.SELLER, shop_name="Boutique Akwa")


@pytest.fixture
def admin():
    return Actor(id=uuid.uuid4(), name="Grace", role=UserRole.SUPERADMIN)


@pytest.fixture
def depot_agent():
    return Actor(id=uuid.uuid4(), name="Paul", role=UserRole.DEPOT_AGENT, depot_id="DEPOT-DLA")


@pytest.fixture
def delivery_agent():
    return Actor(id=uuid.uuid4(), name="Ibrahim", role=UserRole.DELIVERY_AGENT)


def make_token(actor: Actor, **overrides) -> str:
    """Sign a token the way the identity service does."""
    claims = {
        "sub": str(actor.id),
        "name": actor.name,
        "role": actor.role.value,
        "type": "access",
        "exp": datetime.now(timezone.utc) + timedelta(minutes=30),
    }
    if actor.shop_name:
        claims["shop_name"] = actor.shop_name
    if actor.depot_id:
        claims["depot_id"] = actor.depot_id
    claims.update(overrides)
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def auth(actor: Actor) -> dict:
    return {"Authorization": f"Bearer {make_token(actor)}"}


# ==================== Factories ====================

def make_product(**kwargs) -> Product:
    defaults = dict(
        id=uuid.uuid4(),
        name="Pagne wax",
        vendor_name="Boutique Akwa",
        price=Decimal("3000"),
        stock=10,
        status=ProductStatus.PUBLISHED.value,
    )
    defaults.update(kwargs)
    return Product(**defaults)


def make_order(status: str = "confirmed", **kwargs) -> Order:
    """Transient order with empty histories, for pure state machine tests."""
    defaults = dict(
        id=uuid.uuid4(),
        tracking_number="KZ1700000000000",
        customer_id=uuid.uuid4(),
        status=status,
        subtotal=Decimal("0"),
        total=Decimal("0"),
        delivery_method="home-delivery",
        status_history=[],
        tracking_events=[],
        dispute_messages=[],
        items=[],
    )
    defaults.update(kwargs)
    return Order(**defaults)


def make_flash_sale(start: datetime, end: datetime, entries=()) -> FlashSale:
    return FlashSale(id=uuid.uuid4(), name="Black Friday", start_date=start, end_date=end, entries=list(entries))


def make_flash_entry(product_id, price, status="approved") -> FlashSaleEntry:
    return FlashSaleEntry(
        id=uuid.uuid4(),
        product_id=product_id,
        seller_shop_name="Boutique Akwa",
        flash_price=Decimal(price),
        status=status,
    )


def make_coupon(**kwargs) -> Coupon:
    defaults = dict(
        id=uuid.uuid4(),
        code="BIENVENUE10",
        discount_type="percentage",
        discount_value=Decimal("10"),
        used_count=0,
        seller_id=uuid.uuid4(),
        is_active=True,
    )
    defaults.update(kwargs)
    return Coupon(**defaults)


@pytest_asyncio.fixture
async def catalog(db):
    """Two stores in two cities, one product each."""
    akwa = Vendor(id=uuid.uuid4(), name="Boutique Akwa", city="Douala")
    bastos = Vendor(id=uuid.uuid4(), name="Maison Bastos", city="Yaoundé")
    wax = make_product(
        name="Pagne wax",
        vendor_name="Boutique Akwa",
        price=Decimal("3000"),
        additional_shipping_fee=Decimal("1000"),
        stock=5,
    )
    sandals = make_product(
        name="Sandales cuir",
        vendor_name="Maison Bastos",
        price=Decimal("5000"),
        stock=8,
        variants=[{"name": "Taille", "options": ["40", "42"]}],
        variant_details=[
            {"options": {"Taille": "40"}, "stock": 3},
            {"options": {"Taille": "42"}, "stock": 1, "price": 5500},
        ],
    )
    db.add_all([akwa, bastos, wax, sandals])
    await db.commit()
    return {"akwa": akwa, "bastos": bastos, "wax": wax, "sandals": sandals}


def home_delivery_request(*items, city="Douala", **kwargs) -> CheckoutRequest:
    """Checkout request for (product, quantity[, variant]) tuples."""
    return CheckoutRequest(
        items=[
            CartLineInput(
                product_id=item[0].id,
                quantity=item[1],
                selected_variant=item[2] if len(item) > 2 else None,
            )
            for item in items
        ],
        shipping_address=ShippingAddress(full_name="Awa Nkongo", address="Rue Joss", city=city),
        **kwargs,
    )


@pytest_asyncio.fixture
async def placed_order(db, catalog, customer):
    """Two wax pagnes ordered for home delivery in Douala."""
    order = await CheckoutService(db).place_order(
        home_delivery_request((catalog["wax"], 2)),
        customer,
    )
    await db.commit()
    return order


async def advance(db, order, *statuses, actor=None):
    """Walk an order through statuses as an administrator."""
    actor = actor or Actor(id=uuid.uuid4(), name="Ops", role=UserRole.SUPERADMIN)
    service = OrderService(db)
    for status in statuses:
        order = await service.update_status(order.id, status, actor)
    await db.commit()
    return order

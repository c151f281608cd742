"""Pytest fixtures for storefront tests."""

import os
import tempfile
import uuid
from decimal import Decimal

_DB_DIR = tempfile.mkdtemp(prefix="storefront-tests-")

# Settings are read once at import time
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_DIR}/test.db"
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret"

import pytest

from storefront.core.database import AsyncSessionLocal, SessionLocal, sync_engine
from storefront.core.security import SecurityUtils
from storefront.services.order_notification import OrderNotificationService
from storefront.models import (
    Address,
    Base,
    Cart,
    CartItem,
    Coupon,
    DiscountType,
    Product,
    ProductVariant,
    User,
)


class RecordingSender:
    """Notification sender that remembers what it was asked to send."""

    def __init__(self):
        self.sent = []

    async def send_order_confirmation(self, to_email, order_number, totals):
        self.sent.append((to_email, order_number, totals))


class FailingSender:
    async def send_order_confirmation(self, to_email, order_number, totals):
        raise RuntimeError("SMTP server unreachable")


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_db():
    """Fresh schema for every test."""
    Base.metadata.drop_all(sync_engine)
    Base.metadata.create_all(sync_engine)
    yield


@pytest.fixture
async def db():
    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
def make_user():
    def _make(email=None, role="customer"):
        with SessionLocal() as session:
            user = User(
                email=email or f"{uuid.uuid4().hex[:8]}@example.com",
                first_name="Asha",
                last_name="Rao",
                role=role,
            )
            session.add(user)
            session.commit()
            return user

    return _make


@pytest.fixture
def make_product():
    """Create a product with one variant per (price, stock) pair."""

    def _make(name="Linen Shirt", variants=((Decimal("1000.00"), 10),), is_active=True):
        with SessionLocal() as session:
            slug = f"{name.lower().replace(' ', '-')}-{uuid.uuid4().hex[:6]}"
            product = Product(
                name=name,
                slug=slug,
                price=Decimal(variants[0][0]),
                images=[f"https://cdn.example.com/{slug}.jpg"],
                is_active=is_active,
            )
            for index, (price, stock) in enumerate(variants):
                product.variants.append(ProductVariant(
                    name=f"Size {index + 1}",
                    sku=f"{slug}-{index}".upper(),
                    price=Decimal(price),
                    stock=stock,
                    size=str(index + 1),
                    color="Blue",
                ))
            session.add(product)
            session.commit()
            session.refresh(product)
            return product, list(product.variants)

    return _make


@pytest.fixture
def add_to_cart():
    def _add(user, variant, quantity=1):
        with SessionLocal() as session:
            cart = session.query(Cart).filter(Cart.user_id == user.id).one_or_none()
            if cart is None:
                cart = Cart(user_id=user.id)
                session.add(cart)
                session.flush()
            session.add(CartItem(
                cart_id=cart.id,
                product_id=variant.product_id,
                variant_id=variant.id,
                quantity=quantity,
            ))
            session.commit()

    return _add


@pytest.fixture
def make_address():
    def _make(user, **overrides):
        values = dict(
            first_name="Asha",
            last_name="Rao",
            address1="12 MG Road",
            city="Bengaluru",
            state="Karnataka",
            postal_code="560001",
            country="India",
            phone="9876543210",
        )
        values.update(overrides)
        with SessionLocal() as session:
            address = Address(user_id=user.id, **values)
            session.add(address)
            session.commit()
            return address

    return _make


@pytest.fixture
def make_coupon():
    def _make(code="FLAT500", discount_type=DiscountType.FIXED, discount_value="500", **overrides):
        overrides.setdefault("used_count", 0)
        with SessionLocal() as session:
            coupon = Coupon(
                code=code,
                discount_type=discount_type,
                discount_value=Decimal(discount_value),
                **overrides,
            )
            session.add(coupon)
            session.commit()
            return coupon

    return _make


@pytest.fixture
def stock_of():
    def _stock(variant):
        with SessionLocal() as session:
            return session.get(ProductVariant, variant.id).stock

    return _stock


@pytest.fixture
def coupon_uses():
    def _uses(code):
        with SessionLocal() as session:
            return session.query(Coupon).filter(Coupon.code == code).one().used_count

    return _uses


@pytest.fixture
def shipping_address():
    return {
        "first_name": "Asha",
        "last_name": "Rao",
        "address1": "12 MG Road",
        "city": "Bengaluru",
        "state": "Karnataka",
        "postal_code": "560001",
        "country": "India",
        "phone": "9876543210",
    }


@pytest.fixture
def auth_headers():
    def _headers(user, role=None):
        token = SecurityUtils.create_access_token({
            "sub": str(user.id),
            "email": user.email,
            "role": role or user.role,
        })
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def notifications(sender):
    return OrderNotificationService(sender=sender, timeout=5)


@pytest.fixture
def failing_notifications():
    return OrderNotificationService(sender=FailingSender(), timeout=5)

"""Tests for order placement."""

import asyncio
from decimal import Decimal
import uuid

import pytest

from storefront.api.v1.cart.services import CartService
from storefront.api.v1.orders.schemas import OrderCreate
from storefront.api.v1.orders.services import OrderService
from storefront.core.database import AsyncSessionLocal, SessionLocal
from storefront.core.exceptions import (
    BadRequestException,
    EmptyCartException,
    InsufficientStockException,
    NotFoundException,
    OrderNumberConflictException,
    StockConflictException,
)
from storefront.models import Cart, CartItem, Order, OrderStatus, PaymentStatus, ProductVariant

pytestmark = pytest.mark.anyio


def checkout_payload(shipping_address, **overrides):
    return OrderCreate(shipping_address=shipping_address, **overrides)


def cart_size(user):
    with SessionLocal() as session:
        return (
            session.query(CartItem)
            .join(Cart, Cart.id == CartItem.cart_id)
            .filter(Cart.user_id == user.id)
            .count()
        )


def order_count():
    with SessionLocal() as session:
        return session.query(Order).count()


def set_stock(variant, stock):
    with SessionLocal() as session:
        session.get(ProductVariant, variant.id).stock = stock
        session.commit()


class TestCreateOrder:
    async def test_places_order_from_cart(self, db, make_user, make_product, add_to_cart, stock_of, shipping_address):
        user = make_user()
        _, (variant,) = make_product(variants=[("1000", 5)])
        add_to_cart(user, variant, 2)

        order = await OrderService(db).create_order(user.id, checkout_payload(shipping_address))

        assert order.order_number.startswith("ORD-")
        assert order.status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.PENDING
        assert order.subtotal == Decimal("2000.00")
        assert order.shipping == Decimal("99.00")
        assert order.tax == Decimal("360.00")
        assert order.total == Decimal("2459.00")
        assert len(order.items) == 1
        assert order.items[0].quantity == 2
        assert order.items[0].variant_sku == variant.sku
        assert stock_of(variant) == 3
        assert cart_size(user) == 0

    async def test_free_shipping(self, db, make_user, make_product, add_to_cart, shipping_address):
        user = make_user()
        _, (variant,) = make_product(variants=[("2000", 5)])
        add_to_cart(user, variant, 2)

        order = await OrderService(db).create_order(user.id, checkout_payload(shipping_address))

        assert order.shipping == Decimal("0.00")
        assert order.total == Decimal("4720.00")

    async def test_fixed_coupon(self, db, make_user, make_product, add_to_cart, make_coupon, coupon_uses, shipping_address):
        user = make_user()
        _, (variant,) = make_product(variants=[("2000", 5)])
        add_to_cart(user, variant, 2)
        make_coupon(code="FLAT500", min_order_value=Decimal("3000"))

        order = await OrderService(db).create_order(
            user.id, checkout_payload(shipping_address, coupon_code="flat500")
        )

        assert order.discount == Decimal("500.00")
        assert order.tax == Decimal("630.00")
        assert order.total == Decimal("4130.00")
        assert order.coupon_code == "FLAT500"
        assert coupon_uses("FLAT500") == 1

    async def test_invalid_coupon_gives_no_discount(self, db, make_user, make_product, add_to_cart, make_coupon, coupon_uses, shipping_address):
        user = make_user()
        _, (variant,) = make_product(variants=[("1000", 5)])
        add_to_cart(user, variant, 2)
        make_coupon(code="FLAT500", min_order_value=Decimal("3000"))

        order = await OrderService(db).create_order(
            user.id, checkout_payload(shipping_address, coupon_code="FLAT500")
        )

        assert order.discount == Decimal("0.00")
        assert order.coupon_code is None
        assert order.total == Decimal("2459.00")
        assert coupon_uses("FLAT500") == 0

    async def test_unknown_coupon_does_not_abort(self, db, make_user, make_product, add_to_cart, shipping_address):
        user = make_user()
        _, (variant,) = make_product()
        add_to_cart(user, variant, 1)

        order = await OrderService(db).create_order(
            user.id, checkout_payload(shipping_address, coupon_code="GHOST")
        )

        assert order.discount == Decimal("0.00")

    async def test_empty_cart(self, db, make_user, shipping_address):
        with pytest.raises(EmptyCartException):
            await OrderService(db).create_order(make_user().id, checkout_payload(shipping_address))

    async def test_precheck_names_product(self, db, make_user, make_product, add_to_cart, stock_of, shipping_address):
        user = make_user()
        _, (variant,) = make_product(name="Silk Saree", variants=[("1000", 3)])
        add_to_cart(user, variant, 3)
        set_stock(variant, 2)

        with pytest.raises(InsufficientStockException) as exc_info:
            await OrderService(db).create_order(user.id, checkout_payload(shipping_address))

        assert exc_info.value.error_code == "INSUFFICIENT_STOCK"
        assert "Silk Saree" in exc_info.value.detail
        assert stock_of(variant) == 2
        assert cart_size(user) == 1
        assert order_count() == 0

    async def test_second_buyer_of_last_unit_is_refused(self, db, make_user, make_product, add_to_cart, stock_of, shipping_address):
        first, second = make_user(), make_user()
        _, (variant,) = make_product(variants=[("1000", 1)])
        add_to_cart(first, variant, 1)
        add_to_cart(second, variant, 1)
        service = OrderService(db)

        await service.create_order(first.id, checkout_payload(shipping_address))
        with pytest.raises(InsufficientStockException):
            await service.create_order(second.id, checkout_payload(shipping_address))

        assert stock_of(variant) == 0
        assert order_count() == 1

    async def test_simultaneous_checkouts_for_last_unit(self, make_user, make_product, add_to_cart, stock_of, shipping_address):
        buyers = [make_user(), make_user()]
        _, (variant,) = make_product(variants=[("1000", 1)])
        for buyer in buyers:
            add_to_cart(buyer, variant, 1)

        async def checkout(buyer):
            async with AsyncSessionLocal() as session:
                return await OrderService(session).create_order(buyer.id, checkout_payload(shipping_address))

        results = await asyncio.gather(*(checkout(buyer) for buyer in buyers), return_exceptions=True)

        placed = [result for result in results if isinstance(result, Order)]
        refused = [result for result in results if isinstance(result, InsufficientStockException)]
        assert len(placed) == 1
        assert len(refused) == 1
        assert stock_of(variant) == 0
        assert order_count() == 1

    async def test_failed_reserve_rolls_back_everything(self, db, make_user, make_product, add_to_cart, make_coupon, stock_of, coupon_uses, shipping_address):
        user = make_user()
        _, (plenty, scarce) = make_product(variants=[("2000", 5), ("2000", 1)])
        add_to_cart(user, plenty, 1)
        add_to_cart(user, scarce, 1)
        make_coupon(code="FLAT500")

        service = OrderService(db)
        lines = await CartService(db).get_checkout_lines(user.id)

        async def stale_lines(user_id):
            return lines

        # Another checkout takes the last unit after the snapshot was read
        set_stock(scarce, 0)
        service.cart_service.get_checkout_lines = stale_lines

        with pytest.raises(StockConflictException) as exc_info:
            await service.create_order(user.id, checkout_payload(shipping_address, coupon_code="FLAT500"))

        assert isinstance(exc_info.value, InsufficientStockException)
        assert exc_info.value.status_code == 409
        assert exc_info.value.error_code == "STOCK_CONFLICT"
        assert stock_of(plenty) == 5
        assert stock_of(scarce) == 0
        assert coupon_uses("FLAT500") == 0
        assert cart_size(user) == 2
        assert order_count() == 0

    async def test_order_number_collision_is_retried(self, db, make_user, make_product, add_to_cart, stock_of, shipping_address):
        first, second = make_user(), make_user()
        _, (variant,) = make_product(variants=[("1000", 5)])
        add_to_cart(first, variant, 1)
        add_to_cart(second, variant, 1)
        service = OrderService(db)
        existing = await service.create_order(first.id, checkout_payload(shipping_address))

        numbers = iter([existing.order_number, "ORD-RETRY-0001"])
        service.generate_order_number = lambda: next(numbers)
        order = await service.create_order(second.id, checkout_payload(shipping_address))

        assert order.order_number == "ORD-RETRY-0001"
        assert stock_of(variant) == 3
        assert order_count() == 2

    async def test_order_number_attempts_exhausted(self, db, make_user, make_product, add_to_cart, stock_of, shipping_address):
        first, second = make_user(), make_user()
        _, (variant,) = make_product(variants=[("1000", 5)])
        add_to_cart(first, variant, 1)
        add_to_cart(second, variant, 1)
        service = OrderService(db)
        existing = await service.create_order(first.id, checkout_payload(shipping_address))

        taken = existing.order_number
        service.generate_order_number = lambda: taken
        with pytest.raises(OrderNumberConflictException):
            await service.create_order(second.id, checkout_payload(shipping_address))

        assert stock_of(variant) == 4
        assert cart_size(second) == 1

    async def test_items_are_snapshots(self, db, make_user, make_product, add_to_cart, shipping_address):
        user = make_user()
        _, (variant,) = make_product(variants=[("1000", 5)])
        add_to_cart(user, variant, 1)
        service = OrderService(db)
        order = await service.create_order(user.id, checkout_payload(shipping_address))

        with SessionLocal() as session:
            live = session.get(ProductVariant, variant.id)
            live.price = Decimal("1500")
            live.name = "Renamed"
            session.commit()

        reloaded = await service.get_order(order.id)
        assert reloaded.items[0].unit_price == Decimal("1000.00")
        assert reloaded.items[0].variant_name == variant.name


class TestAddresses:
    async def test_saved_address_is_copied(self, db, make_user, make_product, add_to_cart, make_address):
        user = make_user()
        _, (variant,) = make_product()
        add_to_cart(user, variant, 1)
        address = make_address(user, city="Mysuru")

        order = await OrderService(db).create_order(user.id, OrderCreate(shipping_address_id=address.id))

        assert order.shipping_address["city"] == "Mysuru"
        assert order.billing_address == order.shipping_address

    async def test_separate_billing_address(self, db, make_user, make_product, add_to_cart, shipping_address):
        user = make_user()
        _, (variant,) = make_product()
        add_to_cart(user, variant, 1)
        billing = dict(shipping_address, city="Chennai", state="Tamil Nadu")

        order = await OrderService(db).create_order(
            user.id,
            OrderCreate(shipping_address=shipping_address, billing_address=billing, same_as_shipping=False),
        )

        assert order.shipping_address["city"] == "Bengaluru"
        assert order.billing_address["city"] == "Chennai"

    async def test_other_users_address_is_not_found(self, db, make_user, make_product, add_to_cart, make_address):
        user, other = make_user(), make_user()
        _, (variant,) = make_product()
        add_to_cart(user, variant, 1)
        address = make_address(other)

        with pytest.raises(NotFoundException) as exc_info:
            await OrderService(db).create_order(user.id, OrderCreate(shipping_address_id=address.id))

        assert exc_info.value.error_code == "ADDRESS_NOT_FOUND"

    async def test_shipping_address_required(self, db, make_user, make_product, add_to_cart):
        user = make_user()
        _, (variant,) = make_product()
        add_to_cart(user, variant, 1)

        with pytest.raises(BadRequestException) as exc_info:
            await OrderService(db).create_order(user.id, OrderCreate())

        assert exc_info.value.error_code == "ADDRESS_REQUIRED"

    async def test_billing_required_when_not_same(self, db, make_user, make_product, add_to_cart, shipping_address):
        user = make_user()
        _, (variant,) = make_product()
        add_to_cart(user, variant, 1)

        with pytest.raises(BadRequestException):
            await OrderService(db).create_order(
                user.id, OrderCreate(shipping_address=shipping_address, same_as_shipping=False)
            )


class TestConfirmationNotification:
    async def test_confirmation_sent_after_commit(self, db, make_user, make_product, add_to_cart, notifications, sender, shipping_address):
        user = make_user()
        _, (variant,) = make_product(variants=[("1000", 5)])
        add_to_cart(user, variant, 2)

        order = await OrderService(db, notifications).create_order(
            user.id, checkout_payload(shipping_address), email="buyer@example.com"
        )
        await notifications.join()

        ((to_email, order_number, totals),) = sender.sent
        assert to_email == "buyer@example.com"
        assert order_number == order.order_number
        assert totals["total"] == Decimal("2459.00")

    async def test_falls_back_to_account_email(self, db, make_user, make_product, add_to_cart, notifications, sender, shipping_address):
        user = make_user(email="account@example.com")
        _, (variant,) = make_product()
        add_to_cart(user, variant, 1)

        await OrderService(db, notifications).create_order(user.id, checkout_payload(shipping_address))
        await notifications.join()

        assert sender.sent[0][0] == "account@example.com"

    async def test_failing_sender_does_not_fail_checkout(self, db, make_user, make_product, add_to_cart, failing_notifications, stock_of, shipping_address):
        user = make_user()
        _, (variant,) = make_product(variants=[("1000", 5)])
        add_to_cart(user, variant, 1)

        order = await OrderService(db, failing_notifications).create_order(
            user.id, checkout_payload(shipping_address), email="buyer@example.com"
        )
        await failing_notifications.join()

        assert order.id is not None
        assert stock_of(variant) == 4
        assert order_count() == 1

    async def test_no_confirmation_for_failed_checkout(self, db, make_user, notifications, sender, shipping_address):
        with pytest.raises(EmptyCartException):
            await OrderService(db, notifications).create_order(
                make_user().id, checkout_payload(shipping_address), email="buyer@example.com"
            )
        await notifications.join()

        assert sender.sent == []


class TestOrderQueries:
    async def test_get_by_order_number(self, db, make_user, make_product, add_to_cart, shipping_address):
        user = make_user()
        _, (variant,) = make_product()
        add_to_cart(user, variant, 1)
        service = OrderService(db)
        order = await service.create_order(user.id, checkout_payload(shipping_address))

        found = await service.get_order(order.order_number.lower(), user_id=user.id)

        assert found.id == order.id

    async def test_other_users_order_is_not_found(self, db, make_user, make_product, add_to_cart, shipping_address):
        user, other = make_user(), make_user()
        _, (variant,) = make_product()
        add_to_cart(user, variant, 1)
        service = OrderService(db)
        order = await service.create_order(user.id, checkout_payload(shipping_address))

        with pytest.raises(NotFoundException):
            await service.get_order(order.id, user_id=other.id)

    async def test_unknown_order(self, db):
        with pytest.raises(NotFoundException):
            await OrderService(db).get_order(uuid.uuid4())

    async def test_list_orders_paginates(self, db, make_user, make_product, add_to_cart, shipping_address):
        user = make_user()
        _, (variant,) = make_product(variants=[("100", 10)])
        service = OrderService(db)
        for _ in range(3):
            add_to_cart(user, variant, 1)
            await service.create_order(user.id, checkout_payload(shipping_address))

        orders, meta = await service.list_orders(user.id, page=1, limit=2)

        assert len(orders) == 2
        assert meta.total == 3
        assert meta.total_pages == 2
        assert meta.has_next

    async def test_admin_search_by_recipient(self, db, make_user, make_product, add_to_cart, shipping_address):
        first, second = make_user(), make_user()
        _, (variant,) = make_product(variants=[("100", 10)])
        service = OrderService(db)
        add_to_cart(first, variant, 1)
        await service.create_order(first.id, checkout_payload(shipping_address))
        add_to_cart(second, variant, 1)
        await service.create_order(second.id, checkout_payload(dict(shipping_address, first_name="Vikram")))

        orders, meta = await service.list_all_orders(search="vikram")

        assert meta.total == 1
        assert orders[0].user_id == second.id

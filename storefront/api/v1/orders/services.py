"""
Order service layer
Handles checkout, cancellation and status management
"""

from typing import Dict, Iterable, List, Optional, Tuple
import uuid
import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from storefront.models import Order, OrderItem, OrderStatus, PaymentStatus, Product, Address, User
from storefront.core.config import settings
from storefront.core.exceptions import (
    NotFoundException,
    BadRequestException,
    InsufficientStockException,
    InvalidStateException,
    OrderNotCancellableException,
    OrderNumberConflictException,
    StockConflictException,
)
from storefront.api.v1.cart.services import CartService, CartLine
from storefront.api.v1.coupons.services import CouponService
from storefront.api.v1.inventory.services import InventoryStore
from storefront.services.pricing import OrderTotals, calculate_subtotal, calculate_totals, to_money
from storefront.services.order_notification import OrderNotificationService
from storefront.utils.helpers import generate_order_number
from storefront.utils.pagination import paginate, PaginationMeta
from .schemas import OrderCreate, OrderResponse, OrderItemResponse, ProductSummary, VariantSnapshot
from .state_machine import OrderStateMachine, PaymentStateMachine

logger = logging.getLogger(__name__)

class OrderService:
    """Order service for business logic"""

    def __init__(self, db: AsyncSession, notifications: Optional[OrderNotificationService] = None):
        self.db = db
        self.cart_service = CartService(db)
        self.coupon_service = CouponService(db)
        self.inventory = InventoryStore(db)
        self.notifications = notifications
        self.state_machine = OrderStateMachine()
        self.payment_state_machine = PaymentStateMachine()

    def generate_order_number(self) -> str:
        return generate_order_number()

    async def create_order(
        self,
        user_id: uuid.UUID,
        data: OrderCreate,
        email: Optional[str] = None
    ) -> Order:
        """
        Place an order from the user's cart

        Everything up to the commit runs in one transaction: stock is
        reserved before the order row is written, and any failure rolls back
        the reservations, the coupon use and the order together. A clash on
        the order number discards the attempt and starts over with a new
        number.

        Args:
            user_id: Buyer user ID
            data: Checkout payload
            email: Confirmation recipient; looked up when not given

        Returns:
            The persisted order with its items

        Raises:
            EmptyCartException: cart missing or empty
            NotFoundException: product, variant or saved address missing
            BadRequestException: no usable shipping or billing address
            InsufficientStockException: pre-check failed
            StockConflictException: stock taken concurrently
            OrderNumberConflictException: no unique order number found
        """
        attempts = max(1, settings.ORDER_NUMBER_MAX_ATTEMPTS)

        for attempt in range(1, attempts + 1):
            try:
                order, totals = await self._place_order(user_id, data)
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                if not self._is_order_number_conflict(e):
                    raise
                logger.warning(f"Order number collision for user {user_id} (attempt {attempt}/{attempts})")
                continue
            except Exception:
                await self.db.rollback()
                raise
            break
        else:
            raise OrderNumberConflictException()

        logger.info(
            f"Order {order.order_number} placed by {user_id}: "
            f"{totals.item_count} items, total {totals.total}"
        )

        await self._notify_order_placed(user_id, order, totals, email)
        return await self.get_order(order.id)

    async def _place_order(self, user_id: uuid.UUID, data: OrderCreate) -> Tuple[Order, OrderTotals]:
        lines = await self.cart_service.get_checkout_lines(user_id)
        shipping_address, billing_address = await self._resolve_addresses(user_id, data)

        # Fail fast with a clear message before touching anything
        for line in lines:
            if line.available_stock < line.quantity:
                raise InsufficientStockException(line.product_name, line.available_stock, line.variant_name)

        subtotal = calculate_subtotal(lines)
        coupon, discount = await self.coupon_service.apply(data.coupon_code, subtotal)
        totals = calculate_totals(lines, discount)

        try:
            await self.inventory.reserve_many(lines)
        except InsufficientStockException as e:
            logger.warning(f"Stock for {e.product_name} taken concurrently during checkout by {user_id}")
            raise StockConflictException(e.product_name, e.available, e.variant_name) from e

        order = Order(
            order_number=self.generate_order_number(),
            user_id=user_id,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            payment_method=data.payment_method,
            shipping_address=shipping_address,
            billing_address=billing_address,
            subtotal=totals.subtotal,
            discount=totals.discount,
            tax=totals.tax,
            shipping=totals.shipping,
            total=totals.total,
            coupon_code=coupon.code if coupon else None,
            notes=data.notes,
            items=[self._snapshot_line(position, line) for position, line in enumerate(lines)],
        )
        self.db.add(order)
        await self.db.flush()

        await self.cart_service.clear_cart(user_id)
        return order, totals

    @staticmethod
    def _snapshot_line(position: int, line: CartLine) -> OrderItem:
        return OrderItem(
            position=position,
            product_id=line.product_id,
            variant_id=line.variant_id,
            variant_name=line.variant_name,
            variant_sku=line.variant_sku,
            variant_size=line.variant_size,
            variant_color=line.variant_color,
            quantity=line.quantity,
            unit_price=to_money(line.unit_price),
        )

    @staticmethod
    def _is_order_number_conflict(error: IntegrityError) -> bool:
        return "order_number" in str(error.orig)

    async def _resolve_address(
        self,
        user_id: uuid.UUID,
        address_id: Optional[uuid.UUID],
        payload,
        label: str
    ) -> Optional[dict]:
        if address_id:
            result = await self.db.execute(
                select(Address).where(Address.id == address_id, Address.user_id == user_id)
            )
            address = result.scalar_one_or_none()
            if not address:
                raise NotFoundException(f"{label} address not found", "ADDRESS_NOT_FOUND")
            return address.to_snapshot()
        if payload is not None:
            return payload.model_dump()
        return None

    async def _resolve_addresses(self, user_id: uuid.UUID, data: OrderCreate) -> Tuple[dict, dict]:
        shipping = await self._resolve_address(
            user_id, data.shipping_address_id, data.shipping_address, "Shipping"
        )
        if shipping is None:
            raise BadRequestException("Shipping address is required", "ADDRESS_REQUIRED")

        if data.same_as_shipping:
            return shipping, dict(shipping)

        billing = await self._resolve_address(
            user_id, data.billing_address_id, data.billing_address, "Billing"
        )
        if billing is None:
            raise BadRequestException("Billing address is required", "ADDRESS_REQUIRED")
        return shipping, billing

    async def _notify_order_placed(
        self,
        user_id: uuid.UUID,
        order: Order,
        totals: OrderTotals,
        email: Optional[str]
    ) -> None:
        if self.notifications is None:
            return
        try:
            if not email:
                email = await self.db.scalar(select(User.email).where(User.id == user_id))
            self.notifications.send_order_confirmation(email, order.order_number, totals.as_dict())
        except Exception:
            logger.exception(f"Could not schedule confirmation for order {order.order_number}")

    async def get_order(
        self,
        order_ref,
        user_id: Optional[uuid.UUID] = None
    ) -> Order:
        """
        Get order by id or order number

        Args:
            order_ref: Order UUID or order number
            user_id: Restrict to orders owned by this user

        Raises:
            NotFoundException: If order not found (or owned by someone else)
        """
        query = (
            select(Order)
            .options(selectinload(Order.items))
            .execution_options(populate_existing=True)
        )

        order_id = order_ref if isinstance(order_ref, uuid.UUID) else None
        if order_id is None:
            try:
                order_id = uuid.UUID(str(order_ref))
            except ValueError:
                order_id = None

        if order_id is not None:
            query = query.where(Order.id == order_id)
        else:
            query = query.where(Order.order_number == str(order_ref).upper())

        if user_id is not None:
            query = query.where(Order.user_id == user_id)

        result = await self.db.execute(query)
        order = result.scalar_one_or_none()

        if not order:
            raise NotFoundException("Order not found", "ORDER_NOT_FOUND")
        return order

    async def list_orders(
        self,
        user_id: uuid.UUID,
        status: Optional[OrderStatus] = None,
        page: int = 1,
        limit: int = 10
    ) -> Tuple[List[Order], PaginationMeta]:
        query = (
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
        )
        if status:
            query = query.where(Order.status == status)
        return await paginate(self.db, query, page, limit)

    async def list_all_orders(
        self,
        status: Optional[OrderStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Order], PaginationMeta]:
        """Admin listing with optional filters; search matches order number or recipient name"""
        query = (
            select(Order)
            .options(selectinload(Order.items))
            .order_by(Order.created_at.desc())
        )
        if status:
            query = query.where(Order.status == status)
        if payment_status:
            query = query.where(Order.payment_status == payment_status)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(or_(
                Order.order_number.ilike(pattern),
                Order.shipping_address["first_name"].as_string().ilike(pattern),
                Order.shipping_address["last_name"].as_string().ilike(pattern),
            ))
        return await paginate(self.db, query, page, limit)

    async def cancel_order(
        self,
        order_ref,
        user_id: Optional[uuid.UUID] = None
    ) -> Order:
        """
        Cancel an order and put its stock back

        The status flip is conditional on the order still being cancellable,
        so a concurrent cancel or shipment cannot release stock twice.

        Raises:
            OrderNotCancellableException: order is past CONFIRMED or already cancelled
        """
        order = await self.get_order(order_ref, user_id)
        cancellable = [s for s in OrderStatus if self.state_machine.is_cancellable(s)]

        if order.status not in cancellable:
            raise OrderNotCancellableException(
                f"Order cannot be cancelled in {order.status.value} status"
            )

        result = await self.db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status.in_(cancellable))
            .values(status=OrderStatus.CANCELLED)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise OrderNotCancellableException("Order status changed, it can no longer be cancelled")

        await self.inventory.release_many(order.items)
        await self.db.commit()

        logger.info(f"Order {order.order_number} cancelled, stock released for {len(order.items)} items")
        return await self.get_order(order.id)

    async def update_order_status(self, order_ref, new_status: OrderStatus) -> Order:
        """Admin status change following the order state machine"""
        order = await self.get_order(order_ref)

        if order.status == new_status:
            return order

        if new_status == OrderStatus.CANCELLED:
            return await self.cancel_order(order.id)

        if not self.state_machine.can_transition(order.status, new_status):
            raise InvalidStateException(
                f"Cannot change order status from {order.status.value} to {new_status.value}"
            )

        result = await self.db.execute(
            update(Order)
            .where(Order.id == order.id, Order.status == order.status)
            .values(status=new_status)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidStateException("Order status changed concurrently, reload and retry")

        await self.db.commit()
        logger.info(f"Order {order.order_number} status {order.status.value} -> {new_status.value}")
        return await self.get_order(order.id)

    async def update_payment_status(
        self,
        order_ref,
        new_status: PaymentStatus,
        payment_intent_id: Optional[str] = None
    ) -> Order:
        """
        Record a payment outcome

        PAID also confirms a PENDING order. Repeating the current status is a
        no-op so redelivered webhooks are harmless.
        """
        order = await self.get_order(order_ref)

        if order.payment_status == new_status:
            if payment_intent_id and order.payment_intent_id != payment_intent_id:
                order.payment_intent_id = payment_intent_id
                await self.db.commit()
            return order

        if not self.payment_state_machine.can_transition(order.payment_status, new_status):
            raise InvalidStateException(
                f"Cannot change payment status from {order.payment_status.value} to {new_status.value}"
            )

        values = {"payment_status": new_status}
        if payment_intent_id:
            values["payment_intent_id"] = payment_intent_id

        result = await self.db.execute(
            update(Order)
            .where(Order.id == order.id, Order.payment_status == order.payment_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidStateException("Payment status changed concurrently, reload and retry")

        if new_status == PaymentStatus.PAID:
            await self.db.execute(
                update(Order)
                .where(Order.id == order.id, Order.status == OrderStatus.PENDING)
                .values(status=OrderStatus.CONFIRMED)
                .execution_options(synchronize_session=False)
            )

        await self.db.commit()
        logger.info(
            f"Order {order.order_number} payment {order.payment_status.value} -> {new_status.value}"
        )
        return await self.get_order(order.id)

    async def set_payment_intent(self, order: Order, payment_intent_id: str) -> Order:
        order.payment_intent_id = payment_intent_id
        await self.db.commit()
        return order

    async def _product_summaries(self, product_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, ProductSummary]:
        product_ids = set(product_ids)
        if not product_ids:
            return {}
        result = await self.db.execute(select(Product).where(Product.id.in_(product_ids)))
        return {
            p.id: ProductSummary(id=p.id, name=p.name, slug=p.slug, image=p.thumbnail)
            for p in result.scalars().all()
        }

    def _build_response(self, order: Order, products: Dict[uuid.UUID, ProductSummary]) -> OrderResponse:
        items = [
            OrderItemResponse(
                id=item.id,
                product_id=item.product_id,
                product=products.get(item.product_id),
                variant=VariantSnapshot(**item.variant),
                quantity=item.quantity,
                unit_price=item.unit_price,
                line_total=to_money(item.line_total),
            )
            for item in order.items
        ]
        return OrderResponse(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            status=order.status,
            payment_status=order.payment_status,
            payment_method=order.payment_method,
            payment_intent_id=order.payment_intent_id,
            shipping_address=order.shipping_address,
            billing_address=order.billing_address,
            subtotal=order.subtotal,
            discount=order.discount,
            tax=order.tax,
            shipping=order.shipping,
            total=order.total,
            coupon_code=order.coupon_code,
            notes=order.notes,
            items=items,
            can_cancel=self.state_machine.is_cancellable(order.status),
            created_at=order.created_at,
            updated_at=order.updated_at,
        )

    async def to_response(self, order: Order) -> OrderResponse:
        """Order with product display data (name, slug, image)"""
        products = await self._product_summaries(item.product_id for item in order.items)
        return self._build_response(order, products)

    async def to_responses(self, orders: List[Order]) -> List[OrderResponse]:
        products = await self._product_summaries(
            item.product_id for order in orders for item in order.items
        )
        return [self._build_response(order, products) for order in orders]

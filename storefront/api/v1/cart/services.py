"""
Cart service layer
Handles shopping cart business logic and the checkout snapshot
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional
import uuid
import logging
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from sqlalchemy.orm import selectinload

from storefront.models import Cart, CartItem, Product, ProductVariant
from storefront.core.exceptions import (
    NotFoundException,
    EmptyCartException,
    InsufficientStockException,
)
from storefront.services.pricing import calculate_totals, to_money
from .schemas import CartItemCreate, CartItemResponse, CartResponse

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class CartLine:
    """A cart item resolved against the live catalog"""
    product_id: uuid.UUID
    product_name: str
    product_slug: str
    product_image: Optional[str]
    variant_id: uuid.UUID
    variant_name: str
    variant_sku: str
    variant_size: Optional[str]
    variant_color: Optional[str]
    unit_price: Decimal
    quantity: int
    available_stock: int

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)

class CartService:
    """Shopping cart service"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_cart(self, user_id: uuid.UUID, create: bool = False) -> Optional[Cart]:
        result = await self.db.execute(
            select(Cart)
            .options(selectinload(Cart.items))
            .where(Cart.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        cart = result.scalar_one_or_none()

        if cart is None and create:
            cart = Cart(user_id=user_id, items=[])
            self.db.add(cart)
            await self.db.flush()

        return cart

    async def _load_products(self, product_ids) -> Dict[uuid.UUID, Product]:
        if not product_ids:
            return {}
        result = await self.db.execute(
            select(Product)
            .options(selectinload(Product.variants))
            .where(Product.id.in_(set(product_ids)))
            .execution_options(populate_existing=True)
        )
        return {product.id: product for product in result.scalars().all()}

    async def get_checkout_lines(self, user_id: uuid.UUID) -> List[CartLine]:
        """
        Resolve the user's cart into priced lines

        Read-only. Fails as a whole if anything in the cart no longer resolves.

        Raises:
            EmptyCartException: no cart or no items
            NotFoundException: a product or variant is gone
        """
        cart = await self.get_user_cart(user_id)
        if not cart or not cart.items:
            raise EmptyCartException()

        products = await self._load_products([item.product_id for item in cart.items])

        lines = []
        for item in cart.items:
            product = products.get(item.product_id)
            if product is None or not product.is_active:
                raise NotFoundException(
                    f"Product {item.product_id} is no longer available", "PRODUCT_NOT_FOUND"
                )

            variant = next((v for v in product.variants if v.id == item.variant_id), None)
            if variant is None:
                raise NotFoundException(
                    f"Variant {item.variant_id} of {product.name} no longer exists", "VARIANT_NOT_FOUND"
                )

            lines.append(CartLine(
                product_id=product.id,
                product_name=product.name,
                product_slug=product.slug,
                product_image=product.thumbnail,
                variant_id=variant.id,
                variant_name=variant.name,
                variant_sku=variant.sku,
                variant_size=variant.size,
                variant_color=variant.color,
                unit_price=Decimal(variant.price),
                quantity=item.quantity,
                available_stock=variant.stock,
            ))

        return lines

    async def get_cart(self, user_id: uuid.UUID) -> CartResponse:
        """Cart with live prices and totals; dangling lines are flagged, not fatal"""
        cart = await self.get_user_cart(user_id)
        if not cart:
            return CartResponse()

        products = await self._load_products([item.product_id for item in cart.items])

        items = []
        priced = []
        for item in cart.items:
            product = products.get(item.product_id)
            variant = None
            if product is not None:
                variant = next((v for v in product.variants if v.id == item.variant_id), None)

            if product is None or variant is None:
                items.append(CartItemResponse(
                    id=item.id,
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    quantity=item.quantity,
                ))
                continue

            is_available = product.is_active and variant.stock >= item.quantity
            response_item = CartItemResponse(
                id=item.id,
                product_id=product.id,
                variant_id=variant.id,
                quantity=item.quantity,
                product_name=product.name,
                product_slug=product.slug,
                product_image=product.thumbnail,
                variant_name=variant.name,
                variant_sku=variant.sku,
                size=variant.size,
                color=variant.color,
                unit_price=to_money(variant.price),
                line_total=to_money(variant.price * item.quantity),
                available_stock=variant.stock,
                is_available=is_available,
            )
            items.append(response_item)
            if is_available:
                priced.append(response_item)

        totals = calculate_totals(priced)
        return CartResponse(
            id=cart.id,
            items=items,
            item_count=totals.item_count,
            subtotal=totals.subtotal,
            tax=totals.tax,
            shipping=totals.shipping if priced else Decimal("0.00"),
            discount=totals.discount,
            total=totals.total if priced else Decimal("0.00"),
        )

    async def _get_variant(self, product_id: uuid.UUID, variant_id: uuid.UUID) -> ProductVariant:
        result = await self.db.execute(
            select(ProductVariant)
            .options(selectinload(ProductVariant.product))
            .where(ProductVariant.id == variant_id, ProductVariant.product_id == product_id)
        )
        variant = result.scalar_one_or_none()
        if variant is None:
            raise NotFoundException("Product variant not found", "VARIANT_NOT_FOUND")
        if not variant.product.is_active:
            raise NotFoundException("Product not found", "PRODUCT_NOT_FOUND")
        return variant

    async def add_item(self, user_id: uuid.UUID, data: CartItemCreate) -> CartResponse:
        """Add a line, merging with an existing line for the same variant"""
        variant = await self._get_variant(data.product_id, data.variant_id)
        cart = await self.get_user_cart(user_id, create=True)

        existing = next(
            (i for i in cart.items if i.product_id == data.product_id and i.variant_id == data.variant_id),
            None
        )
        quantity = data.quantity + (existing.quantity if existing else 0)

        if variant.stock < quantity:
            raise InsufficientStockException(variant.product.name, variant.stock, variant.name)

        if existing:
            existing.quantity = quantity
        else:
            cart.items.append(CartItem(
                product_id=data.product_id,
                variant_id=data.variant_id,
                quantity=quantity,
            ))

        await self.db.flush()
        return await self.get_cart(user_id)

    async def _get_item(self, user_id: uuid.UUID, item_id: uuid.UUID) -> CartItem:
        result = await self.db.execute(
            select(CartItem)
            .join(Cart, Cart.id == CartItem.cart_id)
            .where(CartItem.id == item_id, Cart.user_id == user_id)
        )
        item = result.scalar_one_or_none()
        if item is None:
            raise NotFoundException("Cart item not found", "CART_ITEM_NOT_FOUND")
        return item

    async def update_item(self, user_id: uuid.UUID, item_id: uuid.UUID, quantity: int) -> CartResponse:
        item = await self._get_item(user_id, item_id)

        if quantity <= 0:
            await self.db.delete(item)
            await self.db.flush()
            return await self.get_cart(user_id)

        variant = await self._get_variant(item.product_id, item.variant_id)
        if variant.stock < quantity:
            raise InsufficientStockException(variant.product.name, variant.stock, variant.name)

        item.quantity = quantity
        await self.db.flush()
        return await self.get_cart(user_id)

    async def remove_item(self, user_id: uuid.UUID, item_id: uuid.UUID) -> CartResponse:
        item = await self._get_item(user_id, item_id)
        await self.db.delete(item)
        await self.db.flush()
        return await self.get_cart(user_id)

    async def clear_cart(self, user_id: uuid.UUID) -> None:
        """Delete every line of the user's cart (the cart row itself stays)"""
        cart_ids = select(Cart.id).where(Cart.user_id == user_id).scalar_subquery()
        await self.db.execute(
            delete(CartItem)
            .where(CartItem.cart_id == cart_ids)
            .execution_options(synchronize_session=False)
        )

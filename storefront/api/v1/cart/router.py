"""Cart API routes"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
import uuid

from storefront.core.database import get_db
from storefront.core.security import get_current_user
from storefront.schemas.base import APIResponse
from .schemas import CartItemCreate, CartItemUpdate, CartResponse
from .services import CartService

router = APIRouter()

@router.get("", response_model=APIResponse[CartResponse], summary="Get cart")
async def get_cart(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = CartService(db)
    cart = await service.get_cart(uuid.UUID(current_user["id"]))
    return APIResponse(data=cart)

@router.post("/items", response_model=APIResponse[CartResponse], status_code=201, summary="Add item to cart")
async def add_item(
    item_data: CartItemCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Add a variant to the cart; an existing line for it is increased"""
    service = CartService(db)
    cart = await service.add_item(uuid.UUID(current_user["id"]), item_data)
    return APIResponse(data=cart, message="Item added to cart")

@router.patch("/items/{item_id}", response_model=APIResponse[CartResponse], summary="Update cart item")
async def update_item(
    item_id: uuid.UUID,
    item_data: CartItemUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = CartService(db)
    cart = await service.update_item(uuid.UUID(current_user["id"]), item_id, item_data.quantity)
    return APIResponse(data=cart)

@router.delete("/items/{item_id}", response_model=APIResponse[CartResponse], summary="Remove cart item")
async def remove_item(
    item_id: uuid.UUID,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = CartService(db)
    cart = await service.remove_item(uuid.UUID(current_user["id"]), item_id)
    return APIResponse(data=cart, message="Item removed from cart")

@router.delete("", response_model=APIResponse[None], summary="Clear cart")
async def clear_cart(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    service = CartService(db)
    await service.clear_cart(uuid.UUID(current_user["id"]))
    return APIResponse(message="Cart cleared")

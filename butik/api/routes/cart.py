"""
Cart routes

Stock is checked while the product row is locked but never reserved here;
see OrderService.attach_payment_proof for where stock actually moves.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from butik.api.deps import CurrentUser, get_current_user
from butik.core.database import get_db
from butik.schemas.cart import CartItemCreate, CartItemUpdate, CartClear
from butik.schemas.common import success_response
from butik.services.cart_service import CartService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/items", status_code=status.HTTP_201_CREATED)
async def add_to_cart(
    item_data: CartItemCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await CartService.add_item(db, user.id, item_data.product_id, item_data.quantity)
    return success_response(
        {
            "id": result.item.id,
            "cart_id": result.item.cart_id,
            "product_id": result.product.id,
            "product_name": result.product.name,
            "quantity": result.item.quantity,
            "available_stock": result.product.stock,
        },
        message="Item added to cart" if result.created else "Cart item quantity updated",
    )


@router.get("")
async def get_carts(
    user_id: Optional[int] = Query(None, gt=0),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Admins see every cart (optionally one user's); others see their own."""
    owner = user_id if user.is_admin else user.id
    carts = await CartService.list_carts(db, owner)
    return success_response({"carts": carts, "total_carts": len(carts)})


@router.put("/items/{item_id}")
async def update_cart_item(
    item_id: int,
    item_data: CartItemUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    change = await CartService.update_item(db, item_id, item_data.quantity, user.scope_user_id)
    return success_response(
        {
            "id": change.item.id,
            "product_id": change.product.id,
            "product_name": change.product.name,
            "old_quantity": change.old_quantity,
            "quantity": change.item.quantity,
            "available_stock": change.product.stock,
        },
        message="Cart item updated",
    )


@router.delete("/items/{item_id}")
async def remove_cart_item(
    item_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await CartService.remove_item(db, item_id, user.scope_user_id)
    return success_response({"id": item_id}, message="Item removed from cart")


@router.post("/clear")
async def clear_cart(
    body: Optional[CartClear] = None,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    target = body.user_id if (body and body.user_id and user.is_admin) else user.id
    cart_id, deleted = await CartService.clear(db, target)
    return success_response(
        {"cart_id": cart_id, "deleted_items": deleted},
        message="Cart cleared",
    )


@router.delete("/{cart_id}")
async def delete_cart(
    cart_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await CartService.delete_cart(db, cart_id, user.scope_user_id)
    return success_response({"id": cart_id}, message="Cart deleted")

"""
CartService - a user's in-progress selection before an order is placed.

Stock is checked against the product's current level while the product row
is locked, but never reserved: two carts can both hold the last unit, and
only the order reconciler actually takes it.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from butik.core.database import atomic
from butik.core.exceptions import NotFoundError, StockExceededError
from butik.models import Cart, CartItem, Product
from butik.utils.input_sanitizer import sanitize_integer

logger = logging.getLogger(__name__)


@dataclass
class CartItemResult:
    """Outcome of add_item: the merged line and whether it was new."""
    item: CartItem
    product: Product
    created: bool


@dataclass
class CartItemChange:
    item: CartItem
    product: Product
    old_quantity: int


async def _lock_product(db: AsyncSession, product_id: int) -> Optional[Product]:
    """Load a product with a row lock held until the transaction ends."""
    result = await db.execute(
        select(Product)
        .where(Product.id == product_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def serialize_cart(cart: Cart) -> Dict[str, Any]:
    """Cart with its lines, line count, unit count and live-price total."""
    items = []
    total = Decimal("0.00")
    total_quantity = 0
    for item in cart.items:
        product = item.product
        price = product.price if product is not None else Decimal("0.00")
        subtotal = price * item.quantity
        total += subtotal
        total_quantity += item.quantity
        items.append({
            "id": item.id,
            "product_id": item.product_id,
            "product_name": product.name if product else None,
            "product_price": float(price) if product else None,
            "product_stock": product.stock if product else None,
            "product_image": product.image if product else None,
            "quantity": item.quantity,
            "subtotal": float(subtotal),
        })
    return {
        "id": cart.id,
        "user_id": cart.user_id,
        "user_name": cart.user.name if cart.user else None,
        "user_email": cart.user.email if cart.user else None,
        "items": items,
        "total_items": len(items),
        "total_quantity": total_quantity,
        "total_amount": float(total),
    }


class CartService:
    """One cart per user; lines merge by product."""

    @staticmethod
    async def get_or_create_cart(db: AsyncSession, user_id: int) -> Cart:
        result = await db.execute(select(Cart).where(Cart.user_id == user_id))
        cart = result.scalar_one_or_none()
        if cart is None:
            cart = Cart(user_id=user_id)
            db.add(cart)
            await db.flush()
            logger.info("Created cart %s for user %s", cart.id, user_id)
        return cart

    @staticmethod
    async def add_item(
        db: AsyncSession,
        user_id: int,
        product_id: int,
        quantity: Any,
    ) -> CartItemResult:
        """
        Add `quantity` units of a product to the user's cart.

        If the product is already in the cart the quantities are summed.
        Fails with StockExceededError when existing + requested would exceed
        the product's stock; the cart is left as it was.
        """
        quantity = sanitize_integer(quantity, "quantity", min_value=1)
        product_id = sanitize_integer(product_id, "product_id", min_value=1)

        async with atomic(db):
            cart = await CartService.get_or_create_cart(db, user_id)

            product = await _lock_product(db, product_id)
            if product is None:
                raise NotFoundError("Product", product_id)

            result = await db.execute(
                select(CartItem).where(
                    CartItem.cart_id == cart.id,
                    CartItem.product_id == product_id,
                )
            )
            existing = result.scalar_one_or_none()
            existing_qty = existing.quantity if existing else 0

            if existing_qty + quantity > product.stock:
                if existing:
                    message = (
                        f"Total quantity would exceed stock. Current in cart: "
                        f"{existing_qty}, Available: {product.stock}"
                    )
                else:
                    message = (
                        f"Insufficient stock. Available: {product.stock}, "
                        f"Requested: {quantity}"
                    )
                raise StockExceededError(
                    message,
                    product_id=product_id,
                    requested_qty=existing_qty + quantity,
                    available_qty=product.stock,
                )

            if existing:
                existing.quantity = existing_qty + quantity
                item, created = existing, False
            else:
                item = CartItem(cart_id=cart.id, product_id=product_id, quantity=quantity)
                db.add(item)
                created = True
            await db.flush()

        logger.info(
            "Cart %s: product %s quantity now %s (%s)",
            cart.id, product_id, item.quantity, "created" if created else "updated",
        )
        return CartItemResult(item=item, product=product, created=created)

    @staticmethod
    async def _get_item(
        db: AsyncSession,
        cart_item_id: int,
        user_id: Optional[int] = None,
    ) -> CartItem:
        query = select(CartItem).where(CartItem.id == cart_item_id)
        if user_id is not None:
            query = query.join(Cart, CartItem.cart_id == Cart.id).where(Cart.user_id == user_id)
        result = await db.execute(query)
        item = result.scalar_one_or_none()
        if item is None:
            raise NotFoundError("Cart item", cart_item_id)
        return item

    @staticmethod
    async def update_item(
        db: AsyncSession,
        cart_item_id: int,
        quantity: Any,
        user_id: Optional[int] = None,
    ) -> CartItemChange:
        """Overwrite a line's quantity (does not add). `user_id` scopes to that user's cart."""
        quantity = sanitize_integer(quantity, "quantity", min_value=1)

        async with atomic(db):
            item = await CartService._get_item(db, cart_item_id, user_id)
            product = await _lock_product(db, item.product_id)
            if product is None:
                raise NotFoundError("Product", item.product_id)

            if quantity > product.stock:
                raise StockExceededError(
                    f"Insufficient stock. Available: {product.stock}, Requested: {quantity}",
                    product_id=product.id,
                    requested_qty=quantity,
                    available_qty=product.stock,
                )

            old_quantity = item.quantity
            item.quantity = quantity
            await db.flush()

        return CartItemChange(item=item, product=product, old_quantity=old_quantity)

    @staticmethod
    async def remove_item(
        db: AsyncSession,
        cart_item_id: int,
        user_id: Optional[int] = None,
    ) -> int:
        async with atomic(db):
            item = await CartService._get_item(db, cart_item_id, user_id)
            await db.delete(item)
        return cart_item_id

    @staticmethod
    async def clear(db: AsyncSession, user_id: int) -> Tuple[int, int]:
        """Delete every line of the user's cart. Returns (cart_id, deleted_lines)."""
        async with atomic(db):
            result = await db.execute(select(Cart.id).where(Cart.user_id == user_id))
            cart_id = result.scalar_one_or_none()
            if cart_id is None:
                raise NotFoundError("Cart", message="Cart not found for this user", details={"user_id": user_id})

            deleted = await db.execute(
                delete(CartItem)
                .where(CartItem.cart_id == cart_id)
                .execution_options(synchronize_session=False)
            )
        # Drop now-deleted lines from the identity map
        db.expire_all()
        return cart_id, deleted.rowcount

    @staticmethod
    async def delete_cart(
        db: AsyncSession,
        cart_id: int,
        user_id: Optional[int] = None,
    ) -> int:
        """Remove a whole cart and its lines."""
        async with atomic(db):
            query = select(Cart).where(Cart.id == cart_id)
            if user_id is not None:
                query = query.where(Cart.user_id == user_id)
            result = await db.execute(
                query.options(selectinload(Cart.items)).execution_options(populate_existing=True)
            )
            cart = result.scalar_one_or_none()
            if cart is None:
                raise NotFoundError("Cart", cart_id)
            await db.delete(cart)
        return cart_id

    @staticmethod
    async def list_carts(db: AsyncSession, user_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """Carts, newest first, optionally for one user."""
        query = (
            select(Cart)
            .options(
                selectinload(Cart.items).selectinload(CartItem.product),
                selectinload(Cart.user),
            )
            .order_by(Cart.created_at.desc(), Cart.id.desc())
            .execution_options(populate_existing=True)
        )
        if user_id is not None:
            query = query.where(Cart.user_id == user_id)

        result = await db.execute(query)
        return [serialize_cart(cart) for cart in result.scalars().all()]

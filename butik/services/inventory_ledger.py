"""
Inventory Ledger

Per-product stock counts. Stock is never reserved; it only moves when the
order reconciler decrements it or an admin edits a product.

The decrement is a single conditional UPDATE so the floor check and the
write happen in one statement: two reconciliations racing on the same
product serialize on the row and the loser sees zero affected rows instead
of driving stock negative.
"""
import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from butik.core.exceptions import InvalidInputError, InsufficientStockError, NotFoundError
from butik.models import Product

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockAvailability:
    available: bool
    current_stock: int


async def get_stock(db: AsyncSession, product_id: int) -> int:
    """Read the committed stock for a product, bypassing stale identity-map state."""
    result = await db.execute(
        select(Product.stock).where(Product.id == product_id)
    )
    stock = result.scalar_one_or_none()
    if stock is None:
        raise NotFoundError("Product", product_id)
    return stock


async def check_available(db: AsyncSession, product_id: int, requested_qty: int) -> StockAvailability:
    """Report whether `requested_qty` units could be taken right now."""
    current = await get_stock(db, product_id)
    return StockAvailability(available=requested_qty <= current, current_stock=current)


async def decrement(db: AsyncSession, product_id: int, qty: int) -> int:
    """
    Take `qty` units of a product inside the caller's transaction.

    Returns the new stock level. Raises InsufficientStockError when
    `qty > stock` and NotFoundError when the product is gone; nothing is
    written in either case. The caller owns commit/rollback so sibling
    decrements of the same order stand or fall together.
    """
    if qty is None or qty <= 0:
        raise InvalidInputError("Quantity must be a positive number", field="quantity")

    result = await db.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock >= qty)
        .values(stock=Product.stock - qty)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        current = await get_stock(db, product_id)
        logger.warning(
            "Stock decrement rejected product_id=%s requested=%s available=%s",
            product_id, qty, current,
        )
        raise InsufficientStockError(
            f"Insufficient stock for product ID {product_id}. "
            f"Available: {current}, Required: {qty}",
            product_id=product_id,
            requested_qty=qty,
            available_qty=current,
        )

    new_stock = await get_stock(db, product_id)
    logger.info("Decreased stock product_id=%s by %s (now %s)", product_id, qty, new_stock)
    return new_stock

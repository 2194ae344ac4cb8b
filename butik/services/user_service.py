"""
User removal.

Accounts are managed by the auth collaborator; this module only tears down
everything a user owns in the order core.
"""
import logging
from typing import List

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from butik.core.database import atomic
from butik.core.exceptions import NotFoundError
from butik.models import Cart, CartItem, Order, OrderItem, User

logger = logging.getLogger(__name__)


async def delete_user(db: AsyncSession, user_id: int) -> List[str]:
    """
    Delete a user with their cart, cart lines, orders and order lines in
    one transaction. Stock taken by their orders stays taken.

    Returns the payment-proof references of the removed orders so the
    caller can clean up stored files.
    """
    async with atomic(db):
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User", user_id)

        proofs_result = await db.execute(
            select(Order.transfer_proof).where(
                Order.user_id == user_id, Order.transfer_proof.is_not(None)
            )
        )
        proofs = list(proofs_result.scalars().all())

        order_ids = select(Order.id).where(Order.user_id == user_id)
        cart_ids = select(Cart.id).where(Cart.user_id == user_id)

        for statement in (
            delete(OrderItem).where(OrderItem.order_id.in_(order_ids)),
            delete(Order).where(Order.user_id == user_id),
            delete(CartItem).where(CartItem.cart_id.in_(cart_ids)),
            delete(Cart).where(Cart.user_id == user_id),
            delete(User).where(User.id == user_id),
        ):
            await db.execute(statement.execution_options(synchronize_session=False))

    db.expunge(user)
    logger.info("Deleted user %s with %d payment proofs", user_id, len(proofs))
    return proofs

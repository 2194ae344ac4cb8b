"""
OrderService - order lifecycle and stock reconciliation

Single source of truth for:
- order creation (header and line items persisted as one unit)
- the status state machine
- the payment-proof trigger: the first proof attached to an order takes
  stock for every line in one transaction, or for none of them

Stock moves exactly once per order. Re-uploading a proof only swaps the
reference; deleting an order never gives stock back.
"""
import logging
from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Any, ClassVar, Dict, Iterable, List, Optional

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from butik.core.database import atomic
from butik.core.exceptions import (
    AlreadyProcessedError,
    ConflictError,
    InvalidInputError,
    InvalidStatusError,
    NoFieldsProvidedError,
    NotFoundError,
)
from butik.core.utils import quantize_money, utcnow
from butik.models import (
    Order,
    OrderItem,
    OrderStatus,
    ORDER_STATUSES,
    TERMINAL_STATUSES,
    Product,
    User,
    can_transition,
)
from butik.schemas.common import Pagination
from butik.schemas.order import OrderResponse
from butik.services import inventory_ledger
from butik.utils.input_sanitizer import sanitize_decimal, sanitize_integer, sanitize_string

logger = logging.getLogger(__name__)

# Pseudo-status accepted by the filter endpoint meaning "every status"
ALL_STATUSES = "semua"


@dataclass
class OrderLine:
    product_id: int
    quantity: int
    unit_price: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass
class OrderPatch:
    """
    Partial update of an order. Fields left as None are not touched.

    Each field maps to exactly one column; the provided ones are written in
    a single UPDATE statement.
    """
    status: Optional[str] = None
    shipping_method: Optional[str] = None
    shipping_address: Optional[str] = None
    shipping_cost: Optional[Any] = None

    COLUMNS: ClassVar[Dict[str, Any]] = {
        "status": Order.status,
        "shipping_method": Order.shipping_method,
        "shipping_address": Order.shipping_address,
        "shipping_cost": Order.shipping_cost,
    }

    def provided(self) -> Dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


@dataclass
class ProofAttachment:
    """
    Result of attach_payment_proof.

    stock_applied is True only for the first attachment. replaced_proof is
    the previous reference, which the caller should remove from storage.
    """
    order: Order
    stock_applied: bool
    replaced_proof: Optional[str] = None


def parse_status(value: Any) -> OrderStatus:
    """Map a raw status string onto the enumeration or raise InvalidStatusError."""
    if isinstance(value, OrderStatus):
        return value
    if not isinstance(value, str):
        raise InvalidStatusError(value, ORDER_STATUSES)
    try:
        return OrderStatus(value.strip().lower())
    except ValueError:
        raise InvalidStatusError(value, ORDER_STATUSES)


def _line_value(raw: Any, name: str) -> Any:
    if isinstance(raw, dict):
        return raw.get(name)
    return getattr(raw, name, None)


def parse_lines(items: Optional[Iterable[Any]]) -> List[OrderLine]:
    """Validate raw line items: each needs a numeric, positive product_id, quantity and unit_price."""
    items = list(items or [])
    if not items:
        raise InvalidInputError("Order must contain at least one item", field="items")

    lines = []
    for raw in items:
        values = {name: _line_value(raw, name) for name in ("product_id", "quantity", "unit_price")}
        if any(v is None or v == "" for v in values.values()):
            raise InvalidInputError(
                "Each item must have product_id, quantity, and unit_price",
                field="items",
            )
        lines.append(OrderLine(
            product_id=sanitize_integer(values["product_id"], "product_id", min_value=1),
            quantity=sanitize_integer(values["quantity"], "quantity", min_value=1),
            unit_price=sanitize_decimal(
                values["unit_price"], "unit_price", min_value=Decimal("0"), exclusive_min=True
            ),
        ))
    return lines


def serialize_order(order: Order, user: Optional[User] = None) -> Dict[str, Any]:
    data = OrderResponse.model_validate(order).model_dump(mode="json")
    if user is not None:
        data["user_name"] = user.name
        data["user_email"] = user.email
    return data


class OrderService:
    """Order aggregate operations. Every method takes the session it runs in."""

    @staticmethod
    async def create(
        db: AsyncSession,
        user_id: int,
        shipping_method: Optional[str],
        shipping_address: Optional[str],
        shipping_cost: Any,
        items: Iterable[Any],
    ) -> Order:
        """
        Create an order with status belum_bayar and no payment proof.

        total_price = sum(unit_price * quantity) + shipping_cost. Unit prices
        are taken from the request and stored on the lines, decoupled from
        the live product price.
        """
        lines = parse_lines(items)
        shipping_cost = sanitize_decimal(
            shipping_cost, "shipping_cost", min_value=Decimal("0"), required=False
        ) or Decimal("0")
        total = quantize_money(sum((line.subtotal for line in lines), Decimal("0")) + shipping_cost)

        async with atomic(db):
            user_exists = await db.execute(select(User.id).where(User.id == user_id))
            if user_exists.scalar_one_or_none() is None:
                raise NotFoundError("User", user_id)

            product_ids = {line.product_id for line in lines}
            result = await db.execute(
                select(Product.id, Product.name).where(Product.id.in_(product_ids))
            )
            names = {row.id: row.name for row in result.all()}
            missing = sorted(product_ids - names.keys())
            if missing:
                raise NotFoundError(
                    "Product", missing[0], message=f"Product with ID {missing[0]} not found"
                )

            order = Order(
                user_id=user_id,
                status=OrderStatus.BELUM_BAYAR.value,
                total_price=total,
                shipping_method=sanitize_string(shipping_method, 100),
                shipping_address=sanitize_string(shipping_address),
                shipping_cost=quantize_money(shipping_cost),
                transfer_proof=None,
                items=[
                    OrderItem(
                        product_id=line.product_id,
                        product_name=names[line.product_id],
                        quantity=line.quantity,
                        unit_price=quantize_money(line.unit_price),
                    )
                    for line in lines
                ],
            )
            db.add(order)
            await db.flush()

        logger.info(
            "Created order %s for user %s: %d items, total %s",
            order.id, user_id, len(lines), total,
        )
        return order

    @staticmethod
    async def _load(
        db: AsyncSession,
        order_id: int,
        user_id: Optional[int] = None,
        lock: bool = False,
    ) -> Order:
        query = (
            select(Order)
            .where(Order.id == order_id)
            .options(selectinload(Order.items))
            .execution_options(populate_existing=True)
        )
        if user_id is not None:
            query = query.where(Order.user_id == user_id)
        if lock:
            query = query.with_for_update(of=Order)
        result = await db.execute(query)
        order = result.scalar_one_or_none()
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    @staticmethod
    async def get(db: AsyncSession, order_id: int, user_id: Optional[int] = None) -> Order:
        """Fetch one order with its lines. `user_id` restricts to that owner."""
        return await OrderService._load(db, order_id, user_id)

    @staticmethod
    async def attach_payment_proof(
        db: AsyncSession,
        order_id: int,
        proof_ref: str,
        user_id: Optional[int] = None,
    ) -> ProofAttachment:
        """
        Record payment evidence for an order.

        First attachment: inside one transaction the order row is locked and
        every line's stock is decremented through the ledger. Any missing or
        understocked product rolls back all decrements; the proof is not
        recorded and the error propagates. Only when every decrement succeeds
        are the proof reference, its timestamp and the stock changes committed
        together.

        A first proof for an order that is already selesai or dibatalkan is
        rejected with AlreadyProcessedError before any stock moves.

        Later attachments: only the reference is replaced.
        """
        proof_ref = sanitize_string(proof_ref, 500)
        if not proof_ref:
            raise InvalidInputError("Transfer proof image is required", field="transfer_proof")

        async with atomic(db):
            order = await OrderService._load(db, order_id, user_id, lock=True)
            replaced_proof = order.transfer_proof
            stock_applied = False

            if not order.has_payment_proof:
                if OrderStatus(order.status) in TERMINAL_STATUSES:
                    raise AlreadyProcessedError(
                        f"Order is already {order.status}; payment proof can no longer be attached",
                        details={"order_id": order_id, "status": order.status},
                    )
                # Fixed product order keeps concurrent reconciliations from deadlocking
                for item in sorted(order.items, key=lambda i: (i.product_id or 0, i.id)):
                    if item.product_id is None:
                        raise NotFoundError(
                            "Product",
                            None,
                            message=f"Product for order item {item.id} no longer exists",
                            details={"order_item_id": item.id},
                        )
                    await inventory_ledger.decrement(db, item.product_id, item.quantity)
                stock_applied = True

            now = utcnow()
            order.transfer_proof = proof_ref
            order.proof_uploaded_at = now
            order.updated_at = now
            await db.flush()

        if stock_applied:
            logger.info("Order %s: payment proof recorded, stock taken for %d items", order_id, len(order.items))
        else:
            logger.info("Order %s: payment proof replaced, stock unchanged", order_id)

        return ProofAttachment(order=order, stock_applied=stock_applied, replaced_proof=replaced_proof)

    @staticmethod
    async def update_fields(
        db: AsyncSession,
        order_id: int,
        patch: OrderPatch,
        user_id: Optional[int] = None,
    ) -> Order:
        """
        Apply a partial update.

        Raises NoFieldsProvidedError for an empty patch and InvalidStatusError
        for a status outside the enumeration. A status change must follow the
        state machine: leaving a terminal state raises AlreadyProcessedError,
        any other illegal move raises ConflictError. Changing shipping_cost
        re-derives total_price from the stored lines.
        """
        values = patch.provided()
        if not values:
            raise NoFieldsProvidedError()

        target_status = None
        if "status" in values:
            target_status = parse_status(values["status"])
            values["status"] = target_status.value
        if "shipping_cost" in values:
            values["shipping_cost"] = quantize_money(
                sanitize_decimal(values["shipping_cost"], "shipping_cost", min_value=Decimal("0"))
            )
        for name in ("shipping_method", "shipping_address"):
            if name in values:
                values[name] = sanitize_string(values[name], 100 if name == "shipping_method" else None)

        async with atomic(db):
            order = await OrderService._load(db, order_id, user_id, lock=True)

            if target_status is not None and target_status.value != order.status:
                current = OrderStatus(order.status)
                if current in TERMINAL_STATUSES:
                    raise AlreadyProcessedError(
                        f"Order is already {current.value}; status can no longer change",
                        details={"order_id": order_id, "status": current.value},
                    )
                if not can_transition(current, target_status):
                    raise ConflictError(
                        f"Cannot change order status from {current.value} to {target_status.value}",
                        details={"order_id": order_id, "from": current.value, "to": target_status.value},
                    )

            column_values = {OrderPatch.COLUMNS[name]: value for name, value in values.items()}
            if "shipping_cost" in values:
                column_values[Order.total_price] = quantize_money(
                    order.items_subtotal + values["shipping_cost"]
                )
            column_values[Order.updated_at] = utcnow()

            await db.execute(
                update(Order)
                .where(Order.id == order_id)
                .values(column_values)
                .execution_options(synchronize_session=False)
            )
            order = await OrderService._load(db, order_id)

        logger.info("Order %s updated: %s", order_id, ", ".join(sorted(values)))
        return order

    @staticmethod
    async def delete(db: AsyncSession, order_id: int, user_id: Optional[int] = None) -> Optional[str]:
        """
        Remove an order and its lines atomically.

        Administrative destruction, not cancellation: stock already taken is
        not restored. Returns the order's proof reference so the caller can
        remove the stored file.
        """
        async with atomic(db):
            order = await OrderService._load(db, order_id, user_id, lock=True)
            proof = order.transfer_proof
            await db.execute(
                delete(OrderItem)
                .where(OrderItem.order_id == order_id)
                .execution_options(synchronize_session=False)
            )
            await db.execute(
                delete(Order)
                .where(Order.id == order_id)
                .execution_options(synchronize_session=False)
            )
        db.expunge(order)
        logger.info("Deleted order %s", order_id)
        return proof

    @staticmethod
    async def list_orders(
        db: AsyncSession,
        viewer_id: int,
        viewer_is_admin: bool,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        user_id: Optional[int] = None,
        include_summary: bool = False,
    ) -> Dict[str, Any]:
        """
        Paginated orders, newest first.

        Non-admin viewers only ever see their own orders; admins may narrow
        to one user. `status` may be any order status or "semua" for all.
        With include_summary, per-status counts for the same scope are added.
        """
        page = max(page, 1)
        conditions = []
        if not viewer_is_admin:
            conditions.append(Order.user_id == viewer_id)
        elif user_id is not None:
            conditions.append(Order.user_id == user_id)

        scope = list(conditions)
        applied_status = None
        if status and status.strip().lower() != ALL_STATUSES:
            applied_status = parse_status(status).value
            conditions.append(Order.status == applied_status)

        count_result = await db.execute(select(func.count(Order.id)).where(*conditions))
        total = count_result.scalar() or 0

        result = await db.execute(
            select(Order)
            .where(*conditions)
            .options(selectinload(Order.items), selectinload(Order.user))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        orders = result.scalars().all()

        data = {
            "orders": [serialize_order(order, order.user) for order in orders],
            "pagination": Pagination.build(page, limit, total).model_dump(),
            "user_role": "admin" if viewer_is_admin else "user",
        }

        if include_summary:
            summary_result = await db.execute(
                select(Order.status, func.count(Order.id))
                .where(*scope)
                .group_by(Order.status)
            )
            data["filter"] = {
                "status": status or ALL_STATUSES,
                "applied_filter": applied_status,
            }
            data["status_summary"] = [
                {"status": row[0], "count": row[1]} for row in summary_result.all()
            ]

        return data

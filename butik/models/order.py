"""
Order models

Line items are immutable once the order exists. Only status, the shipping
fields and the payment-proof reference change afterwards; the first proof
attachment is what moves stock.
"""
from enum import Enum as PyEnum

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, Numeric, Index, CheckConstraint
from sqlalchemy.orm import relationship

from butik.core.database import Base
from butik.core.utils import utcnow


class OrderStatus(str, PyEnum):
    """
    Order lifecycle.

    BELUM_BAYAR (awaiting payment) -> DIKIRIM (shipped) -> SELESAI (completed).
    DIBATALKAN (cancelled) is reachable from any non-terminal state.
    """
    BELUM_BAYAR = "belum_bayar"
    DIKIRIM = "dikirim"
    SELESAI = "selesai"
    DIBATALKAN = "dibatalkan"


ORDER_STATUSES = tuple(s.value for s in OrderStatus)

TERMINAL_STATUSES = frozenset({OrderStatus.SELESAI, OrderStatus.DIBATALKAN})

VALID_ORDER_TRANSITIONS = {
    OrderStatus.BELUM_BAYAR: [
        OrderStatus.DIKIRIM,
        OrderStatus.DIBATALKAN,
    ],
    OrderStatus.DIKIRIM: [
        OrderStatus.SELESAI,
        OrderStatus.DIBATALKAN,
    ],
    OrderStatus.SELESAI: [],
    OrderStatus.DIBATALKAN: [],
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in VALID_ORDER_TRANSITIONS.get(current, [])


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    status = Column(String(20), nullable=False, default=OrderStatus.BELUM_BAYAR.value, index=True)

    # Items subtotal plus shipping cost
    total_price = Column(Numeric(12, 2), nullable=False)

    shipping_method = Column(String(100))
    shipping_address = Column(Text)
    shipping_cost = Column(Numeric(12, 2), nullable=False, default=0)

    # Payment proof reference (relative file path). NULL until first upload.
    transfer_proof = Column(String(500), nullable=True)
    proof_uploaded_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    __table_args__ = (
        Index("ix_orders_user_id", "user_id"),
        CheckConstraint("shipping_cost >= 0", name="check_order_shipping_cost_non_negative"),
    )

    @property
    def items_subtotal(self):
        return sum((item.subtotal for item in self.items), 0)

    @property
    def has_payment_proof(self) -> bool:
        return self.transfer_proof is not None


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    # SET NULL keeps order history when a product is deleted
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    # Snapshot of product at time of order
    product_name = Column(String(255))
    unit_price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product", back_populates="order_items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_order_item_quantity_positive"),
    )

    @property
    def subtotal(self):
        return self.unit_price * self.quantity

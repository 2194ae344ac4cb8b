"""
Product model

Stock is mutated only by the order reconciler and by administrative edits.
The check constraint keeps it from ever going negative.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Numeric, CheckConstraint
from sqlalchemy.orm import relationship

from butik.core.database import Base
from butik.core.utils import utcnow


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text)

    price = Column(Numeric(12, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0)

    # Relative path of the stored image, e.g. images/1718000000-123.png
    image = Column(String(500))

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    cart_items = relationship("CartItem", back_populates="product")
    order_items = relationship("OrderItem", back_populates="product")

    __table_args__ = (
        CheckConstraint("stock >= 0", name="check_product_stock_non_negative"),
        CheckConstraint("price >= 0", name="check_product_price_non_negative"),
    )

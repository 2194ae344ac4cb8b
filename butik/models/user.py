"""
User model

Users are owned by the auth collaborator; the order core only needs the id
and the role that scopes what a caller may see.
"""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from butik.core.database import Base
from butik.core.utils import utcnow

ADMIN_ROLES = ("admin", "superadmin")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(50))
    role = Column(String(20), nullable=False, default="user")

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    cart = relationship("Cart", back_populates="user", uselist=False)
    orders = relationship("Order", back_populates="user")

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

"""
Cart schemas
"""
from typing import Optional
from pydantic import BaseModel, Field


class CartItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(1, gt=0)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., gt=0)


class CartClear(BaseModel):
    # Admins may clear another user's cart
    user_id: Optional[int] = None

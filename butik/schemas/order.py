"""
Order schemas
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field


class OrderItemCreate(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., gt=0)


class OrderCreate(BaseModel):
    # Admins may place an order on behalf of another user
    user_id: Optional[int] = None
    shipping_method: Optional[str] = None
    shipping_address: Optional[str] = None
    shipping_cost: Decimal = Field(Decimal("0"), ge=0)
    items: List[OrderItemCreate] = Field(..., min_length=1)


class OrderUpdate(BaseModel):
    status: Optional[str] = None
    shipping_method: Optional[str] = None
    shipping_address: Optional[str] = None
    shipping_cost: Optional[Decimal] = Field(None, ge=0)


class OrderItemResponse(BaseModel):
    id: int
    product_id: Optional[int]
    product_name: Optional[str]
    unit_price: float
    quantity: int
    subtotal: float

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    user_id: int
    status: str
    total_price: float
    shipping_method: Optional[str]
    shipping_address: Optional[str]
    shipping_cost: float
    transfer_proof: Optional[str]
    proof_uploaded_at: Optional[datetime]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    items: List[OrderItemResponse]

    class Config:
        from_attributes = True

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from models import OrderType


class OrderItemCreate(BaseModel):
    menu_item_id: int
    quantity: int

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be greater than 0")
        if v > 100:
            raise ValueError("Quantity cannot exceed 100")
        return v


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    menu_item_id: int
    quantity: int
    unit_price: Decimal


class OrderCreate(BaseModel):
    customer_id: Optional[int] = None
    order_type: OrderType
    items: List[OrderItemCreate]
    delivery_address: Optional[str] = None
    delivery_staff_id: Optional[int] = None
    special_instructions: Optional[str] = None
    payment_method: Optional[str] = None


class OrderUpdate(BaseModel):
    """Named optional fields; a field left as None is not changed."""

    customer_id: Optional[int] = None
    order_type: Optional[OrderType] = None
    delivery_address: Optional[str] = None
    delivery_staff_id: Optional[int] = None
    special_instructions: Optional[str] = None
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    items: Optional[List[OrderItemCreate]] = None


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: Optional[int] = None
    order_type: str
    order_status: str
    kitchen_status: str
    delivery_status: Optional[str] = None
    total_amount: Decimal
    delivery_address: Optional[str] = None
    delivery_staff_id: Optional[int] = None
    special_instructions: Optional[str] = None
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    items: List[OrderItemResponse]


class StatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if not v or len(v.strip()) == 0:
            raise ValueError("Status cannot be empty")
        return v.strip()


class OrderCancel(BaseModel):
    reason: Optional[str] = None


class ReservationCreate(BaseModel):
    table_id: int
    reserved_at: datetime
    customer_id: Optional[int] = None
    party_size: Optional[int] = None
    special_requests: Optional[str] = None

    @field_validator("party_size")
    @classmethod
    def validate_party_size(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("Party size must be greater than 0")
        return v


class ReservationUpdate(BaseModel):
    table_id: Optional[int] = None
    reserved_at: Optional[datetime] = None
    party_size: Optional[int] = None
    special_requests: Optional[str] = None

    @field_validator("party_size")
    @classmethod
    def validate_party_size(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v <= 0:
            raise ValueError("Party size must be greater than 0")
        return v


class ReservationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    customer_id: Optional[int] = None
    table_id: int
    reserved_at: datetime
    party_size: Optional[int] = None
    status: str
    special_requests: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TableAvailabilityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    table_id: int
    capacity: int
    available: bool
    reservation_status: str

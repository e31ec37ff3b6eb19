# models.py
import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class OrderType(str, enum.Enum):
    DINE_IN = "Dine-in"
    TAKEAWAY = "Takeaway"
    DELIVERY = "Delivery"


class OrderStatus(str, enum.Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class KitchenStatus(str, enum.Enum):
    PENDING = "Pending"
    PREPARING = "Preparing"
    READY = "Ready"
    CANCELLED = "Cancelled"


class DeliveryStatus(str, enum.Enum):
    ASSIGNED = "Assigned"
    IN_TRANSIT = "In Transit"
    DELIVERED = "Delivered"
    CANCELED = "Canceled"


class ReservationStatus(str, enum.Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    NO_SHOW = "No-Show"


# statuses that free the table for conflict checking
INACTIVE_RESERVATION_STATUSES = (ReservationStatus.CANCELLED.value, ReservationStatus.NO_SHOW.value)


class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    available = Column(Boolean, default=True)


class DiningTable(Base):
    __tablename__ = "dining_tables"

    id = Column(Integer, primary_key=True, index=True)
    capacity = Column(Integer, nullable=False, default=4)
    is_active = Column(Boolean, default=True, nullable=False)
    status = Column(String(20), default="Available")

    reservations = relationship("Reservation", back_populates="table")


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, nullable=True, index=True)
    order_type = Column(String(20), nullable=False)
    order_status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    kitchen_status = Column(String(20), nullable=False, default=KitchenStatus.PENDING.value)
    delivery_status = Column(String(20), nullable=True)
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    delivery_address = Column(Text, nullable=True)
    delivery_staff_id = Column(Integer, nullable=True)
    special_instructions = Column(Text, nullable=True)
    payment_method = Column(String(20), nullable=True)
    payment_status = Column(String(20), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    delivered_at = Column(DateTime, nullable=True)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    # price at order time, decoupled from later catalog changes
    unit_price = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    customer_id = Column(Integer, nullable=True, index=True)
    table_id = Column(Integer, ForeignKey("dining_tables.id"), nullable=False, index=True)
    reserved_at = Column(DateTime, nullable=False, index=True)
    party_size = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default=ReservationStatus.PENDING.value)
    special_requests = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    table = relationship("DiningTable", back_populates="reservations")

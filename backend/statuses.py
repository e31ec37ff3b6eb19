"""
Order status coordinator.

An order carries three status machines: the overall order status, the
kitchen status and (for delivery orders) the delivery status. Each setter
validates membership and the transition table before writing. Delivery
outcomes cascade into the order status inside the same transaction; kitchen
changes never touch the order status.
"""
import logging
from typing import Dict, Optional, Set, Type

from database import Database
from errors import InvalidStatus
from models import DeliveryStatus, KitchenStatus, Order, OrderStatus, OrderType, utcnow
from orders import hydrate, load_order

logger = logging.getLogger(__name__)

ORDER_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED},
    OrderStatus.IN_PROGRESS: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}

KITCHEN_TRANSITIONS: Dict[KitchenStatus, Set[KitchenStatus]] = {
    KitchenStatus.PENDING: {KitchenStatus.PREPARING, KitchenStatus.CANCELLED},
    KitchenStatus.PREPARING: {KitchenStatus.READY, KitchenStatus.CANCELLED},
    KitchenStatus.READY: set(),
    KitchenStatus.CANCELLED: set(),
}

# None is the state of a delivery order with no courier yet
DELIVERY_TRANSITIONS: Dict[Optional[DeliveryStatus], Set[DeliveryStatus]] = {
    None: {DeliveryStatus.ASSIGNED, DeliveryStatus.CANCELED},
    DeliveryStatus.ASSIGNED: {DeliveryStatus.IN_TRANSIT, DeliveryStatus.CANCELED},
    DeliveryStatus.IN_TRANSIT: {DeliveryStatus.DELIVERED, DeliveryStatus.CANCELED},
    DeliveryStatus.DELIVERED: set(),
    DeliveryStatus.CANCELED: set(),
}

DELIVERY_CASCADE = {
    DeliveryStatus.DELIVERED: OrderStatus.COMPLETED,
    DeliveryStatus.CANCELED: OrderStatus.CANCELLED,
}

CANCELLABLE_ORDER_STATUSES = (OrderStatus.PENDING, OrderStatus.IN_PROGRESS)


def parse_status(enum_cls: Type, value, machine: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = [s.value for s in enum_cls]
        raise InvalidStatus(f"Invalid {machine} status: {value}", {"allowed": allowed})


def check_transition(transitions: Dict, current, target, machine: str) -> bool:
    """True when the write is needed, False when target equals current."""
    if current == target:
        return False
    if target not in transitions.get(current, set()):
        current_label = current.value if current is not None else None
        logger.warning(f"Rejected {machine} transition {current_label} -> {target.value}")
        raise InvalidStatus(
            f"Cannot change {machine} status from {current_label} to {target.value}",
            {"current": current_label, "requested": target.value},
        )
    return True


def _require_delivery_order(order: Order) -> None:
    if order.order_type != OrderType.DELIVERY.value:
        raise InvalidStatus(
            f"Order {order.id} is not a delivery order",
            {"order_id": order.id, "order_type": order.order_type},
        )


class OrderStatusCoordinator:
    def __init__(self, database: Database):
        self.database = database

    def set_order_status(self, order_id: int, status) -> Order:
        target = parse_status(OrderStatus, status, "order")
        with self.database.transaction() as session:
            order = load_order(session, order_id)
            current = OrderStatus(order.order_status)
            if check_transition(ORDER_TRANSITIONS, current, target, "order"):
                order.order_status = target.value
                order.updated_at = utcnow()
            hydrate(session, order)

        logger.info(f"Order {order_id} status: {current.value} -> {target.value}")
        return order

    def cancel_order(self, order_id: int, reason: Optional[str] = None) -> Order:
        with self.database.transaction() as session:
            order = load_order(session, order_id)
            current = OrderStatus(order.order_status)
            if current not in CANCELLABLE_ORDER_STATUSES:
                allowed = " or ".join(s.value for s in CANCELLABLE_ORDER_STATUSES)
                raise InvalidStatus(
                    f"Cannot cancel order in {current.value} status. Only orders in {allowed} status can be cancelled.",
                    {"current": current.value},
                )
            order.order_status = OrderStatus.CANCELLED.value
            if reason:
                order.cancellation_reason = reason
            order.updated_at = utcnow()
            hydrate(session, order)

        logger.info(f"Order {order_id} cancelled")
        return order

    def set_kitchen_status(self, order_id: int, status) -> Order:
        target = parse_status(KitchenStatus, status, "kitchen")
        with self.database.transaction() as session:
            order = load_order(session, order_id)
            current = KitchenStatus(order.kitchen_status)
            if check_transition(KITCHEN_TRANSITIONS, current, target, "kitchen"):
                order.kitchen_status = target.value
                order.updated_at = utcnow()
            hydrate(session, order)

        logger.info(f"Order {order_id} kitchen status: {current.value} -> {target.value}")
        return order

    def set_delivery_status(self, order_id: int, status) -> Order:
        target = parse_status(DeliveryStatus, status, "delivery")
        with self.database.transaction() as session:
            order = load_order(session, order_id)
            _require_delivery_order(order)
            current = DeliveryStatus(order.delivery_status) if order.delivery_status else None

            if check_transition(DELIVERY_TRANSITIONS, current, target, "delivery"):
                order.delivery_status = target.value
                forced = DELIVERY_CASCADE.get(target)
                if forced is not None:
                    order.order_status = forced.value
                if target is DeliveryStatus.DELIVERED:
                    order.delivered_at = utcnow()
                order.updated_at = utcnow()
            hydrate(session, order)

        logger.info(f"Order {order_id} delivery status -> {target.value}, order status {order.order_status}")
        return order

    def assign_delivery(self, order_id: int, staff_id: int) -> Order:
        with self.database.transaction() as session:
            order = load_order(session, order_id)
            _require_delivery_order(order)
            current = DeliveryStatus(order.delivery_status) if order.delivery_status else None
            if current not in (None, DeliveryStatus.ASSIGNED):
                raise InvalidStatus(
                    f"Cannot assign a courier to an order in {current.value} delivery status",
                    {"current": current.value},
                )
            order.delivery_staff_id = staff_id
            order.delivery_status = DeliveryStatus.ASSIGNED.value
            order.updated_at = utcnow()
            hydrate(session, order)

        logger.info(f"Order {order_id} assigned to delivery staff {staff_id}")
        return order

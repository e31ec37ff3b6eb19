"""
Order transaction manager.

Creates, updates and deletes an order together with its line items. Every
operation runs inside a single store transaction: item prices are resolved
from the menu catalog at write time, the total is derived from those
snapshots, and any failure rolls the whole unit back.
"""
import logging
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from catalog import MenuCatalog
from database import Database
from errors import InvalidReference, NoOp, NotFound, ValidationError
from models import DeliveryStatus, Order, OrderItem, OrderStatus, KitchenStatus, OrderType, utcnow
from schemas import OrderItemCreate, OrderUpdate

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# (menu_item_id, quantity, unit_price)
PricedLine = Tuple[int, int, Decimal]


def _parse_order_type(value) -> OrderType:
    try:
        return OrderType(value)
    except ValueError:
        allowed = [t.value for t in OrderType]
        raise ValidationError(f"Invalid order type: {value}", {"allowed": allowed})


def _require_items(items: Optional[Sequence[OrderItemCreate]]) -> None:
    if not items:
        raise ValidationError("Order must contain at least one item")
    for item in items:
        if item.quantity is None or item.quantity <= 0:
            raise ValidationError(
                "Quantity must be greater than 0",
                {"menu_item_id": item.menu_item_id, "quantity": item.quantity},
            )


def _require_delivery_address(order_type: OrderType, address: Optional[str]) -> None:
    if order_type is OrderType.DELIVERY and not (address or "").strip():
        raise ValidationError("Delivery address is required for delivery orders")


def _price_items(session: Session, items: Sequence[OrderItemCreate]) -> Tuple[List[PricedLine], Decimal]:
    requested_ids = [item.menu_item_id for item in items]
    resolved = MenuCatalog(session).resolve_items(requested_ids)

    missing = []
    for menu_item_id in requested_ids:
        if menu_item_id not in resolved and menu_item_id not in missing:
            missing.append(menu_item_id)
    if missing:
        logger.warning(f"Order references unknown menu items: {missing}")
        raise InvalidReference("Some menu items do not exist", {"missing": missing})

    lines = [(item.menu_item_id, item.quantity, resolved[item.menu_item_id].price) for item in items]
    total = sum((price * quantity for _, quantity, price in lines), Decimal("0"))
    return lines, total.quantize(CENT)


def _insert_items(session: Session, order_id: int, lines: List[PricedLine]) -> None:
    session.add_all([
        OrderItem(order_id=order_id, menu_item_id=menu_item_id, quantity=quantity, unit_price=price)
        for menu_item_id, quantity, price in lines
    ])


def load_order(session: Session, order_id: int) -> Order:
    order = session.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFound(f"Order {order_id} not found", {"order_id": order_id})
    return order


def hydrate(session: Session, order: Order) -> Order:
    """Reload the row and its items so the entity stays usable once the session closes."""
    session.flush()
    session.refresh(order)
    order.items  # noqa: B018  lazy-load inside the session
    return order


class OrderManager:
    def __init__(self, database: Database):
        self.database = database

    def create(
        self,
        order_type,
        items: Sequence[OrderItemCreate],
        customer_id: Optional[int] = None,
        delivery_address: Optional[str] = None,
        delivery_staff_id: Optional[int] = None,
        special_instructions: Optional[str] = None,
        payment_method: Optional[str] = None,
    ) -> Order:
        order_type = _parse_order_type(order_type)
        _require_items(items)
        _require_delivery_address(order_type, delivery_address)

        is_delivery = order_type is OrderType.DELIVERY
        delivery_status = None
        if is_delivery and delivery_staff_id is not None:
            delivery_status = DeliveryStatus.ASSIGNED.value

        with self.database.transaction() as session:
            lines, total = _price_items(session, items)

            order = Order(
                customer_id=customer_id,
                order_type=order_type.value,
                order_status=OrderStatus.PENDING.value,
                kitchen_status=KitchenStatus.PENDING.value,
                delivery_status=delivery_status,
                total_amount=total,
                delivery_address=delivery_address if is_delivery else None,
                delivery_staff_id=delivery_staff_id if is_delivery else None,
                special_instructions=special_instructions,
                payment_method=payment_method or "cash",
                payment_status="unpaid",
            )
            session.add(order)
            session.flush()

            _insert_items(session, order.id, lines)
            hydrate(session, order)

        logger.info(f"Order {order.id} created: type={order.order_type} items={len(lines)} total={order.total_amount}")
        return order

    def update(self, order_id: int, patch: OrderUpdate) -> Order:
        with self.database.transaction() as session:
            order = load_order(session, order_id)

            changes = {}
            if patch.customer_id is not None:
                changes["customer_id"] = patch.customer_id
            if patch.order_type is not None:
                changes["order_type"] = _parse_order_type(patch.order_type).value
            if patch.delivery_address is not None:
                changes["delivery_address"] = patch.delivery_address
            if patch.delivery_staff_id is not None:
                changes["delivery_staff_id"] = patch.delivery_staff_id
            if patch.special_instructions is not None:
                changes["special_instructions"] = patch.special_instructions
            if patch.payment_method is not None:
                changes["payment_method"] = patch.payment_method
            if patch.payment_status is not None:
                changes["payment_status"] = patch.payment_status

            order_type = OrderType(changes.get("order_type", order.order_type))
            if order_type is not OrderType.DELIVERY:
                changes.pop("delivery_address", None)
                changes.pop("delivery_staff_id", None)

            if not changes and patch.items is None:
                raise NoOp("No update data provided", {"order_id": order_id})

            _require_delivery_address(order_type, changes.get("delivery_address", order.delivery_address))

            lines = None
            if patch.items is not None:
                _require_items(patch.items)
                lines, total = _price_items(session, patch.items)

            for field, value in changes.items():
                setattr(order, field, value)

            if order_type is not OrderType.DELIVERY:
                order.delivery_status = None
                order.delivery_staff_id = None
                order.delivery_address = None

            if lines is not None:
                # full replace: delete every existing line, insert the new set
                session.query(OrderItem).filter(OrderItem.order_id == order_id).delete(synchronize_session=False)
                _insert_items(session, order_id, lines)
                order.total_amount = total

            order.updated_at = utcnow()
            hydrate(session, order)

        logger.info(f"Order {order_id} updated: fields={sorted(changes)} items_replaced={lines is not None}")
        return order

    def delete(self, order_id: int) -> None:
        with self.database.transaction() as session:
            load_order(session, order_id)
            session.query(OrderItem).filter(OrderItem.order_id == order_id).delete(synchronize_session=False)
            session.query(Order).filter(Order.id == order_id).delete(synchronize_session=False)
        logger.info(f"Order {order_id} deleted")

    def get(self, order_id: int) -> Order:
        with self.database.transaction() as session:
            order = load_order(session, order_id)
            order.items  # noqa: B018
            return order

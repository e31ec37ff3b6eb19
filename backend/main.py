import logging
from datetime import datetime
from typing import Callable, List, Optional

import uvicorn
from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
from auth import ROLE_ADMIN, ROLE_STAFF, Actor, get_optional_actor, require_roles
from database import Database
from errors import ServiceError
from models import utcnow
from orders import OrderManager
from redis_client import RedisClient, rate_limit
from reservations import ReservationManager
from schemas import (
    OrderCancel,
    OrderCreate,
    OrderResponse,
    OrderUpdate,
    ReservationCreate,
    ReservationResponse,
    ReservationUpdate,
    StatusUpdate,
    TableAvailabilityResponse,
)
from statuses import OrderStatusCoordinator

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("RestaurantAPI")

staff_only = require_roles(ROLE_STAFF, ROLE_ADMIN)
admin_only = require_roles(ROLE_ADMIN)


def get_orders(request: Request) -> OrderManager:
    return request.app.state.orders


def get_statuses(request: Request) -> OrderStatusCoordinator:
    return request.app.state.statuses


def get_reservations(request: Request) -> ReservationManager:
    return request.app.state.reservations


def _customer_for(actor: Optional[Actor], requested: Optional[int]) -> Optional[int]:
    # customers may only act for themselves
    if actor is not None and actor.is_customer:
        return actor.id
    return requested


def create_app(
    database: Optional[Database] = None,
    redis: Optional[RedisClient] = None,
    clock: Callable[[], datetime] = utcnow,
) -> FastAPI:
    app = FastAPI(title="Restaurant Orders & Reservations API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    database = database or Database()
    app.state.database = database
    app.state.redis = redis or RedisClient()
    app.state.orders = OrderManager(database)
    app.state.statuses = OrderStatusCoordinator(database)
    app.state.reservations = ReservationManager(database, clock=clock)

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.on_event("startup")
    def startup_event():
        if database.wait_for_db():
            database.init_schema()
            database.seed_tables()
        else:
            logger.error("Database was not ready at startup")

        if app.state.redis.is_available():
            logger.info("Redis is available")
        else:
            logger.warning("Redis is unavailable, rate limiting is disabled")

    @app.get("/health")
    def health_check():
        return {"status": "ok", "message": "API is running", "redis": app.state.redis.get_info()}

    # ---------- orders ----------

    @app.post("/orders", response_model=OrderResponse, status_code=status.HTTP_201_CREATED,
              dependencies=[Depends(rate_limit("orders:create"))])
    def create_order(order: OrderCreate,
                     actor: Optional[Actor] = Depends(get_optional_actor),
                     orders: OrderManager = Depends(get_orders)):
        return orders.create(
            order_type=order.order_type,
            items=order.items,
            customer_id=_customer_for(actor, order.customer_id),
            delivery_address=order.delivery_address,
            delivery_staff_id=order.delivery_staff_id,
            special_instructions=order.special_instructions,
            payment_method=order.payment_method,
        )

    @app.get("/orders/{order_id}", response_model=OrderResponse)
    def get_order(order_id: int, actor: Actor = Depends(staff_only),
                  orders: OrderManager = Depends(get_orders)):
        return orders.get(order_id)

    @app.put("/orders/{order_id}", response_model=OrderResponse)
    @app.patch("/orders/{order_id}", response_model=OrderResponse)
    def update_order(order_id: int, order_update: OrderUpdate, actor: Actor = Depends(admin_only),
                     orders: OrderManager = Depends(get_orders)):
        return orders.update(order_id, order_update)

    @app.delete("/orders/{order_id}")
    def delete_order(order_id: int, actor: Actor = Depends(admin_only),
                     orders: OrderManager = Depends(get_orders)):
        orders.delete(order_id)
        return {"message": "Order deleted successfully", "order_id": order_id}

    @app.put("/orders/{order_id}/status", response_model=OrderResponse)
    @app.patch("/orders/{order_id}/status", response_model=OrderResponse)
    def update_order_status(order_id: int, body: StatusUpdate, actor: Actor = Depends(staff_only),
                            statuses: OrderStatusCoordinator = Depends(get_statuses)):
        return statuses.set_order_status(order_id, body.status)

    @app.post("/orders/{order_id}/cancel", response_model=OrderResponse)
    def cancel_order(order_id: int, body: Optional[OrderCancel] = None, actor: Actor = Depends(staff_only),
                     statuses: OrderStatusCoordinator = Depends(get_statuses)):
        return statuses.cancel_order(order_id, body.reason if body else None)

    @app.patch("/orders/{order_id}/kitchen-status", response_model=OrderResponse)
    def update_kitchen_status(order_id: int, body: StatusUpdate, actor: Actor = Depends(staff_only),
                              statuses: OrderStatusCoordinator = Depends(get_statuses)):
        return statuses.set_kitchen_status(order_id, body.status)

    @app.patch("/orders/{order_id}/delivery-status", response_model=OrderResponse)
    def update_delivery_status(order_id: int, body: StatusUpdate, actor: Actor = Depends(staff_only),
                               statuses: OrderStatusCoordinator = Depends(get_statuses)):
        return statuses.set_delivery_status(order_id, body.status)

    @app.put("/orders/{order_id}/delivery/{staff_id}", response_model=OrderResponse)
    def assign_delivery(order_id: int, staff_id: int, actor: Actor = Depends(admin_only),
                        statuses: OrderStatusCoordinator = Depends(get_statuses)):
        return statuses.assign_delivery(order_id, staff_id)

    # ---------- reservations ----------

    @app.get("/reservations/available-tables", response_model=List[TableAvailabilityResponse])
    def get_available_tables(time: datetime = Query(...), party_size: Optional[int] = Query(None, gt=0),
                             reservations: ReservationManager = Depends(get_reservations)):
        return reservations.available_tables(time, party_size=party_size)

    @app.post("/reservations", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED,
              dependencies=[Depends(rate_limit("reservations:create"))])
    def create_reservation(reservation: ReservationCreate,
                           actor: Optional[Actor] = Depends(get_optional_actor),
                           reservations: ReservationManager = Depends(get_reservations)):
        return reservations.create(
            table_id=reservation.table_id,
            requested_time=reservation.reserved_at,
            customer_id=_customer_for(actor, reservation.customer_id),
            notes=reservation.special_requests,
            party_size=reservation.party_size,
        )

    @app.get("/reservations/{reservation_id}", response_model=ReservationResponse)
    def get_reservation(reservation_id: int, actor: Actor = Depends(staff_only),
                        reservations: ReservationManager = Depends(get_reservations)):
        return reservations.get(reservation_id)

    @app.put("/reservations/{reservation_id}", response_model=ReservationResponse)
    def update_reservation(reservation_id: int, body: ReservationUpdate, actor: Actor = Depends(staff_only),
                           reservations: ReservationManager = Depends(get_reservations)):
        return reservations.update(
            reservation_id,
            table_id=body.table_id,
            requested_time=body.reserved_at,
            notes=body.special_requests,
            party_size=body.party_size,
        )

    @app.post("/reservations/{reservation_id}/cancel", response_model=ReservationResponse)
    def cancel_reservation(reservation_id: int, actor: Actor = Depends(staff_only),
                           reservations: ReservationManager = Depends(get_reservations)):
        return reservations.cancel(reservation_id)

    @app.patch("/reservations/{reservation_id}/status", response_model=ReservationResponse)
    def update_reservation_status(reservation_id: int, body: StatusUpdate, actor: Actor = Depends(admin_only),
                                  reservations: ReservationManager = Depends(get_reservations)):
        return reservations.set_status(reservation_id, body.status)

    @app.delete("/reservations/{reservation_id}")
    def delete_reservation(reservation_id: int, actor: Actor = Depends(admin_only),
                           reservations: ReservationManager = Depends(get_reservations)):
        reservations.delete(reservation_id)
        return {"message": "Reservation deleted successfully", "reservation_id": reservation_id}

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)

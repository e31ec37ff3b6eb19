"""
Reservation conflict checking and lifecycle.

Reservations have no stored duration, so a table counts as taken when any
live reservation on it starts less than 120 minutes before or after the
requested time. Exactly 120 minutes apart does not collide.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Set

from sqlalchemy.orm import Query, Session

import config
from database import Database
from errors import Conflict, InvalidStatus, NoOp, NotFound, ValidationError
from models import (
    INACTIVE_RESERVATION_STATUSES,
    DiningTable,
    Reservation,
    ReservationStatus,
    as_utc_naive,
    utcnow,
)
from tables import TableRegistry

logger = logging.getLogger(__name__)

CONFLICT_WINDOW = timedelta(minutes=config.RESERVATION_CONFLICT_WINDOW_MINUTES)


class ConflictChecker:
    def __init__(self, session: Session, window: timedelta = CONFLICT_WINDOW):
        self.session = session
        self.window = window

    def _blocking(self, requested_time: datetime, exclude_reservation_id: Optional[int] = None) -> Query:
        requested_time = as_utc_naive(requested_time)
        # strict bounds: |reserved_at - requested_time| < window
        query = self.session.query(Reservation).filter(
            Reservation.status.notin_(INACTIVE_RESERVATION_STATUSES),
            Reservation.reserved_at > requested_time - self.window,
            Reservation.reserved_at < requested_time + self.window,
        )
        if exclude_reservation_id is not None:
            query = query.filter(Reservation.id != exclude_reservation_id)
        return query

    def is_available(
        self,
        table_id: int,
        requested_time: datetime,
        exclude_reservation_id: Optional[int] = None,
    ) -> bool:
        blocking = self._blocking(requested_time, exclude_reservation_id).filter(
            Reservation.table_id == table_id
        )
        return blocking.first() is None

    def reserved_table_ids(self, requested_time: datetime) -> Set[int]:
        rows = self._blocking(requested_time).with_entities(Reservation.table_id).distinct().all()
        return {row.table_id for row in rows}


@dataclass
class TableAvailability:
    table_id: int
    capacity: int
    available: bool
    reservation_status: str = field(init=False)

    def __post_init__(self):
        self.reservation_status = "Available" if self.available else "Reserved"


def _parse_reservation_status(value) -> ReservationStatus:
    try:
        return ReservationStatus(value)
    except ValueError:
        allowed = [s.value for s in ReservationStatus]
        raise InvalidStatus(f"Invalid reservation status: {value}", {"allowed": allowed})


def _load_reservation(session: Session, reservation_id: int) -> Reservation:
    reservation = session.query(Reservation).filter(Reservation.id == reservation_id).first()
    if not reservation:
        raise NotFound(f"Reservation {reservation_id} not found", {"reservation_id": reservation_id})
    return reservation


def _check_capacity(table: DiningTable, party_size: Optional[int]) -> None:
    if party_size is not None and party_size > table.capacity:
        raise ValidationError(
            f"Table {table.id} seats {table.capacity}, party of {party_size} requested",
            {"table_id": table.id, "capacity": table.capacity, "party_size": party_size},
        )


class ReservationManager:
    def __init__(self, database: Database, clock: Callable[[], datetime] = utcnow):
        self.database = database
        self.clock = clock

    def _require_future(self, requested_time: datetime) -> None:
        if requested_time <= self.clock():
            raise ValidationError(
                "Reservation date must be in the future",
                {"requested_time": requested_time.isoformat()},
            )

    def _ensure_available(
        self,
        session: Session,
        table_id: int,
        requested_time: datetime,
        exclude_reservation_id: Optional[int] = None,
    ) -> None:
        if not ConflictChecker(session).is_available(table_id, requested_time, exclude_reservation_id):
            logger.warning(f"Reservation conflict on table {table_id} near {requested_time.isoformat()}")
            raise Conflict(
                f"Table {table_id} is already reserved near {requested_time:%Y-%m-%d %H:%M}",
                {"table_id": table_id, "requested_time": requested_time.isoformat()},
            )

    def create(
        self,
        table_id: int,
        requested_time: datetime,
        customer_id: Optional[int] = None,
        notes: Optional[str] = None,
        party_size: Optional[int] = None,
    ) -> Reservation:
        if table_id is None or requested_time is None:
            raise ValidationError("Table and date/time are required")
        if party_size is not None and party_size <= 0:
            raise ValidationError("Party size must be greater than 0")

        requested_time = as_utc_naive(requested_time)
        self._require_future(requested_time)

        with self.database.transaction() as session:
            table = TableRegistry(session).get_active_table(table_id)
            _check_capacity(table, party_size)
            self._ensure_available(session, table_id, requested_time)

            reservation = Reservation(
                customer_id=customer_id,
                table_id=table_id,
                reserved_at=requested_time,
                party_size=party_size,
                status=ReservationStatus.PENDING.value,
                special_requests=notes,
            )
            session.add(reservation)
            session.flush()
            session.refresh(reservation)

        logger.info(f"Reservation {reservation.id} created: table={table_id} at={requested_time.isoformat()}")
        return reservation

    def update(
        self,
        reservation_id: int,
        table_id: Optional[int] = None,
        requested_time: Optional[datetime] = None,
        notes: Optional[str] = None,
        party_size: Optional[int] = None,
    ) -> Reservation:
        if party_size is not None and party_size <= 0:
            raise ValidationError("Party size must be greater than 0")
        if requested_time is not None:
            requested_time = as_utc_naive(requested_time)

        with self.database.transaction() as session:
            reservation = _load_reservation(session, reservation_id)

            if table_id is None and requested_time is None and notes is None and party_size is None:
                raise NoOp("No update data provided", {"reservation_id": reservation_id})

            target_table_id = table_id if table_id is not None else reservation.table_id
            target_time = requested_time if requested_time is not None else reservation.reserved_at
            moved = target_table_id != reservation.table_id or target_time != reservation.reserved_at

            if moved:
                self._require_future(target_time)

            if moved or party_size is not None:
                registry = TableRegistry(session)
                table = registry.get_active_table(target_table_id) if moved else registry.get_table(target_table_id)
                effective_party = party_size if party_size is not None else reservation.party_size
                _check_capacity(table, effective_party)

            if moved:
                self._ensure_available(session, target_table_id, target_time, reservation_id)

            reservation.table_id = target_table_id
            reservation.reserved_at = target_time
            if notes is not None:
                reservation.special_requests = notes
            if party_size is not None:
                reservation.party_size = party_size
            reservation.updated_at = utcnow()
            session.flush()
            session.refresh(reservation)

        logger.info(f"Reservation {reservation_id} updated: table={target_table_id} at={target_time.isoformat()}")
        return reservation

    def cancel(self, reservation_id: int) -> Reservation:
        """Declarative: cancelling a cancelled reservation succeeds unchanged."""
        with self.database.transaction() as session:
            reservation = _load_reservation(session, reservation_id)
            if reservation.status != ReservationStatus.CANCELLED.value:
                reservation.status = ReservationStatus.CANCELLED.value
                reservation.updated_at = utcnow()
                session.flush()
                logger.info(f"Reservation {reservation_id} cancelled")
            session.refresh(reservation)
        return reservation

    def set_status(self, reservation_id: int, status) -> Reservation:
        target = _parse_reservation_status(status)
        with self.database.transaction() as session:
            reservation = _load_reservation(session, reservation_id)

            reactivating = (
                reservation.status in INACTIVE_RESERVATION_STATUSES
                and target.value not in INACTIVE_RESERVATION_STATUSES
            )
            if reactivating:
                self._ensure_available(session, reservation.table_id, reservation.reserved_at, reservation_id)

            if reservation.status != target.value:
                reservation.status = target.value
                reservation.updated_at = utcnow()
                session.flush()
            session.refresh(reservation)

        logger.info(f"Reservation {reservation_id} status -> {target.value}")
        return reservation

    def get(self, reservation_id: int) -> Reservation:
        with self.database.transaction() as session:
            return _load_reservation(session, reservation_id)

    def delete(self, reservation_id: int) -> None:
        with self.database.transaction() as session:
            reservation = _load_reservation(session, reservation_id)
            session.delete(reservation)
        logger.info(f"Reservation {reservation_id} deleted")

    def available_tables(self, requested_time: datetime, party_size: Optional[int] = None) -> List[TableAvailability]:
        if requested_time is None:
            raise ValidationError("Date and time are required")
        requested_time = as_utc_naive(requested_time)

        with self.database.transaction() as session:
            tables = TableRegistry(session).active_tables(min_capacity=party_size)
            reserved = ConflictChecker(session).reserved_table_ids(requested_time)
            result = [
                TableAvailability(table_id=t.id, capacity=t.capacity, available=t.id not in reserved)
                for t in tables
            ]

        logger.info(f"Availability at {requested_time.isoformat()}: "
                    f"{sum(1 for t in result if t.available)}/{len(result)} tables free")
        return result

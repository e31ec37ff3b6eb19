from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from conftest import NOW, count_rows
from errors import Conflict, InvalidReference, InvalidStatus, NoOp, NotFound, StoreFailure, ValidationError
from models import Reservation
from reservations import ConflictChecker, ReservationManager

SIX_PM = datetime(2025, 6, 1, 18, 0)


@pytest.fixture
def reservations(database, tables, clock):
    return ReservationManager(database, clock=clock)


def is_available(database, table_id, when, exclude=None):
    with database.transaction() as session:
        return ConflictChecker(session).is_available(table_id, when, exclude)


def test_new_reservation_is_pending(reservations):
    reservation = reservations.create(4, SIX_PM, customer_id=31, notes="window seat", party_size=2)

    assert reservation.id is not None
    assert reservation.status == "Pending"
    assert reservation.table_id == 4
    assert reservation.reserved_at == SIX_PM
    assert reservation.special_requests == "window seat"


def test_ninety_minutes_apart_conflicts(reservations):
    reservations.create(4, SIX_PM)

    with pytest.raises(Conflict) as exc_info:
        reservations.create(4, datetime(2025, 6, 1, 19, 30))

    assert "Table 4" in exc_info.value.message
    assert exc_info.value.details == {"table_id": 4, "requested_time": "2025-06-01T19:30:00"}


def test_one_hundred_twenty_five_minutes_apart_succeeds(reservations):
    reservations.create(4, SIX_PM)
    later = reservations.create(4, datetime(2025, 6, 1, 20, 5))
    assert later.status == "Pending"


@pytest.mark.parametrize("minutes", [0, 1, 60, 90, 119])
def test_window_blocks_both_directions(database, reservations, minutes):
    reservations.create(4, SIX_PM)

    assert is_available(database, 4, SIX_PM + timedelta(minutes=minutes)) is False
    assert is_available(database, 4, SIX_PM - timedelta(minutes=minutes)) is False


@pytest.mark.parametrize("minutes", [120, 121, 180])
def test_window_boundary_is_exclusive(database, reservations, minutes):
    reservations.create(4, SIX_PM)

    assert is_available(database, 4, SIX_PM + timedelta(minutes=minutes)) is True
    assert is_available(database, 4, SIX_PM - timedelta(minutes=minutes)) is True


def test_other_tables_are_unaffected(database, reservations):
    reservations.create(4, SIX_PM)
    assert is_available(database, 3, SIX_PM) is True


@pytest.mark.parametrize("status", ["Cancelled", "No-Show"])
def test_inactive_reservations_do_not_block(database, reservations, status):
    existing = reservations.create(4, SIX_PM)
    reservations.set_status(existing.id, status)

    assert is_available(database, 4, SIX_PM) is True
    reservations.create(4, SIX_PM)


@pytest.mark.parametrize("status", ["Confirmed", "Completed"])
def test_live_reservations_block(database, reservations, status):
    existing = reservations.create(4, SIX_PM)
    reservations.set_status(existing.id, status)
    assert is_available(database, 4, SIX_PM) is False


def test_excluded_reservation_is_ignored(database, reservations):
    existing = reservations.create(4, SIX_PM)
    assert is_available(database, 4, SIX_PM, exclude=existing.id) is True


def test_aware_times_are_compared_in_utc(database, reservations):
    reservations.create(4, SIX_PM)
    berlin_summer = timezone(timedelta(hours=2))

    # 21:00+02:00 is 19:00 UTC, one hour after the booking
    assert is_available(database, 4, datetime(2025, 6, 1, 21, 0, tzinfo=berlin_summer)) is False


def test_past_or_present_time_rejected(reservations):
    with pytest.raises(ValidationError):
        reservations.create(4, NOW - timedelta(minutes=1))
    with pytest.raises(ValidationError):
        reservations.create(4, NOW)


def test_unknown_table_rejected(reservations):
    with pytest.raises(InvalidReference):
        reservations.create(42, SIX_PM)


def test_inactive_table_rejected(reservations):
    with pytest.raises(InvalidReference):
        reservations.create(6, SIX_PM)


def test_party_larger_than_table_rejected(reservations):
    with pytest.raises(ValidationError) as exc_info:
        reservations.create(4, SIX_PM, party_size=6)
    assert exc_info.value.details["capacity"] == 4

    assert reservations.create(5, SIX_PM, party_size=6).table_id == 5


def test_update_notes_only_keeps_slot(reservations):
    existing = reservations.create(4, SIX_PM, notes="birthday")

    updated = reservations.update(existing.id, notes="anniversary")

    assert updated.special_requests == "anniversary"
    assert updated.table_id == 4
    assert updated.reserved_at == SIX_PM


def test_update_shift_within_own_window(reservations):
    existing = reservations.create(4, SIX_PM)
    updated = reservations.update(existing.id, requested_time=SIX_PM + timedelta(minutes=30))
    assert updated.reserved_at == SIX_PM + timedelta(minutes=30)


def test_update_into_conflict_rejected(reservations):
    reservations.create(4, SIX_PM)
    other = reservations.create(3, SIX_PM)

    with pytest.raises(Conflict):
        reservations.update(other.id, table_id=4)

    assert reservations.get(other.id).table_id == 3


def test_update_moves_to_free_table(reservations):
    reservations.create(4, SIX_PM)
    other = reservations.create(3, SIX_PM)

    moved = reservations.update(other.id, table_id=2, requested_time=SIX_PM + timedelta(hours=1))

    assert moved.table_id == 2
    assert moved.reserved_at == SIX_PM + timedelta(hours=1)


def test_update_into_past_rejected(reservations):
    existing = reservations.create(4, SIX_PM)
    with pytest.raises(ValidationError):
        reservations.update(existing.id, requested_time=NOW - timedelta(days=1))


def test_update_to_inactive_table_rejected(reservations):
    existing = reservations.create(4, SIX_PM)
    with pytest.raises(InvalidReference):
        reservations.update(existing.id, table_id=6)


def fail_lookup(*args, **kwargs):
    raise OperationalError("SELECT reservations", {}, Exception("server closed the connection"))


def test_failed_availability_lookup_blocks_create(database, reservations, monkeypatch):
    monkeypatch.setattr(ConflictChecker, "is_available", fail_lookup)

    with pytest.raises(StoreFailure):
        reservations.create(4, SIX_PM)

    assert count_rows(database, Reservation) == 0


def test_failed_availability_lookup_blocks_move(database, reservations, monkeypatch):
    existing = reservations.create(4, SIX_PM)
    monkeypatch.setattr(ConflictChecker, "is_available", fail_lookup)

    with pytest.raises(StoreFailure):
        reservations.update(existing.id, table_id=3, requested_time=SIX_PM + timedelta(hours=1))

    monkeypatch.undo()
    reloaded = reservations.get(existing.id)
    assert reloaded.table_id == 4
    assert reloaded.reserved_at == SIX_PM


def test_update_nothing_is_noop(reservations):
    existing = reservations.create(4, SIX_PM)
    with pytest.raises(NoOp):
        reservations.update(existing.id)


def test_update_missing_reservation(reservations):
    with pytest.raises(NotFound):
        reservations.update(777, notes="hello")


def test_cancel_is_idempotent(reservations):
    existing = reservations.create(4, SIX_PM)

    assert reservations.cancel(existing.id).status == "Cancelled"
    assert reservations.cancel(existing.id).status == "Cancelled"


def test_cancel_missing_reservation(reservations):
    with pytest.raises(NotFound):
        reservations.cancel(777)


@pytest.mark.parametrize("status", ["Confirmed", "Completed", "Cancelled", "No-Show", "Pending"])
def test_set_status_accepts_every_state(reservations, status):
    existing = reservations.create(4, SIX_PM)
    assert reservations.set_status(existing.id, status).status == status


@pytest.mark.parametrize("status", ["Seated", "no-show", "NoShow", ""])
def test_set_status_rejects_unknown(reservations, status):
    existing = reservations.create(4, SIX_PM)
    with pytest.raises(InvalidStatus):
        reservations.set_status(existing.id, status)
    assert reservations.get(existing.id).status == "Pending"


def test_reactivating_into_taken_slot_conflicts(reservations):
    first = reservations.create(4, SIX_PM)
    reservations.cancel(first.id)
    reservations.create(4, SIX_PM + timedelta(minutes=15))

    with pytest.raises(Conflict):
        reservations.set_status(first.id, "Confirmed")
    assert reservations.get(first.id).status == "Cancelled"


def test_delete_reservation(database, reservations):
    existing = reservations.create(4, SIX_PM)
    reservations.delete(existing.id)

    with database.transaction() as session:
        assert session.query(Reservation).count() == 0
    with pytest.raises(NotFound):
        reservations.get(existing.id)


def test_available_tables_lists_active_tables(reservations):
    reservations.create(4, SIX_PM)
    reservations.create(2, SIX_PM + timedelta(hours=3))

    listing = reservations.available_tables(SIX_PM + timedelta(minutes=45))

    assert [t.table_id for t in listing] == [1, 2, 3, 4, 5]
    assert {t.table_id: t.available for t in listing} == {1: True, 2: True, 3: True, 4: False, 5: True}
    assert next(t for t in listing if t.table_id == 4).reservation_status == "Reserved"


def test_available_tables_filters_by_party_size(reservations):
    listing = reservations.available_tables(SIX_PM, party_size=6)
    assert [t.table_id for t in listing] == [5]

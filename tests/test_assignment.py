from types import SimpleNamespace
import pytest

from app.src import db, exceptions
from app.src.assignment import (
    assign,
    availableDrivers,
    availableVehicles,
    fetchAvailableDrivers,
    fetchAvailableVehicles,
)
from app.src.db import Booking, Driver, Vehicle
from app.src.redis import lockName
from app.src.validators import bookingStatusTransition


def makeDriver(id, first_name, last_name="", status="active"):
    return SimpleNamespace(
        id=id, first_name=first_name, last_name=last_name, status=status
    )


def makeVehicle(id, plate_number, status="active"):
    return SimpleNamespace(id=id, plate_number=plate_number, status=status)


def makeBooking(id, booking_status, driver_id=None, vehicle_id=None):
    return SimpleNamespace(
        id=id,
        booking_status=booking_status,
        driver_id=driver_id,
        vehicle_id=vehicle_id,
    )


## Candidate listing
def test_drivers_held_by_active_bookings_are_excluded():
    drivers = [
        makeDriver(1, "Ann"),
        makeDriver(2, "Ben", status="pending"),
        makeDriver(3, "Cid", status="inactive"),
        makeDriver(4, "Dee"),
    ]
    bookings = [
        makeBooking(10, "request", driver_id=1),
        makeBooking(11, "completed", driver_id=4),
        makeBooking(12, "cancelled", driver_id=2),
    ]
    result = availableDrivers(bookings, drivers, excludingBookingId=99)
    assert [driver.id for driver in result] == [2, 4]


@pytest.mark.parametrize(
    "status", ["request", "pending", "confirmed", "assigned", "on_going", "in_progress"]
)
def test_every_active_alias_holds_the_driver(status):
    drivers = [makeDriver(1, "Ann")]
    bookings = [makeBooking(10, status, driver_id=1)]
    assert availableDrivers(bookings, drivers) == []


def test_edited_booking_keeps_its_own_driver():
    drivers = [makeDriver(1, "Ann"), makeDriver(2, "Ben")]
    bookings = [makeBooking(10, "on_going", driver_id=1)]
    assert [d.id for d in availableDrivers(bookings, drivers, 10)] == [1, 2]
    assert [d.id for d in availableDrivers(bookings, drivers, 11)] == [2]


def test_no_returned_driver_is_double_booked():
    drivers = [makeDriver(i, f"Driver{i}") for i in range(1, 9)]
    bookings = [
        makeBooking(100 + i, status, driver_id=i)
        for i, status in enumerate(
            ["request", "in_progress", "completed", "cancelled", "arrived"], start=1
        )
    ]
    for excluded in (None, 101, 103, 999):
        held = {
            b.driver_id
            for b in bookings
            if b.id != excluded
            and b.booking_status in ("request", "in_progress", "arrived")
        }
        result = availableDrivers(bookings, drivers, excluded)
        assert {d.id for d in result}.isdisjoint(held)
        assert {d.id for d in result} == {d.id for d in drivers} - held


def test_drivers_sorted_by_full_name():
    drivers = [
        makeDriver(3, "bob", "Zed"),
        makeDriver(1, "Bob", "Adams"),
        makeDriver(2, "alice", "Young"),
    ]
    assert [d.id for d in availableDrivers([], drivers)] == [2, 1, 3]


def test_vehicles_sorted_by_plate():
    vehicles = [
        makeVehicle(1, "KL 02"),
        makeVehicle(2, "KL 01"),
        makeVehicle(3, "AA 99", status="inactive"),
        makeVehicle(4, "KL 03"),
    ]
    bookings = [makeBooking(10, "confirmed", vehicle_id=4)]
    assert [v.id for v in availableVehicles(bookings, vehicles)] == [2, 1]


def test_empty_inputs():
    assert availableDrivers([], []) == []
    assert availableVehicles([makeBooking(1, "request", vehicle_id=1)], []) == []


## Assignment
def test_dispatch_scenario(session, seed):
    company = seed.company()
    d1 = seed.driver(company, first_name="Ann", status="active")
    d2 = seed.driver(company, first_name="Ben", status="pending")
    bk1 = seed.booking(company, "request", driver_id=d1.id)
    bk2 = seed.booking(company, "request")

    assert [d.id for d in fetchAvailableDrivers(session, bk2)] == [d2.id]
    assert [d.id for d in fetchAvailableDrivers(session, bk1)] == [d1.id, d2.id]

    with pytest.raises(exceptions.InvalidStateTransition):
        bookingStatusTransition(bk1, "done_service")

    assert bookingStatusTransition(bk1, "on_going")
    bk1.booking_status = "on_going"
    assert bookingStatusTransition(bk1, "done_service")
    bk1.booking_status = "done_service"
    session.commit()

    # A finished booking releases its driver
    assert [d.id for d in fetchAvailableDrivers(session, bk2)] == [d1.id, d2.id]
    assert assign(session, bk2, Driver, d1.id)
    assert bk2.driver_id == d1.id


def test_assign_rejects_driver_of_active_booking(session, seed, fakeRedis):
    company = seed.company()
    driver = seed.driver(company)
    seed.booking(company, "in_progress", driver_id=driver.id)
    booking = seed.booking(company, "request")

    with pytest.raises(exceptions.AssignmentConflict):
        assign(session, booking, Driver, driver.id)
    session.refresh(booking)
    assert booking.driver_id is None
    assert fakeRedis.held == set()


def test_assign_rejects_inactive_and_foreign_candidates(session, seed):
    company = seed.company()
    other = seed.company()
    booking = seed.booking(company, "request")
    inactive = seed.driver(company, status="inactive")
    foreign = seed.vehicle(other)

    with pytest.raises(exceptions.InactiveResource):
        assign(session, booking, Driver, inactive.id)
    with pytest.raises(exceptions.UnknownValue):
        assign(session, booking, Vehicle, foreign.id)
    with pytest.raises(exceptions.UnknownValue):
        assign(session, booking, Vehicle, 9999)


def test_assign_requires_active_booking(session, seed):
    company = seed.company()
    driver = seed.driver(company)
    booking = seed.booking(company, "cancelled")
    with pytest.raises(exceptions.InactiveResource):
        assign(session, booking, Driver, driver.id)


def test_reassign_and_unassign(session, seed):
    company = seed.company()
    first = seed.vehicle(company)
    second = seed.vehicle(company)
    booking = seed.booking(company, "confirmed", vehicle_id=first.id)

    assert not assign(session, booking, Vehicle, first.id)
    assert assign(session, booking, Vehicle, second.id)
    assert booking.vehicle_id == second.id
    assert [v.id for v in fetchAvailableVehicles(session, booking)] == [
        first.id,
        second.id,
    ]

    assert assign(session, booking, Vehicle, None)
    session.refresh(booking)
    assert booking.vehicle_id is None


def test_unassign_allowed_on_finished_booking(session, seed):
    company = seed.company()
    driver = seed.driver(company)
    booking = seed.booking(company, "completed", driver_id=driver.id)
    assert assign(session, booking, Driver, None)
    assert booking.driver_id is None


def test_parallel_submission_for_same_booking_is_rejected(session, seed, fakeRedis):
    company = seed.company()
    driver = seed.driver(company)
    booking = seed.booking(company, "request")
    guard = lockName(Booking.__tablename__, f"{booking.id}:{Driver.__tablename__}")
    fakeRedis.held.add(guard)

    with pytest.raises(exceptions.AssignmentInProgress):
        assign(session, booking, Driver, driver.id)
    assert fakeRedis.held == {guard}

    # A vehicle assignment for the same booking is not blocked
    vehicle = seed.vehicle(company)
    assert assign(session, booking, Vehicle, vehicle.id)


def test_locks_are_released_after_assignment(session, seed, fakeRedis):
    company = seed.company()
    driver = seed.driver(company)
    booking = seed.booking(company, "request")
    assert assign(session, booking, Driver, driver.id)
    assert fakeRedis.held == set()


def test_busy_driver_lock_times_out(session, seed, fakeRedis):
    company = seed.company()
    driver = seed.driver(company)
    booking = seed.booking(company, "request")
    fakeRedis.held.add(lockName(Driver.__tablename__, driver.id))

    with pytest.raises(exceptions.LockAcquireTimeout):
        assign(session, booking, Driver, driver.id)
    session.refresh(booking)
    assert booking.driver_id is None


def test_assign_sees_cancellation_made_meanwhile(session, seed, fakeRedis):
    company = seed.company()
    driver = seed.driver(company)
    booking = seed.booking(company, "request")

    other = db.sessionMaker()
    other.query(Booking).filter(Booking.id == booking.id).update(
        {Booking.booking_status: "cancelled"}
    )
    other.commit()
    other.close()

    # The caller still holds the booking as it was loaded before the cancel
    assert booking.booking_status == "request"
    with pytest.raises(exceptions.InactiveResource):
        assign(session, booking, Driver, driver.id)
    session.refresh(booking)
    assert booking.booking_status == "cancelled"
    assert booking.driver_id is None
    assert fakeRedis.held == set()


def test_assign_waits_for_booking_lock(session, seed, fakeRedis):
    company = seed.company()
    vehicle = seed.vehicle(company)
    booking = seed.booking(company, "request")
    statusLock = lockName(Booking.__tablename__, booking.id)
    fakeRedis.held.add(statusLock)

    with pytest.raises(exceptions.LockAcquireTimeout):
        assign(session, booking, Vehicle, vehicle.id)
    session.refresh(booking)
    assert booking.vehicle_id is None
    assert fakeRedis.held == {statusLock}

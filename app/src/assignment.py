"""
Driver and vehicle assignment.

A driver or vehicle may be bound to at most one active booking at a time.
`availableDrivers` / `availableVehicles` compute the candidates a booking
may choose from, `assign` binds or clears a candidate on a booking.

`assign` re-validates the booking and the candidate while holding the
booking lock and a Redis lock on the candidate. Two requests racing for the
same driver or vehicle are serialized and the loser gets an
`AssignmentConflict`; a status change landing meanwhile is seen before the
write. A guard lock per booking and resource kind rejects a parallel
submission for the same booking outright.
"""

from typing import Iterable, List, Optional, Set
from sqlalchemy import Column
from sqlalchemy.orm.session import Session

from app.src import exceptions
from app.src.db import Booking, Driver, Vehicle
from app.src.enums import DriverStatus, VehicleStatus
from app.src.lifecycle import ACTIVE_BOOKING_STATUS, isActiveStatus, statusFamily
from app.src.redis import acquireLock, releaseLock, tryLock


ASSIGNMENT_COLUMN = {
    Driver: Booking.driver_id,
    Vehicle: Booking.vehicle_id,
}

ASSIGNABLE_STATUS = {
    Driver: [DriverStatus.ACTIVE.value, DriverStatus.PENDING.value],
    Vehicle: [VehicleStatus.ACTIVE.value, VehicleStatus.PENDING.value],
}


## Candidate listing
def _boundIds(
    bookings: Iterable[Booking], column: Column, excludingBookingId: Optional[int]
) -> Set[int]:
    boundIds = set()
    for booking in bookings:
        if excludingBookingId is not None and booking.id == excludingBookingId:
            continue
        if not isActiveStatus(booking.booking_status):
            continue
        resourceId = getattr(booking, column.key)
        if resourceId is not None:
            boundIds.add(resourceId)
    return boundIds


def availableDrivers(
    bookings: Iterable[Booking],
    drivers: Iterable[Driver],
    excludingBookingId: Optional[int] = None,
) -> List[Driver]:
    """
    Drivers that may be assigned to a booking.

    A driver qualifies when its status is active or pending and no active
    booking other than `excludingBookingId` holds it. The booking being
    edited is excluded from the scan so its own driver stays selectable.
    The result is sorted by name.
    """
    boundIds = _boundIds(bookings, Booking.driver_id, excludingBookingId)
    candidates = [
        driver
        for driver in drivers
        if driver.status in ASSIGNABLE_STATUS[Driver] and driver.id not in boundIds
    ]
    return sorted(
        candidates,
        key=lambda driver: (
            f"{driver.first_name} {driver.last_name}".lower(),
            driver.id,
        ),
    )


def availableVehicles(
    bookings: Iterable[Booking],
    vehicles: Iterable[Vehicle],
    excludingBookingId: Optional[int] = None,
) -> List[Vehicle]:
    """Vehicle counterpart of `availableDrivers`, sorted by plate number."""
    boundIds = _boundIds(bookings, Booking.vehicle_id, excludingBookingId)
    candidates = [
        vehicle
        for vehicle in vehicles
        if vehicle.status in ASSIGNABLE_STATUS[Vehicle]
        and vehicle.id not in boundIds
    ]
    return sorted(candidates, key=lambda vehicle: (vehicle.plate_number, vehicle.id))


def _activeBookings(session: Session, companyId: int) -> List[Booking]:
    return (
        session.query(Booking)
        .filter(Booking.company_id == companyId)
        .filter(Booking.booking_status.in_(statusFamily(ACTIVE_BOOKING_STATUS)))
        .all()
    )


def fetchAvailableDrivers(session: Session, booking: Booking) -> List[Driver]:
    drivers = session.query(Driver).filter(Driver.company_id == booking.company_id)
    bookings = _activeBookings(session, booking.company_id)
    return availableDrivers(bookings, drivers.all(), booking.id)


def fetchAvailableVehicles(session: Session, booking: Booking) -> List[Vehicle]:
    vehicles = session.query(Vehicle).filter(Vehicle.company_id == booking.company_id)
    bookings = _activeBookings(session, booking.company_id)
    return availableVehicles(bookings, vehicles.all(), booking.id)


## Assignment
def _checkCandidate(session: Session, booking: Booking, resourceCls, resourceId: int):
    column = ASSIGNMENT_COLUMN[resourceCls]
    resource = (
        session.query(resourceCls)
        .filter(resourceCls.id == resourceId)
        .filter(resourceCls.company_id == booking.company_id)
        .first()
    )
    if resource is None:
        raise exceptions.UnknownValue(column)
    if resource.status not in ASSIGNABLE_STATUS[resourceCls]:
        raise exceptions.InactiveResource(resourceCls)

    holder = (
        session.query(Booking.id)
        .filter(column == resourceId)
        .filter(Booking.id != booking.id)
        .filter(Booking.booking_status.in_(statusFamily(ACTIVE_BOOKING_STATUS)))
        .first()
    )
    if holder is not None:
        raise exceptions.AssignmentConflict(resourceCls)


def assign(
    session: Session, booking: Booking, resourceCls, resourceId: Optional[int]
) -> bool:
    """
    Bind a driver or vehicle to a booking, or clear it with `resourceId=None`.

    Args:
        session (Session): Session the booking was loaded with. It is
            committed on success and rolled back on failure.
        booking (Booking): The booking receiving the assignment.
        resourceCls: `Driver` or `Vehicle`.
        resourceId (int | None): Candidate id, None to unassign.

    Returns:
        bool: True if the booking was changed.

    Raises:
        exceptions.AssignmentInProgress: Another assignment of the same kind
            is running for this booking.
        exceptions.InactiveResource: The booking is not active, or the
            candidate is inactive.
        exceptions.UnknownValue: The candidate does not exist in the
            booking's company.
        exceptions.AssignmentConflict: The candidate holds another active booking.
        exceptions.LockAcquireTimeout: The booking or the candidate stayed locked.
    """
    column = ASSIGNMENT_COLUMN[resourceCls]
    guard = tryLock(Booking.__tablename__, f"{booking.id}:{resourceCls.__tablename__}")
    if guard is None:
        raise exceptions.AssignmentInProgress(resourceCls)

    bookingLock = None
    resourceLock = None
    try:
        bookingLock = acquireLock(Booking.__tablename__, booking.id)
        if resourceId is not None:
            resourceLock = acquireLock(resourceCls.__tablename__, resourceId)
        session.refresh(booking)

        if getattr(booking, column.key) == resourceId:
            return False
        if resourceId is not None:
            if not isActiveStatus(booking.booking_status):
                raise exceptions.InactiveResource(Booking)
            _checkCandidate(session, booking, resourceCls, resourceId)

        setattr(booking, column.key, resourceId)
        session.commit()
        return True
    except Exception:
        session.rollback()
        raise
    finally:
        releaseLock(resourceLock)
        releaseLock(bookingLock)
        releaseLock(guard)

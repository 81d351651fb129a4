"""
Booking status lifecycle.

One canonical five-state vocabulary (`BookingStatus`) is used everywhere in
the application. Values written by older clients (`in_progress`, `completed`,
`pending`, ...) are accepted at the boundary and mapped onto it with
`normalizeStatus` before any comparison or transition lookup.

Allowed transitions:
    request   → confirmed, on_going, cancelled
    confirmed → on_going, cancelled
    on_going  → done_service, cancelled
    done_service, cancelled are terminal
"""

from typing import Dict, List, Optional
from pydantic import BaseModel

from app.src.enums import BookingStatus


# Historical status names still found in stored rows and client payloads
BOOKING_STATUS_ALIASES: Dict[str, BookingStatus] = {
    "in_progress": BookingStatus.ON_GOING,
    "completed": BookingStatus.DONE_SERVICE,
    "pending": BookingStatus.REQUEST,
    "assigned": BookingStatus.CONFIRMED,
    "driver_en_route": BookingStatus.ON_GOING,
    "arrived": BookingStatus.ON_GOING,
}

BOOKING_STATUS_TRANSITION: Dict[BookingStatus, List[BookingStatus]] = {
    BookingStatus.REQUEST: [
        BookingStatus.CONFIRMED,
        BookingStatus.ON_GOING,
        BookingStatus.CANCELLED,
    ],
    BookingStatus.CONFIRMED: [BookingStatus.ON_GOING, BookingStatus.CANCELLED],
    BookingStatus.ON_GOING: [BookingStatus.DONE_SERVICE, BookingStatus.CANCELLED],
    BookingStatus.DONE_SERVICE: [],
    BookingStatus.CANCELLED: [],
}

# Statuses in which a driver and vehicle are committed to the booking
ACTIVE_BOOKING_STATUS = [
    BookingStatus.REQUEST,
    BookingStatus.CONFIRMED,
    BookingStatus.ON_GOING,
]


class TransitionDecision(BaseModel):
    accepted: bool
    changed: bool
    old_status: Optional[BookingStatus] = None
    new_status: Optional[BookingStatus] = None
    reason: Optional[str] = None


def normalizeStatus(value: str | BookingStatus | None) -> Optional[BookingStatus]:
    """
    Map a stored or requested status onto the canonical enum.

    Returns None for empty or unknown values.
    """
    if value is None:
        return None
    if isinstance(value, BookingStatus):
        return value
    value = value.strip().lower()
    if value in BOOKING_STATUS_ALIASES:
        return BOOKING_STATUS_ALIASES[value]
    try:
        return BookingStatus(value)
    except ValueError:
        return None


def statusAliases(status: BookingStatus) -> List[str]:
    """Every raw value that normalizes to `status`, canonical value first."""
    aliases = [status.value]
    aliases.extend(
        alias for alias, target in BOOKING_STATUS_ALIASES.items() if target == status
    )
    return aliases


def statusFamily(statuses: List[BookingStatus]) -> List[str]:
    values = []
    for status in statuses:
        values.extend(statusAliases(status))
    return values


def isActiveStatus(value: str | BookingStatus | None) -> bool:
    return normalizeStatus(value) in ACTIVE_BOOKING_STATUS


def isTerminalStatus(value: str | BookingStatus | None) -> bool:
    status = normalizeStatus(value)
    return status is not None and not BOOKING_STATUS_TRANSITION[status]


def decideTransition(
    current: str | BookingStatus | None, target: str | BookingStatus | None
) -> TransitionDecision:
    """
    Decide whether a booking may move from `current` to `target`.

    Both values are normalized first, so `in_progress` behaves as `on_going`
    and `completed` as `done_service`. A self-transition is accepted without
    change; unknown values, terminal sources and undeclared targets are
    rejected with a reason.
    """
    oldStatus = normalizeStatus(current)
    newStatus = normalizeStatus(target)
    if oldStatus is None:
        return TransitionDecision(
            accepted=False,
            changed=False,
            new_status=newStatus,
            reason=f"Unknown current status '{current}'",
        )
    if newStatus is None:
        return TransitionDecision(
            accepted=False,
            changed=False,
            old_status=oldStatus,
            reason=f"Unknown status '{target}'",
        )
    if oldStatus == newStatus:
        return TransitionDecision(
            accepted=True, changed=False, old_status=oldStatus, new_status=newStatus
        )
    if newStatus not in BOOKING_STATUS_TRANSITION[oldStatus]:
        if not BOOKING_STATUS_TRANSITION[oldStatus]:
            reason = f"'{oldStatus.value}' is a terminal status"
        else:
            reason = f"'{oldStatus.value}' cannot move to '{newStatus.value}'"
        return TransitionDecision(
            accepted=False,
            changed=False,
            old_status=oldStatus,
            new_status=newStatus,
            reason=reason,
        )
    return TransitionDecision(
        accepted=True, changed=True, old_status=oldStatus, new_status=newStatus
    )

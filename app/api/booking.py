from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field, field_validator
from pydantic_extra_types.phone_numbers import PhoneNumber

from app.api.bearer import bearer_executive, bearer_operator
from app.api.driver import DriverSchema
from app.api.vehicle import VehicleSchema
from app.src.db import Booking, BookingStatusHistory, Driver, Vehicle, sessionMaker
from app.src import exceptions, validators, getters, schemas
from app.src.loggers import logEvent
from app.src.enums import BookingStatus, PaymentStatus
from app.src.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from app.src.functions import enumStr, fuseExceptionResponses, updateIfChanged
from app.src.gateway import PersistenceGateway
from app.src.lifecycle import (
    BOOKING_STATUS_ALIASES,
    isTerminalStatus,
    normalizeStatus,
)
from app.src.query_builder import QueryScope, buildBookingQuery
from app.src.redis import acquireLock, releaseLock
from app.src.assignment import assign, fetchAvailableDrivers, fetchAvailableVehicles
from app.src.urls import (
    URL_BOOKING,
    URL_BOOKING_DETAIL,
    URL_BOOKING_DRIVER,
    URL_BOOKING_PAYMENT,
    URL_BOOKING_STATUS,
    URL_BOOKING_VEHICLE,
)

route_executive = APIRouter()
route_operator = APIRouter()

STATUS_DESCRIPTION = f"{enumStr(BookingStatus)}. Also accepted: " + ", ".join(
    f"{alias} ({target.value})" for alias, target in BOOKING_STATUS_ALIASES.items()
)


## Output Schema
class BookingSchema(BaseModel):
    id: int
    company_id: int
    booking_reference: str
    booking_status: str
    payment_status: str
    total_amount: Decimal
    pickup_datetime: datetime
    pickup_address: str
    destination_address: str
    passenger_name: Optional[str]
    contact_number: Optional[str]
    driver_id: Optional[int]
    vehicle_id: Optional[int]
    cancellation_reason: Optional[str]
    updated_on: Optional[datetime]
    created_on: datetime

    @field_validator("booking_status", mode="before")
    @classmethod
    def canonicalStatus(cls, value):
        status = normalizeStatus(value)
        return status.value if status is not None else value


class BookingRowSchema(BookingSchema):
    voucher: str


class BookingPageSchema(schemas.Page):
    items: List[BookingRowSchema]


class StatusHistorySchema(BaseModel):
    id: int
    old_status: str
    new_status: str
    remark: Optional[str]
    created_on: datetime


class BookingDetailSchema(BookingSchema):
    driver_name: str
    driver_contact: str
    vehicle_plate: str
    vehicle_info: str
    status_history: List[StatusHistorySchema]


## Input Forms
class CreateFormForOP(BaseModel):
    booking_reference: str | None = Field(Form(max_length=20, default=None))
    pickup_datetime: datetime = Field(Form())
    pickup_address: str = Field(Form(max_length=512))
    destination_address: str = Field(Form(max_length=512))
    passenger_name: str | None = Field(Form(max_length=128, default=None))
    contact_number: PhoneNumber | None = Field(
        Form(max_length=32, default=None, description="Phone number in RFC3966 format")
    )
    total_amount: Decimal = Field(Form(ge=0, max_digits=10, decimal_places=2))
    payment_status: PaymentStatus = Field(
        Form(description=enumStr(PaymentStatus), default=PaymentStatus.PENDING)
    )


class CreateFormForEX(CreateFormForOP):
    company_id: int = Field(Form())


class UpdateForm(BaseModel):
    id: int = Field(Form())
    pickup_datetime: datetime | None = Field(Form(default=None))
    pickup_address: str | None = Field(Form(max_length=512, default=None))
    destination_address: str | None = Field(Form(max_length=512, default=None))
    passenger_name: str | None = Field(Form(max_length=128, default=None))
    contact_number: PhoneNumber | None = Field(
        Form(max_length=32, default=None, description="Phone number in RFC3966 format")
    )
    total_amount: Decimal | None = Field(
        Form(ge=0, max_digits=10, decimal_places=2, default=None)
    )


class PaymentForm(BaseModel):
    id: int = Field(Form())
    payment_status: PaymentStatus = Field(Form(description=enumStr(PaymentStatus)))


class StatusForm(BaseModel):
    id: int = Field(Form())
    booking_status: str = Field(Form(max_length=20, description=STATUS_DESCRIPTION))


class CancelForm(BaseModel):
    id: int = Field(Form())
    cancellation_reason: str | None = Field(Form(max_length=512, default=None))


class DriverAssignForm(BaseModel):
    id: int = Field(Form())
    driver_id: int | None = Field(
        Form(default=None, description="Leave empty to unassign")
    )


class VehicleAssignForm(BaseModel):
    id: int = Field(Form())
    vehicle_id: int | None = Field(
        Form(default=None, description="Leave empty to unassign")
    )


## Query Parameters
class QueryParamsForOP(BaseModel):
    status: str | None = Field(
        Query(default=None, max_length=20, description=STATUS_DESCRIPTION)
    )
    search: str | None = Field(
        Query(
            default=None,
            max_length=64,
            description="Reference, passenger, pickup or destination",
        )
    )
    date_from: date | None = Field(Query(default=None))
    date_to: date | None = Field(Query(default=None))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=DEFAULT_PAGE_SIZE, gt=0, le=MAX_PAGE_SIZE))


class QueryParamsForEX(QueryParamsForOP):
    company_id: int | None = Field(Query(default=None))


class BookingIdParams(BaseModel):
    id: int = Field(Query(description="Booking ID"))


## Function
def getBooking(session: Session, bookingId: int, companyId: int | None) -> Booking:
    query = session.query(Booking).filter(Booking.id == bookingId)
    if companyId is not None:
        query = query.filter(Booking.company_id == companyId)
    booking = query.first()
    if booking is None:
        raise exceptions.InvalidIdentifier()
    return booking


def searchBooking(
    session: Session, scope: QueryScope, qParam: QueryParamsForOP
) -> BookingPageSchema:
    gateway = PersistenceGateway(session)
    rows, total = gateway.fetchPage(
        buildBookingQuery(scope), qParam.limit, qParam.offset
    )
    return BookingPageSchema(
        total=total, offset=qParam.offset, limit=qParam.limit, items=rows
    )


def createBooking(
    session: Session, companyId: int, fParam: CreateFormForOP
) -> Booking:
    booking = Booking(
        company_id=companyId,
        booking_status=BookingStatus.REQUEST.value,
        payment_status=fParam.payment_status.value,
        total_amount=fParam.total_amount,
        pickup_datetime=fParam.pickup_datetime,
        pickup_address=fParam.pickup_address,
        destination_address=fParam.destination_address,
        passenger_name=fParam.passenger_name,
        contact_number=fParam.contact_number,
    )
    if fParam.booking_reference is not None:
        booking.booking_reference = fParam.booking_reference
    session.add(booking)
    session.commit()
    session.refresh(booking)
    return booking


def recordStatusChange(
    session: Session, booking: Booking, newStatus: BookingStatus, remark=None
):
    session.add(
        BookingStatusHistory(
            booking_id=booking.id,
            old_status=normalizeStatus(booking.booking_status).value,
            new_status=newStatus.value,
            remark=remark,
        )
    )
    booking.booking_status = newStatus.value


def bookingDetail(session: Session, bookingId: int, companyId: int | None) -> dict:
    """
    Booking data joined with its driver and vehicle labels and its status
    history, most recent change first.
    """
    booking = getBooking(session, bookingId, companyId)
    driver = session.get(Driver, booking.driver_id) if booking.driver_id else None
    vehicle = session.get(Vehicle, booking.vehicle_id) if booking.vehicle_id else None
    history = (
        session.query(BookingStatusHistory)
        .filter(BookingStatusHistory.booking_id == booking.id)
        .order_by(BookingStatusHistory.created_on.desc())
        .order_by(BookingStatusHistory.id.desc())
        .all()
    )

    detail = jsonable_encoder(booking)
    detail["driver_name"] = "Unassigned"
    detail["driver_contact"] = "N/A"
    if driver is not None:
        detail["driver_name"] = f"{driver.first_name} {driver.last_name}"
        detail["driver_contact"] = driver.phone_number or "N/A"
    detail["vehicle_plate"] = "Unassigned"
    detail["vehicle_info"] = "Unknown Vehicle"
    if vehicle is not None:
        detail["vehicle_plate"] = vehicle.plate_number
        if vehicle.make and vehicle.model:
            detail["vehicle_info"] = f"{vehicle.make} {vehicle.model}"
    detail["status_history"] = jsonable_encoder(history)
    return detail


def updateBooking(
    session: Session, bookingId: int, companyId: int | None, fParam: UpdateForm
) -> tuple[Booking, bool]:
    """
    Apply a partial update to the trip details of a booking.

    Finished and cancelled bookings are frozen. Returns the booking and
    whether it was changed.
    """
    bookingLock = None
    try:
        bookingLock = acquireLock(Booking.__tablename__, bookingId)
        booking = getBooking(session, bookingId, companyId)
        session.refresh(booking)

        currentStatus = normalizeStatus(booking.booking_status)
        if isTerminalStatus(currentStatus):
            raise exceptions.InvalidStateTransition(
                Booking.booking_status,
                f"'{currentStatus.value}' bookings cannot be edited",
            )
        updateIfChanged(
            booking,
            fParam,
            [
                Booking.pickup_datetime.key,
                Booking.pickup_address.key,
                Booking.destination_address.key,
                Booking.passenger_name.key,
                Booking.contact_number.key,
                Booking.total_amount.key,
            ],
        )
        haveUpdates = session.is_modified(booking)
        if haveUpdates:
            session.commit()
            session.refresh(booking)
        return booking, haveUpdates
    finally:
        releaseLock(bookingLock)


def updatePayment(
    session: Session,
    bookingId: int,
    companyId: int | None,
    paymentStatus: PaymentStatus,
) -> tuple[Booking, bool]:
    bookingLock = None
    try:
        bookingLock = acquireLock(Booking.__tablename__, bookingId)
        booking = getBooking(session, bookingId, companyId)
        session.refresh(booking)

        haveUpdates = booking.payment_status != paymentStatus.value
        if haveUpdates:
            booking.payment_status = paymentStatus.value
            session.commit()
            session.refresh(booking)
        return booking, haveUpdates
    finally:
        releaseLock(bookingLock)


def changeStatus(
    session: Session, bookingId: int, companyId: int | None, target: str
) -> tuple[Booking, bool]:
    """
    Move a booking to `target` while holding the booking's lock.

    Returns the booking and whether it was changed.
    """
    bookingLock = None
    try:
        bookingLock = acquireLock(Booking.__tablename__, bookingId)
        booking = getBooking(session, bookingId, companyId)
        session.refresh(booking)

        haveUpdates = validators.bookingStatusTransition(booking, target)
        if haveUpdates:
            recordStatusChange(session, booking, normalizeStatus(target))
            session.commit()
            session.refresh(booking)
        return booking, haveUpdates
    finally:
        releaseLock(bookingLock)


def cancelBooking(
    session: Session, bookingId: int, companyId: int | None, reason: str | None
) -> Booking:
    bookingLock = None
    try:
        bookingLock = acquireLock(Booking.__tablename__, bookingId)
        booking = getBooking(session, bookingId, companyId)
        session.refresh(booking)

        if normalizeStatus(booking.booking_status) == BookingStatus.CANCELLED:
            raise exceptions.InvalidStateTransition(
                Booking.booking_status, "the booking is already cancelled"
            )
        validators.bookingStatusTransition(booking, BookingStatus.CANCELLED.value)
        recordStatusChange(session, booking, BookingStatus.CANCELLED, reason)
        booking.cancellation_reason = reason
        session.commit()
        session.refresh(booking)
        return booking
    finally:
        releaseLock(bookingLock)


def assignResource(
    session: Session,
    bookingId: int,
    companyId: int | None,
    resourceCls,
    resourceId: int | None,
) -> tuple[Booking, bool]:
    booking = getBooking(session, bookingId, companyId)
    haveUpdates = assign(session, booking, resourceCls, resourceId)
    if haveUpdates:
        session.refresh(booking)
    return booking, haveUpdates


## API endpoints [Executive]
@route_executive.post(
    URL_BOOKING,
    tags=["Booking"],
    response_model=BookingSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.UniqueViolation("booking_reference"),
            exceptions.ForeignKeyViolation("company_id"),
        ]
    ),
    description="""
    Creates a booking for the specified company.
    New bookings always start in the request status, without driver or vehicle.
    A booking reference is generated when none is supplied.
    Logs the booking creation with the associated token.
    """,
)
async def create_booking(
    fParam: CreateFormForEX = Depends(),
    bearer=Depends(bearer_executive),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.executiveToken(bearer.credentials, session)

        booking = createBooking(session, fParam.company_id, fParam)
        bookingData = jsonable_encoder(booking)
        logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_executive.patch(
    URL_BOOKING,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(Booking.booking_status),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Updates the trip details of a booking of any company.
    Supports partial updates, changes are saved only if the booking data has been modified.
    Completed and cancelled bookings cannot be edited.
    Logs the booking updating activity with the associated token.
    """,
)
async def update_booking(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_executive),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.executiveToken(bearer.credentials, session)

        booking, haveUpdates = updateBooking(session, fParam.id, None, fParam)
        bookingData = jsonable_encoder(booking)
        if haveUpdates:
            logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_executive.patch(
    URL_BOOKING_PAYMENT,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Sets the payment status of a booking of any company, whatever its booking status.
    Logs the payment status change with the associated token.
    """,
)
async def update_booking_payment(
    fParam: PaymentForm = Depends(),
    bearer=Depends(bearer_executive),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.executiveToken(bearer.credentials, session)

        booking, haveUpdates = updatePayment(
            session, fParam.id, None, fParam.payment_status
        )
        bookingData = jsonable_encoder(booking)
        if haveUpdates:
            logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_executive.get(
    URL_BOOKING_DETAIL,
    tags=["Booking"],
    response_model=BookingDetailSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Fetches a booking of any company with its driver and vehicle labels.
    The status history lists every accepted status change, most recent first.
    """,
)
async def fetch_booking_detail(
    qParam: BookingIdParams = Depends(), bearer=Depends(bearer_executive)
):
    try:
        session = sessionMaker()
        validators.executiveToken(bearer.credentials, session)

        return bookingDetail(session, qParam.id, None)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_executive.patch(
    URL_BOOKING_STATUS,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(Booking.booking_status),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Changes the status of a booking of any company.
    Allowed moves: request to confirmed, on_going or cancelled; confirmed to on_going or cancelled; on_going to done_service or cancelled.
    done_service and cancelled are terminal.
    Historical names (in_progress, completed, ...) are accepted and mapped onto the canonical status.
    Requesting the current status is accepted without change.
    Logs the status change with the associated token.
    """,
)
async def update_booking_status(
    fParam: StatusForm = Depends(),
    bearer=Depends(bearer_executive),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.executiveToken(bearer.credentials, session)

        booking, haveUpdates = changeStatus(
            session, fParam.id, None, fParam.booking_status
        )
        bookingData = jsonable_encoder(booking)
        if haveUpdates:
            logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_executive.delete(
    URL_BOOKING,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(Booking.booking_status),
        ]
    ),
    description="""
    Cancels a booking of any company. Bookings are never removed.
    Completed and already cancelled bookings cannot be cancelled.
    The optional cancellation_reason is stored on the booking.
    Logs the cancellation with the associated token.
    """,
)
async def cancel_booking(
    fParam: CancelForm = Depends(),
    bearer=Depends(bearer_executive),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.executiveToken(bearer.credentials, session)

        booking = cancelBooking(session, fParam.id, None, fParam.cancellation_reason)
        bookingData = jsonable_encoder(booking)
        logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_executive.get(
    URL_BOOKING,
    tags=["Booking"],
    response_model=BookingPageSchema,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Lists bookings of every company, most recent first.
    Passing company_id restricts the listing to that company.
    The status filter also matches bookings stored under a historical name of that status.
    Supports a case-insensitive search and a pickup date range.
    """,
)
async def fetch_bookings(
    qParam: QueryParamsForEX = Depends(), bearer=Depends(bearer_executive)
):
    try:
        session = sessionMaker()
        validators.executiveToken(bearer.credentials, session)

        scope = getters.executiveScope(qParam)
        return searchBooking(session, scope, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_executive.get(
    URL_BOOKING_DRIVER,
    tags=["Booking"],
    response_model=List[DriverSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Lists the drivers that can be assigned to the booking, sorted by name.
    Only active or pending drivers of the booking's company that hold no other active booking are listed.
    The booking's own driver stays in the list.
    """,
)
async def fetch_driver_candidates(
    qParam: BookingIdParams = Depends(), bearer=Depends(bearer_executive)
):
    try:
        session = sessionMaker()
        validators.executiveToken(bearer.credentials, session)

        booking = getBooking(session, qParam.id, None)
        return fetchAvailableDrivers(session, booking)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_executive.put(
    URL_BOOKING_DRIVER,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.UnknownValue(Booking.driver_id),
            exceptions.InactiveResource(Driver),
            exceptions.AssignmentConflict(Driver),
            exceptions.AssignmentInProgress(Driver),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Assigns a driver to a booking of any company, or unassigns it when driver_id is empty.
    The driver must belong to the booking's company, be active or pending and hold no other active booking.
    Eligibility is re-checked under a lock on the driver, so concurrent requests cannot double-book it.
    A second assignment for the same booking while one is running is rejected.
    Logs the assignment with the associated token.
    """,
)
async def assign_driver(
    fParam: DriverAssignForm = Depends(),
    bearer=Depends(bearer_executive),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.executiveToken(bearer.credentials, session)

        booking, haveUpdates = assignResource(
            session, fParam.id, None, Driver, fParam.driver_id
        )
        bookingData = jsonable_encoder(booking)
        if haveUpdates:
            logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_executive.get(
    URL_BOOKING_VEHICLE,
    tags=["Booking"],
    response_model=List[VehicleSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Lists the vehicles that can be assigned to the booking, sorted by plate number.
    Only active or pending vehicles of the booking's company that hold no other active booking are listed.
    The booking's own vehicle stays in the list.
    """,
)
async def fetch_vehicle_candidates(
    qParam: BookingIdParams = Depends(), bearer=Depends(bearer_executive)
):
    try:
        session = sessionMaker()
        validators.executiveToken(bearer.credentials, session)

        booking = getBooking(session, qParam.id, None)
        return fetchAvailableVehicles(session, booking)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_executive.put(
    URL_BOOKING_VEHICLE,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.UnknownValue(Booking.vehicle_id),
            exceptions.InactiveResource(Vehicle),
            exceptions.AssignmentConflict(Vehicle),
            exceptions.AssignmentInProgress(Vehicle),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Assigns a vehicle to a booking of any company, or unassigns it when vehicle_id is empty.
    The vehicle must belong to the booking's company, be active or pending and hold no other active booking.
    Logs the assignment with the associated token.
    """,
)
async def assign_vehicle(
    fParam: VehicleAssignForm = Depends(),
    bearer=Depends(bearer_executive),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.executiveToken(bearer.credentials, session)

        booking, haveUpdates = assignResource(
            session, fParam.id, None, Vehicle, fParam.vehicle_id
        )
        bookingData = jsonable_encoder(booking)
        if haveUpdates:
            logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Operator]
@route_operator.post(
    URL_BOOKING,
    tags=["Booking"],
    response_model=BookingSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.UniqueViolation("booking_reference")]
    ),
    description="""
    Creates a booking for the operator's own company.
    The company ID is derived from the token, not user input.
    New bookings always start in the request status, without driver or vehicle.
    Logs the booking creation with the associated token.
    """,
)
async def create_booking(
    fParam: CreateFormForOP = Depends(),
    bearer=Depends(bearer_operator),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        booking = createBooking(session, token.company_id, fParam)
        bookingData = jsonable_encoder(booking)
        logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.patch(
    URL_BOOKING,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(Booking.booking_status),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Updates the trip details of a booking of the operator's company.
    Supports partial updates, changes are saved only if the booking data has been modified.
    Completed and cancelled bookings cannot be edited.
    Logs the booking updating activity with the associated token.
    """,
)
async def update_booking(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_operator),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        booking, haveUpdates = updateBooking(
            session, fParam.id, token.company_id, fParam
        )
        bookingData = jsonable_encoder(booking)
        if haveUpdates:
            logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.patch(
    URL_BOOKING_PAYMENT,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Sets the payment status of a booking of the operator's company, whatever its booking status.
    Logs the payment status change with the associated token.
    """,
)
async def update_booking_payment(
    fParam: PaymentForm = Depends(),
    bearer=Depends(bearer_operator),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        booking, haveUpdates = updatePayment(
            session, fParam.id, token.company_id, fParam.payment_status
        )
        bookingData = jsonable_encoder(booking)
        if haveUpdates:
            logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.get(
    URL_BOOKING_DETAIL,
    tags=["Booking"],
    response_model=BookingDetailSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Fetches a booking of the operator's company with its driver and vehicle labels.
    The status history lists every accepted status change, most recent first.
    """,
)
async def fetch_booking_detail(
    qParam: BookingIdParams = Depends(), bearer=Depends(bearer_operator)
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        return bookingDetail(session, qParam.id, token.company_id)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.patch(
    URL_BOOKING_STATUS,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(Booking.booking_status),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Changes the status of a booking of the operator's company.
    Allowed moves: request to confirmed, on_going or cancelled; confirmed to on_going or cancelled; on_going to done_service or cancelled.
    done_service and cancelled are terminal.
    Historical names (in_progress, completed, ...) are accepted and mapped onto the canonical status.
    Requesting the current status is accepted without change.
    Logs the status change with the associated token.
    """,
)
async def update_booking_status(
    fParam: StatusForm = Depends(),
    bearer=Depends(bearer_operator),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        booking, haveUpdates = changeStatus(
            session, fParam.id, token.company_id, fParam.booking_status
        )
        bookingData = jsonable_encoder(booking)
        if haveUpdates:
            logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.delete(
    URL_BOOKING,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.InvalidStateTransition(Booking.booking_status),
        ]
    ),
    description="""
    Cancels a booking of the operator's company. Bookings are never removed.
    Completed and already cancelled bookings cannot be cancelled.
    Logs the cancellation with the associated token.
    """,
)
async def cancel_booking(
    fParam: CancelForm = Depends(),
    bearer=Depends(bearer_operator),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        booking = cancelBooking(
            session, fParam.id, token.company_id, fParam.cancellation_reason
        )
        bookingData = jsonable_encoder(booking)
        logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.get(
    URL_BOOKING,
    tags=["Booking"],
    response_model=BookingPageSchema,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Lists the bookings of the operator's company, most recent first.
    The status filter also matches bookings stored under a historical name of that status.
    Supports a case-insensitive search and a pickup date range.
    """,
)
async def fetch_bookings(
    qParam: QueryParamsForOP = Depends(), bearer=Depends(bearer_operator)
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        scope = getters.operatorScope(token, qParam)
        return searchBooking(session, scope, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.get(
    URL_BOOKING_DRIVER,
    tags=["Booking"],
    response_model=List[DriverSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Lists the drivers of the operator's company that can be assigned to the booking, sorted by name.
    The booking's own driver stays in the list.
    """,
)
async def fetch_driver_candidates(
    qParam: BookingIdParams = Depends(), bearer=Depends(bearer_operator)
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        booking = getBooking(session, qParam.id, token.company_id)
        return fetchAvailableDrivers(session, booking)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.put(
    URL_BOOKING_DRIVER,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.UnknownValue(Booking.driver_id),
            exceptions.InactiveResource(Driver),
            exceptions.AssignmentConflict(Driver),
            exceptions.AssignmentInProgress(Driver),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Assigns a driver of the operator's company to a booking, or unassigns it when driver_id is empty.
    The driver must be active or pending and hold no other active booking.
    A second assignment for the same booking while one is running is rejected.
    Logs the assignment with the associated token.
    """,
)
async def assign_driver(
    fParam: DriverAssignForm = Depends(),
    bearer=Depends(bearer_operator),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        booking, haveUpdates = assignResource(
            session, fParam.id, token.company_id, Driver, fParam.driver_id
        )
        bookingData = jsonable_encoder(booking)
        if haveUpdates:
            logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.get(
    URL_BOOKING_VEHICLE,
    tags=["Booking"],
    response_model=List[VehicleSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Lists the vehicles of the operator's company that can be assigned to the booking, sorted by plate number.
    The booking's own vehicle stays in the list.
    """,
)
async def fetch_vehicle_candidates(
    qParam: BookingIdParams = Depends(), bearer=Depends(bearer_operator)
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        booking = getBooking(session, qParam.id, token.company_id)
        return fetchAvailableVehicles(session, booking)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.put(
    URL_BOOKING_VEHICLE,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.InvalidIdentifier(),
            exceptions.UnknownValue(Booking.vehicle_id),
            exceptions.InactiveResource(Vehicle),
            exceptions.AssignmentConflict(Vehicle),
            exceptions.AssignmentInProgress(Vehicle),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Assigns a vehicle of the operator's company to a booking, or unassigns it when vehicle_id is empty.
    The vehicle must be active or pending and hold no other active booking.
    Logs the assignment with the associated token.
    """,
)
async def assign_vehicle(
    fParam: VehicleAssignForm = Depends(),
    bearer=Depends(bearer_operator),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        booking, haveUpdates = assignResource(
            session, fParam.id, token.company_id, Vehicle, fParam.vehicle_id
        )
        bookingData = jsonable_encoder(booking)
        if haveUpdates:
            logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()

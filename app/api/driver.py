from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field
from pydantic_extra_types.phone_numbers import PhoneNumber

from app.api.bearer import bearer_executive, bearer_operator
from app.src.db import Booking, Driver, sessionMaker
from app.src import exceptions, validators, getters, schemas
from app.src.loggers import logEvent
from app.src.enums import DriverStatus, DriverType
from app.src.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from app.src.functions import enumStr, fuseExceptionResponses, updateIfChanged
from app.src.gateway import PersistenceGateway
from app.src.lifecycle import ACTIVE_BOOKING_STATUS, statusFamily
from app.src.query_builder import QueryScope, buildDriverQuery
from app.src.redis import acquireLock, releaseLock
from app.src.urls import URL_DRIVER

route_executive = APIRouter()
route_operator = APIRouter()


## Output Schema
class DriverSchema(BaseModel):
    id: int
    company_id: int
    first_name: str
    last_name: str
    license_number: str
    phone_number: Optional[str]
    address: Optional[str]
    status: str
    type: str
    updated_on: Optional[datetime]
    created_on: datetime


class DriverRowSchema(DriverSchema):
    name: str
    area: str
    contact: str


class DriverPageSchema(schemas.Page):
    items: List[DriverRowSchema]


## Input Forms
class CreateFormForOP(BaseModel):
    first_name: str = Field(Form(max_length=64))
    last_name: str = Field(Form(max_length=64))
    license_number: str = Field(Form(max_length=32))
    phone_number: PhoneNumber | None = Field(
        Form(max_length=32, default=None, description="Phone number in RFC3966 format")
    )
    address: str | None = Field(Form(max_length=512, default=None))
    status: DriverStatus = Field(
        Form(description=enumStr(DriverStatus), default=DriverStatus.PENDING)
    )
    type: DriverType = Field(
        Form(description=enumStr(DriverType), default=DriverType.REGULAR)
    )


class CreateFormForEX(CreateFormForOP):
    company_id: int = Field(Form())


class UpdateForm(BaseModel):
    id: int = Field(Form())
    first_name: str | None = Field(Form(max_length=64, default=None))
    last_name: str | None = Field(Form(max_length=64, default=None))
    phone_number: PhoneNumber | None = Field(
        Form(max_length=32, default=None, description="Phone number in RFC3966 format")
    )
    address: str | None = Field(Form(max_length=512, default=None))
    status: DriverStatus | None = Field(
        Form(description=enumStr(DriverStatus), default=None)
    )
    type: DriverType | None = Field(Form(description=enumStr(DriverType), default=None))


class DeleteForm(BaseModel):
    id: int = Field(Form())


## Query Parameters
class QueryParamsForOP(BaseModel):
    status: DriverStatus | None = Field(
        Query(default=None, description=enumStr(DriverStatus))
    )
    search: str | None = Field(
        Query(default=None, max_length=64, description="Name or license number")
    )
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=DEFAULT_PAGE_SIZE, gt=0, le=MAX_PAGE_SIZE))


class QueryParamsForEX(QueryParamsForOP):
    company_id: int | None = Field(Query(default=None))


## Function
def updateDriver(driver: Driver, fParam: UpdateForm):
    updateIfChanged(
        driver,
        fParam,
        [
            Driver.first_name.key,
            Driver.last_name.key,
            Driver.phone_number.key,
            Driver.address.key,
        ],
    )
    if fParam.status is not None and driver.status != fParam.status.value:
        driver.status = fParam.status.value
    if fParam.type is not None and driver.type != fParam.type.value:
        driver.type = fParam.type.value


def searchDriver(
    session: Session, scope: QueryScope, qParam: QueryParamsForOP
) -> DriverPageSchema:
    gateway = PersistenceGateway(session)
    rows, total = gateway.fetchPage(
        buildDriverQuery(scope), qParam.limit, qParam.offset
    )
    return DriverPageSchema(
        total=total, offset=qParam.offset, limit=qParam.limit, items=rows
    )


def deleteDriver(session: Session, driver: Driver):
    driverLock = None
    try:
        driverLock = acquireLock(Driver.__tablename__, driver.id)
        isBusy = (
            session.query(Booking.id)
            .filter(Booking.driver_id == driver.id)
            .filter(Booking.booking_status.in_(statusFamily(ACTIVE_BOOKING_STATUS)))
            .first()
        )
        if isBusy is not None:
            raise exceptions.DataInUse(Driver)
        session.delete(driver)
        session.commit()
    finally:
        releaseLock(driverLock)


## API endpoints [Executive]
@route_executive.post(
    URL_DRIVER,
    tags=["Driver"],
    response_model=DriverSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.UniqueViolation("license_number")]
    ),
    description="""
    Registers a new driver for the specified company.
    The license number must be unique across the platform.
    New drivers start in the pending status unless another status is given.
    Logs the driver registration with the associated token.
    """,
)
async def create_driver(
    fParam: CreateFormForEX = Depends(),
    bearer=Depends(bearer_executive),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.executiveToken(bearer.credentials, session)

        driver = Driver(
            company_id=fParam.company_id,
            first_name=fParam.first_name,
            last_name=fParam.last_name,
            license_number=fParam.license_number,
            phone_number=fParam.phone_number,
            address=fParam.address,
            status=fParam.status.value,
            type=fParam.type.value,
        )
        session.add(driver)
        session.commit()
        session.refresh(driver)

        driverData = jsonable_encoder(driver)
        logEvent(token, request_info, driverData)
        return driverData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_executive.patch(
    URL_DRIVER,
    tags=["Driver"],
    response_model=DriverSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Updates an existing driver of any company.
    Supports partial updates, changes are saved only if the driver data has been modified.
    Logs the driver updating activity with the associated token.
    """,
)
async def update_driver(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_executive),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.executiveToken(bearer.credentials, session)

        driver = session.query(Driver).filter(Driver.id == fParam.id).first()
        if driver is None:
            raise exceptions.InvalidIdentifier()

        updateDriver(driver, fParam)
        haveUpdates = session.is_modified(driver)
        if haveUpdates:
            session.commit()
            session.refresh(driver)

        driverData = jsonable_encoder(driver)
        if haveUpdates:
            logEvent(token, request_info, driverData)
        return driverData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_executive.delete(
    URL_DRIVER,
    tags=["Driver"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.DataInUse(Driver),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Deletes a driver of any company.
    A driver held by an active booking cannot be deleted.
    Unknown IDs are silently ignored.
    Logs the deletion activity using the executive's token and request metadata.
    """,
)
async def delete_driver(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_executive),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.executiveToken(bearer.credentials, session)

        driver = session.query(Driver).filter(Driver.id == fParam.id).first()
        if driver is not None:
            deleteDriver(session, driver)
            logEvent(token, request_info, jsonable_encoder(driver))
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_executive.get(
    URL_DRIVER,
    tags=["Driver"],
    response_model=DriverPageSchema,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Lists drivers of every company, most recently registered first.
    Passing company_id restricts the listing to that company.
    Supports filtering by status and a case-insensitive search over names and license number.
    Returns the requested page together with the total number of matching drivers.
    """,
)
async def fetch_drivers(
    qParam: QueryParamsForEX = Depends(), bearer=Depends(bearer_executive)
):
    try:
        session = sessionMaker()
        validators.executiveToken(bearer.credentials, session)

        scope = getters.executiveScope(qParam)
        return searchDriver(session, scope, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Operator]
@route_operator.post(
    URL_DRIVER,
    tags=["Driver"],
    response_model=DriverSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.UniqueViolation("license_number")]
    ),
    description="""
    Registers a new driver for the operator's own company.
    The company ID is derived from the token, not user input.
    Logs the driver registration with the associated token.
    """,
)
async def create_driver(
    fParam: CreateFormForOP = Depends(),
    bearer=Depends(bearer_operator),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        driver = Driver(
            company_id=token.company_id,
            first_name=fParam.first_name,
            last_name=fParam.last_name,
            license_number=fParam.license_number,
            phone_number=fParam.phone_number,
            address=fParam.address,
            status=fParam.status.value,
            type=fParam.type.value,
        )
        session.add(driver)
        session.commit()
        session.refresh(driver)

        driverData = jsonable_encoder(driver)
        logEvent(token, request_info, driverData)
        return driverData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.patch(
    URL_DRIVER,
    tags=["Driver"],
    response_model=DriverSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Updates a driver belonging to the operator's company.
    Supports partial updates, changes are saved only if the driver data has been modified.
    Logs the driver updating activity with the associated token.
    """,
)
async def update_driver(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_operator),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        driver = (
            session.query(Driver)
            .filter(Driver.id == fParam.id)
            .filter(Driver.company_id == token.company_id)
            .first()
        )
        if driver is None:
            raise exceptions.InvalidIdentifier()

        updateDriver(driver, fParam)
        haveUpdates = session.is_modified(driver)
        if haveUpdates:
            session.commit()
            session.refresh(driver)

        driverData = jsonable_encoder(driver)
        if haveUpdates:
            logEvent(token, request_info, driverData)
        return driverData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.delete(
    URL_DRIVER,
    tags=["Driver"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.DataInUse(Driver),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Deletes a driver belonging to the operator's company.
    A driver held by an active booking cannot be deleted.
    Logs the deletion activity using the operator's token and request metadata.
    """,
)
async def delete_driver(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_operator),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        driver = (
            session.query(Driver)
            .filter(Driver.id == fParam.id)
            .filter(Driver.company_id == token.company_id)
            .first()
        )
        if driver is not None:
            deleteDriver(session, driver)
            logEvent(token, request_info, jsonable_encoder(driver))
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.get(
    URL_DRIVER,
    tags=["Driver"],
    response_model=DriverPageSchema,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Lists the drivers of the operator's company, most recently registered first.
    Supports filtering by status and a case-insensitive search over names and license number.
    Returns the requested page together with the total number of matching drivers.
    """,
)
async def fetch_drivers(
    qParam: QueryParamsForOP = Depends(), bearer=Depends(bearer_operator)
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        scope = getters.operatorScope(token, qParam)
        return searchDriver(session, scope, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()

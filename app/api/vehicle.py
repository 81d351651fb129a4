from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from app.api.bearer import bearer_executive, bearer_operator
from app.src.db import Booking, Vehicle, sessionMaker
from app.src import exceptions, validators, getters, schemas
from app.src.loggers import logEvent
from app.src.enums import VehicleStatus, VehicleOwnership
from app.src.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, REGEX_PLATE_NUMBER
from app.src.functions import enumStr, fuseExceptionResponses, updateIfChanged
from app.src.gateway import PersistenceGateway
from app.src.lifecycle import ACTIVE_BOOKING_STATUS, statusFamily
from app.src.query_builder import QueryScope, buildVehicleQuery
from app.src.redis import acquireLock, releaseLock
from app.src.urls import URL_VEHICLE

route_executive = APIRouter()
route_operator = APIRouter()


## Output Schema
class VehicleSchema(BaseModel):
    id: int
    company_id: int
    plate_number: str
    vehicle_type: Optional[str]
    make: Optional[str]
    model: Optional[str]
    year: Optional[int]
    color: Optional[str]
    status: str
    ownership: str
    updated_on: Optional[datetime]
    created_on: datetime


class VehicleRowSchema(VehicleSchema):
    display_name: str
    year_label: str


class VehiclePageSchema(schemas.Page):
    items: List[VehicleRowSchema]


## Input Forms
class CreateFormForOP(BaseModel):
    plate_number: str = Field(Form(pattern=REGEX_PLATE_NUMBER, max_length=16))
    vehicle_type: str | None = Field(Form(max_length=32, default=None))
    make: str | None = Field(Form(max_length=32, default=None))
    model: str | None = Field(Form(max_length=32, default=None))
    year: int | None = Field(Form(ge=1950, le=2100, default=None))
    color: str | None = Field(Form(max_length=32, default=None))
    status: VehicleStatus = Field(
        Form(description=enumStr(VehicleStatus), default=VehicleStatus.PENDING)
    )
    ownership: VehicleOwnership = Field(
        Form(description=enumStr(VehicleOwnership), default=VehicleOwnership.COMPANY)
    )


class CreateFormForEX(CreateFormForOP):
    company_id: int = Field(Form())


class UpdateForm(BaseModel):
    id: int = Field(Form())
    vehicle_type: str | None = Field(Form(max_length=32, default=None))
    make: str | None = Field(Form(max_length=32, default=None))
    model: str | None = Field(Form(max_length=32, default=None))
    year: int | None = Field(Form(ge=1950, le=2100, default=None))
    color: str | None = Field(Form(max_length=32, default=None))
    status: VehicleStatus | None = Field(
        Form(description=enumStr(VehicleStatus), default=None)
    )
    ownership: VehicleOwnership | None = Field(
        Form(description=enumStr(VehicleOwnership), default=None)
    )


class DeleteForm(BaseModel):
    id: int = Field(Form())


## Query Parameters
class QueryParamsForOP(BaseModel):
    status: VehicleStatus | None = Field(
        Query(default=None, description=enumStr(VehicleStatus))
    )
    search: str | None = Field(
        Query(default=None, max_length=64, description="Plate, make, model or type")
    )
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=DEFAULT_PAGE_SIZE, gt=0, le=MAX_PAGE_SIZE))


class QueryParamsForEX(QueryParamsForOP):
    company_id: int | None = Field(Query(default=None))


## Function
def updateVehicle(vehicle: Vehicle, fParam: UpdateForm):
    updateIfChanged(
        vehicle,
        fParam,
        [
            Vehicle.vehicle_type.key,
            Vehicle.make.key,
            Vehicle.model.key,
            Vehicle.year.key,
            Vehicle.color.key,
        ],
    )
    if fParam.status is not None and vehicle.status != fParam.status.value:
        vehicle.status = fParam.status.value
    if fParam.ownership is not None and vehicle.ownership != fParam.ownership.value:
        vehicle.ownership = fParam.ownership.value


def searchVehicle(
    session: Session, scope: QueryScope, qParam: QueryParamsForOP
) -> VehiclePageSchema:
    gateway = PersistenceGateway(session)
    rows, total = gateway.fetchPage(
        buildVehicleQuery(scope), qParam.limit, qParam.offset
    )
    return VehiclePageSchema(
        total=total, offset=qParam.offset, limit=qParam.limit, items=rows
    )


def deleteVehicle(session: Session, vehicle: Vehicle):
    vehicleLock = None
    try:
        vehicleLock = acquireLock(Vehicle.__tablename__, vehicle.id)
        isBusy = (
            session.query(Booking.id)
            .filter(Booking.vehicle_id == vehicle.id)
            .filter(Booking.booking_status.in_(statusFamily(ACTIVE_BOOKING_STATUS)))
            .first()
        )
        if isBusy is not None:
            raise exceptions.DataInUse(Vehicle)
        session.delete(vehicle)
        session.commit()
    finally:
        releaseLock(vehicleLock)


## API endpoints [Executive]
@route_executive.post(
    URL_VEHICLE,
    tags=["Vehicle"],
    response_model=VehicleSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.UniqueViolation("plate_number")]
    ),
    description="""
    Registers a new vehicle for the specified company.
    The plate number must be unique across the platform.
    Logs the vehicle registration with the associated token.
    """,
)
async def create_vehicle(
    fParam: CreateFormForEX = Depends(),
    bearer=Depends(bearer_executive),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.executiveToken(bearer.credentials, session)

        vehicle = Vehicle(
            company_id=fParam.company_id,
            plate_number=fParam.plate_number,
            vehicle_type=fParam.vehicle_type,
            make=fParam.make,
            model=fParam.model,
            year=fParam.year,
            color=fParam.color,
            status=fParam.status.value,
            ownership=fParam.ownership.value,
        )
        session.add(vehicle)
        session.commit()
        session.refresh(vehicle)

        vehicleData = jsonable_encoder(vehicle)
        logEvent(token, request_info, vehicleData)
        return vehicleData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_executive.patch(
    URL_VEHICLE,
    tags=["Vehicle"],
    response_model=VehicleSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Updates an existing vehicle of any company.
    The plate number is immutable, other fields support partial updates.
    Logs the vehicle updating activity with the associated token.
    """,
)
async def update_vehicle(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_executive),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.executiveToken(bearer.credentials, session)

        vehicle = session.query(Vehicle).filter(Vehicle.id == fParam.id).first()
        if vehicle is None:
            raise exceptions.InvalidIdentifier()

        updateVehicle(vehicle, fParam)
        haveUpdates = session.is_modified(vehicle)
        if haveUpdates:
            session.commit()
            session.refresh(vehicle)

        vehicleData = jsonable_encoder(vehicle)
        if haveUpdates:
            logEvent(token, request_info, vehicleData)
        return vehicleData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_executive.delete(
    URL_VEHICLE,
    tags=["Vehicle"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.DataInUse(Vehicle),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Deletes a vehicle of any company.
    A vehicle held by an active booking cannot be deleted.
    Unknown IDs are silently ignored.
    Logs the deletion activity using the executive's token and request metadata.
    """,
)
async def delete_vehicle(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_executive),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.executiveToken(bearer.credentials, session)

        vehicle = session.query(Vehicle).filter(Vehicle.id == fParam.id).first()
        if vehicle is not None:
            deleteVehicle(session, vehicle)
            logEvent(token, request_info, jsonable_encoder(vehicle))
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_executive.get(
    URL_VEHICLE,
    tags=["Vehicle"],
    response_model=VehiclePageSchema,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Lists vehicles of every company, most recently registered first.
    Passing company_id restricts the listing to that company.
    Supports filtering by status and a case-insensitive search over plate number, make, model and type.
    """,
)
async def fetch_vehicles(
    qParam: QueryParamsForEX = Depends(), bearer=Depends(bearer_executive)
):
    try:
        session = sessionMaker()
        validators.executiveToken(bearer.credentials, session)

        scope = getters.executiveScope(qParam)
        return searchVehicle(session, scope, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Operator]
@route_operator.post(
    URL_VEHICLE,
    tags=["Vehicle"],
    response_model=VehicleSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.UniqueViolation("plate_number")]
    ),
    description="""
    Registers a new vehicle for the operator's own company.
    The company ID is derived from the token, not user input.
    Logs the vehicle registration with the associated token.
    """,
)
async def create_vehicle(
    fParam: CreateFormForOP = Depends(),
    bearer=Depends(bearer_operator),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        vehicle = Vehicle(
            company_id=token.company_id,
            plate_number=fParam.plate_number,
            vehicle_type=fParam.vehicle_type,
            make=fParam.make,
            model=fParam.model,
            year=fParam.year,
            color=fParam.color,
            status=fParam.status.value,
            ownership=fParam.ownership.value,
        )
        session.add(vehicle)
        session.commit()
        session.refresh(vehicle)

        vehicleData = jsonable_encoder(vehicle)
        logEvent(token, request_info, vehicleData)
        return vehicleData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.patch(
    URL_VEHICLE,
    tags=["Vehicle"],
    response_model=VehicleSchema,
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.InvalidIdentifier()]
    ),
    description="""
    Updates a vehicle belonging to the operator's company.
    The plate number is immutable, other fields support partial updates.
    Logs the vehicle updating activity with the associated token.
    """,
)
async def update_vehicle(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_operator),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        vehicle = (
            session.query(Vehicle)
            .filter(Vehicle.id == fParam.id)
            .filter(Vehicle.company_id == token.company_id)
            .first()
        )
        if vehicle is None:
            raise exceptions.InvalidIdentifier()

        updateVehicle(vehicle, fParam)
        haveUpdates = session.is_modified(vehicle)
        if haveUpdates:
            session.commit()
            session.refresh(vehicle)

        vehicleData = jsonable_encoder(vehicle)
        if haveUpdates:
            logEvent(token, request_info, vehicleData)
        return vehicleData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.delete(
    URL_VEHICLE,
    tags=["Vehicle"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.DataInUse(Vehicle),
            exceptions.LockAcquireTimeout(),
        ]
    ),
    description="""
    Deletes a vehicle belonging to the operator's company.
    A vehicle held by an active booking cannot be deleted.
    Logs the deletion activity using the operator's token and request metadata.
    """,
)
async def delete_vehicle(
    fParam: DeleteForm = Depends(),
    bearer=Depends(bearer_operator),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        vehicle = (
            session.query(Vehicle)
            .filter(Vehicle.id == fParam.id)
            .filter(Vehicle.company_id == token.company_id)
            .first()
        )
        if vehicle is not None:
            deleteVehicle(session, vehicle)
            logEvent(token, request_info, jsonable_encoder(vehicle))
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.get(
    URL_VEHICLE,
    tags=["Vehicle"],
    response_model=VehiclePageSchema,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Lists the vehicles of the operator's company, most recently registered first.
    Supports filtering by status and a case-insensitive search over plate number, make, model and type.
    """,
)
async def fetch_vehicles(
    qParam: QueryParamsForOP = Depends(), bearer=Depends(bearer_operator)
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        scope = getters.operatorScope(token, qParam)
        return searchVehicle(session, scope, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()

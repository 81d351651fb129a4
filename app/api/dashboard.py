from datetime import date, datetime
from decimal import Decimal
from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm.session import Session
from pydantic import BaseModel, Field

from app.api.bearer import bearer_executive, bearer_operator
from app.src.db import sessionMaker
from app.src import exceptions, validators, getters, schemas
from app.src.constants import ACTIVITY_WINDOW_DAYS, DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from app.src.functions import fuseExceptionResponses
from app.src.gateway import PersistenceGateway
from app.src.query_builder import (
    ActivityScope,
    QueryScope,
    buildActivityQuery,
    buildSummaryQueries,
)
from app.src.urls import URL_ACTIVITY, URL_SUMMARY

route_executive = APIRouter()
route_operator = APIRouter()


## Output Schema
class FleetCountSchema(BaseModel):
    total: int
    active: int
    pending: int
    inactive: int
    subcon: int


class DriverSummarySchema(FleetCountSchema):
    regular: int


class VehicleSummarySchema(FleetCountSchema):
    company: int


class BookingSummarySchema(BaseModel):
    total: int
    completed: int
    pending: int
    cancelled: int
    active: int
    total_revenue: Decimal
    pending_revenue: Decimal


class SummarySchema(BaseModel):
    drivers: DriverSummarySchema
    vehicles: VehicleSummarySchema
    bookings: BookingSummarySchema


class ActivitySchema(BaseModel):
    date: date
    type: str
    idName: str
    action: str
    status: str
    sort_date: datetime
    company_id: int


class ActivityPageSchema(schemas.Page):
    items: List[ActivitySchema]


## Query Parameters
class SummaryParamsForEX(BaseModel):
    company_id: int | None = Field(Query(default=None))


class ActivityParamsForOP(BaseModel):
    days: int = Field(Query(default=ACTIVITY_WINDOW_DAYS, ge=1, le=365))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=DEFAULT_PAGE_SIZE, gt=0, le=MAX_PAGE_SIZE))


class ActivityParamsForEX(ActivityParamsForOP):
    company_id: int | None = Field(Query(default=None))


## Function
def summarize(session: Session, scope: QueryScope) -> SummarySchema:
    gateway = PersistenceGateway(session)
    summary = {
        family: gateway.executeOne(summaryQuery.query, summaryQuery.params)
        for family, summaryQuery in buildSummaryQueries(scope).items()
    }
    return SummarySchema(**summary)


def searchActivity(
    session: Session, scope: ActivityScope, qParam: ActivityParamsForOP
) -> ActivityPageSchema:
    gateway = PersistenceGateway(session)
    rows, total = gateway.fetchPage(
        buildActivityQuery(scope), qParam.limit, qParam.offset
    )
    return ActivityPageSchema(
        total=total, offset=qParam.offset, limit=qParam.limit, items=rows
    )


## API endpoints [Executive]
@route_executive.get(
    URL_SUMMARY,
    tags=["Dashboard"],
    response_model=SummarySchema,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Summary cards for drivers, vehicles and bookings across every company.
    Passing company_id restricts the figures to that company.
    Without a company every driver counts as regular and every vehicle as company owned.
    Booking revenue is split into paid and pending amounts.
    """,
)
async def fetch_summary(
    qParam: SummaryParamsForEX = Depends(), bearer=Depends(bearer_executive)
):
    try:
        session = sessionMaker()
        validators.executiveToken(bearer.credentials, session)

        scope = getters.executiveScope(qParam)
        return summarize(session, scope)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_executive.get(
    URL_ACTIVITY,
    tags=["Dashboard"],
    response_model=ActivityPageSchema,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Recent activity feed of every company, most recent first.
    Merges driver registrations, vehicle registrations and booking creations of the last `days` days.
    Booking statuses are reported as active (completed), inactive (cancelled) or pending.
    """,
)
async def fetch_activity(
    qParam: ActivityParamsForEX = Depends(), bearer=Depends(bearer_executive)
):
    try:
        session = sessionMaker()
        validators.executiveToken(bearer.credentials, session)

        scope = getters.executiveScope(qParam, ActivityScope)
        return searchActivity(session, scope, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Operator]
@route_operator.get(
    URL_SUMMARY,
    tags=["Dashboard"],
    response_model=SummarySchema,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Summary cards for the drivers, vehicles and bookings of the operator's company.
    Booking revenue is split into paid and pending amounts.
    """,
)
async def fetch_summary(bearer=Depends(bearer_operator)):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        scope = QueryScope(company_id=token.company_id, admin_view=False)
        return summarize(session, scope)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_operator.get(
    URL_ACTIVITY,
    tags=["Dashboard"],
    response_model=ActivityPageSchema,
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Recent activity feed of the operator's company, most recent first.
    Merges driver registrations, vehicle registrations and booking creations of the last `days` days.
    """,
)
async def fetch_activity(
    qParam: ActivityParamsForOP = Depends(), bearer=Depends(bearer_operator)
):
    try:
        session = sessionMaker()
        token = validators.operatorToken(bearer.credentials, session)

        scope = getters.operatorScope(token, qParam, ActivityScope)
        return searchActivity(session, scope, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()

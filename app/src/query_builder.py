"""
Scoped SQL builders for the dashboard listings.

Every builder turns a `QueryScope` into a `QueryDescriptor` holding the row
query, the total-count query and their bind parameters. Nothing is executed
here; `app.src.gateway.PersistenceGateway` runs the descriptors.

Placeholders are named `:p1 ... :pN` and numbered in bind order, so the
gateway binds `params[i]` to `p{i + 1}`. When the scope is company bound
the company predicate is always `:p1`. User supplied values are only ever
bound; enum constants may be rendered into the SQL text.

The generated SQL is restricted to constructs understood by both
PostgreSQL and SQLite (`LOWER(..) LIKE`, `CAST(.. AS TEXT)`, `DATE(..)`).
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, Field, model_validator

from app.src.constants import ACTIVITY_WINDOW_DAYS
from app.src.enums import BookingStatus
from app.src.lifecycle import normalizeStatus, statusAliases


## Input Scopes
class QueryScope(BaseModel):
    company_id: Optional[int] = None
    admin_view: bool = False
    status: Optional[str] = None
    search: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    @model_validator(mode="after")
    def requireCompany(self):
        if not self.admin_view and self.company_id is None:
            raise ValueError("company_id is required unless admin_view is set")
        return self


class ActivityScope(QueryScope):
    days: int = Field(default=ACTIVITY_WINDOW_DAYS, ge=1)


## Output Descriptors
class QueryDescriptor(BaseModel):
    query: str
    count_query: str
    params: List[Any]
    count_params: List[Any]


class SummaryQuery(BaseModel):
    query: str
    params: List[Any]


## Function
class _Binder:
    """Collects bind values and hands out their `:pN` placeholders."""

    def __init__(self):
        self.params: List[Any] = []

    def bind(self, value: Any) -> str:
        self.params.append(value)
        return f":p{len(self.params)}"


def _where(conditions: List[str]) -> str:
    return "WHERE " + " AND ".join(conditions) if conditions else ""


def _sqlList(values: List[str]) -> str:
    return ", ".join(f"'{value}'" for value in values)


def _searchTerm(search: str) -> str:
    return f"%{search.strip().lower()}%"


def _describe(
    projection: str, source: str, ordering: str, conditions: List[str], binder: _Binder
) -> QueryDescriptor:
    whereClause = _where(conditions)
    return QueryDescriptor(
        query=f"SELECT {projection} FROM {source} {whereClause} ORDER BY {ordering}",
        count_query=f"SELECT COUNT(*) AS total FROM {source} {whereClause}",
        params=list(binder.params),
        count_params=list(binder.params),
    )


def buildDriverQuery(scope: QueryScope) -> QueryDescriptor:
    binder = _Binder()
    conditions = []

    if not scope.admin_view:
        conditions.append(f"d.company_id = {binder.bind(scope.company_id)}")
    if scope.status:
        conditions.append(f"d.status = {binder.bind(scope.status)}")
    if scope.search:
        term = binder.bind(_searchTerm(scope.search))
        conditions.append(
            f"(LOWER(d.first_name) LIKE {term}"
            f" OR LOWER(d.last_name) LIKE {term}"
            f" OR LOWER(d.first_name || ' ' || d.last_name) LIKE {term}"
            f" OR LOWER(d.license_number) LIKE {term})"
        )

    projection = """
        d.id,
        d.company_id,
        d.license_number,
        d.first_name,
        d.last_name,
        d.first_name || ' ' || d.last_name AS name,
        d.phone_number,
        d.address,
        COALESCE(d.address, 'Not specified') AS area,
        COALESCE(d.phone_number, 'N/A') AS contact,
        d.status,
        d.type,
        d.updated_on,
        d.created_on
    """
    return _describe(
        projection, "driver d", "d.created_on DESC, d.id DESC", conditions, binder
    )


def buildVehicleQuery(scope: QueryScope) -> QueryDescriptor:
    binder = _Binder()
    conditions = []

    if not scope.admin_view:
        conditions.append(f"v.company_id = {binder.bind(scope.company_id)}")
    if scope.status:
        conditions.append(f"v.status = {binder.bind(scope.status)}")
    if scope.search:
        term = binder.bind(_searchTerm(scope.search))
        conditions.append(
            f"(LOWER(v.plate_number) LIKE {term}"
            f" OR LOWER(v.make) LIKE {term}"
            f" OR LOWER(v.model) LIKE {term}"
            f" OR LOWER(v.vehicle_type) LIKE {term})"
        )

    projection = """
        v.id,
        v.company_id,
        v.plate_number,
        v.vehicle_type,
        v.make,
        v.model,
        v.year,
        v.color,
        COALESCE(v.make || ' ' || v.model, v.model, 'Unknown Model') AS display_name,
        COALESCE(CAST(v.year AS TEXT), 'Unknown') AS year_label,
        v.status,
        v.ownership,
        v.updated_on,
        v.created_on
    """
    return _describe(
        projection, "vehicle v", "v.created_on DESC, v.id DESC", conditions, binder
    )


def buildBookingQuery(scope: QueryScope) -> QueryDescriptor:
    binder = _Binder()
    conditions = []

    if not scope.admin_view:
        conditions.append(f"b.company_id = {binder.bind(scope.company_id)}")
    if scope.status:
        status = normalizeStatus(scope.status)
        if status is None:
            conditions.append(f"b.booking_status = {binder.bind(scope.status)}")
        else:
            family = ", ".join(binder.bind(alias) for alias in statusAliases(status))
            conditions.append(f"b.booking_status IN ({family})")
    if scope.search:
        term = binder.bind(_searchTerm(scope.search))
        conditions.append(
            f"(LOWER(b.booking_reference) LIKE {term}"
            f" OR LOWER(b.passenger_name) LIKE {term}"
            f" OR LOWER(b.pickup_address) LIKE {term}"
            f" OR LOWER(b.destination_address) LIKE {term})"
        )
    if scope.date_from:
        conditions.append(
            f"DATE(b.pickup_datetime) >= {binder.bind(scope.date_from.isoformat())}"
        )
    if scope.date_to:
        conditions.append(
            f"DATE(b.pickup_datetime) <= {binder.bind(scope.date_to.isoformat())}"
        )

    projection = """
        b.id,
        b.company_id,
        b.booking_reference,
        b.booking_reference AS voucher,
        b.booking_status,
        b.payment_status,
        b.total_amount,
        b.pickup_datetime,
        b.pickup_address,
        b.destination_address,
        b.passenger_name,
        b.contact_number,
        b.driver_id,
        b.vehicle_id,
        b.cancellation_reason,
        b.updated_on,
        b.created_on
    """
    return _describe(
        projection, "booking b", "b.created_on DESC, b.id DESC", conditions, binder
    )


def withPagination(
    descriptor: QueryDescriptor, limit: int, offset: int
) -> Tuple[str, List[Any]]:
    """
    Append LIMIT/OFFSET to the row query of a descriptor.

    The two values take the next free placeholder positions, so the
    descriptor's own parameters keep their numbering.
    """
    binder = _Binder()
    binder.params = list(descriptor.params)
    limitParam = binder.bind(limit)
    offsetParam = binder.bind(offset)
    return (
        f"{descriptor.query} LIMIT {limitParam} OFFSET {offsetParam}",
        binder.params,
    )


def buildSummaryQueries(scope: QueryScope) -> Dict[str, SummaryQuery]:
    """
    Aggregate queries for the dashboard summary cards.

    In the admin view every driver and vehicle is counted as regular/company
    and the subcon figure is 0. In a company view the split compares each
    row's company against the requested one.
    """
    completed = _sqlList(statusAliases(BookingStatus.DONE_SERVICE))
    active = _sqlList(statusAliases(BookingStatus.ON_GOING))
    cancelled = _sqlList(statusAliases(BookingStatus.CANCELLED))
    bookingProjection = f"""
        COUNT(*) AS total,
        COUNT(CASE WHEN booking_status IN ({completed}) THEN 1 END) AS completed,
        COUNT(CASE WHEN booking_status NOT IN ({completed}, {cancelled}, {active}) THEN 1 END) AS pending,
        COUNT(CASE WHEN booking_status IN ({cancelled}) THEN 1 END) AS cancelled,
        COUNT(CASE WHEN booking_status IN ({active}) THEN 1 END) AS active,
        COALESCE(SUM(CASE WHEN payment_status = 'paid' THEN total_amount ELSE 0 END), 0) AS total_revenue,
        COALESCE(SUM(CASE WHEN payment_status = 'pending' THEN total_amount ELSE 0 END), 0) AS pending_revenue
    """
    statusProjection = """
        COUNT(*) AS total,
        COUNT(CASE WHEN status = 'active' THEN 1 END) AS active,
        COUNT(CASE WHEN status = 'pending' THEN 1 END) AS pending,
        COUNT(CASE WHEN status = 'inactive' THEN 1 END) AS inactive
    """

    if scope.admin_view:
        return {
            "drivers": SummaryQuery(
                query=f"SELECT {statusProjection}, COUNT(*) AS regular, 0 AS subcon FROM driver",
                params=[],
            ),
            "vehicles": SummaryQuery(
                query=f"SELECT {statusProjection}, COUNT(*) AS company, 0 AS subcon FROM vehicle",
                params=[],
            ),
            "bookings": SummaryQuery(
                query=f"SELECT {bookingProjection} FROM booking", params=[]
            ),
        }

    split = """
        COUNT(CASE WHEN company_id = :p2 THEN 1 END) AS {primary},
        COUNT(CASE WHEN company_id != :p3 THEN 1 END) AS subcon
    """
    companyParams = [scope.company_id, scope.company_id, scope.company_id]
    return {
        "drivers": SummaryQuery(
            query=f"SELECT {statusProjection}, {split.format(primary='regular')} FROM driver WHERE company_id = :p1",
            params=companyParams,
        ),
        "vehicles": SummaryQuery(
            query=f"SELECT {statusProjection}, {split.format(primary='company')} FROM vehicle WHERE company_id = :p1",
            params=list(companyParams),
        ),
        "bookings": SummaryQuery(
            query=f"SELECT {bookingProjection} FROM booking WHERE company_id = :p1",
            params=[scope.company_id],
        ),
    }


def buildActivityQuery(
    scope: ActivityScope, now: Optional[datetime] = None
) -> QueryDescriptor:
    """
    Unified feed of driver registrations, vehicle registrations and booking
    creations inside the last `scope.days` days, most recent first.

    Booking rows report their status on the driver/vehicle vocabulary:
    completed bookings are `active`, cancelled ones `inactive` and the rest
    `pending`.
    """
    now = now or datetime.now(timezone.utc)
    threshold = now.astimezone(timezone.utc) - timedelta(days=scope.days)

    binder = _Binder()
    companyParam = None if scope.admin_view else binder.bind(scope.company_id)
    thresholdParam = binder.bind(threshold)

    def whereFor(alias: str) -> str:
        conditions = []
        if companyParam:
            conditions.append(f"{alias}.company_id = {companyParam}")
        conditions.append(f"{alias}.created_on >= {thresholdParam}")
        return _where(conditions)

    completed = _sqlList(statusAliases(BookingStatus.DONE_SERVICE))
    cancelled = _sqlList(statusAliases(BookingStatus.CANCELLED))
    query = f"""
        SELECT act.date, act.type, act."idName", act.action, act.status,
               act.sort_date, act.company_id
        FROM (
            SELECT
                DATE(d.created_on) AS date,
                'Driver' AS type,
                d.license_number || ' - ' || d.first_name || ' ' || d.last_name AS "idName",
                'Registration' AS action,
                d.status AS status,
                d.created_on AS sort_date,
                d.company_id AS company_id
            FROM driver d
            {whereFor("d")}
            UNION ALL
            SELECT
                DATE(v.created_on) AS date,
                'Vehicle' AS type,
                v.plate_number || ' - ' || COALESCE(v.make || ' ' || v.model, 'Unknown Vehicle') AS "idName",
                'Registration' AS action,
                v.status AS status,
                v.created_on AS sort_date,
                v.company_id AS company_id
            FROM vehicle v
            {whereFor("v")}
            UNION ALL
            SELECT
                DATE(b.created_on) AS date,
                'Booking' AS type,
                b.booking_reference || ' - ' || COALESCE(b.passenger_name, 'Unknown Passenger') AS "idName",
                'Created' AS action,
                CASE
                    WHEN b.booking_status IN ({completed}) THEN 'active'
                    WHEN b.booking_status IN ({cancelled}) THEN 'inactive'
                    ELSE 'pending'
                END AS status,
                b.created_on AS sort_date,
                b.company_id AS company_id
            FROM booking b
            {whereFor("b")}
        ) AS act
        ORDER BY act.sort_date DESC, act.type, act."idName"
    """
    countQuery = f"""
        SELECT COUNT(*) AS total FROM (
            SELECT 1 AS row_marker FROM driver d {whereFor("d")}
            UNION ALL
            SELECT 1 AS row_marker FROM vehicle v {whereFor("v")}
            UNION ALL
            SELECT 1 AS row_marker FROM booking b {whereFor("b")}
        ) AS activity_count
    """
    return QueryDescriptor(
        query=query,
        count_query=countQuery,
        params=list(binder.params),
        count_params=list(binder.params),
    )

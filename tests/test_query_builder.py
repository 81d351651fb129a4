from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
import pytest
from pydantic import ValidationError

from app.src.enums import DriverStatus, PaymentStatus, VehicleStatus
from app.src.gateway import PersistenceGateway, bindParams
from app.src.query_builder import (
    ActivityScope,
    QueryScope,
    buildActivityQuery,
    buildBookingQuery,
    buildDriverQuery,
    buildSummaryQueries,
    buildVehicleQuery,
    withPagination,
)

BUILDERS = [buildDriverQuery, buildVehicleQuery, buildBookingQuery]
YESTERDAY = datetime.now(timezone.utc).date() - timedelta(days=1)
TOMORROW = datetime.now(timezone.utc).date() + timedelta(days=1)


@pytest.fixture
def fleet(seed):
    """Two companies with interleaved drivers, vehicles and bookings."""
    alpha = seed.company("Alpha Transport")
    beta = seed.company("Beta Transport")
    for index in range(3):
        for company in (alpha, beta):
            seed.driver(
                company,
                first_name=f"{company.name.split()[0]}",
                last_name=f"Driver{index}",
                status=[
                    DriverStatus.ACTIVE.value,
                    DriverStatus.PENDING.value,
                    DriverStatus.INACTIVE.value,
                ][index],
            )
            seed.vehicle(
                company,
                make="Toyota" if index % 2 == 0 else "Force",
                model="Hiace",
                vehicle_type="van",
                status=VehicleStatus.ACTIVE.value,
            )
    seed.booking(alpha, "request", passenger_name="Alice Smith")
    seed.booking(beta, "request", passenger_name="Alice Jones")
    seed.booking(alpha, "in_progress", passenger_name="Bob Smith")
    seed.booking(alpha, "on_going", passenger_name="Carol Smith")
    seed.booking(beta, "on_going", passenger_name="Dave Jones")
    seed.booking(alpha, "completed", passenger_name="Erin Smith")
    return alpha, beta


## Scope
def test_company_scope_requires_company_id():
    with pytest.raises(ValidationError):
        QueryScope(admin_view=False)
    with pytest.raises(ValidationError):
        ActivityScope(days=0, admin_view=True)

    assert QueryScope(admin_view=True).company_id is None


@pytest.mark.parametrize("builder", BUILDERS)
def test_company_predicate_is_first_placeholder(builder):
    descriptor = builder(QueryScope(company_id=7, status="active", search="x"))
    assert descriptor.params[0] == 7
    assert "company_id = :p1" in descriptor.query
    assert descriptor.params == descriptor.count_params


@pytest.mark.parametrize("builder", BUILDERS)
def test_admin_view_has_no_company_predicate(builder):
    descriptor = builder(QueryScope(company_id=7, admin_view=True))
    assert "company_id =" not in descriptor.query
    assert descriptor.params == []


def test_placeholders_follow_bind_order():
    descriptor = buildBookingQuery(
        QueryScope(
            company_id=3,
            status="cancelled",
            search="Smith",
            date_from=date(2024, 1, 1),
            date_to=date(2024, 1, 31),
        )
    )
    assert descriptor.params == [3, "cancelled", "%smith%", "2024-01-01", "2024-01-31"]
    for number in range(1, len(descriptor.params) + 1):
        assert f":p{number}" in descriptor.query
    assert f":p{len(descriptor.params) + 1}" not in descriptor.query

    query, params = withPagination(descriptor, 20, 40)
    assert query.endswith("LIMIT :p6 OFFSET :p7")
    assert params[-2:] == [20, 40]
    assert bindParams(params)["p6"] == 20
    assert bindParams(params)["p7"] == 40


def test_search_values_are_bound_not_inlined():
    descriptor = buildDriverQuery(QueryScope(company_id=1, search="x' OR 1=1 --"))
    assert "OR 1=1" not in descriptor.query
    assert "%x' or 1=1 --%" in descriptor.params


## Execution
@pytest.mark.parametrize("builder", BUILDERS)
def test_company_view_never_leaks_other_companies(session, fleet, builder):
    alpha, beta = fleet
    gateway = PersistenceGateway(session)
    for company in (alpha, beta):
        rows = gateway.fetchAll(builder(QueryScope(company_id=company.id)))
        assert rows
        assert {row["company_id"] for row in rows} == {company.id}


@pytest.mark.parametrize("builder", BUILDERS)
@pytest.mark.parametrize(
    "filters",
    [
        {},
        {"status": "active"},
        {"status": "on_going"},
        {"search": "smith"},
        {"search": "alpha"},
        {"search": "toyota", "status": "active"},
        {"search": "nobody-matches"},
        {"date_from": YESTERDAY, "date_to": TOMORROW},
        {"date_from": TOMORROW},
        {"date_to": YESTERDAY},
        {"status": "request", "date_from": YESTERDAY},
        {"search": "smith", "status": "on_going", "date_to": TOMORROW},
    ],
)
def test_count_matches_rows(session, fleet, builder, filters):
    alpha, _ = fleet
    gateway = PersistenceGateway(session)
    for scope in (
        QueryScope(company_id=alpha.id, **filters),
        QueryScope(admin_view=True, **filters),
    ):
        descriptor = builder(scope)
        assert gateway.count(descriptor) == len(gateway.fetchAll(descriptor))


def test_admin_view_spans_every_company(session, fleet):
    gateway = PersistenceGateway(session)
    rows = gateway.fetchAll(buildDriverQuery(QueryScope(admin_view=True)))
    assert len(rows) == 6
    assert len({row["company_id"] for row in rows}) == 2


def test_driver_search_and_status_intersect(session, fleet):
    alpha, _ = fleet
    gateway = PersistenceGateway(session)
    rows = gateway.fetchAll(
        buildDriverQuery(
            QueryScope(company_id=alpha.id, search="DRIVER1", status="pending")
        )
    )
    assert len(rows) == 1
    assert rows[0]["status"] == "pending"
    assert rows[0]["name"] == "Alpha Driver1"

    rows = gateway.fetchAll(
        buildDriverQuery(
            QueryScope(company_id=alpha.id, search="driver1", status="active")
        )
    )
    assert rows == []


def test_driver_search_matches_full_name_and_license(session, seed):
    company = seed.company()
    seed.driver(company, first_name="Arun", last_name="Kumar", license_number="KL-77")
    seed.driver(company, first_name="Bindu", last_name="Nair")
    gateway = PersistenceGateway(session)

    for term in ("arun kumar", "UN KU", "kl-77"):
        rows = gateway.fetchAll(
            buildDriverQuery(QueryScope(company_id=company.id, search=term))
        )
        assert [row["first_name"] for row in rows] == ["Arun"]


def test_driver_rows_carry_display_fields(session, seed):
    company = seed.company()
    seed.driver(company, first_name="Arun", last_name="Kumar")
    row = PersistenceGateway(session).fetchAll(
        buildDriverQuery(QueryScope(company_id=company.id))
    )[0]
    assert row["name"] == "Arun Kumar"
    assert row["area"] == "Not specified"
    assert row["contact"] == "N/A"


def test_vehicle_rows_carry_display_fields(session, seed):
    company = seed.company()
    seed.vehicle(company, plate_number="AB 123")
    seed.vehicle(company, plate_number="CD 456", make="Toyota", model="Hiace", year=2020)
    rows = PersistenceGateway(session).fetchAll(
        buildVehicleQuery(QueryScope(company_id=company.id))
    )
    labels = {row["plate_number"]: row for row in rows}
    assert labels["AB 123"]["display_name"] == "Unknown Model"
    assert labels["AB 123"]["year_label"] == "Unknown"
    assert labels["CD 456"]["display_name"] == "Toyota Hiace"
    assert labels["CD 456"]["year_label"] == "2020"


def test_booking_status_filter_matches_aliases(session, fleet):
    alpha, _ = fleet
    gateway = PersistenceGateway(session)
    rows = gateway.fetchAll(
        buildBookingQuery(QueryScope(company_id=alpha.id, status="in_progress"))
    )
    assert sorted(row["booking_status"] for row in rows) == ["in_progress", "on_going"]

    rows = gateway.fetchAll(
        buildBookingQuery(QueryScope(company_id=alpha.id, status="done_service"))
    )
    assert [row["booking_status"] for row in rows] == ["completed"]


def test_booking_search_and_status_intersect(session, fleet):
    alpha, _ = fleet
    gateway = PersistenceGateway(session)
    rows = gateway.fetchAll(
        buildBookingQuery(
            QueryScope(company_id=alpha.id, search="smith", status="on_going")
        )
    )
    assert sorted(row["passenger_name"] for row in rows) == ["Bob Smith", "Carol Smith"]


def test_booking_date_range(session, seed):
    company = seed.company()
    day = datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)
    for offset in range(5):
        seed.booking(company, pickup_datetime=day + timedelta(days=offset))
    gateway = PersistenceGateway(session)
    descriptor = buildBookingQuery(
        QueryScope(
            company_id=company.id,
            date_from=date(2024, 3, 11),
            date_to=date(2024, 3, 13),
        )
    )
    rows = gateway.fetchAll(descriptor)
    assert gateway.count(descriptor) == len(rows) == 3
    assert sorted(str(row["pickup_datetime"])[:10] for row in rows) == [
        "2024-03-11",
        "2024-03-12",
        "2024-03-13",
    ]


def test_fetch_page_reports_unpaged_total(session, fleet):
    gateway = PersistenceGateway(session)
    descriptor = buildVehicleQuery(QueryScope(admin_view=True))
    rows, total = gateway.fetchPage(descriptor, limit=4, offset=0)
    assert len(rows) == 4
    assert total == 6

    rows, total = gateway.fetchPage(descriptor, limit=4, offset=4)
    assert len(rows) == 2
    assert total == 6


def test_listing_is_most_recent_first(session, seed):
    company = seed.company()
    first = seed.driver(company, first_name="First")
    second = seed.driver(company, first_name="Second")
    rows = PersistenceGateway(session).fetchAll(
        buildDriverQuery(QueryScope(company_id=company.id))
    )
    assert [row["id"] for row in rows] == [second.id, first.id]


## Summary
def test_company_summary(session, seed):
    company = seed.company()
    other = seed.company()
    seed.driver(company, status="active")
    seed.driver(company, status="pending")
    seed.driver(other, status="active")
    seed.vehicle(company, status="inactive")
    seed.booking(company, "request", total_amount=Decimal("10.00"))
    seed.booking(
        company,
        "completed",
        total_amount=Decimal("25.50"),
        payment_status=PaymentStatus.PAID.value,
    )
    seed.booking(company, "in_progress", total_amount=Decimal("5.00"))
    seed.booking(company, "cancelled", total_amount=Decimal("7.00"))
    seed.booking(other, "request", total_amount=Decimal("1000.00"))

    gateway = PersistenceGateway(session)
    summary = {
        family: gateway.executeOne(summaryQuery.query, summaryQuery.params)
        for family, summaryQuery in buildSummaryQueries(
            QueryScope(company_id=company.id)
        ).items()
    }
    drivers = summary["drivers"]
    assert (drivers["total"], drivers["active"], drivers["pending"]) == (2, 1, 1)
    assert (drivers["regular"], drivers["subcon"]) == (2, 0)
    assert summary["vehicles"]["inactive"] == 1
    assert summary["vehicles"]["company"] == 1

    bookings = summary["bookings"]
    assert bookings["total"] == 4
    assert bookings["completed"] == 1
    assert bookings["active"] == 1
    assert bookings["cancelled"] == 1
    assert bookings["pending"] == 1
    assert Decimal(str(bookings["total_revenue"])) == Decimal("25.50")
    assert Decimal(str(bookings["pending_revenue"])) == Decimal("22.00")


def test_admin_summary_counts_everything_as_own_fleet(session, fleet):
    gateway = PersistenceGateway(session)
    queries = buildSummaryQueries(QueryScope(admin_view=True))
    assert all(query.params == [] for query in queries.values())

    drivers = gateway.executeOne(queries["drivers"].query)
    assert drivers["total"] == drivers["regular"] == 6
    assert drivers["subcon"] == 0
    bookings = gateway.executeOne(queries["bookings"].query)
    assert bookings["total"] == 6


def test_summary_of_empty_company_is_zero(session, seed):
    company = seed.company()
    queries = buildSummaryQueries(QueryScope(company_id=company.id))
    bookings = PersistenceGateway(session).executeOne(
        queries["bookings"].query, queries["bookings"].params
    )
    assert bookings["total"] == 0
    assert bookings["total_revenue"] == 0


## Activity
def test_activity_feed_window_and_scope(session, seed):
    company = seed.company()
    other = seed.company()
    old = datetime.now(timezone.utc) - timedelta(days=45)
    seed.driver(company, first_name="Recent", last_name="Hire", license_number="REC-1")
    seed.driver(company, first_name="Old", created_on=old)
    seed.vehicle(company, plate_number="NEW 1", make="Toyota", model="Hiace")
    seed.booking(company, "completed", booking_reference="BK-DONE")
    seed.booking(company, "cancelled", booking_reference="BK-CXL")
    seed.booking(company, "in_progress", booking_reference="BK-RUN", passenger_name="Ann")
    seed.driver(other, first_name="Elsewhere")

    gateway = PersistenceGateway(session)
    descriptor = buildActivityQuery(ActivityScope(company_id=company.id, days=30))
    rows = gateway.fetchAll(descriptor)
    assert gateway.count(descriptor) == len(rows) == 5
    assert {row["company_id"] for row in rows} == {company.id}

    names = {row["idName"]: row for row in rows}
    assert names["REC-1 - Recent Hire"]["type"] == "Driver"
    assert names["REC-1 - Recent Hire"]["action"] == "Registration"
    assert names["NEW 1 - Toyota Hiace"]["type"] == "Vehicle"
    assert names["BK-DONE - Unknown Passenger"]["status"] == "active"
    assert names["BK-CXL - Unknown Passenger"]["status"] == "inactive"
    assert names["BK-RUN - Ann"]["status"] == "pending"
    assert names["BK-RUN - Ann"]["action"] == "Created"


def test_activity_window_follows_days(session, seed):
    company = seed.company()
    seed.driver(company, created_on=datetime.now(timezone.utc) - timedelta(days=45))
    gateway = PersistenceGateway(session)

    descriptor = buildActivityQuery(ActivityScope(company_id=company.id, days=30))
    assert gateway.count(descriptor) == 0
    descriptor = buildActivityQuery(ActivityScope(company_id=company.id, days=60))
    assert gateway.count(descriptor) == 1


def test_activity_threshold_uses_supplied_clock():
    now = datetime(2024, 5, 31, 12, 0, tzinfo=timezone.utc)
    descriptor = buildActivityQuery(ActivityScope(company_id=4, days=30), now=now)
    assert descriptor.params == [4, datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)]

    descriptor = buildActivityQuery(ActivityScope(admin_view=True, days=1), now=now)
    assert descriptor.params == [datetime(2024, 5, 30, 12, 0, tzinfo=timezone.utc)]
    assert "company_id =" not in descriptor.query


def test_activity_threshold_is_bound_in_utc():
    india = timezone(timedelta(hours=5, minutes=30))
    now = datetime(2024, 5, 31, 17, 30, tzinfo=india)
    descriptor = buildActivityQuery(ActivityScope(company_id=4, days=30), now=now)
    threshold = descriptor.params[-1]
    assert threshold == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert threshold.utcoffset() == timedelta(0)


def test_activity_pages_are_stable_for_equal_timestamps(session, seed):
    company = seed.company()
    moment = datetime.now(timezone.utc) - timedelta(hours=1)
    for index in range(3):
        seed.driver(company, first_name=f"Same{index}", created_on=moment)
        seed.vehicle(company, plate_number=f"TIE {index}", created_on=moment)
        seed.booking(
            company, booking_reference=f"BK-TIE-{index}", created_on=moment
        )

    gateway = PersistenceGateway(session)
    descriptor = buildActivityQuery(ActivityScope(company_id=company.id, days=1))
    seen = []
    for offset in range(0, 9, 2):
        rows, total = gateway.fetchPage(descriptor, limit=2, offset=offset)
        seen.extend((row["type"], row["idName"]) for row in rows)
    assert total == 9
    assert len(seen) == len(set(seen)) == 9
    ordered = gateway.fetchAll(descriptor)
    assert seen == [(row["type"], row["idName"]) for row in ordered]

import argparse
from decimal import Decimal
from datetime import datetime, timedelta, timezone

from app.src import argon2
from app.src.enums import (
    CompanyStatus,
    DriverStatus,
    DriverType,
    VehicleStatus,
    VehicleOwnership,
    BookingStatus,
    PaymentStatus,
)
from app.src.db import (
    ORMbase,
    engine,
    sessionMaker,
    Executive,
    Company,
    Operator,
    Driver,
    Vehicle,
    Booking,
)


def removeTables():
    ORMbase.metadata.drop_all(engine)
    print("* All tables deleted")


def createTables():
    ORMbase.metadata.create_all(engine)
    print("* All tables created")


def initDB():
    session = sessionMaker()
    company = Company(
        name="Fleet Desk transport",
        status=CompanyStatus.VERIFIED,
        contact_person="Managing director",
        phone_number="+919496801157",
        address="Edava, Thiruvananthapuram, Kerala 695311",
        email_id="contact@fleetdesk.example",
    )
    session.add(company)
    session.flush()

    password = argon2.makePassword("password")
    admin = Executive(
        username="admin",
        password=password,
        full_name="Fleet Desk admin",
    )
    operator = Operator(
        company_id=company.id,
        username="admin",
        password=password,
        full_name="Fleet Desk operator",
    )
    session.add_all([admin, operator])
    session.commit()
    print("* Initialization completed")
    session.close()


def testDB():
    session = sessionMaker()
    now = datetime.now(timezone.utc)

    # Company with its own fleet
    company = Company(
        name="Test company",
        status=CompanyStatus.VERIFIED,
        contact_person="Bismilla Motors(Edava)",
        phone_number="+911212121212",
        address="Test, Test, Test 695311",
        email_id="example@test.com",
    )
    session.add(company)
    session.flush()

    operator = Operator(
        company_id=company.id,
        username="guest",
        password=argon2.makePassword("password"),
        full_name="Test dispatcher",
    )
    session.add(operator)
    print("* Created company and operator")

    drivers = [
        Driver(
            company_id=company.id,
            first_name="Arun",
            last_name="Kumar",
            license_number="KL0120230001",
            phone_number="+919000000001",
            address="Varkala",
            status=DriverStatus.ACTIVE.value,
            type=DriverType.REGULAR.value,
        ),
        Driver(
            company_id=company.id,
            first_name="Bindu",
            last_name="Nair",
            license_number="KL0120230002",
            phone_number="+919000000002",
            status=DriverStatus.PENDING.value,
            type=DriverType.SUBCON.value,
        ),
        Driver(
            company_id=company.id,
            first_name="Charles",
            last_name="Mathew",
            license_number="KL0120230003",
            status=DriverStatus.INACTIVE.value,
        ),
    ]
    session.add_all(drivers)
    print("* Created drivers")

    vehicles = [
        Vehicle(
            company_id=company.id,
            plate_number="KL 01 AB 1234",
            vehicle_type="sedan",
            make="Toyota",
            model="Etios",
            year=2019,
            color="White",
            status=VehicleStatus.ACTIVE.value,
        ),
        Vehicle(
            company_id=company.id,
            plate_number="KL 01 CD 5678",
            vehicle_type="van",
            make="Force",
            model="Traveller",
            status=VehicleStatus.ACTIVE.value,
            ownership=VehicleOwnership.SUBCON.value,
        ),
    ]
    session.add_all(vehicles)
    session.flush()
    print("* Created vehicles")

    # Mix of canonical and historical booking statuses
    bookings = [
        Booking(
            company_id=company.id,
            booking_status=BookingStatus.REQUEST.value,
            total_amount=Decimal("1200.00"),
            pickup_datetime=now + timedelta(days=1),
            pickup_address="Trivandrum International Airport",
            destination_address="Varkala Cliff",
            passenger_name="Alice",
            contact_number="+919111111111",
            driver_id=drivers[0].id,
            vehicle_id=vehicles[0].id,
        ),
        Booking(
            company_id=company.id,
            booking_status="in_progress",
            total_amount=Decimal("800.00"),
            pickup_datetime=now,
            pickup_address="Kovalam Beach",
            destination_address="Technopark",
            passenger_name="Bob",
            vehicle_id=vehicles[1].id,
        ),
        Booking(
            company_id=company.id,
            booking_status="completed",
            payment_status=PaymentStatus.PAID.value,
            total_amount=Decimal("450.50"),
            pickup_datetime=now - timedelta(days=2),
            pickup_address="Thampanoor",
            destination_address="Kazhakoottam",
            passenger_name="Carol",
        ),
        Booking(
            company_id=company.id,
            booking_status=BookingStatus.CANCELLED.value,
            total_amount=Decimal("300.00"),
            pickup_datetime=now - timedelta(days=1),
            pickup_address="Attingal",
            destination_address="Kollam",
            cancellation_reason="Passenger no-show",
        ),
    ]
    session.add_all(bookings)
    session.commit()
    print("* Created bookings")
    session.close()


# Setup database
if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("-rm", action="store_true", help="remove tables")
    parser.add_argument("-cr", action="store_true", help="create tables")
    parser.add_argument("-init", action="store_true", help="initialize DB")
    parser.add_argument("-test", action="store_true", help="add test data")
    args = parser.parse_args()

    if args.cr:
        createTables()
    if args.init:
        initDB()
    if args.test:
        testDB()
    if args.rm:
        removeTables()

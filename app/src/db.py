from secrets import token_hex
from sqlalchemy import (
    TEXT,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    create_engine,
    func,
)
from sqlalchemy.orm import declarative_base, sessionmaker

from app.src.constants import (
    DATABASE_URL,
    PSQL_DB_DRIVER,
    PSQL_DB_HOST,
    PSQL_DB_PASSWORD,
    PSQL_DB_NAME,
    PSQL_DB_PORT,
    PSQL_DB_USERNAME,
)
from app.src.enums import (
    AccountStatus,
    CompanyStatus,
    DriverStatus,
    DriverType,
    VehicleStatus,
    VehicleOwnership,
    BookingStatus,
    PaymentStatus,
)


# Global DBMS variables
dbURL = DATABASE_URL or (
    f"{PSQL_DB_DRIVER}://{PSQL_DB_USERNAME}:{PSQL_DB_PASSWORD}"
    f"@{PSQL_DB_HOST}:{PSQL_DB_PORT}/{PSQL_DB_NAME}"
)
engine = create_engine(url=dbURL, echo=False)
sessionMaker = sessionmaker(bind=engine, expire_on_commit=False)
ORMbase = declarative_base()


def makeBookingReference() -> str:
    return "BK" + token_hex(4).upper()


# ----------------------------------- Account DB Models ---------------------------------------#
class Executive(ORMbase):
    """
    Represents an administrator of the platform.

    Executives are not bound to any company; every listing they request is
    built with the admin view and spans all companies unless they filter by
    `company_id` themselves.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the executive.

        username (String(32)):
            Unique username used for login.
            It should start with an alphabet and be 4-32 characters long.
            Must not be null and unique.

        password (TEXT):
            Argon2 hash of the password. Plaintext is never stored.

        full_name (TEXT):
            Display name of the executive.

        status (Integer):
            Account status, mapped from `AccountStatus`.
            Defaults to `AccountStatus.ACTIVE`.

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Timestamp of when the account was created.
    """

    __tablename__ = "executive"

    id = Column(Integer, primary_key=True)
    username = Column(String(32), nullable=False, unique=True)
    password = Column(TEXT, nullable=False)
    full_name = Column(TEXT)
    status = Column(Integer, nullable=False, default=AccountStatus.ACTIVE)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class ExecutiveToken(ORMbase):
    """
    Represents an authentication token issued to an executive.

    Columns:
        id (Integer):
            Primary key. Unique identifier for this token record.

        executive_id (Integer):
            Foreign key referencing `executive.id`.
            Cascades on delete, so removing the executive deletes its tokens.

        access_token (String):
            Unique, securely generated 64-character hexadecimal access token.

        expires_in (Integer):
            Token validity in seconds.

        expires_at (DateTime):
            Date and time after which the token becomes invalid.

        client_details (TEXT):
            Optional description of the client device or environment.

        updated_on (DateTime):
            Timestamp automatically updated whenever the token record is modified.

        created_on (DateTime):
            Timestamp indicating when this token was created.
    """

    __tablename__ = "executive_token"

    id = Column(Integer, primary_key=True)
    executive_id = Column(
        Integer,
        ForeignKey("executive.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    access_token = Column(
        String(64), unique=True, nullable=False, default=lambda: token_hex(32)
    )
    expires_in = Column(Integer, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    client_details = Column(TEXT)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Company(ORMbase):
    """
    Represents a transport supplier registered in the system.

    Every driver, vehicle, booking and operator belongs to exactly one company,
    and `company_id` is the visibility boundary of the operator API.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the company.

        name (String(64)):
            Name of the company. Must be unique and is required.

        status (Integer):
            Verification status, mapped from `CompanyStatus`.
            Defaults to `CompanyStatus.UNDER_VERIFICATION`.

        address (TEXT):
            Physical or mailing address of the company.

        contact_person (TEXT):
            Name of the primary contact person for the company.

        phone_number (TEXT):
            Phone number associated with the company, RFC3966 format.

        email_id (TEXT):
            Email address for company-related communication.

        updated_on (DateTime):
            Timestamp automatically updated whenever the company record is modified.

        created_on (DateTime):
            Timestamp indicating when the company record was created.
    """

    __tablename__ = "company"

    id = Column(Integer, primary_key=True)
    name = Column(String(64), nullable=False, unique=True)
    status = Column(Integer, nullable=False, default=CompanyStatus.UNDER_VERIFICATION)
    # Contact details
    address = Column(TEXT)
    contact_person = Column(TEXT)
    phone_number = Column(TEXT)
    email_id = Column(TEXT)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Operator(ORMbase):
    """
    Represents a dashboard user working for one company.

    Operators only ever see rows of their own company; the company is taken
    from their token, never from request input.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the operator account.

        company_id (Integer):
            Foreign key referencing `company.id`.
            Cascades on delete, so removing the company removes its operators.

        username (String(32)):
            Username used for login, unique within the company.

        password (TEXT):
            Argon2 hash of the password. Plaintext is never stored.

        full_name (TEXT):
            Display name of the operator.

        status (Integer):
            Account status, mapped from `AccountStatus`.
            Defaults to `AccountStatus.ACTIVE`.

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Timestamp of when the account was created.

    Constraints:
        UniqueConstraint (username, company_id):
            The same username may exist in different companies.
    """

    __tablename__ = "operator"
    __table_args__ = (UniqueConstraint("username", "company_id"),)

    id = Column(Integer, primary_key=True)
    company_id = Column(
        Integer,
        ForeignKey("company.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    username = Column(String(32), nullable=False)
    password = Column(TEXT, nullable=False)
    full_name = Column(TEXT)
    status = Column(Integer, nullable=False, default=AccountStatus.ACTIVE)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class OperatorToken(ORMbase):
    """
    Represents an authentication token issued to an operator.

    The token carries the company context of the operator, which is what
    scopes every query made with it.

    Columns:
        id (Integer):
            Primary key.

        operator_id (Integer):
            Foreign key referencing `operator.id`.
            Cascades on delete, so removing an operator deletes its tokens.

        company_id (Integer):
            Foreign key referencing `company.id`.
            Specifies the company context in which the token is valid.

        access_token (String(64)):
            Secure token string used for authentication.

        expires_in (Integer):
            Token validity in seconds.

        expires_at (DateTime):
            Absolute timestamp indicating when the token becomes invalid.

        client_details (TEXT):
            Optional description of the client device or environment.

        updated_on (DateTime):
            Timestamp that updates automatically whenever the record is modified.

        created_on (DateTime):
            Timestamp marking when the token was created.
    """

    __tablename__ = "operator_token"

    id = Column(Integer, primary_key=True)
    operator_id = Column(
        Integer,
        ForeignKey("operator.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    company_id = Column(
        Integer, ForeignKey("company.id", ondelete="CASCADE"), nullable=False
    )
    access_token = Column(
        String(64), unique=True, nullable=False, default=lambda: token_hex(32)
    )
    expires_in = Column(Integer, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    client_details = Column(TEXT)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


# ----------------------------------- Fleet DB Models -----------------------------------------#
class Driver(ORMbase):
    """
    Represents a driver employed or sub-contracted by a company.

    A driver may be bound to at most one active booking at a time. This is
    enforced by the assignment resolver, not by a database constraint.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the driver.

        company_id (Integer):
            Foreign key referencing `company.id`.
            Cascades on delete.

        first_name (String(64)), last_name (String(64)):
            Name of the driver, used for display and search.

        license_number (String(32)):
            Driving license number. Unique across the system, used in search.

        phone_number (TEXT):
            Contact number of the driver.

        address (TEXT):
            Service area or home address, shown as the driver's area.

        status (String(16)):
            One of `DriverStatus` (active, pending, inactive).
            Only active and pending drivers can be assigned to bookings.

        type (String(16)):
            One of `DriverType` (regular, subcon).

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Registration timestamp, used for recency ordering and the activity feed.
    """

    __tablename__ = "driver"

    id = Column(Integer, primary_key=True)
    company_id = Column(
        Integer,
        ForeignKey("company.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    first_name = Column(String(64), nullable=False)
    last_name = Column(String(64), nullable=False)
    license_number = Column(String(32), nullable=False, unique=True)
    phone_number = Column(TEXT)
    address = Column(TEXT)
    status = Column(String(16), nullable=False, default=DriverStatus.PENDING.value)
    type = Column(String(16), nullable=False, default=DriverType.REGULAR.value)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Vehicle(ORMbase):
    """
    Represents a vehicle of a company's fleet.

    Like drivers, a vehicle may be bound to at most one active booking at a time.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the vehicle.

        company_id (Integer):
            Foreign key referencing `company.id`.
            Cascades on delete.

        plate_number (String(16)):
            Registration plate. Unique across the system, used in search.

        vehicle_type (String(32)):
            Free-text category such as sedan, van or coaster.

        make (String(32)), model (String(32)):
            Manufacturer and model names.

        year (Integer):
            Model year. Nullable.

        color (String(32)):
            Body colour. Nullable.

        status (String(16)):
            One of `VehicleStatus` (active, pending, inactive).

        ownership (String(16)):
            One of `VehicleOwnership` (company, subcon).

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Registration timestamp.
    """

    __tablename__ = "vehicle"

    id = Column(Integer, primary_key=True)
    company_id = Column(
        Integer,
        ForeignKey("company.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    plate_number = Column(String(16), nullable=False, unique=True)
    vehicle_type = Column(String(32))
    make = Column(String(32))
    model = Column(String(32))
    year = Column(Integer)
    color = Column(String(32))
    status = Column(String(16), nullable=False, default=VehicleStatus.PENDING.value)
    ownership = Column(
        String(16), nullable=False, default=VehicleOwnership.COMPANY.value
    )
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Booking(ORMbase):
    """
    Represents a transport booking handled by a company.

    Bookings are never hard deleted; cancellation is a status transition.

    Columns:
        id (Integer):
            Primary key. Server assigned and immutable.

        company_id (Integer):
            Foreign key referencing `company.id`. Owner scope of the booking.

        booking_reference (String(20)):
            Human facing voucher code. Unique.
            Generated as `BK` followed by 8 hex digits when not supplied.

        booking_status (String(20)):
            Lifecycle status. New bookings start as `request`.
            Stored as text so historical vocabulary (in_progress, completed, ...)
            can still be read and normalised by `app.src.lifecycle`.

        payment_status (String(20)):
            One of `PaymentStatus`. Defaults to pending.

        total_amount (Numeric(10, 2)):
            Booking amount in currency scale.

        pickup_datetime (DateTime):
            Requested pickup time, used by the date range filters.

        pickup_address (TEXT), destination_address (TEXT):
            Trip end points.

        passenger_name (TEXT), contact_number (TEXT):
            Passenger contact details.

        driver_id (Integer):
            Foreign key referencing `driver.id`. Null while unassigned,
            cleared when the driver is deleted.

        vehicle_id (Integer):
            Foreign key referencing `vehicle.id`. Null while unassigned.

        cancellation_reason (TEXT):
            Reason recorded when the booking is cancelled.

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Timestamp indicating when the booking was created.
    """

    __tablename__ = "booking"

    id = Column(Integer, primary_key=True)
    company_id = Column(
        Integer,
        ForeignKey("company.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    booking_reference = Column(
        String(20), nullable=False, unique=True, default=makeBookingReference
    )
    booking_status = Column(
        String(20), nullable=False, default=BookingStatus.REQUEST.value, index=True
    )
    payment_status = Column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value
    )
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    pickup_datetime = Column(DateTime(timezone=True), nullable=False)
    pickup_address = Column(TEXT, nullable=False)
    destination_address = Column(TEXT, nullable=False)
    passenger_name = Column(TEXT)
    contact_number = Column(TEXT)
    driver_id = Column(
        Integer, ForeignKey("driver.id", ondelete="SET NULL"), index=True
    )
    vehicle_id = Column(
        Integer, ForeignKey("vehicle.id", ondelete="SET NULL"), index=True
    )
    cancellation_reason = Column(TEXT)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class BookingStatusHistory(ORMbase):
    """
    Records every accepted status change of a booking.

    Rows are written alongside the status change itself and are removed
    with their booking.

    Columns:
        id (Integer):
            Primary key. Server assigned and immutable.

        booking_id (Integer):
            Foreign key referencing `booking.id`.
            Cascades on delete so the history goes with its booking.

        old_status (String(20)):
            Canonical status the booking left.

        new_status (String(20)):
            Canonical status the booking entered.

        remark (TEXT):
            Optional note, the cancellation reason for cancellations.

        created_on (DateTime):
            Timestamp of the change.
    """

    __tablename__ = "booking_status_history"

    id = Column(Integer, primary_key=True)
    booking_id = Column(
        Integer,
        ForeignKey("booking.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    old_status = Column(String(20), nullable=False)
    new_status = Column(String(20), nullable=False)
    remark = Column(TEXT)
    # Metadata
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())

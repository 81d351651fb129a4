from enum import Enum, IntEnum


class AppID(IntEnum):
    EXECUTIVE = 1
    OPERATOR = 2


class AccountStatus(IntEnum):
    ACTIVE = 1
    SUSPENDED = 2


class CompanyStatus(IntEnum):
    UNDER_VERIFICATION = 1
    VERIFIED = 2
    SUSPENDED = 3


# Fleet statuses are stored as text; the dashboard SQL compares them literally.
class DriverStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    INACTIVE = "inactive"


class DriverType(str, Enum):
    REGULAR = "regular"
    SUBCON = "subcon"


class VehicleStatus(str, Enum):
    ACTIVE = "active"
    PENDING = "pending"
    INACTIVE = "inactive"


class VehicleOwnership(str, Enum):
    COMPANY = "company"
    SUBCON = "subcon"


class BookingStatus(str, Enum):
    REQUEST = "request"
    CONFIRMED = "confirmed"
    ON_GOING = "on_going"
    DONE_SERVICE = "done_service"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"

"""
API Endpoint URL Constants

Relative paths of the dashboard resources. Both the executive and the
operator application serve the same paths under their own mount point.
"""

# -------------------------------
# Authentication & Tokens
# -------------------------------
URL_EXECUTIVE_TOKEN = "/fleetdesk/account/token"
URL_OPERATOR_TOKEN = "/company/account/token"

# -------------------------------
# Fleet
# -------------------------------
URL_DRIVER = "/company/driver"
URL_VEHICLE = "/company/vehicle"

# -------------------------------
# Bookings
# -------------------------------
URL_BOOKING = "/company/booking"
URL_BOOKING_DETAIL = "/company/booking/detail"
URL_BOOKING_STATUS = "/company/booking/status"
URL_BOOKING_PAYMENT = "/company/booking/payment"
URL_BOOKING_DRIVER = "/company/booking/driver"
URL_BOOKING_VEHICLE = "/company/booking/vehicle"

# -------------------------------
# Dashboard
# -------------------------------
URL_SUMMARY = "/company/summary"
URL_ACTIVITY = "/company/activity"

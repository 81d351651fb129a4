"""
Application configuration and constants for the Fleet Desk API Server.

This module centralizes environment-based configuration, resource limits,
pagination bounds, lock timeouts and other constants.

Configuration values can be overridden via environment variables.
"""

from os import environ


# ---------------------------------------------------------------------------
# Application metadata
# ---------------------------------------------------------------------------
API_TITLE = "Fleet Desk API Server"
API_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# PostgreSQL configuration
# ---------------------------------------------------------------------------
PSQL_DB_DRIVER = environ.get("PSQL_DB_DRIVER", "postgresql")
PSQL_DB_USERNAME = environ.get("PSQL_DB_USERNAME", "postgres")
PSQL_DB_PORT = environ.get("PSQL_DB_PORT", "5432")
PSQL_DB_PASSWORD = environ.get("PSQL_DB_PASSWORD", "password")
PSQL_DB_HOST = environ.get("PSQL_DB_HOST", "localhost")
PSQL_DB_NAME = environ.get("PSQL_DB_NAME", "postgres")

# Full URL override (e.g. "sqlite:///fleet.db" for the embedded setup)
DATABASE_URL = environ.get("DATABASE_URL")


# ---------------------------------------------------------------------------
# OpenObserve configuration
# ---------------------------------------------------------------------------
OPENOBSERVE_PROTOCOL = environ.get("OPENOBSERVE_PROTOCOL", "http")
OPENOBSERVE_HOST = environ.get("OPENOBSERVE_HOST", "localhost")
OPENOBSERVE_PORT = environ.get("OPENOBSERVE_PORT", "5080")
OPENOBSERVE_USERNAME = environ.get("OPENOBSERVE_USERNAME", "admin@fleetdesk.com")
OPENOBSERVE_PASSWORD = environ.get("OPENOBSERVE_PASSWORD", "password")
OPENOBSERVE_ORG = environ.get("OPENOBSERVE_ORG", "fleetdesk")
OPENOBSERVE_STREAM = environ.get("OPENOBSERVE_STREAM", "fleet-desk-server")
OPENOBSERVE_TIMEOUT = int(environ.get("OPENOBSERVE_TIMEOUT", "5"))  # seconds


# ---------------------------------------------------------------------------
# Redis configuration
# ---------------------------------------------------------------------------
REDIS_HOST = environ.get("REDIS_HOST", "localhost")
REDIS_PORT = environ.get("REDIS_PORT", "6379")
REDIS_PASSWORD = environ.get("REDIS_PASSWORD", "password")


# ---------------------------------------------------------------------------
# Resource upper limits
# ---------------------------------------------------------------------------
MAX_EXECUTIVE_TOKENS = 5  # Maximum tokens per executive
MAX_OPERATOR_TOKENS = 5  # Maximum tokens per operator
MAX_TOKEN_VALIDITY = 7 * 24 * 60 * 60  # Token validity (in seconds, 7 days)


# ---------------------------------------------------------------------------
# Regex constants (input validation)
# ---------------------------------------------------------------------------
REGEX_PLATE_NUMBER = r"^[A-Z0-9][A-Z0-9 -]{1,14}$"


# ---------------------------------------------------------------------------
# Listing constants
# ---------------------------------------------------------------------------
DEFAULT_PAGE_SIZE = 50  # Rows per page when no limit is given
MAX_PAGE_SIZE = 100  # Upper bound for the limit query parameter
ACTIVITY_WINDOW_DAYS = 30  # Default look-back for the activity feed


# ---------------------------------------------------------------------------
# Redis mutex lock constants
# ---------------------------------------------------------------------------
MUTEX_LOCK_TIMEOUT = 10  # Lock timeout (in seconds)
MUTEX_LOCK_MAX_WAIT_TIME = 60  # Max blocking wait time (in seconds)

"""
Application configuration and constants for the HostelSync transport server.

This module centralizes environment-based configuration, storage and mutex
timeouts, timezones, and other constants.

Configuration values can be overridden via environment variables.
"""

from os import environ
from zoneinfo import ZoneInfo

from hostelsync.src.enums import Role


# ---------------------------------------------------------------------------
# Application metadata
# ---------------------------------------------------------------------------
API_TITLE = "HostelSync Transport API Server"
API_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# PostgreSQL configuration
# ---------------------------------------------------------------------------
PSQL_DB_DRIVER = environ.get("PSQL_DB_DRIVER", "postgresql+psycopg2")
PSQL_DB_USERNAME = environ.get("PSQL_DB_USERNAME", "postgres")
PSQL_DB_PORT = environ.get("PSQL_DB_PORT", "5432")
PSQL_DB_PASSWORD = environ.get("PSQL_DB_PASSWORD", "password")
PSQL_DB_HOST = environ.get("PSQL_DB_HOST", "localhost")
PSQL_DB_NAME = environ.get("PSQL_DB_NAME", "postgres")


# ---------------------------------------------------------------------------
# OpenObserve configuration
# ---------------------------------------------------------------------------
OPENOBSERVE_PROTOCOL = environ.get("OPENOBSERVE_PROTOCOL", "http")
OPENOBSERVE_HOST = environ.get("OPENOBSERVE_HOST", "localhost")
OPENOBSERVE_PORT = environ.get("OPENOBSERVE_PORT", "5080")
OPENOBSERVE_USERNAME = environ.get("OPENOBSERVE_USERNAME", "admin@hostelsync.com")
OPENOBSERVE_PASSWORD = environ.get("OPENOBSERVE_PASSWORD", "password")
OPENOBSERVE_ORG = environ.get("OPENOBSERVE_ORG", "hostelsync")
OPENOBSERVE_STREAM = environ.get("OPENOBSERVE_STREAM", "transport-server")
OPENOBSERVE_TIMEOUT = float(environ.get("OPENOBSERVE_TIMEOUT", "5"))  # seconds


# ---------------------------------------------------------------------------
# Redis configuration
# ---------------------------------------------------------------------------
REDIS_HOST = environ.get("REDIS_HOST", "localhost")
REDIS_PORT = environ.get("REDIS_PORT", "6379")
REDIS_PASSWORD = environ.get("REDIS_PASSWORD", "password")
REDIS_SOCKET_TIMEOUT = float(environ.get("REDIS_SOCKET_TIMEOUT", "5"))  # seconds


# ---------------------------------------------------------------------------
# Storage timeouts
# ---------------------------------------------------------------------------
STORAGE_TIMEOUT = int(environ.get("STORAGE_TIMEOUT", "5000"))  # statement timeout (ms)
STORAGE_CONNECT_TIMEOUT = int(environ.get("STORAGE_CONNECT_TIMEOUT", "5"))  # seconds
POOL_TIMEOUT = int(environ.get("POOL_TIMEOUT", "10"))  # seconds


# ---------------------------------------------------------------------------
# Resource upper limits
# ---------------------------------------------------------------------------
MAX_TOKEN_VALIDITY = 7 * 24 * 60 * 60  # Token validity (in seconds, 7 days)
MAX_VEHICLE_CAPACITY = 120  # Seats per vehicle


# ---------------------------------------------------------------------------
# Regex constants (input validation)
# ---------------------------------------------------------------------------
REGEX_VEHICLE_NUMBER = r"^[A-Z]{2}[0-9]{2}[A-Z]{0,2}[0-9]{1,4}$"


# ---------------------------------------------------------------------------
# Timezone constants
# ---------------------------------------------------------------------------
TMZ_PRIMARY = ZoneInfo("UTC")
TMZ_BOOKING = ZoneInfo(environ.get("BOOKING_TIMEZONE", "Asia/Kolkata"))


# ---------------------------------------------------------------------------
# Redis mutex lock constants
# ---------------------------------------------------------------------------
MUTEX_LOCK_TIMEOUT = int(environ.get("MUTEX_LOCK_TIMEOUT", "10"))  # Lock timeout (in seconds)
MUTEX_LOCK_MAX_WAIT_TIME = int(
    environ.get("MUTEX_LOCK_MAX_WAIT_TIME", "10")
)  # Max blocking wait time (in seconds)


# ---------------------------------------------------------------------------
# Availability read retry constants
# ---------------------------------------------------------------------------
AVAILABILITY_READ_ATTEMPTS = int(environ.get("AVAILABILITY_READ_ATTEMPTS", "3"))
AVAILABILITY_READ_BACKOFF = float(
    environ.get("AVAILABILITY_READ_BACKOFF", "0.2")
)  # Linear backoff step (in seconds)


# ---------------------------------------------------------------------------
# Completer constants
# ---------------------------------------------------------------------------
COMPLETER_INTERVAL = int(environ.get("COMPLETER_INTERVAL", "3600"))  # seconds


# ---------------------------------------------------------------------------
# Authorization constants
# ---------------------------------------------------------------------------
ADMINISTRATIVE_ROLES = (Role.ADMIN, Role.WARDEN)  # Roles granted the administrator capability

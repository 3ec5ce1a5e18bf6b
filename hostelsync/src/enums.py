from enum import IntEnum


class AppID(IntEnum):
    TRANSPORT = 1
    ADMIN = 2


class OrderIn(IntEnum):
    ASC = 1
    DESC = 2


class AccountStatus(IntEnum):
    ACTIVE = 1
    SUSPENDED = 2


class Role(IntEnum):
    STUDENT = 1
    WARDEN = 2
    STAFF = 3
    ADMIN = 4
    PLUMBER = 5
    IT_STAFF = 6
    CLEANER = 7


class Capability(IntEnum):
    OWNER = 1
    ADMINISTRATOR = 2


class VehicleStatus(IntEnum):
    AVAILABLE = 1
    IN_MAINTENANCE = 2
    UNAVAILABLE = 3


class BookingStatus(IntEnum):
    PENDING = 1
    CONFIRMED = 2
    CANCELLED = 3
    COMPLETED = 4


class Day(IntEnum):
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6
    SUNDAY = 7

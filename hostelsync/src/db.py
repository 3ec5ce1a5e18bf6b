from secrets import token_hex
from sqlalchemy import (
    JSON,
    TEXT,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Time,
    create_engine,
    func,
    text,
)
from sqlalchemy.orm import declarative_base, sessionmaker

from hostelsync.src.constants import (
    PSQL_DB_DRIVER,
    PSQL_DB_HOST,
    PSQL_DB_PASSWORD,
    PSQL_DB_NAME,
    PSQL_DB_PORT,
    PSQL_DB_USERNAME,
    STORAGE_TIMEOUT,
    STORAGE_CONNECT_TIMEOUT,
    POOL_TIMEOUT,
)
from hostelsync.src.enums import (
    AccountStatus,
    BookingStatus,
    Role,
    VehicleStatus,
)


# Global DBMS variables
dbURL = f"{PSQL_DB_DRIVER}://{PSQL_DB_USERNAME}:{PSQL_DB_PASSWORD}@{PSQL_DB_HOST}:{PSQL_DB_PORT}/{PSQL_DB_NAME}"
engine = create_engine(
    url=dbURL,
    echo=False,
    pool_timeout=POOL_TIMEOUT,
    pool_pre_ping=True,
    connect_args={
        "connect_timeout": STORAGE_CONNECT_TIMEOUT,
        "options": f"-c statement_timeout={STORAGE_TIMEOUT} -c lock_timeout={STORAGE_TIMEOUT}",
    },
)
sessionMaker = sessionmaker(bind=engine, expire_on_commit=False)
ORMbase = declarative_base()

# Statuses that hold a seat
ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


# ----------------------------------- General DB Models ---------------------------------------#
class Account(ORMbase):
    """
    Represents a hostel resident or staff member known to the transport module.

    Accounts are owned by the identity collaborator. The transport server only
    reads them to resolve the caller of a request and the role it carries.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the account.

        name (String(64)):
            Display name of the account holder.
            Must not be null.

        email_id (String(256)):
            Email address of the account holder.
            Must be unique and not null.

        role (Integer):
            Role of the account holder. Mapped from the `Role` enum.
            Defaults to `Role.STUDENT`.
            Roles are reduced to capabilities (owner, administrator) at the
            point of authorization.

        room_no (String(16)):
            Optional hostel room number.

        status (Integer):
            Indicates the account status.
            Mapped from the `AccountStatus` enum. Defaults to `AccountStatus.ACTIVE`.

        updated_on (DateTime):
            Timestamp automatically updated whenever the account is modified.

        created_on (DateTime):
            Timestamp of when the account was created.
    """

    __tablename__ = "account"

    id = Column(Integer, primary_key=True)
    name = Column(String(64), nullable=False)
    email_id = Column(String(256), nullable=False, unique=True)
    role = Column(Integer, nullable=False, default=Role.STUDENT)
    room_no = Column(String(16))
    status = Column(Integer, nullable=False, default=AccountStatus.ACTIVE)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class AccountToken(ORMbase):
    """
    Represents a bearer token issued to an account by the identity collaborator.

    Columns:
        id (Integer):
            Primary key. Unique identifier for this token record.

        account_id (Integer):
            Foreign key referencing `account.id`.
            Cascades on delete; tokens are removed with their account.

        access_token (String):
            Unique, securely generated 64-character hexadecimal access token.
            Automatically generated using a secure random function.

        expires_in (Integer):
            Token validity in seconds.

        expires_at (DateTime):
            Date and time after which the token becomes invalid.

        updated_on (DateTime):
            Timestamp automatically updated whenever the token record is modified.

        created_on (DateTime):
            Timestamp indicating when this token was created.
    """

    __tablename__ = "account_token"

    id = Column(Integer, primary_key=True)
    account_id = Column(
        Integer,
        ForeignKey("account.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    access_token = Column(
        String(64), unique=True, nullable=False, default=lambda: token_hex(32)
    )
    expires_in = Column(Integer, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Route(ORMbase):
    """
    Represents a transport route served by the hostel.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the route.

        name (String(128)):
            Descriptive name of the route.
            Must be non-null and unique.

        description (TEXT):
            Optional description of the route.
            Maximum 2048 characters long.

        start_point (String(128)):
            Name of the pickup point where the route starts.

        end_point (String(128)):
            Name of the drop point where the route ends.

        stops (JSON):
            Ordered list of intermediate stop names.

        updated_on (DateTime):
            Timestamp automatically updated when the route record is modified.

        created_on (DateTime):
            Timestamp indicating when the route was initially created.
    """

    __tablename__ = "route"

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False, unique=True)
    description = Column(TEXT)
    start_point = Column(String(128), nullable=False)
    end_point = Column(String(128), nullable=False)
    stops = Column(JSON, nullable=False, default=list)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Vehicle(ORMbase):
    """
    Represents a vehicle of the hostel fleet.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the vehicle.

        type (String(32)):
            Kind of vehicle (bus, van, ...).
            Must be non-null.

        number (String(16)):
            Vehicle registration number.
            Must be unique and non-null.

        capacity (Integer):
            Seating capacity of the vehicle.
            Must be positive. Upper bound for the capacity of any schedule
            operated by this vehicle.

        status (Integer):
            Operational status of the vehicle.
            Mapped from the `VehicleStatus` enum. Defaults to `AVAILABLE`.

        updated_on (DateTime):
            Timestamp automatically updated whenever the record is modified.

        created_on (DateTime):
            Timestamp indicating when the vehicle record was created.
    """

    __tablename__ = "vehicle"
    __table_args__ = (CheckConstraint("capacity > 0"),)

    id = Column(Integer, primary_key=True)
    type = Column(String(32), nullable=False)
    number = Column(String(16), nullable=False, unique=True, index=True)
    capacity = Column(Integer, nullable=False)
    status = Column(Integer, nullable=False, default=VehicleStatus.AVAILABLE)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Schedule(ORMbase):
    """
    Represents a recurring transport offering on a route.

    A schedule runs once a week on `day`, between `start_time` and `end_time`,
    for every such day inside the validity window `[start_date, end_date]`.
    Each of those calendar dates has its own `max_capacity` seats.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the schedule.

        route_id (Integer):
            Foreign key referencing the route served.
            Must be non-null. Routes referenced here cannot be removed.

        vehicle_id (Integer):
            Foreign key referencing the vehicle operating the schedule.
            Must be non-null. Vehicles referenced here cannot be removed.

        day (Integer):
            Day of week on which the schedule runs.
            Mapped from the `Day` enum (ISO weekday, Monday is 1).

        start_time (Time):
            Departure time of day.

        end_time (Time):
            Arrival time of day. Must be after `start_time`.

        start_date (Date):
            First calendar date on which the schedule may be booked.

        end_date (Date):
            Last calendar date on which the schedule may be booked.
            Must not be before `start_date`.

        max_capacity (Integer):
            Seats available per calendar date. Must be positive.
            May be changed at any time; lowering it never invalidates existing bookings.

        price (Numeric(10, 2)):
            Price of one seat. Must be non-negative.

        active (Boolean):
            Whether the schedule accepts new bookings.
            Schedules are deactivated instead of deleted to preserve history.

        updated_on (DateTime):
            Timestamp automatically updated whenever the schedule is modified.

        created_on (DateTime):
            Timestamp when the schedule was created.
    """

    __tablename__ = "schedule"
    __table_args__ = (
        CheckConstraint("max_capacity > 0"),
        CheckConstraint("price >= 0"),
        CheckConstraint("start_date <= end_date"),
    )

    id = Column(Integer, primary_key=True)
    route_id = Column(Integer, ForeignKey("route.id"), nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicle.id"), nullable=False)
    day = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    max_capacity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


class Booking(ORMbase):
    """
    Represents a rider's claim on one seat of one schedule for one calendar date.

    Rows of this table are written only by the booking ledger
    (`hostelsync.src.ledger`). The number of seats taken on a schedule for a
    date is never stored; it is counted from the PENDING and CONFIRMED rows.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the booking.

        rider_id (Integer):
            Foreign key referencing the account holding the seat.

        schedule_id (Integer):
            Foreign key referencing the booked schedule.

        booking_date (Date):
            Calendar date of the ride.

        status (Integer):
            Lifecycle status. Mapped from the `BookingStatus` enum.
            PENDING -> CONFIRMED, PENDING|CONFIRMED -> CANCELLED and
            CONFIRMED -> COMPLETED are the only transitions.
            CANCELLED and COMPLETED are terminal.

        updated_on (DateTime):
            Timestamp automatically updated whenever the booking is modified.

        created_on (DateTime):
            Timestamp when the booking was created.
    """

    __tablename__ = "booking"
    __table_args__ = (
        Index("ix_booking_schedule_date_status", "schedule_id", "booking_date", "status"),
        Index(
            "uq_booking_active_rider",
            "rider_id",
            "schedule_id",
            "booking_date",
            unique=True,
            postgresql_where=text("status IN (1, 2)"),
            sqlite_where=text("status IN (1, 2)"),
        ),
    )

    id = Column(Integer, primary_key=True)
    rider_id = Column(
        Integer, ForeignKey("account.id", ondelete="CASCADE"), nullable=False, index=True
    )
    schedule_id = Column(Integer, ForeignKey("schedule.id"), nullable=False)
    booking_date = Column(Date, nullable=False)
    status = Column(Integer, nullable=False, default=BookingStatus.CONFIRMED)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())

"""
Booking ledger of the HostelSync transport module.

The ledger is the only writer of `Booking` rows. It admits bookings against a
schedule's capacity, cancels them, moves them through their lifecycle and
reports the seats left on a schedule for a calendar date.

Seats taken are never stored. They are counted from the PENDING and CONFIRMED
bookings of a `(schedule_id, booking_date)` pair on every read. Every change to
that count happens while holding the Redis mutex of the pair, and the mutex is
released only after the change is committed. Different pairs never contend.

Functions raise the exceptions of `hostelsync.src.exceptions`; raw storage
errors are normalized through `exceptions.handle`.
"""

from time import sleep
from datetime import date, datetime
from logging import getLogger
from typing import Iterable, Set
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query
from sqlalchemy.orm.session import Session

from hostelsync.src import exceptions, validators
from hostelsync.src.constants import (
    TMZ_BOOKING,
    AVAILABILITY_READ_ATTEMPTS,
    AVAILABILITY_READ_BACKOFF,
)
from hostelsync.src.db import Booking, Schedule, ACTIVE_BOOKING_STATUSES
from hostelsync.src.enums import BookingStatus, Capability
from hostelsync.src.redis import acquireLock, confirmLock, releaseLock
from hostelsync.src.schemas import Availability

logger = getLogger("uvicorn.error")

BOOKING_TRANSITIONS = {
    BookingStatus.PENDING: [BookingStatus.CONFIRMED, BookingStatus.CANCELLED],
    BookingStatus.CONFIRMED: [BookingStatus.CANCELLED, BookingStatus.COMPLETED],
    BookingStatus.CANCELLED: [],
    BookingStatus.COMPLETED: [],
}


def currentDate() -> date:
    """Today's date in the booking time zone."""
    return datetime.now(TMZ_BOOKING).date()


def countActive(session: Session, scheduleID: int, bookingDate: date) -> int:
    """Count the bookings holding a seat on a schedule for a date."""
    return (
        session.query(func.count(Booking.id))
        .filter(
            Booking.schedule_id == scheduleID,
            Booking.booking_date == bookingDate,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        .scalar()
    )


def activeBooking(
    session: Session, riderID: int, scheduleID: int, bookingDate: date
) -> Booking | None:
    return (
        session.query(Booking)
        .filter(
            Booking.rider_id == riderID,
            Booking.schedule_id == scheduleID,
            Booking.booking_date == bookingDate,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        .first()
    )


def lockedSchedule(session: Session, scheduleID: int, shared: bool = False) -> Query:
    """
    Query a schedule with a row lock held until the transaction ends.

    Bookings take the shared lock, so they never wait for each other here.
    Schedule edits take the exclusive lock, so the check for existing bookings
    and the edit itself cannot interleave with an admission.
    """
    return (
        session.query(Schedule)
        .filter(Schedule.id == scheduleID)
        .with_for_update(read=shared)
        .populate_existing()
    )


def checkBookingDate(schedule: Schedule, bookingDate: date) -> None:
    """
    Validate that a schedule runs on a date and that the date is bookable.

    Raises:
        exceptions.InvalidDate: If the date is outside the validity window,
            falls on another weekday or is already in the past.
    """
    if not schedule.start_date <= bookingDate <= schedule.end_date:
        raise exceptions.InvalidDate(
            f"The schedule is valid from {schedule.start_date} to {schedule.end_date}"
        )
    if bookingDate.isoweekday() != schedule.day:
        raise exceptions.InvalidDate("The schedule does not run on this day of the week")
    if bookingDate < currentDate():
        raise exceptions.InvalidDate("The booking date is in the past")


def createBooking(
    session: Session, riderID: int, scheduleID: int, bookingDate: date
) -> Booking:
    """
    Admit a rider onto a schedule for a calendar date.

    The pair mutex is held from the first validation until the new booking
    is committed, so the capacity count and the insert form one atomic unit
    with respect to every other mutation of the same pair. The mutex expires
    on its own, so its ownership is confirmed right before the commit; a
    booking whose mutex was lost is rolled back with `StorageTimeout`.

    The schedule row is share-locked for the transaction, so an edit of the
    schedule cannot slip between the validation and the commit.

    Args:
        session (Session): Active SQLAlchemy session.
        riderID (int): Account taking the seat.
        scheduleID (int): Schedule being booked.
        bookingDate (date): Calendar date of the ride.

    Returns:
        Booking: The committed booking, in `CONFIRMED` status.

    Raises:
        exceptions.NotFound: The schedule does not exist.
        exceptions.ScheduleInactive: The schedule is not accepting bookings.
        exceptions.InvalidDate: The date is not served by the schedule.
        exceptions.DuplicateBooking: The rider already holds a seat for the pair.
        exceptions.ScheduleFull: Every seat of the pair is taken.
        exceptions.StorageTimeout: The mutex or the database did not answer in time.
    """
    lock = acquireLock(Booking.__tablename__, scheduleID, bookingDate)
    try:
        schedule = lockedSchedule(session, scheduleID, shared=True).first()
        if schedule is None:
            raise exceptions.NotFound(Schedule)
        if not schedule.active:
            raise exceptions.ScheduleInactive()
        checkBookingDate(schedule, bookingDate)
        if activeBooking(session, riderID, scheduleID, bookingDate) is not None:
            raise exceptions.DuplicateBooking()
        if countActive(session, scheduleID, bookingDate) >= schedule.max_capacity:
            raise exceptions.ScheduleFull()

        booking = Booking(
            rider_id=riderID,
            schedule_id=scheduleID,
            booking_date=bookingDate,
            status=BookingStatus.CONFIRMED,
        )
        session.add(booking)
        confirmLock(lock)
        try:
            session.commit()
        except IntegrityError:
            # The partial unique index caught a booking the mutex did not
            session.rollback()
            if activeBooking(session, riderID, scheduleID, bookingDate) is not None:
                raise exceptions.DuplicateBooking()
            raise
        return booking
    except Exception as e:
        session.rollback()
        exceptions.handle(e)
    finally:
        releaseLock(lock)


def cancelBooking(
    session: Session,
    riderID: int,
    bookingID: int,
    capabilities: Iterable[Capability] = (),
) -> Booking:
    """
    Cancel a booking and release its seat.

    The caller owns the booking when `riderID` is its rider. Otherwise the
    caller must hold `Capability.ADMINISTRATOR` in `capabilities`.

    A booking that is already CANCELLED or COMPLETED is reported with
    `AlreadyTerminal`, including on a repeated cancellation.
    """
    lock = None
    try:
        booking = session.query(Booking).filter(Booking.id == bookingID).first()
        if booking is None:
            raise exceptions.NotFound(Booking)
        held: Set[Capability] = set(capabilities)
        if booking.rider_id == riderID:
            held.add(Capability.OWNER)
        validators.capability(held, (Capability.OWNER, Capability.ADMINISTRATOR))

        lock = acquireLock(
            Booking.__tablename__, booking.schedule_id, booking.booking_date
        )
        session.refresh(booking)
        if booking.status not in ACTIVE_BOOKING_STATUSES:
            raise exceptions.AlreadyTerminal(BookingStatus(booking.status).name)

        booking.status = BookingStatus.CANCELLED
        confirmLock(lock)
        session.commit()
        return booking
    except Exception as e:
        session.rollback()
        exceptions.handle(e)
    finally:
        releaseLock(lock)


def updateBookingStatus(
    session: Session, bookingID: int, newStatus: BookingStatus
) -> Booking:
    """
    Move a booking to `newStatus` following `BOOKING_TRANSITIONS`.

    Used by administrators to confirm PENDING bookings and to complete or
    cancel bookings on behalf of riders.

    Raises:
        exceptions.NotFound: The booking does not exist.
        exceptions.InvalidStateTransition: The transition is not permitted.
    """
    lock = None
    try:
        booking = session.query(Booking).filter(Booking.id == bookingID).first()
        if booking is None:
            raise exceptions.NotFound(Booking)

        lock = acquireLock(
            Booking.__tablename__, booking.schedule_id, booking.booking_date
        )
        session.refresh(booking)
        validators.stateTransition(
            BOOKING_TRANSITIONS, booking.status, newStatus, Booking.status
        )

        booking.status = newStatus
        confirmLock(lock)
        session.commit()
        return booking
    except Exception as e:
        session.rollback()
        exceptions.handle(e)
    finally:
        releaseLock(lock)


def readAvailability(
    session: Session, scheduleID: int, bookingDate: date
) -> Availability:
    try:
        schedule = session.query(Schedule).filter(Schedule.id == scheduleID).first()
        if schedule is None:
            raise exceptions.NotFound(Schedule)
        count = countActive(session, scheduleID, bookingDate)
        return Availability(
            schedule_id=scheduleID,
            booking_date=bookingDate,
            max_capacity=schedule.max_capacity,
            confirmed_pending_count=count,
            remaining=max(0, schedule.max_capacity - count),
        )
    except Exception as e:
        exceptions.handle(e)


def listAvailability(
    session: Session, scheduleID: int, bookingDate: date
) -> Availability:
    """
    Report the seats taken and left on a schedule for a calendar date.

    The figures are derived from the booking rows on every call. `remaining`
    floors at 0 when the capacity was lowered below the seats already taken.

    This is the only ledger operation retried internally. A `StorageTimeout`
    is retried up to `AVAILABILITY_READ_ATTEMPTS` times with a linear backoff
    of `AVAILABILITY_READ_BACKOFF` seconds; every other error is raised at once.
    """
    for attempt in range(1, AVAILABILITY_READ_ATTEMPTS + 1):
        try:
            return readAvailability(session, scheduleID, bookingDate)
        except exceptions.StorageTimeout:
            if attempt == AVAILABILITY_READ_ATTEMPTS:
                raise
            logger.warning(
                f"Availability read of schedule {scheduleID} on {bookingDate} "
                f"timed out, attempt {attempt} of {AVAILABILITY_READ_ATTEMPTS}"
            )
            session.rollback()
            sleep(AVAILABILITY_READ_BACKOFF * attempt)


def completeElapsedBookings(session: Session, today: date | None = None) -> int:
    """
    Mark every CONFIRMED booking dated before `today` as COMPLETED.

    Elapsed dates can no longer be booked, so their seat counts are not
    contended and no pair mutex is taken.

    Returns:
        int: Number of bookings completed.
    """
    if today is None:
        today = currentDate()
    try:
        completed = (
            session.query(Booking)
            .filter(
                Booking.status == BookingStatus.CONFIRMED,
                Booking.booking_date < today,
            )
            .update(
                {Booking.status: BookingStatus.COMPLETED},
                synchronize_session=False,
            )
        )
        session.commit()
        return completed
    except Exception as e:
        session.rollback()
        exceptions.handle(e)

from datetime import date

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.lock import Lock
from sqlalchemy.dialects import postgresql

from hostelsync.src import exceptions, ledger, redis
from hostelsync.src.db import Booking
from hostelsync.src.enums import BookingStatus, Capability

FIRST_FRIDAY = date(2024, 3, 1)


def book(session, rider, schedule, bookingDate=FIRST_FRIDAY):
    return ledger.createBooking(session, rider.id, schedule.id, bookingDate)


class TestCreateBooking:
    def test_booking_is_confirmed(self, session, student, friday_schedule):
        booking = book(session, student, friday_schedule)

        assert booking.id is not None
        assert booking.rider_id == student.id
        assert booking.schedule_id == friday_schedule.id
        assert booking.booking_date == FIRST_FRIDAY
        assert booking.status == BookingStatus.CONFIRMED

    def test_unknown_schedule(self, session, student):
        with pytest.raises(exceptions.NotFound):
            ledger.createBooking(session, student.id, 404, FIRST_FRIDAY)

    def test_inactive_schedule(self, session, student, friday_schedule):
        friday_schedule.active = False
        session.commit()

        with pytest.raises(exceptions.ScheduleInactive):
            book(session, student, friday_schedule)

    def test_date_after_validity_window(self, session, student, friday_schedule):
        with pytest.raises(exceptions.InvalidDate):
            book(session, student, friday_schedule, date(2024, 4, 1))

    def test_date_on_wrong_weekday(self, session, student, friday_schedule):
        # 2024-03-15 is a friday, 2024-03-14 a thursday
        book(session, student, friday_schedule, date(2024, 3, 15))
        with pytest.raises(exceptions.InvalidDate):
            book(session, student, friday_schedule, date(2024, 3, 14))

    def test_date_in_the_past(self, session, student, friday_schedule, monkeypatch):
        monkeypatch.setattr(ledger, "currentDate", lambda: date(2024, 3, 2))

        with pytest.raises(exceptions.InvalidDate) as e:
            book(session, student, friday_schedule)
        assert "past" in e.value.detail

    def test_inactive_is_reported_before_invalid_date(
        self, session, student, friday_schedule
    ):
        friday_schedule.active = False
        session.commit()

        with pytest.raises(exceptions.ScheduleInactive):
            book(session, student, friday_schedule, date(2024, 4, 1))

    def test_duplicate_booking(self, session, student, friday_schedule):
        book(session, student, friday_schedule)

        with pytest.raises(exceptions.DuplicateBooking):
            book(session, student, friday_schedule)

    def test_duplicate_is_reported_before_full(
        self, session, riders, friday_schedule
    ):
        taken = riders(5)
        for rider in taken:
            book(session, rider, friday_schedule)

        with pytest.raises(exceptions.DuplicateBooking):
            book(session, taken[0], friday_schedule)

    def test_pending_booking_blocks_duplicate(self, session, student, friday_schedule):
        session.add(
            Booking(
                rider_id=student.id,
                schedule_id=friday_schedule.id,
                booking_date=FIRST_FRIDAY,
                status=BookingStatus.PENDING,
            )
        )
        session.commit()

        with pytest.raises(exceptions.DuplicateBooking):
            book(session, student, friday_schedule)

    def test_rebooking_after_cancellation(self, session, student, friday_schedule):
        first = book(session, student, friday_schedule)
        ledger.cancelBooking(session, student.id, first.id)

        second = book(session, student, friday_schedule)
        assert second.id != first.id
        assert second.status == BookingStatus.CONFIRMED

    def test_schedule_full(self, session, riders, friday_schedule):
        taken = riders(6)
        for rider in taken[:5]:
            book(session, rider, friday_schedule)

        with pytest.raises(exceptions.ScheduleFull):
            book(session, taken[5], friday_schedule)

    def test_dates_are_counted_separately(self, session, riders, friday_schedule):
        taken = riders(6)
        for rider in taken[:5]:
            book(session, rider, friday_schedule)

        booking = book(session, taken[5], friday_schedule, date(2024, 3, 8))
        assert booking.status == BookingStatus.CONFIRMED

    def test_lock_is_released(self, session, student, friday_schedule, fake_redis):
        book(session, student, friday_schedule)
        with pytest.raises(exceptions.DuplicateBooking):
            book(session, student, friday_schedule)

        assert fake_redis.keys("lock:*") == []

    def test_release_failure_keeps_the_booking_error(
        self, session, student, monkeypatch
    ):
        def brokenRelease(lock):
            raise RedisConnectionError("Connection reset by peer")

        monkeypatch.setattr(Lock, "release", brokenRelease)

        with pytest.raises(exceptions.NotFound):
            ledger.createBooking(session, student.id, 404, FIRST_FRIDAY)

    def test_lost_mutex_rolls_back(
        self, session, student, friday_schedule, fake_redis, monkeypatch
    ):
        def stolenLock(*args):
            lock = redis.acquireLock(*args)
            fake_redis.set(lock.name, "another client")
            return lock

        monkeypatch.setattr(ledger, "acquireLock", stolenLock)
        with pytest.raises(exceptions.StorageTimeout):
            book(session, student, friday_schedule)

        assert session.query(Booking).count() == 0
        assert fake_redis.get(f"lock:booking:{friday_schedule.id}:2024-03-01") == (
            "another client"
        )

    def test_booking_shares_the_schedule_row_lock(
        self, session, student, friday_schedule, monkeypatch
    ):
        modes = []
        lockedSchedule = ledger.lockedSchedule

        def recordMode(session, scheduleID, shared=False):
            modes.append(shared)
            return lockedSchedule(session, scheduleID, shared)

        monkeypatch.setattr(ledger, "lockedSchedule", recordMode)
        book(session, student, friday_schedule)

        assert modes == [True]


class TestScheduleRowLock:
    def compiled(self, session, **kwargs) -> str:
        query = ledger.lockedSchedule(session, 1, **kwargs)
        return str(query.statement.compile(dialect=postgresql.dialect()))

    def test_bookings_take_a_shared_lock(self, session):
        assert self.compiled(session, shared=True).endswith("FOR SHARE")

    def test_edits_take_an_exclusive_lock(self, session):
        assert self.compiled(session).endswith("FOR UPDATE")


class TestCancelBooking:
    def test_cancel_releases_capacity(self, session, riders, friday_schedule):
        taken = riders(7)
        bookings = [book(session, rider, friday_schedule) for rider in taken[:5]]

        cancelled = ledger.cancelBooking(session, taken[0].id, bookings[0].id)
        assert cancelled.status == BookingStatus.CANCELLED

        book(session, taken[5], friday_schedule)
        with pytest.raises(exceptions.ScheduleFull):
            book(session, taken[6], friday_schedule)

    def test_second_cancel_is_already_terminal(self, session, student, friday_schedule):
        booking = book(session, student, friday_schedule)

        ledger.cancelBooking(session, student.id, booking.id)
        with pytest.raises(exceptions.AlreadyTerminal) as e:
            ledger.cancelBooking(session, student.id, booking.id)
        assert "cancelled" in e.value.detail

    def test_completed_booking_is_terminal(self, session, student, friday_schedule):
        booking = book(session, student, friday_schedule)
        ledger.updateBookingStatus(session, booking.id, BookingStatus.COMPLETED)

        with pytest.raises(exceptions.AlreadyTerminal):
            ledger.cancelBooking(session, student.id, booking.id)

    def test_unknown_booking(self, session, student):
        with pytest.raises(exceptions.NotFound):
            ledger.cancelBooking(session, student.id, 404)

    def test_other_rider_is_unauthorized(
        self, session, student, other_student, friday_schedule
    ):
        booking = book(session, student, friday_schedule)

        with pytest.raises(exceptions.Unauthorized):
            ledger.cancelBooking(session, other_student.id, booking.id)
        session.refresh(booking)
        assert booking.status == BookingStatus.CONFIRMED

    def test_administrator_cancels_for_rider(
        self, session, student, admin, friday_schedule
    ):
        booking = book(session, student, friday_schedule)

        cancelled = ledger.cancelBooking(
            session, admin.id, booking.id, {Capability.ADMINISTRATOR}
        )
        assert cancelled.status == BookingStatus.CANCELLED

    def test_pending_booking_can_be_cancelled(self, session, student, friday_schedule):
        pending = Booking(
            rider_id=student.id,
            schedule_id=friday_schedule.id,
            booking_date=FIRST_FRIDAY,
            status=BookingStatus.PENDING,
        )
        session.add(pending)
        session.commit()

        cancelled = ledger.cancelBooking(session, student.id, pending.id)
        assert cancelled.status == BookingStatus.CANCELLED


class TestUpdateBookingStatus:
    @pytest.fixture
    def pending(self, session, student, friday_schedule):
        pending = Booking(
            rider_id=student.id,
            schedule_id=friday_schedule.id,
            booking_date=FIRST_FRIDAY,
            status=BookingStatus.PENDING,
        )
        session.add(pending)
        session.commit()
        return pending

    def test_confirm_pending_keeps_count(self, session, pending, friday_schedule):
        before = ledger.listAvailability(session, friday_schedule.id, FIRST_FRIDAY)
        confirmed = ledger.updateBookingStatus(
            session, pending.id, BookingStatus.CONFIRMED
        )
        after = ledger.listAvailability(session, friday_schedule.id, FIRST_FRIDAY)

        assert confirmed.status == BookingStatus.CONFIRMED
        assert before.confirmed_pending_count == after.confirmed_pending_count == 1

    def test_pending_cannot_complete(self, session, pending):
        with pytest.raises(exceptions.InvalidStateTransition):
            ledger.updateBookingStatus(session, pending.id, BookingStatus.COMPLETED)

    def test_cancelled_is_final(self, session, pending):
        ledger.updateBookingStatus(session, pending.id, BookingStatus.CANCELLED)

        for status in BookingStatus:
            with pytest.raises(exceptions.InvalidStateTransition):
                ledger.updateBookingStatus(session, pending.id, status)

    def test_confirmed_cannot_return_to_pending(self, session, pending):
        ledger.updateBookingStatus(session, pending.id, BookingStatus.CONFIRMED)

        with pytest.raises(exceptions.InvalidStateTransition):
            ledger.updateBookingStatus(session, pending.id, BookingStatus.PENDING)

    def test_unknown_booking(self, session):
        with pytest.raises(exceptions.NotFound):
            ledger.updateBookingStatus(session, 404, BookingStatus.CONFIRMED)


class TestListAvailability:
    def test_counts_follow_bookings(self, session, riders, friday_schedule):
        taken = riders(3)
        bookings = [book(session, rider, friday_schedule) for rider in taken]

        availability = ledger.listAvailability(
            session, friday_schedule.id, FIRST_FRIDAY
        )
        assert availability.confirmed_pending_count == 3
        assert availability.remaining == 2
        assert availability.max_capacity == 5

        ledger.cancelBooking(session, taken[0].id, bookings[0].id)
        availability = ledger.listAvailability(
            session, friday_schedule.id, FIRST_FRIDAY
        )
        assert availability.confirmed_pending_count == 2
        assert availability.remaining == 3

    def test_remaining_floors_at_zero(self, session, riders, friday_schedule):
        for rider in riders(4):
            book(session, rider, friday_schedule)
        friday_schedule.max_capacity = 2
        session.commit()

        availability = ledger.listAvailability(
            session, friday_schedule.id, FIRST_FRIDAY
        )
        assert availability.confirmed_pending_count == 4
        assert availability.remaining == 0

    def test_unknown_schedule(self, session):
        with pytest.raises(exceptions.NotFound):
            ledger.listAvailability(session, 404, FIRST_FRIDAY)

    def test_timeouts_are_retried(self, session, friday_schedule, monkeypatch):
        delays = []
        attempts = []
        original = ledger.readAvailability

        def flaky(session, scheduleID, bookingDate):
            attempts.append(scheduleID)
            if len(attempts) < 3:
                raise exceptions.StorageTimeout()
            return original(session, scheduleID, bookingDate)

        monkeypatch.setattr(ledger, "readAvailability", flaky)
        monkeypatch.setattr(ledger, "sleep", delays.append)

        availability = ledger.listAvailability(
            session, friday_schedule.id, FIRST_FRIDAY
        )
        assert availability.remaining == 5
        assert len(attempts) == 3
        assert delays == [
            ledger.AVAILABILITY_READ_BACKOFF,
            ledger.AVAILABILITY_READ_BACKOFF * 2,
        ]

    def test_retries_are_bounded(self, session, friday_schedule, monkeypatch):
        attempts = []

        def timeout(session, scheduleID, bookingDate):
            attempts.append(scheduleID)
            raise exceptions.StorageTimeout()

        monkeypatch.setattr(ledger, "readAvailability", timeout)
        monkeypatch.setattr(ledger, "sleep", lambda seconds: None)

        with pytest.raises(exceptions.StorageTimeout):
            ledger.listAvailability(session, friday_schedule.id, FIRST_FRIDAY)
        assert len(attempts) == ledger.AVAILABILITY_READ_ATTEMPTS

    def test_other_errors_are_not_retried(self, session, monkeypatch):
        attempts = []

        def unavailable(session, scheduleID, bookingDate):
            attempts.append(scheduleID)
            raise exceptions.StorageUnavailable()

        monkeypatch.setattr(ledger, "readAvailability", unavailable)

        with pytest.raises(exceptions.StorageUnavailable):
            ledger.listAvailability(session, 1, FIRST_FRIDAY)
        assert len(attempts) == 1


class TestCompleteElapsedBookings:
    def test_only_elapsed_confirmed_bookings(self, session, riders, friday_schedule):
        first, second, third = riders(3)
        elapsed = book(session, first, friday_schedule, date(2024, 3, 1))
        cancelled = book(session, second, friday_schedule, date(2024, 3, 1))
        ledger.cancelBooking(session, second.id, cancelled.id)
        upcoming = book(session, third, friday_schedule, date(2024, 3, 8))

        completed = ledger.completeElapsedBookings(session, date(2024, 3, 8))

        assert completed == 1
        for booking in (elapsed, cancelled, upcoming):
            session.refresh(booking)
        assert elapsed.status == BookingStatus.COMPLETED
        assert cancelled.status == BookingStatus.CANCELLED
        assert upcoming.status == BookingStatus.CONFIRMED

    def test_completed_seat_is_released(self, session, riders, friday_schedule):
        for rider in riders(2):
            book(session, rider, friday_schedule)

        ledger.completeElapsedBookings(session, date(2024, 3, 2))

        availability = ledger.listAvailability(
            session, friday_schedule.id, FIRST_FRIDAY
        )
        assert availability.confirmed_pending_count == 0

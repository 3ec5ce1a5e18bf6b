from datetime import date
from functools import partial
from threading import Thread
from time import monotonic, sleep

from fastapi import status

from hostelsync.src import ledger, redis
from hostelsync.src.enums import AppID, BookingStatus

FIRST_FRIDAY = date(2024, 3, 1)
BOOKING_URL = "/transport/bookings"


def createBooking(client, account, scheduleID, bookingDate=FIRST_FRIDAY):
    return client.post(
        BOOKING_URL,
        headers=account.header,
        json={"scheduleId": scheduleID, "bookingDate": bookingDate.isoformat()},
    )


class TestCreate:
    def test_created(self, client, student, friday_schedule, events):
        response = createBooking(client, student, friday_schedule.id)

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["rider_id"] == student.id
        assert data["schedule_id"] == friday_schedule.id
        assert data["booking_date"] == "2024-03-01"
        assert data["status"] == BookingStatus.CONFIRMED
        assert set(data) == {
            "id",
            "rider_id",
            "schedule_id",
            "booking_date",
            "status",
            "updated_on",
            "created_on",
        }

        assert len(events) == 1
        assert events[0]["_method"] == "POST"
        assert events[0]["_path"].endswith("/bookings")
        assert events[0]["_app_id"] == AppID.TRANSPORT
        assert events[0]["_account_id"] == student.id
        assert events[0]["id"] == data["id"]

    def test_unknown_schedule(self, client, student):
        response = createBooking(client, student, 404)

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["kind"] == "NotFound"
        assert response.headers["X-Error"] == "NotFound"

    def test_inactive_schedule(self, client, student, friday_schedule, session):
        friday_schedule.active = False
        session.commit()

        response = createBooking(client, student, friday_schedule.id)

        assert response.status_code == status.HTTP_412_PRECONDITION_FAILED
        assert response.json()["kind"] == "ScheduleInactive"

    def test_invalid_date(self, client, student, friday_schedule):
        response = createBooking(client, student, friday_schedule.id, date(2024, 4, 1))

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        body = response.json()
        assert body["kind"] == "InvalidDate"
        assert body["detail"]

    def test_duplicate(self, client, student, friday_schedule, events):
        createBooking(client, student, friday_schedule.id)
        response = createBooking(client, student, friday_schedule.id)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["kind"] == "DuplicateBooking"
        assert len(events) == 1

    def test_full(self, client, riders, friday_schedule):
        taken = riders(6)
        for rider in taken[:5]:
            createBooking(client, rider, friday_schedule.id)

        response = createBooking(client, taken[5], friday_schedule.id)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json()["kind"] == "ScheduleFull"

    def test_malformed_date(self, client, student, friday_schedule):
        response = client.post(
            BOOKING_URL,
            headers=student.header,
            json={"scheduleId": friday_schedule.id, "bookingDate": "first friday"},
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_invalid_token(self, client, friday_schedule):
        response = client.post(
            BOOKING_URL,
            headers={"Authorization": "Bearer not-a-token"},
            json={"scheduleId": friday_schedule.id, "bookingDate": "2024-03-01"},
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["kind"] == "InvalidToken"


class TestCancel:
    def test_cancel_twice(self, client, student, friday_schedule, events):
        bookingID = createBooking(client, student, friday_schedule.id).json()["id"]

        first = client.delete(f"{BOOKING_URL}/{bookingID}", headers=student.header)
        second = client.delete(f"{BOOKING_URL}/{bookingID}", headers=student.header)

        assert first.status_code == status.HTTP_200_OK
        assert first.json()["status"] == BookingStatus.CANCELLED
        assert second.status_code == status.HTTP_409_CONFLICT
        assert second.json()["kind"] == "AlreadyTerminal"
        assert [event["_method"] for event in events] == ["POST", "DELETE"]

    def test_cancel_of_another_rider(
        self, client, student, other_student, friday_schedule
    ):
        bookingID = createBooking(client, student, friday_schedule.id).json()["id"]

        response = client.delete(
            f"{BOOKING_URL}/{bookingID}", headers=other_student.header
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["kind"] == "Unauthorized"

    def test_warden_cancels_for_rider(self, client, student, warden, friday_schedule):
        bookingID = createBooking(client, student, friday_schedule.id).json()["id"]

        response = client.delete(f"{BOOKING_URL}/{bookingID}", headers=warden.header)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == BookingStatus.CANCELLED

    def test_unknown_booking(self, client, student):
        response = client.delete(f"{BOOKING_URL}/404", headers=student.header)

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["kind"] == "NotFound"

    def test_cancel_frees_a_seat(self, client, riders, friday_schedule):
        taken = riders(7)
        bookingIDs = [
            createBooking(client, rider, friday_schedule.id).json()["id"]
            for rider in taken[:5]
        ]

        client.delete(f"{BOOKING_URL}/{bookingIDs[0]}", headers=taken[0].header)

        assert createBooking(client, taken[5], friday_schedule.id).status_code == 201
        assert createBooking(client, taken[6], friday_schedule.id).status_code == 409


class TestMyBookings:
    def test_only_own_bookings(self, client, student, other_student, friday_schedule):
        createBooking(client, student, friday_schedule.id)
        createBooking(client, student, friday_schedule.id, date(2024, 3, 8))
        createBooking(client, other_student, friday_schedule.id)

        response = client.get(f"{BOOKING_URL}/me", headers=student.header)

        assert response.status_code == status.HTTP_200_OK
        bookings = response.json()
        assert len(bookings) == 2
        assert {booking["rider_id"] for booking in bookings} == {student.id}

    def test_filters(self, client, student, friday_schedule):
        first = createBooking(client, student, friday_schedule.id).json()
        createBooking(client, student, friday_schedule.id, date(2024, 3, 8))
        client.delete(f"{BOOKING_URL}/{first['id']}", headers=student.header)

        response = client.get(
            f"{BOOKING_URL}/me",
            headers=student.header,
            params={"status": int(BookingStatus.CONFIRMED)},
        )

        assert [booking["booking_date"] for booking in response.json()] == [
            "2024-03-08"
        ]

    def test_inactive_schedule_keeps_bookings(
        self, client, student, admin, friday_schedule
    ):
        createBooking(client, student, friday_schedule.id)
        client.patch(
            "/transport/admin/schedules",
            headers=admin.header,
            json={"id": friday_schedule.id, "active": False},
        )

        response = createBooking(client, student, friday_schedule.id, date(2024, 3, 8))
        assert response.status_code == status.HTTP_412_PRECONDITION_FAILED
        assert response.json()["kind"] == "ScheduleInactive"

        bookings = client.get(f"{BOOKING_URL}/me", headers=student.header).json()
        assert [booking["status"] for booking in bookings] == [BookingStatus.CONFIRMED]


class TestAdminBookings:
    def test_list_requires_administrator(self, client, student):
        response = client.get("/transport/admin/bookings", headers=student.header)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["kind"] == "Unauthorized"

    def test_list_by_rider(self, client, admin, student, other_student, friday_schedule):
        createBooking(client, student, friday_schedule.id)
        createBooking(client, other_student, friday_schedule.id)

        response = client.get(
            "/transport/admin/bookings",
            headers=admin.header,
            params={"rider_id": other_student.id},
        )

        assert [booking["rider_id"] for booking in response.json()] == [
            other_student.id
        ]

    def test_complete_booking(self, client, admin, student, friday_schedule, events):
        bookingID = createBooking(client, student, friday_schedule.id).json()["id"]

        response = client.patch(
            f"/transport/admin/bookings/{bookingID}",
            headers=admin.header,
            json={"status": BookingStatus.COMPLETED},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == BookingStatus.COMPLETED
        assert events[-1]["_app_id"] == AppID.ADMIN

    def test_invalid_transition(self, client, admin, student, friday_schedule):
        bookingID = createBooking(client, student, friday_schedule.id).json()["id"]

        response = client.patch(
            f"/transport/admin/bookings/{bookingID}",
            headers=admin.header,
            json={"status": BookingStatus.PENDING},
        )

        assert response.status_code == status.HTTP_406_NOT_ACCEPTABLE
        assert response.json()["kind"] == "InvalidStateTransition"

    def test_rider_cannot_change_status(self, client, student, friday_schedule):
        bookingID = createBooking(client, student, friday_schedule.id).json()["id"]

        response = client.patch(
            f"/transport/admin/bookings/{bookingID}",
            headers=student.header,
            json={"status": BookingStatus.COMPLETED},
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestStorageErrors:
    def test_lock_timeout(
        self, client, student, friday_schedule, fake_redis, monkeypatch
    ):
        fake_redis.set(f"lock:booking:{friday_schedule.id}:2024-03-01", "held")
        monkeypatch.setattr(
            ledger, "acquireLock", partial(redis.acquireLock, blockingTimeOut=0.1)
        )

        response = createBooking(client, student, friday_schedule.id)

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.json()["kind"] == "StorageTimeout"
        assert response.headers["Retry-After"] == "1"

    def test_waiting_request_leaves_other_pairs_free(
        self, client, riders, friday_schedule, fake_redis, monkeypatch
    ):
        fake_redis.set(f"lock:booking:{friday_schedule.id}:2024-03-01", "held")
        monkeypatch.setattr(
            ledger, "acquireLock", partial(redis.acquireLock, blockingTimeOut=3)
        )
        waiter, other = riders(2)
        results = {}

        def book(rider, bookingDate):
            started = monotonic()
            response = createBooking(client, rider, friday_schedule.id, bookingDate)
            results[rider.id] = (response.status_code, monotonic() - started)

        waiting = Thread(target=book, args=(waiter, FIRST_FRIDAY))
        waiting.start()
        sleep(0.3)
        book(other, date(2024, 3, 8))
        waiting.join()

        statusCode, elapsed = results[other.id]
        assert statusCode == status.HTTP_201_CREATED
        assert elapsed < 2
        assert results[waiter.id][0] == status.HTTP_503_SERVICE_UNAVAILABLE

from datetime import date, datetime
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Path, status, Body
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from hostelsync.api.bearer import bearer_account
from hostelsync.src.db import Booking, Schedule, sessionMaker
from hostelsync.src import exceptions, validators, getters, ledger
from hostelsync.src.loggers import logEvent
from hostelsync.src.enums import BookingStatus, Capability, OrderIn
from hostelsync.src.functions import enumStr, fuseExceptionResponses, promoteToParent
from hostelsync.src.urls import URL_BOOKING, URL_MY_BOOKING, URL_BOOKING_ITEM

route_transport = APIRouter()
route_admin = APIRouter()


## Output Schema
class BookingSchema(BaseModel):
    id: int
    rider_id: int
    schedule_id: int
    booking_date: date
    status: int
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(BaseModel):
    schedule_id: int = Field(Body(alias="scheduleId"))
    booking_date: date = Field(Body(alias="bookingDate"))


class UpdateForm(BaseModel):
    status: BookingStatus = Field(
        Body(embed=True, description=enumStr(BookingStatus))
    )


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    booking_date = 2
    updated_on = 3
    created_on = 4


class QueryParamsForRider(BaseModel):
    # filters
    schedule_id: int | None = Field(Query(default=None))
    status: BookingStatus | None = Field(
        Query(default=None, description=enumStr(BookingStatus))
    )
    # booking_date based
    booking_date: date | None = Field(Query(default=None))
    booking_date_ge: date | None = Field(Query(default=None))
    booking_date_le: date | None = Field(Query(default=None))
    # created_on based
    created_on_ge: datetime | None = Field(Query(default=None))
    created_on_le: datetime | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


class QueryParamsForAdmin(QueryParamsForRider):
    rider_id: int | None = Field(Query(default=None))
    # id based
    id: int | None = Field(Query(default=None))
    id_list: List[int] | None = Field(Query(default=None))
    # updated_on based
    updated_on_ge: datetime | None = Field(Query(default=None))
    updated_on_le: datetime | None = Field(Query(default=None))


## Function
def searchBooking(session: Session, qParam: QueryParamsForAdmin) -> List[Booking]:
    query = session.query(Booking)

    # Filters
    if qParam.rider_id is not None:
        query = query.filter(Booking.rider_id == qParam.rider_id)
    if qParam.schedule_id is not None:
        query = query.filter(Booking.schedule_id == qParam.schedule_id)
    if qParam.status is not None:
        query = query.filter(Booking.status == qParam.status)
    # id based
    if qParam.id is not None:
        query = query.filter(Booking.id == qParam.id)
    if qParam.id_list is not None:
        query = query.filter(Booking.id.in_(qParam.id_list))
    # booking_date based
    if qParam.booking_date is not None:
        query = query.filter(Booking.booking_date == qParam.booking_date)
    if qParam.booking_date_ge is not None:
        query = query.filter(Booking.booking_date >= qParam.booking_date_ge)
    if qParam.booking_date_le is not None:
        query = query.filter(Booking.booking_date <= qParam.booking_date_le)
    # updated_on based
    if qParam.updated_on_ge is not None:
        query = query.filter(Booking.updated_on >= qParam.updated_on_ge)
    if qParam.updated_on_le is not None:
        query = query.filter(Booking.updated_on <= qParam.updated_on_le)
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(Booking.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        query = query.filter(Booking.created_on <= qParam.created_on_le)

    # Ordering
    ordering_attr = getattr(Booking, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(ordering_attr.asc())
    else:
        query = query.order_by(ordering_attr.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Rider]
# Endpoints that wait on a mutex are plain functions and run in the threadpool
@route_transport.post(
    URL_BOOKING,
    tags=["Booking"],
    response_model=BookingSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NotFound(Schedule),
            exceptions.ScheduleInactive(),
            exceptions.InvalidDate(),
            exceptions.DuplicateBooking(),
            exceptions.ScheduleFull(),
            exceptions.StorageTimeout(),
        ]
    ),
    description="""
    Book one seat on a schedule for a calendar date.
    The body carries `scheduleId` and `bookingDate` (ISO-8601 date).
    The schedule must exist and be active.
    The date must lie within the validity window of the schedule, fall on its day of week and not be in the past.
    A rider holds at most one active booking per schedule and date.
    The seat count of the schedule for the date is checked and the booking inserted under one mutex, the booking is confirmed immediately.
    A request that fails with `StorageTimeout` may be retried, a repeated success is reported as `DuplicateBooking`.
    Logs the booking creation activity with the associated token.
    """,
)
def create_booking(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)

        booking = ledger.createBooking(
            session, token.account_id, fParam.schedule_id, fParam.booking_date
        )
        session.refresh(booking)

        bookingData = jsonable_encoder(booking)
        logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_transport.get(
    URL_MY_BOOKING,
    tags=["Booking"],
    response_model=List[BookingSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch the bookings of the caller.
    Supports filtering by schedule, status and booking date, sorting and pagination.
    """,
)
async def fetch_my_bookings(
    qParam: QueryParamsForRider = Depends(), bearer=Depends(bearer_account)
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)

        qParam = promoteToParent(qParam, QueryParamsForAdmin, rider_id=token.account_id)
        return searchBooking(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_transport.delete(
    URL_BOOKING_ITEM,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NotFound(Booking),
            exceptions.Unauthorized(),
            exceptions.AlreadyTerminal(),
            exceptions.StorageTimeout(),
        ]
    ),
    description="""
    Cancel a booking and release its seat.
    The caller must be the rider of the booking or hold an administrative role (ADMIN, WARDEN).
    Only PENDING and CONFIRMED bookings can be cancelled, a booking that is already cancelled or completed is reported with `AlreadyTerminal`.
    The released seat is immediately available to new bookings.
    Logs the cancellation activity with the associated token.
    """,
)
def cancel_booking(
    booking_id: int = Path(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        account = getters.account(token, session)

        booking = ledger.cancelBooking(
            session, account.id, booking_id, getters.capabilities(account)
        )
        session.refresh(booking)

        bookingData = jsonable_encoder(booking)
        logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Admin]
@route_admin.get(
    URL_BOOKING,
    tags=["Booking"],
    response_model=List[BookingSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.Unauthorized()]
    ),
    description="""
    Fetch the bookings of every rider.
    Requires an administrative role (ADMIN, WARDEN).
    Supports filtering by rider, schedule, status and dates, sorting and pagination.
    """,
)
async def fetch_bookings(
    qParam: QueryParamsForAdmin = Depends(), bearer=Depends(bearer_account)
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        account = getters.account(token, session)
        validators.capability(getters.capabilities(account), [Capability.ADMINISTRATOR])

        return searchBooking(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.patch(
    URL_BOOKING_ITEM,
    tags=["Booking"],
    response_model=BookingSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.Unauthorized(),
            exceptions.NotFound(Booking),
            exceptions.InvalidStateTransition(Booking.status),
            exceptions.StorageTimeout(),
        ]
    ),
    description="""
    Change the status of a booking.
    Requires an administrative role (ADMIN, WARDEN).
    Permitted transitions are PENDING to CONFIRMED, PENDING or CONFIRMED to CANCELLED and CONFIRMED to COMPLETED.
    CANCELLED and COMPLETED bookings are final.
    Logs the status change activity with the associated token.
    """,
)
def update_booking(
    booking_id: int = Path(),
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        account = getters.account(token, session)
        validators.capability(getters.capabilities(account), [Capability.ADMINISTRATOR])

        booking = ledger.updateBookingStatus(session, booking_id, fParam.status)
        session.refresh(booking)

        bookingData = jsonable_encoder(booking)
        logEvent(token, request_info, bookingData)
        return bookingData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()

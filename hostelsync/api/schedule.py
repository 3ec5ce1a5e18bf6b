from datetime import date, datetime, time
from decimal import Decimal
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Path, status, Body
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from hostelsync.api.bearer import bearer_account
from hostelsync.src.db import Booking, Route, Schedule, Vehicle, sessionMaker
from hostelsync.src import exceptions, validators, getters, ledger, schemas
from hostelsync.src.loggers import logEvent
from hostelsync.src.enums import Capability, Day, OrderIn
from hostelsync.src.functions import (
    changedFields,
    enumStr,
    fuseExceptionResponses,
    updateIfChanged,
)
from hostelsync.src.urls import URL_SCHEDULE, URL_SCHEDULE_AVAILABILITY

route_transport = APIRouter()
route_admin = APIRouter()


## Output Schema
class ScheduleSchema(BaseModel):
    id: int
    route_id: int
    vehicle_id: int
    day: int
    start_time: time
    end_time: time
    start_date: date
    end_date: date
    max_capacity: int
    price: float
    active: bool
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(BaseModel):
    route_id: int = Field(Body())
    vehicle_id: int = Field(Body())
    day: Day = Field(Body(description=enumStr(Day)))
    start_time: time = Field(Body())
    end_time: time = Field(Body())
    start_date: date = Field(Body())
    end_date: date = Field(Body())
    max_capacity: int | None = Field(
        Body(gt=0, default=None, description="Defaults to the vehicle capacity")
    )
    price: Decimal = Field(Body(ge=0, max_digits=10, decimal_places=2, default=0))
    active: bool = Field(Body(default=True))


class UpdateForm(BaseModel):
    id: int = Field(Body())
    route_id: int | None = Field(Body(default=None))
    vehicle_id: int | None = Field(Body(default=None))
    day: Day | None = Field(Body(default=None, description=enumStr(Day)))
    start_time: time | None = Field(Body(default=None))
    end_time: time | None = Field(Body(default=None))
    start_date: date | None = Field(Body(default=None))
    end_date: date | None = Field(Body(default=None))
    max_capacity: int | None = Field(Body(gt=0, default=None))
    price: Decimal | None = Field(
        Body(ge=0, max_digits=10, decimal_places=2, default=None)
    )
    active: bool | None = Field(Body(default=None))


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    day = 2
    start_time = 3
    start_date = 4
    updated_on = 5
    created_on = 6


class QueryParams(BaseModel):
    # filters
    route_id: int | None = Field(Query(default=None))
    vehicle_id: int | None = Field(Query(default=None))
    day: Day | None = Field(Query(default=None, description=enumStr(Day)))
    active: bool | None = Field(Query(default=None))
    # id based
    id: int | None = Field(Query(default=None))
    id_list: List[int] | None = Field(Query(default=None))
    # runs_on based
    runs_on: date | None = Field(
        Query(default=None, description="Schedules serving this calendar date")
    )
    # price based
    price_ge: Decimal | None = Field(Query(default=None))
    price_le: Decimal | None = Field(Query(default=None))
    # created_on based
    created_on_ge: datetime | None = Field(Query(default=None))
    created_on_le: datetime | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


class AvailabilityParams(BaseModel):
    booking_date: date = Field(Query())


## Function
def validateSchedule(schedule: Schedule, vehicle: Vehicle):
    if schedule.start_date > schedule.end_date:
        raise exceptions.InvalidValue(Schedule.end_date)
    if schedule.start_time >= schedule.end_time:
        raise exceptions.InvalidValue(Schedule.end_time)
    if schedule.max_capacity > vehicle.capacity:
        raise exceptions.InvalidValue(Schedule.max_capacity)


def hasBookings(session: Session, scheduleID: int) -> bool:
    return (
        session.query(Booking.id).filter(Booking.schedule_id == scheduleID).first()
        is not None
    )


def updateSchedule(session: Session, schedule: Schedule, fParam: UpdateForm):
    frozen = changedFields(
        schedule,
        fParam,
        [
            Schedule.route_id.key,
            Schedule.vehicle_id.key,
            Schedule.day.key,
            Schedule.start_time.key,
            Schedule.end_time.key,
            Schedule.start_date.key,
            Schedule.end_date.key,
            Schedule.price.key,
        ],
    )
    if frozen and hasBookings(session, schedule.id):
        raise exceptions.DataInUse(Schedule)

    if fParam.route_id is not None and schedule.route_id != fParam.route_id:
        route = session.query(Route).filter(Route.id == fParam.route_id).first()
        if route is None:
            raise exceptions.UnknownValue(Schedule.route_id)
    vehicleID = fParam.vehicle_id or schedule.vehicle_id
    vehicle = session.query(Vehicle).filter(Vehicle.id == vehicleID).first()
    if vehicle is None:
        raise exceptions.UnknownValue(Schedule.vehicle_id)

    updateIfChanged(
        schedule,
        fParam,
        [
            Schedule.route_id.key,
            Schedule.vehicle_id.key,
            Schedule.day.key,
            Schedule.start_time.key,
            Schedule.end_time.key,
            Schedule.start_date.key,
            Schedule.end_date.key,
            Schedule.max_capacity.key,
            Schedule.price.key,
            Schedule.active.key,
        ],
    )
    validateSchedule(schedule, vehicle)


def searchSchedule(session: Session, qParam: QueryParams) -> List[Schedule]:
    query = session.query(Schedule)

    # Filters
    if qParam.route_id is not None:
        query = query.filter(Schedule.route_id == qParam.route_id)
    if qParam.vehicle_id is not None:
        query = query.filter(Schedule.vehicle_id == qParam.vehicle_id)
    if qParam.day is not None:
        query = query.filter(Schedule.day == qParam.day)
    if qParam.active is not None:
        query = query.filter(Schedule.active == qParam.active)
    # id based
    if qParam.id is not None:
        query = query.filter(Schedule.id == qParam.id)
    if qParam.id_list is not None:
        query = query.filter(Schedule.id.in_(qParam.id_list))
    # runs_on based
    if qParam.runs_on is not None:
        query = query.filter(
            Schedule.day == qParam.runs_on.isoweekday(),
            Schedule.start_date <= qParam.runs_on,
            Schedule.end_date >= qParam.runs_on,
        )
    # price based
    if qParam.price_ge is not None:
        query = query.filter(Schedule.price >= qParam.price_ge)
    if qParam.price_le is not None:
        query = query.filter(Schedule.price <= qParam.price_le)
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(Schedule.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        query = query.filter(Schedule.created_on <= qParam.created_on_le)

    # Ordering
    ordering_attr = getattr(Schedule, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(ordering_attr.asc())
    else:
        query = query.order_by(ordering_attr.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Rider]
@route_transport.get(
    URL_SCHEDULE_AVAILABILITY,
    tags=["Schedule"],
    response_model=schemas.Availability,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.NotFound(Schedule),
            exceptions.StorageTimeout(),
        ]
    ),
    description="""
    Fetch the seats taken and left on a schedule for a calendar date.
    `confirmed_pending_count` counts the PENDING and CONFIRMED bookings, `remaining` never drops below 0.
    The figures are computed from the bookings on every request.
    A read that times out is retried a bounded number of times before `StorageTimeout` is returned.
    """,
)
def fetch_availability(
    schedule_id: int = Path(),
    qParam: AvailabilityParams = Depends(),
    bearer=Depends(bearer_account),
):
    try:
        session = sessionMaker()
        validators.accountToken(bearer.credentials, session)

        return ledger.listAvailability(session, schedule_id, qParam.booking_date)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Admin]
@route_admin.post(
    URL_SCHEDULE,
    tags=["Schedule"],
    response_model=ScheduleSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.Unauthorized(),
            exceptions.UnknownValue(Schedule.route_id),
            exceptions.InvalidValue(Schedule.max_capacity),
        ]
    ),
    description="""
    Create a new schedule on a route.
    Requires an administrative role (ADMIN, WARDEN).
    The route and the vehicle must exist.
    The start date must not be after the end date and the start time must be before the end time.
    The max capacity defaults to the vehicle capacity and must not exceed it.
    Log the schedule creation activity with the associated token.
    """,
)
async def create_schedule(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        account = getters.account(token, session)
        validators.capability(getters.capabilities(account), [Capability.ADMINISTRATOR])

        route = session.query(Route).filter(Route.id == fParam.route_id).first()
        if route is None:
            raise exceptions.UnknownValue(Schedule.route_id)
        vehicle = session.query(Vehicle).filter(Vehicle.id == fParam.vehicle_id).first()
        if vehicle is None:
            raise exceptions.UnknownValue(Schedule.vehicle_id)

        schedule = Schedule(
            route_id=fParam.route_id,
            vehicle_id=fParam.vehicle_id,
            day=fParam.day,
            start_time=fParam.start_time,
            end_time=fParam.end_time,
            start_date=fParam.start_date,
            end_date=fParam.end_date,
            max_capacity=fParam.max_capacity or vehicle.capacity,
            price=fParam.price,
            active=fParam.active,
        )
        validateSchedule(schedule, vehicle)
        session.add(schedule)
        session.commit()
        session.refresh(schedule)

        scheduleData = jsonable_encoder(schedule)
        logEvent(token, request_info, scheduleData)
        return scheduleData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.patch(
    URL_SCHEDULE,
    tags=["Schedule"],
    response_model=ScheduleSchema,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.Unauthorized(),
            exceptions.NotFound(Schedule),
            exceptions.UnknownValue(Schedule.route_id),
            exceptions.InvalidValue(Schedule.max_capacity),
            exceptions.DataInUse(Schedule),
        ]
    ),
    description="""
    Update an existing schedule by ID.
    Requires an administrative role (ADMIN, WARDEN).
    The active flag and the max capacity can always be changed, deactivating a schedule stops new bookings and keeps the existing ones.
    Lowering the max capacity never cancels existing bookings.
    The route, vehicle, day, times, validity window and price can only be changed while no booking references the schedule.
    The schedule row is locked during the update, so bookings being admitted for it wait for the change.
    Changes are saved only if the schedule data has been modified.
    Log the schedule update activity with the associated token.
    """,
)
def update_schedule(
    fParam: UpdateForm = Depends(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        account = getters.account(token, session)
        validators.capability(getters.capabilities(account), [Capability.ADMINISTRATOR])

        schedule = ledger.lockedSchedule(session, fParam.id).first()
        if schedule is None:
            raise exceptions.NotFound(Schedule)

        updateSchedule(session, schedule, fParam)
        haveUpdates = session.is_modified(schedule)
        if haveUpdates:
            session.commit()
            session.refresh(schedule)

        scheduleData = jsonable_encoder(schedule)
        if haveUpdates:
            logEvent(token, request_info, scheduleData)
        return scheduleData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.get(
    URL_SCHEDULE,
    tags=["Schedule"],
    response_model=List[ScheduleSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.Unauthorized()]
    ),
    description="""
    Fetch a list of all schedules, active or not.
    Requires an administrative role (ADMIN, WARDEN).
    Supports filtering, sorting, and pagination.
    """,
)
async def fetch_schedule(
    qParam: QueryParams = Depends(), bearer=Depends(bearer_account)
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        account = getters.account(token, session)
        validators.capability(getters.capabilities(account), [Capability.ADMINISTRATOR])

        return searchSchedule(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()

from datetime import date, datetime
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status, Body
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from hostelsync.api.bearer import bearer_account
from hostelsync.api.schedule import ScheduleSchema
from hostelsync.src.db import Route, Schedule, sessionMaker
from hostelsync.src import exceptions, validators, getters, ledger, schemas
from hostelsync.src.loggers import logEvent
from hostelsync.src.enums import Capability, OrderIn
from hostelsync.src.functions import enumStr, fuseExceptionResponses
from hostelsync.src.urls import URL_ROUTE

route_transport = APIRouter()
route_admin = APIRouter()


## Output Schema
class RouteSchema(BaseModel):
    id: int
    name: str
    description: Optional[str]
    start_point: str
    end_point: str
    stops: List[str]
    updated_on: Optional[datetime]
    created_on: datetime


class ScheduleWithAvailability(ScheduleSchema):
    availability: Optional[schemas.Availability] = None


class RouteWithSchedules(RouteSchema):
    schedules: List[ScheduleWithAvailability]


## Input Forms
class CreateForm(BaseModel):
    name: str = Field(Body(max_length=128))
    description: str | None = Field(Body(max_length=2048, default=None))
    start_point: str = Field(Body(max_length=128))
    end_point: str = Field(Body(max_length=128))
    stops: List[str] = Field(Body(default=[], description="Intermediate stops, in order"))


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    name = 2
    updated_on = 3
    created_on = 4


class QueryParams(BaseModel):
    # filters
    name: str | None = Field(Query(default=None))
    start_point: str | None = Field(Query(default=None))
    end_point: str | None = Field(Query(default=None))
    # id based
    id: int | None = Field(Query(default=None))
    id_list: List[int] | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


class QueryParamsForRider(QueryParams):
    booking_date: date | None = Field(
        Query(
            default=None,
            description="Attach the availability of every schedule serving this date",
        )
    )


## Function
def searchRoute(session: Session, qParam: QueryParams) -> List[Route]:
    query = session.query(Route)

    # Filters
    if qParam.name is not None:
        query = query.filter(Route.name.ilike(f"%{qParam.name}%"))
    if qParam.start_point is not None:
        query = query.filter(Route.start_point.ilike(f"%{qParam.start_point}%"))
    if qParam.end_point is not None:
        query = query.filter(Route.end_point.ilike(f"%{qParam.end_point}%"))
    # id based
    if qParam.id is not None:
        query = query.filter(Route.id == qParam.id)
    if qParam.id_list is not None:
        query = query.filter(Route.id.in_(qParam.id_list))

    # Ordering
    ordering_attr = getattr(Route, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(ordering_attr.asc())
    else:
        query = query.order_by(ordering_attr.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


def servesDate(schedule: Schedule, bookingDate: date) -> bool:
    return (
        schedule.start_date <= bookingDate <= schedule.end_date
        and bookingDate.isoweekday() == schedule.day
    )


def attachSchedules(
    session: Session, routes: List[Route], bookingDate: date | None
) -> List[dict]:
    schedules = (
        session.query(Schedule)
        .filter(
            Schedule.route_id.in_([route.id for route in routes]),
            Schedule.active.is_(True),
        )
        .order_by(Schedule.day.asc(), Schedule.start_time.asc())
        .all()
    )
    routesData = []
    for route in routes:
        routeData = jsonable_encoder(route)
        routeData["schedules"] = []
        for schedule in schedules:
            if schedule.route_id != route.id:
                continue
            scheduleData = jsonable_encoder(schedule)
            if bookingDate is not None and servesDate(schedule, bookingDate):
                scheduleData["availability"] = ledger.listAvailability(
                    session, schedule.id, bookingDate
                )
            routeData["schedules"].append(scheduleData)
        routesData.append(routeData)
    return routesData


## API endpoints [Rider]
@route_transport.get(
    URL_ROUTE,
    tags=["Route"],
    response_model=List[RouteWithSchedules],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.StorageTimeout()]
    ),
    description="""
    Fetch the transport routes together with their active schedules.
    When `booking_date` is given, every schedule serving that date carries its availability for the date.
    Supports filtering by name and end points, sorting and pagination.
    """,
)
def fetch_routes(
    qParam: QueryParamsForRider = Depends(), bearer=Depends(bearer_account)
):
    try:
        session = sessionMaker()
        validators.accountToken(bearer.credentials, session)

        routes = searchRoute(session, qParam)
        return attachSchedules(session, routes, qParam.booking_date)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Admin]
@route_admin.post(
    URL_ROUTE,
    tags=["Route"],
    response_model=RouteSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.Unauthorized(),
            exceptions.UniqueViolation("For name value Campus Loop already exists"),
        ]
    ),
    description="""
    Create a new transport route.
    Requires an administrative role (ADMIN, WARDEN).
    The route name must be unique.
    Logs the route creation activity with the associated token.
    """,
)
async def create_route(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        account = getters.account(token, session)
        validators.capability(getters.capabilities(account), [Capability.ADMINISTRATOR])

        route = Route(
            name=fParam.name,
            description=fParam.description,
            start_point=fParam.start_point,
            end_point=fParam.end_point,
            stops=fParam.stops,
        )
        session.add(route)
        session.commit()
        session.refresh(route)

        routeData = jsonable_encoder(route)
        logEvent(token, request_info, routeData)
        return routeData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.get(
    URL_ROUTE,
    tags=["Route"],
    response_model=List[RouteSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.Unauthorized()]
    ),
    description="""
    Fetch a list of all transport routes.
    Requires an administrative role (ADMIN, WARDEN).
    Supports filtering, sorting, and pagination.
    """,
)
async def fetch_routes_for_admin(
    qParam: QueryParams = Depends(), bearer=Depends(bearer_account)
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        account = getters.account(token, session)
        validators.capability(getters.capabilities(account), [Capability.ADMINISTRATOR])

        return searchRoute(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()

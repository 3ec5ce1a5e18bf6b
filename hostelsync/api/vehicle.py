from datetime import datetime
from enum import IntEnum
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Path, Response, status, Body
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from hostelsync.api.bearer import bearer_account
from hostelsync.src.db import Schedule, Vehicle, sessionMaker
from hostelsync.src import exceptions, validators, getters
from hostelsync.src.loggers import logEvent
from hostelsync.src.enums import Capability, OrderIn, VehicleStatus
from hostelsync.src.constants import MAX_VEHICLE_CAPACITY, REGEX_VEHICLE_NUMBER
from hostelsync.src.functions import enumStr, fuseExceptionResponses
from hostelsync.src.urls import URL_VEHICLE, URL_VEHICLE_ITEM

route_transport = APIRouter()
route_admin = APIRouter()


## Output Schema
class VehicleSchema(BaseModel):
    id: int
    type: str
    number: str
    capacity: int
    status: int
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(BaseModel):
    type: str = Field(Body(max_length=32))
    number: str = Field(Body(pattern=REGEX_VEHICLE_NUMBER, max_length=16))
    capacity: int = Field(Body(ge=1, le=MAX_VEHICLE_CAPACITY))
    status: VehicleStatus = Field(
        Body(description=enumStr(VehicleStatus), default=VehicleStatus.AVAILABLE)
    )


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    capacity = 2
    updated_on = 3
    created_on = 4


class QueryParams(BaseModel):
    # filters
    type: str | None = Field(Query(default=None))
    number: str | None = Field(Query(default=None))
    status: VehicleStatus | None = Field(
        Query(default=None, description=enumStr(VehicleStatus))
    )
    # id based
    id: int | None = Field(Query(default=None))
    id_list: List[int] | None = Field(Query(default=None))
    # capacity based
    capacity_ge: int | None = Field(Query(default=None))
    capacity_le: int | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
def searchVehicle(session: Session, qParam: QueryParams) -> List[Vehicle]:
    query = session.query(Vehicle)

    # Filters
    if qParam.type is not None:
        query = query.filter(Vehicle.type.ilike(f"%{qParam.type}%"))
    if qParam.number is not None:
        query = query.filter(Vehicle.number.ilike(f"%{qParam.number}%"))
    if qParam.status is not None:
        query = query.filter(Vehicle.status == qParam.status)
    # id based
    if qParam.id is not None:
        query = query.filter(Vehicle.id == qParam.id)
    if qParam.id_list is not None:
        query = query.filter(Vehicle.id.in_(qParam.id_list))
    # capacity based
    if qParam.capacity_ge is not None:
        query = query.filter(Vehicle.capacity >= qParam.capacity_ge)
    if qParam.capacity_le is not None:
        query = query.filter(Vehicle.capacity <= qParam.capacity_le)

    # Ordering
    ordering_attr = getattr(Vehicle, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(ordering_attr.asc())
    else:
        query = query.order_by(ordering_attr.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Rider]
@route_transport.get(
    URL_VEHICLE,
    tags=["Vehicle"],
    response_model=List[VehicleSchema],
    responses=fuseExceptionResponses([exceptions.InvalidToken()]),
    description="""
    Fetch the vehicles of the hostel fleet.
    Supports filtering by type, number, status and capacity.
    """,
)
async def fetch_vehicles(qParam: QueryParams = Depends(), bearer=Depends(bearer_account)):
    try:
        session = sessionMaker()
        validators.accountToken(bearer.credentials, session)

        return searchVehicle(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Admin]
@route_admin.post(
    URL_VEHICLE,
    tags=["Vehicle"],
    response_model=VehicleSchema,
    status_code=status.HTTP_201_CREATED,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.Unauthorized(),
            exceptions.UniqueViolation("For number value KL08AB1234 already exists"),
        ]
    ),
    description="""
    Register a vehicle of the hostel fleet.
    Requires an administrative role (ADMIN, WARDEN).
    The registration number must be unique.
    Logs the vehicle creation activity with the associated token.
    """,
)
async def create_vehicle(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        account = getters.account(token, session)
        validators.capability(getters.capabilities(account), [Capability.ADMINISTRATOR])

        vehicle = Vehicle(
            type=fParam.type,
            number=fParam.number,
            capacity=fParam.capacity,
            status=fParam.status,
        )
        session.add(vehicle)
        session.commit()
        session.refresh(vehicle)

        vehicleData = jsonable_encoder(vehicle)
        logEvent(token, request_info, vehicleData)
        return vehicleData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.get(
    URL_VEHICLE,
    tags=["Vehicle"],
    response_model=List[VehicleSchema],
    responses=fuseExceptionResponses(
        [exceptions.InvalidToken(), exceptions.Unauthorized()]
    ),
    description="""
    Fetch the vehicles of the hostel fleet.
    Requires an administrative role (ADMIN, WARDEN).
    Supports filtering, sorting, and pagination.
    """,
)
async def fetch_vehicles_for_admin(
    qParam: QueryParams = Depends(), bearer=Depends(bearer_account)
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        account = getters.account(token, session)
        validators.capability(getters.capabilities(account), [Capability.ADMINISTRATOR])

        return searchVehicle(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.delete(
    URL_VEHICLE_ITEM,
    tags=["Vehicle"],
    status_code=status.HTTP_204_NO_CONTENT,
    responses=fuseExceptionResponses(
        [
            exceptions.InvalidToken(),
            exceptions.Unauthorized(),
            exceptions.DataInUse(Vehicle),
        ]
    ),
    description="""
    Remove a vehicle from the hostel fleet.
    Requires an administrative role (ADMIN, WARDEN).
    A vehicle operating any schedule, active or not, cannot be removed.
    If the vehicle exists, it is permanently removed from the system.
    Logs the deletion activity with the associated token.
    """,
)
async def delete_vehicle(
    vehicle_id: int = Path(),
    bearer=Depends(bearer_account),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.accountToken(bearer.credentials, session)
        account = getters.account(token, session)
        validators.capability(getters.capabilities(account), [Capability.ADMINISTRATOR])

        vehicle = session.query(Vehicle).filter(Vehicle.id == vehicle_id).first()
        if vehicle is not None:
            schedule = (
                session.query(Schedule.id)
                .filter(Schedule.vehicle_id == vehicle_id)
                .first()
            )
            if schedule is not None:
                raise exceptions.DataInUse(Vehicle)
            session.delete(vehicle)
            session.commit()
            logEvent(token, request_info, jsonable_encoder(vehicle))
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()

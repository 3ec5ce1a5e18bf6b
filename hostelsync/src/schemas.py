from datetime import date
from typing import Optional
from pydantic import BaseModel


class RequestInfo(BaseModel):
    method: str
    path: str
    app_id: int


class HealthStatus(BaseModel):
    status: str
    version: str


class ErrorResponse(BaseModel):
    kind: Optional[str] = None
    detail: str


class Availability(BaseModel):
    schedule_id: int
    booking_date: date
    max_capacity: int
    confirmed_pending_count: int
    remaining: int

from fastapi import FastAPI
from hostelsync.api import route, vehicle, schedule, booking
from hostelsync.src import exceptions
from hostelsync.src.enums import AppID


# ------------------------------------------------------
# Create separate FastAPI apps for riders and administrators
# ------------------------------------------------------
app_transport = FastAPI(title="Transport APP")
app_admin = FastAPI(title="Transport Admin APP")

# Tag each app with its AppID
app_transport.state.id = AppID.TRANSPORT
app_admin.state.id = AppID.ADMIN

# Render every APIException as {"kind": ..., "detail": ...}
app_transport.add_exception_handler(
    exceptions.APIException, exceptions.apiExceptionHandler
)
app_admin.add_exception_handler(exceptions.APIException, exceptions.apiExceptionHandler)


# ------------------------------------------------------
# Rider routers
# ------------------------------------------------------
app_transport.include_router(route.route_transport)
app_transport.include_router(vehicle.route_transport)
app_transport.include_router(schedule.route_transport)
app_transport.include_router(booking.route_transport)


# ------------------------------------------------------
# Admin routers
# ------------------------------------------------------
app_admin.include_router(route.route_admin)
app_admin.include_router(vehicle.route_admin)
app_admin.include_router(schedule.route_admin)
app_admin.include_router(booking.route_admin)

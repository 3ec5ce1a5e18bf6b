"""
API Endpoint URL Constants

This module defines the URL paths used throughout the application
for accessing different resources of the transport module.

These URLs are relative to the mount point of the app serving them
(`/transport` for riders, `/transport/admin` for administrators).
"""

# -------------------------------
# Mount points
# -------------------------------
URL_TRANSPORT = "/transport"
URL_ADMIN = "/transport/admin"

# -------------------------------
# Fleet & routes
# -------------------------------
URL_ROUTE = "/routes"
URL_VEHICLE = "/vehicles"
URL_VEHICLE_ITEM = "/vehicles/{vehicle_id}"

# -------------------------------
# Schedules
# -------------------------------
URL_SCHEDULE = "/schedules"
URL_SCHEDULE_AVAILABILITY = "/schedules/{schedule_id}/availability"

# -------------------------------
# Bookings
# -------------------------------
URL_BOOKING = "/bookings"
URL_MY_BOOKING = "/bookings/me"
URL_BOOKING_ITEM = "/bookings/{booking_id}"

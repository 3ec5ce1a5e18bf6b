import base64, json, requests
from requests import Response

from hostelsync.src.constants import (
    OPENOBSERVE_HOST,
    OPENOBSERVE_ORG,
    OPENOBSERVE_PASSWORD,
    OPENOBSERVE_PORT,
    OPENOBSERVE_PROTOCOL,
    OPENOBSERVE_STREAM,
    OPENOBSERVE_USERNAME,
    OPENOBSERVE_TIMEOUT,
)

# Prepare Basic Auth credentials
credentials = base64.b64encode(
    bytes(OPENOBSERVE_USERNAME + ":" + OPENOBSERVE_PASSWORD, "utf-8")
).decode("utf-8")

# Default headers for all requests
headers = {"Content-type": "application/json", "Authorization": "Basic " + credentials}

# Construct OpenObserve endpoint URL
openobserve_host = f"{OPENOBSERVE_PROTOCOL}://{OPENOBSERVE_HOST}:{OPENOBSERVE_PORT}"
openobserve_url = f"{openobserve_host}/api/{OPENOBSERVE_ORG}/{OPENOBSERVE_STREAM}/_json"


def logEvent(eventData: dict) -> Response:
    """
    Ship one audit event to the transport stream of OpenObserve.

    The event is posted as JSON with Basic authentication. Events carry the
    request context under underscored keys followed by the committed row.

    Args:
        eventData (dict): The audit event. A rider booking a seat produces:
            {
                "_method": "POST",
                "_path": "/transport/bookings",
                "_app_id": 1,
                "_account_id": 7,
                "id": 42,
                "rider_id": 7,
                "schedule_id": 3,
                "booking_date": "2024-03-01",
                "status": 2,
                "updated_on": null,
                "created_on": "2024-02-20T09:15:04.112+00:00"
            }

    Returns:
        requests.Response: The HTTP response object returned by the OpenObserve API.
    """
    return requests.post(
        openobserve_url,
        headers=headers,
        data=json.dumps(eventData),
        timeout=OPENOBSERVE_TIMEOUT,
    )

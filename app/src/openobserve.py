import base64, json, requests
from logging import getLogger
from requests import Response

from app.src.constants import (
    OPENOBSERVE_HOST,
    OPENOBSERVE_ORG,
    OPENOBSERVE_PASSWORD,
    OPENOBSERVE_PORT,
    OPENOBSERVE_PROTOCOL,
    OPENOBSERVE_STREAM,
    OPENOBSERVE_TIMEOUT,
    OPENOBSERVE_USERNAME,
)

logger = getLogger("uvicorn.error")

# Basic Auth credentials for the ingestion API
credentials = base64.b64encode(
    bytes(OPENOBSERVE_USERNAME + ":" + OPENOBSERVE_PASSWORD, "utf-8")
).decode("utf-8")

headers = {"Content-type": "application/json", "Authorization": "Basic " + credentials}

openobserve_host = f"{OPENOBSERVE_PROTOCOL}://{OPENOBSERVE_HOST}:{OPENOBSERVE_PORT}"
openobserve_url = f"{openobserve_host}/api/{OPENOBSERVE_ORG}/{OPENOBSERVE_STREAM}/_json"


def logEvent(eventData: dict) -> Response | None:
    """
    Ship one audit event to the configured OpenObserve stream.

    The mutation being audited has already been committed when this runs,
    so an unreachable log sink is reported on the server log instead of
    failing the request.

    Args:
        eventData (dict): The event document, for example
            {"_method": "PUT", "_path": "/company/booking/driver",
             "_app_id": 2, "_operator_id": 4, "id": 31, "driver_id": 8}

    Returns:
        requests.Response | None: The ingestion response, None if the
        request could not be sent.
    """
    try:
        return requests.post(
            openobserve_url,
            headers=headers,
            data=json.dumps(eventData, default=str),
            timeout=OPENOBSERVE_TIMEOUT,
        )
    except requests.RequestException as e:
        logger.warning(f"Audit event was not delivered to OpenObserve: {e}")
        return None

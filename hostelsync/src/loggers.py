from logging import getLogger
from requests import RequestException

from hostelsync.src.db import AccountToken
from hostelsync.src import openobserve
from hostelsync.src.schemas import RequestInfo

logger = getLogger("uvicorn.error")


def logEvent(
    token: AccountToken,
    requestInfo: RequestInfo,
    data: dict,
) -> None:
    """
    Log an event to OpenObserve with request and account context.

    Args:
        token (AccountToken): Authenticated account token.
        requestInfo (RequestInfo): Metadata about the current request.
        data (dict): Additional event-specific details to include in the log.

    Notes:
        - Automatically attaches `_app_id`, `_method`, `_path` and `_account_id`.
        - The event is shipped after the change has been committed, so a
          shipping failure is reported on the server log instead of failing
          the request.
    """
    logDetails = {
        "_method": requestInfo.method,
        "_path": requestInfo.path,
        "_app_id": requestInfo.app_id,
        "_account_id": token.account_id,
    }
    logDetails.update(data)
    try:
        openobserve.logEvent(logDetails)
    except RequestException as e:
        logger.warning(f"Event shipping failed for {requestInfo.path}: {e}")

import time
import logging
from sqlalchemy.orm import Session

from hostelsync.src import exceptions, ledger
from hostelsync.src.constants import COMPLETER_INTERVAL
from hostelsync.src.db import sessionMaker


# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("Completer")


def completeOnce(session: Session) -> int:
    today = ledger.currentDate()
    completed = ledger.completeElapsedBookings(session, today)
    logger.info(f"Completed {completed} bookings dated before {today}")
    return completed


def runCompleter(session: Session):
    while True:
        try:
            completeOnce(session)
        except exceptions.APIException as e:
            logger.error(f"Completer run failed: {e.detail}")
        except Exception:
            logger.exception("Completer loop failed")
        finally:
            time.sleep(COMPLETER_INTERVAL)


def main():
    try:
        with sessionMaker() as session:
            runCompleter(session)
    except Exception:
        logger.exception("completer.py failed")


if __name__ == "__main__":
    main()

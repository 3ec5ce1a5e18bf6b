import argparse
from http import HTTPStatus
from requests import post
from datetime import datetime, timedelta, timezone

from hostelsync.src.enums import Day, Role, VehicleStatus
from hostelsync.src.constants import MAX_TOKEN_VALIDITY
from hostelsync.src.ledger import currentDate
from hostelsync.src.urls import (
    URL_ADMIN,
    URL_TRANSPORT,
    URL_ROUTE,
    URL_VEHICLE,
    URL_SCHEDULE,
    URL_BOOKING,
)
from hostelsync.src.db import (
    Account,
    AccountToken,
    sessionMaker,
    engine,
    ORMbase,
)


# ----------------------------------- Project Setup -------------------------------------------#
def removeTables():
    session = sessionMaker()
    ORMbase.metadata.drop_all(engine)
    session.commit()
    print("* All tables deleted")
    session.close()


def createTables():
    session = sessionMaker()
    ORMbase.metadata.create_all(engine)
    session.commit()
    print("* All tables created")
    session.close()


def issueToken(session, account: Account) -> AccountToken:
    token = AccountToken(
        account_id=account.id,
        expires_in=MAX_TOKEN_VALIDITY,
        expires_at=datetime.now(timezone.utc) + timedelta(seconds=MAX_TOKEN_VALIDITY),
    )
    session.add(token)
    session.flush()
    return token


def initDB():
    session = sessionMaker()
    admin = Account(
        name="HostelSync admin",
        email_id="admin@hostelsync.com",
        role=Role.ADMIN,
    )
    warden = Account(
        name="HostelSync warden",
        email_id="warden@hostelsync.com",
        role=Role.WARDEN,
    )
    student = Account(
        name="HostelSync student",
        email_id="student@hostelsync.com",
        role=Role.STUDENT,
        room_no="A-101",
    )
    session.add_all([admin, warden, student])
    session.flush()

    for account in (admin, warden, student):
        token = issueToken(session, account)
        print(f"* Token for {account.email_id}: {token.access_token}")

    session.commit()
    print("* Initialization completed")
    session.close()


def POST(URL: str, header: dict = {}, status_code: int = HTTPStatus.CREATED, **kwargs):
    response = post(URL, headers=header, **kwargs)
    if response.status_code != status_code:
        assert response.status_code == status_code
    else:
        return response


def accessHeader(emailID: str) -> dict:
    session = sessionMaker()
    token = (
        session.query(AccountToken)
        .join(Account, Account.id == AccountToken.account_id)
        .filter(Account.email_id == emailID)
        .order_by(AccountToken.expires_at.desc())
        .first()
    )
    session.close()
    return {"Authorization": f"Bearer {token.access_token}"}


def testDB():
    # Base URL
    BASE_URL = "http://127.0.0.1:8080"
    adminToken = accessHeader("admin@hostelsync.com")
    studentToken = accessHeader("student@hostelsync.com")

    # Create Route
    routeData = {
        "name": "Campus Loop",
        "description": "Hostel gate to the main campus and back",
        "start_point": "Hostel gate",
        "end_point": "Main campus",
        "stops": ["Library", "Canteen"],
    }
    route = POST(
        (BASE_URL + URL_ADMIN + URL_ROUTE),
        header=adminToken,
        json=routeData,
        status_code=HTTPStatus.CREATED,
    )
    print("* Created route")

    # Create Vehicle
    vehicleData = {
        "type": "Bus",
        "number": "KL01AB1234",
        "capacity": 40,
        "status": VehicleStatus.AVAILABLE,
    }
    vehicle = POST(
        (BASE_URL + URL_ADMIN + URL_VEHICLE),
        header=adminToken,
        json=vehicleData,
        status_code=HTTPStatus.CREATED,
    )
    print("* Created vehicle")

    # Create Schedule on the next monday
    today = currentDate()
    nextMonday = today + timedelta(days=(7 - today.weekday()) % 7 or 7)
    scheduleData = {
        "route_id": route.json()["id"],
        "vehicle_id": vehicle.json()["id"],
        "day": Day.MONDAY,
        "start_time": "08:00:00",
        "end_time": "09:00:00",
        "start_date": today.isoformat(),
        "end_date": (today + timedelta(days=90)).isoformat(),
        "max_capacity": 30,
        "price": "25.00",
    }
    schedule = POST(
        (BASE_URL + URL_ADMIN + URL_SCHEDULE),
        header=adminToken,
        json=scheduleData,
        status_code=HTTPStatus.CREATED,
    )
    print("* Created schedule")

    # Book a seat
    bookingData = {
        "scheduleId": schedule.json()["id"],
        "bookingDate": nextMonday.isoformat(),
    }
    POST(
        (BASE_URL + URL_TRANSPORT + URL_BOOKING),
        header=studentToken,
        json=bookingData,
        status_code=HTTPStatus.CREATED,
    )
    print("* Created booking")


# Setup database
if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    # remove tables
    parser.add_argument("-rm", action="store_true", help="remove tables")
    parser.add_argument("-cr", action="store_true", help="create tables")
    parser.add_argument("-init", action="store_true", help="initialize DB")
    parser.add_argument("-test", action="store_true", help="add test data")
    args = parser.parse_args()

    if args.cr:
        createTables()
    if args.init:
        initDB()
    if args.test:
        testDB()
    if args.rm:
        removeTables()

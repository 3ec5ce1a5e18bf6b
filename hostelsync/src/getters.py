from typing import Set
from fastapi import Request
from sqlalchemy.orm.session import Session

from hostelsync.src import schemas
from hostelsync.src.constants import ADMINISTRATIVE_ROLES
from hostelsync.src.db import Account, AccountToken
from hostelsync.src.enums import Capability


def requestInfo(request: Request) -> schemas.RequestInfo:
    """
    Extract metadata about the incoming request.

    Args:
        request (Request): FastAPI request object.

    Returns:
        schemas.RequestInfo: Pydantic model containing:
            - method (str): HTTP method (GET, POST, etc.).
            - path (str): Path portion of the request URL.
            - app_id (int): Application ID from app state.
    """
    return schemas.RequestInfo(
        method=request.method,
        path=request.url.path,
        app_id=request.scope["app"].state.id,
    )


def account(token: AccountToken, session: Session) -> Account | None:
    """Fetch the account a token was issued to."""
    return session.query(Account).filter(Account.id == token.account_id).first()


def capabilities(account: Account, riderID: int | None = None) -> Set[Capability]:
    """
    Reduce an account's role to the capabilities it holds on a resource.

    Args:
        account (Account): The calling account.
        riderID (int | None): Owner of the resource being acted on, if any.

    Returns:
        Set[Capability]: `OWNER` when the account owns the resource,
        `ADMINISTRATOR` when its role is administrative.
    """
    held = set()
    if riderID is not None and account.id == riderID:
        held.add(Capability.OWNER)
    if account.role in ADMINISTRATIVE_ROLES:
        held.add(Capability.ADMINISTRATOR)
    return held

"""
Validation and permission checks for the HostelSync transport API.

This module centralizes guard logic such as:
- Token validation
- Capability checks
- State transition enforcement

All functions raise appropriate exceptions from `hostelsync.src.exceptions`
when validation fails, ensuring consistent error handling.
"""

from datetime import datetime, timezone
from typing import Any, Iterable, Set
from sqlalchemy.orm.session import Session
from sqlalchemy import Column

from hostelsync.src.db import Account, AccountToken
from hostelsync.src.enums import AccountStatus, Capability
from hostelsync.src import exceptions
from hostelsync.src.functions import isValidTransition


# ---------------------------------------------------------------------------
# Token validation
# ---------------------------------------------------------------------------
def accountToken(access_token: str, session: Session) -> AccountToken:
    """
    Validate a bearer token issued to an account.

    Args:
        access_token (str): The bearer token string provided by the client.
        session (Session): Active SQLAlchemy session for DB lookup.

    Returns:
        AccountToken: The valid token object from the database.

    Raises:
        exceptions.InvalidToken: If the token is not found, has expired,
            or belongs to a suspended account.
    """
    current_time = datetime.now(timezone.utc)

    token = (
        session.query(AccountToken)
        .join(Account, Account.id == AccountToken.account_id)
        .filter(
            AccountToken.access_token == access_token,
            AccountToken.expires_at > current_time,
            Account.status == AccountStatus.ACTIVE,
        )
        .first()
    )

    if token is None:
        raise exceptions.InvalidToken()

    return token


# ---------------------------------------------------------------------------
# Capability checks
# ---------------------------------------------------------------------------
def capability(held: Set[Capability], accepted: Iterable[Capability]) -> bool:
    """
    Validate that the caller holds at least one of the accepted capabilities.

    Args:
        held (Set[Capability]): Capabilities of the caller on the resource.
        accepted (Iterable[Capability]): Capabilities any of which grants access.

    Returns:
        bool: True if access is granted.

    Raises:
        exceptions.Unauthorized: If none of the accepted capabilities is held.
    """
    if held.intersection(accepted):
        return True
    raise exceptions.Unauthorized()


# ---------------------------------------------------------------------------
# Other validations
# ---------------------------------------------------------------------------
def stateTransition(
    transitions: dict[Any, list[Any]], old_state: Any, new_state: Any, state: Column
) -> bool:
    """
    Validate whether a state transition is allowed.

    Args:
        transitions (dict[Any, list[Any]]): Mapping of valid transitions.
        old_state (Any): Current state value.
        new_state (Any): Desired new state value.
        state (Column): SQLAlchemy column representing the state
            (used to format error messages).

    Returns:
        bool: True if the transition is valid.

    Raises:
        exceptions.InvalidStateTransition: If the transition is not permitted.
    """
    if not isValidTransition(transitions, old_state, new_state):
        raise exceptions.InvalidStateTransition(state)
    return True

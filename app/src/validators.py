from datetime import datetime, timezone
from sqlalchemy.orm import Session

from app.src.db import Booking, ExecutiveToken, OperatorToken
from app.src import exceptions
from app.src.lifecycle import decideTransition


# ---------------------------------------------------------------------------
# Token validation
# ---------------------------------------------------------------------------
def _validate_token(model_cls, access_token: str, session: Session):
    """
    Generic token validator for any token model.

    Args:
        model_cls: The SQLAlchemy model class (e.g., ExecutiveToken).
        access_token (str): The bearer token string provided by the client.
        session (Session): Active SQLAlchemy session for DB lookup.

    Returns:
        model_cls: The valid token object from the database.

    Raises:
        exceptions.InvalidToken: If the token is not found or has expired.
    """
    current_time = datetime.now(timezone.utc)

    token = (
        session.query(model_cls)
        .filter(
            model_cls.access_token == access_token,
            model_cls.expires_at > current_time,
        )
        .first()
    )

    if token is None:
        raise exceptions.InvalidToken()

    return token


def executiveToken(access_token: str, session: Session) -> ExecutiveToken:
    """Validate an executive access token."""
    return _validate_token(ExecutiveToken, access_token, session)


def operatorToken(access_token: str, session: Session) -> OperatorToken:
    """Validate an operator access token."""
    return _validate_token(OperatorToken, access_token, session)


# ---------------------------------------------------------------------------
# State transitions
# ---------------------------------------------------------------------------
def bookingStatusTransition(booking: Booking, target: str) -> bool:
    """
    Validate a booking status change.

    Both the stored and the requested status are normalized before the
    transition table is consulted.

    Returns:
        bool: True if the status must be written, False for a
        self-transition that leaves the booking unchanged.

    Raises:
        exceptions.InvalidStateTransition: If the transition is not permitted.
    """
    decision = decideTransition(booking.booking_status, target)
    if not decision.accepted:
        raise exceptions.InvalidStateTransition(Booking.booking_status, decision.reason)
    return decision.changed

from datetime import datetime, timedelta, timezone

from app.src.cleaner import removeExpiredTokens
from app.src.db import ExecutiveToken, OperatorToken


def test_expired_tokens_are_removed(session, seed):
    company = seed.company()
    live = seed.executiveToken()
    expired = seed.executiveToken()
    expired.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    operatorToken = seed.operatorToken(company)
    session.commit()

    assert removeExpiredTokens(session, ExecutiveToken) == 1
    assert removeExpiredTokens(session, OperatorToken) == 0

    remaining = [token.id for token in session.query(ExecutiveToken).all()]
    assert remaining == [live.id]
    assert session.query(OperatorToken).count() == 1
    assert operatorToken.id is not None

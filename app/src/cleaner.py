import datetime, logging
from sqlalchemy.orm import Session
from sqlalchemy import delete

from app.src.db import sessionMaker, ExecutiveToken, OperatorToken

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("Cleaner")


def removeExpiredTokens(session: Session, tokenCls) -> int:
    currentTime = datetime.datetime.now(datetime.timezone.utc)
    result = session.execute(delete(tokenCls).where(tokenCls.expires_at < currentTime))
    session.commit()
    deletedCount = result.rowcount
    logger.info(f"Removed {deletedCount} tokens from {tokenCls.__tablename__} table")
    return deletedCount


def main():
    try:
        with sessionMaker() as session:
            removeExpiredTokens(session, ExecutiveToken)
            removeExpiredTokens(session, OperatorToken)
    except Exception:
        logger.exception("cleaner.py failed")
        raise


if __name__ == "__main__":
    main()

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.orm.session import Session
from sqlalchemy.sql.elements import TextClause

from app.src.query_builder import QueryDescriptor, withPagination


def bindParams(params: List[Any]) -> Dict[str, Any]:
    """Map an ordered parameter list onto the `:p1 ... :pN` placeholders."""
    return {f"p{index}": value for index, value in enumerate(params, start=1)}


def statement(query: str, params: Dict[str, Any]) -> TextClause:
    """
    Build the text clause of a query.

    Datetime parameters are typed as timezone aware timestamps so each
    dialect converts them itself instead of receiving a bare string.
    """
    typed = [
        bindparam(name, type_=DateTime(timezone=True))
        for name, value in params.items()
        if isinstance(value, datetime)
    ]
    return text(query).bindparams(*typed)


class PersistenceGateway:
    """
    Runs query descriptors against the session's connection.

    The gateway owns no connection of its own; the caller opens and closes
    the session. Driver errors are not caught here, they surface as
    SQLAlchemy exceptions and are classified by `exceptions.handle`.
    """

    def __init__(self, session: Session):
        self.session = session

    def _run(self, query: str, params: Optional[List[Any]]):
        bound = bindParams(params or [])
        return self.session.execute(statement(query, bound), bound)

    def execute(
        self, query: str, params: Optional[List[Any]] = None
    ) -> List[Dict[str, Any]]:
        return [dict(row) for row in self._run(query, params).mappings().all()]

    def executeOne(
        self, query: str, params: Optional[List[Any]] = None
    ) -> Optional[Dict[str, Any]]:
        row = self._run(query, params).mappings().first()
        return dict(row) if row is not None else None

    def scalar(self, query: str, params: Optional[List[Any]] = None) -> Any:
        return self._run(query, params).scalar()

    def fetchAll(self, descriptor: QueryDescriptor) -> List[Dict[str, Any]]:
        return self.execute(descriptor.query, descriptor.params)

    def count(self, descriptor: QueryDescriptor) -> int:
        return int(self.scalar(descriptor.count_query, descriptor.count_params) or 0)

    def fetchPage(
        self, descriptor: QueryDescriptor, limit: int, offset: int
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Fetch one page of rows together with the unpaged total.

        Returns:
            Tuple[List[dict], int]: The rows of the page and the total row
            count produced by the descriptor's count query.
        """
        query, params = withPagination(descriptor, limit, offset)
        return self.execute(query, params), self.count(descriptor)

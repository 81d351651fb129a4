from fastapi import Request
from pydantic import BaseModel

from app.src import schemas
from app.src.db import OperatorToken
from app.src.functions import promoteToParent
from app.src.query_builder import QueryScope


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


def executiveScope(
    qParam: BaseModel, scopeCls: type[QueryScope] = QueryScope
) -> QueryScope:
    """
    Build the listing scope of an executive request.

    Executives see every company unless the request names one through
    `company_id`, in which case the listing is company bound.
    """
    companyId = getattr(qParam, "company_id", None)
    return promoteToParent(
        qParam, scopeCls, company_id=companyId, admin_view=companyId is None
    )


def operatorScope(
    token: OperatorToken, qParam: BaseModel, scopeCls: type[QueryScope] = QueryScope
) -> QueryScope:
    """Build the listing scope of an operator request, pinned to the token's company."""
    return promoteToParent(
        qParam, scopeCls, company_id=token.company_id, admin_view=False
    )

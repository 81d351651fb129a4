from pydantic import BaseModel


class RequestInfo(BaseModel):
    method: str
    path: str
    app_id: int


class HealthStatus(BaseModel):
    status: str
    version: str


class ErrorResponse(BaseModel):
    detail: str


class Page(BaseModel):
    """Paging envelope of listing responses; subclasses add the `items` field."""

    total: int
    offset: int
    limit: int

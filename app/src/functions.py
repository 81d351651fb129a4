from typing import List, Type, Dict
from pydantic import BaseModel

from app.src import schemas
from app.src.exceptions import APIException


def fuseExceptionResponses(exceptions: List[APIException]) -> Dict[int, dict]:
    """
    Generate OpenAPI response documentation by fusing multiple APIException instances.

    Exceptions sharing a status code are listed as separate examples
    under the same response entry.

    Args:
        exceptions (List[APIException]): List of instantiated exceptions.

    Returns:
        Dict[int, dict]: A dictionary of OpenAPI response specs grouped by status code.
    """
    responses = {}

    for exception in exceptions:
        status_code = exception.status_code
        example_key = type(exception).__name__
        example_value = {
            "summary": str(exception.headers),
            "value": {"detail": exception.detail},
        }

        if status_code not in responses:
            responses[status_code] = {
                "model": schemas.ErrorResponse,
                "content": {
                    "application/json": {"examples": {example_key: example_value}}
                },
            }
        else:
            responses[status_code]["content"]["application/json"]["examples"][
                example_key
            ] = example_value

    return responses


def enumStr(enumClass) -> str:
    """
    Convert an Enum class into a comma-separated string of its members.

    Each enum member is formatted as "<NAME>: <VALUE>".

    Example:
        >>> enumStr(DriverStatus)
        'ACTIVE: active, PENDING: pending, INACTIVE: inactive'
    """
    return ", ".join(f"{x.name}: {x.value}" for x in enumClass)


def updateIfChanged(targetObj, sourceObj, fields: List[str]) -> None:
    """
    Update attributes on a target object from a source object
    only if the values differ and the new value is not None.

    Designed for use with SQLAlchemy models, where `fields` are typically
    provided as `Model.field.key`.

    Example:
        >>> updateIfChanged(driver, fParam, [Driver.phone_number.key, Driver.status.key])
        # driver is updated where values differ; unchanged fields are skipped silently
    """
    for field in fields:
        new_value = getattr(sourceObj, field, None)
        if new_value is not None:
            old_value = getattr(targetObj, field)
            if old_value != new_value:
                setattr(targetObj, field, new_value)


def promoteToParent(
    childObj: BaseModel, targetCls: Type[BaseModel], **overrides
) -> BaseModel:
    """
    Promote one Pydantic model into another, applying overrides.
    Fields that end up None are left out so the target defaults apply.

    Used to turn endpoint query parameters into a query scope, where the
    company and view fields come from the caller's token rather than
    from user input.

    Example:
        >>> promoteToParent(qParam, QueryScope, company_id=7, admin_view=False)
        QueryScope(company_id=7, admin_view=False, status='active', ...)
    """
    baseData = childObj.model_dump(mode="json")
    targetFields = targetCls.model_fields.keys()
    finalData = {
        field: overrides.get(field, baseData.get(field, None)) for field in targetFields
    }
    finalData = {field: value for field, value in finalData.items() if value is not None}
    return targetCls(**finalData)

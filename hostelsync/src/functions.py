from typing import List, Type, Dict, Any
from pydantic import BaseModel

from hostelsync.src import schemas
from hostelsync.src.exceptions import APIException


def fuseExceptionResponses(exceptions: List[APIException]) -> Dict[int, dict]:
    """
    Generate OpenAPI response documentation by fusing multiple APIException instances.

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
            "value": {"kind": exception.kind, "detail": exception.detail},
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

    Args:
        enumClass (Type[Enum]): The Enum class to be stringified.

    Returns:
        str: A human-readable string representation of the enum members.

    Example:
        >>> from enum import IntEnum
        >>> class Color(IntEnum):
        ...     RED = 1
        ...     GREEN = 2
        >>> enumStr(Color)
        'RED: 1, GREEN: 2'
    """
    return ", ".join(f"{x.name}: {x.value}" for x in enumClass)


def isValidTransition(
    transitions: dict[Any, list[Any]], old_state: Any, new_state: Any
) -> bool:
    """
    Check if a state transition is valid.

    Args:
        transitions (dict[Any, list[Any]]): Mapping of valid transitions.
            Example:
                {
                    BookingStatus.PENDING: [BookingStatus.CONFIRMED],
                    BookingStatus.CONFIRMED: [BookingStatus.COMPLETED],
                }
        old_state (Any): Current state value.
        new_state (Any): Desired new state value.

    Returns:
        bool: True if transition is valid, False otherwise.

    Notes:
        - If `old_state` is not in the transitions mapping, this will return False.
        - Both states can be any type (enum, int, str), as long as they match keys/values in the mapping.
    """
    if not transitions:
        return False
    if old_state not in transitions:
        return False
    return new_state in transitions[old_state]


def updateIfChanged(targetObj, sourceObj, fields: List[str]) -> None:
    """
    Update attributes on a target object from a source object
    only if the values differ and the new value is not None.

    Designed for use with SQLAlchemy models, where `fields` are typically
    provided as `Model.field.key`.

    Args:
        targetObj (object): The object whose attributes may be updated
            (e.g., a SQLAlchemy model instance).
        sourceObj (object): The object providing new values
            (e.g., another model instance or a DTO).
        fields (List[str]): A list of attribute names to check and update.
            Commonly passed as `[Model.field.key, ...]`.

    Example:
        >>> updateIfChanged(
        ...     schedule,
        ...     fParam,
        ...     [Schedule.active.key, Schedule.max_capacity.key],
        ... )
        # schedule will be updated where values differ; unchanged fields are skipped silently
    """
    for field in fields:
        new_value = getattr(sourceObj, field, None)
        if new_value is not None:
            old_value = getattr(targetObj, field)
            if old_value != new_value:
                setattr(targetObj, field, new_value)


def changedFields(targetObj, sourceObj, fields: List[str]) -> List[str]:
    """
    List the fields whose value in `sourceObj` is set and differs from `targetObj`.

    Uses the same rules as `updateIfChanged`, without applying anything.
    """
    changed = []
    for field in fields:
        new_value = getattr(sourceObj, field, None)
        if new_value is not None and getattr(targetObj, field) != new_value:
            changed.append(field)
    return changed


def promoteToParent(
    childObj: BaseModel, targetCls: Type[BaseModel], **overrides
) -> BaseModel:
    """
    Promote one Pydantic model into another, applying overrides
    and defaulting missing fields to None.

    Useful when a more specialized model (`childObj`) needs to be
    adapted into a broader model (`targetCls`) for downstream
    operations such as queries, searches, or API calls.

    Args:
        childObj (BaseModel): The source Pydantic model instance.
        targetCls (Type[BaseModel]): The target Pydantic model class.
        **overrides: Explicit field values to override in the target model.

    Returns:
        BaseModel: An instance of `targetCls` with fields populated
        from `childObj`, overridden where specified, and filled with
        `None` when missing.

    Example:
        >>> class Child(BaseModel):
        ...     status: int | None
        ...
        >>> class Parent(BaseModel):
        ...     status: int | None
        ...     rider_id: int | None
        ...
        >>> promoteToParent(Child(status=2), Parent, rider_id=42)
        Parent(status=2, rider_id=42)
    """
    baseData = childObj.model_dump()
    targetFields = targetCls.model_fields.keys()
    finalData = {
        field: overrides.get(field, baseData.get(field, None)) for field in targetFields
    }
    return targetCls(**finalData)

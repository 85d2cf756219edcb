"""Common Pydantic schemas and request coercion."""

from collections.abc import Mapping
from typing import Any, List, Optional, TypeVar

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import ValidationError

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class Violation(BaseModel):
    """Validation error violation."""

    path: str = Field(..., description="Dotted path to the invalid field")
    message: str = Field(..., description="Validation error message")


class Problem(BaseModel):
    """RFC 9457 Problem Details response."""

    type: Optional[str] = Field(None, description="Problem type URI")
    title: str = Field(..., description="Short human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: Optional[str] = Field(None, description="Human-readable explanation")
    instance: Optional[str] = Field(None, description="URI reference for this occurrence")
    code: Optional[str] = Field(None, description="Application-specific error code")
    retryable: Optional[bool] = Field(None, description="Whether the operation can be retried")
    violations: Optional[List[Violation]] = Field(None, description="Validation errors")


def coerce_request(schema: type[SchemaT], data: SchemaT | Mapping[str, Any]) -> SchemaT:
    """
    Accept either a parsed request schema or a plain mapping.

    Service operations are called both from routers (already parsed) and
    directly by collaborators passing dicts; the latter are validated here
    and failures surface as the lifecycle ValidationError before any write.
    """
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        violations = [
            {
                "path": ".".join(str(part) for part in error["loc"]),
                "message": error["msg"],
            }
            for error in e.errors()
        ]
        raise ValidationError(
            detail=f"Invalid {schema.__name__}: {len(violations)} problem(s)",
            errors=violations,
        ) from e

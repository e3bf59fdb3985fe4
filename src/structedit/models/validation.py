"""Result models returned by path and update validation."""

from typing import Optional

from pydantic import BaseModel, Field

from .base import ErrorCode
from .schema import FieldSchema
from .update import FieldUpdate


class ValidationResult(BaseModel):
    """Outcome of a guard check. ``error`` is meant to be shown verbatim."""

    is_valid: bool
    error: Optional[str] = None
    code: Optional[ErrorCode] = None
    suggestion: Optional[str] = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(is_valid=True)

    @classmethod
    def fail(
        cls, code: ErrorCode, error: str, suggestion: Optional[str] = None
    ) -> "ValidationResult":
        return cls(is_valid=False, code=code, error=error, suggestion=suggestion)


class FieldPathValidationResult(BaseModel):
    """Detailed outcome of checking a path against a section schema."""

    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    field_schema: Optional[FieldSchema] = None
    path_segments: list[str] = Field(default_factory=list)


class UpdateCheck(BaseModel):
    """Result of validating and cleaning a field update."""

    is_valid: bool
    cleaned_update: Optional[FieldUpdate] = None
    error: Optional[str] = None
    code: Optional[ErrorCode] = None
    was_cleaned: bool = False

"""Field update proposals and the result of applying one."""

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from .base import MergeStrategy


class FieldUpdate(BaseModel):
    """
    A proposed write of one value into a section document.

    Fields are deliberately loose: the integrity guard, not pydantic, decides
    whether the path, section id, strategy and confidence are acceptable, so
    that rejected proposals come back with an error code.
    """

    section_id: str
    field_path: Optional[str] = None
    value: Any = None
    merge_strategy: str = MergeStrategy.REPLACE.value
    confidence: Optional[float] = None
    source_reference: Optional[str] = None

    @field_validator("section_id", mode="before")
    @classmethod
    def stringify_section_id(cls, value):
        if isinstance(value, UUID):
            return str(value)
        return value

    @field_validator("merge_strategy", mode="before")
    @classmethod
    def unwrap_strategy(cls, value):
        if isinstance(value, MergeStrategy):
            return value.value
        return value


class AppliedUpdate(BaseModel):
    """Outcome of applying a field update to a document."""

    document: Any = Field(..., description="New document; the input is left untouched")
    field_path: str
    previous_value: Any = None
    new_value: Any = None
    change_id: Optional[str] = Field(None, description="Tracker id when a tracker was given")
    cleanup_applied: bool = Field(default=False, description="Value was repaired by the guard")

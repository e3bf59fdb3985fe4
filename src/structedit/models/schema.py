"""Field and section schema models.

A section schema is a tree of field nodes. Paths into a section document are
checked against this tree by the resolver; the schema itself is read only.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .base import FieldType


def _check_unique_keys(fields: Optional[list["FieldSchema"]]) -> Optional[list["FieldSchema"]]:
    if not fields:
        return fields
    seen: set[str] = set()
    for field in fields:
        if field.key in seen:
            raise ValueError(f"Duplicate field key among siblings: {field.key!r}")
        seen.add(field.key)
    return fields


class FieldSchema(BaseModel):
    """One addressable field in a section document."""

    key: str = Field(..., min_length=1, description="Key unique among siblings")
    type: FieldType
    label: Optional[str] = None
    required: bool = False
    options: Optional[list[str]] = Field(None, description="Allowed values for select/enum fields")
    children: Optional[list["FieldSchema"]] = Field(
        None, description="Child fields of an object, or item fields of an array"
    )
    placeholder: Optional[str] = None
    description: Optional[str] = None

    @field_validator("children")
    @classmethod
    def unique_child_keys(cls, value):
        return _check_unique_keys(value)

    @property
    def is_container(self) -> bool:
        """Whether paths may descend below this field."""
        return self.type in (FieldType.OBJECT, FieldType.ARRAY)

    def find_child(self, key: str) -> Optional["FieldSchema"]:
        """Return the direct child with the given key, if any."""
        for child in self.children or []:
            if child.key == key:
                return child
        return None


class SectionSchema(BaseModel):
    """Named root list of fields for one report section."""

    key: str
    title: str = ""
    fields: list[FieldSchema] = Field(default_factory=list)
    prose_template: Optional[str] = Field(
        None, description="Text with {field.path} placeholders"
    )

    @field_validator("fields")
    @classmethod
    def unique_field_keys(cls, value):
        return _check_unique_keys(value)

    def find_field(self, key: str) -> Optional[FieldSchema]:
        """Return the top-level field with the given key, if any."""
        for field in self.fields:
            if field.key == key:
                return field
        return None


FieldSchema.model_rebuild()

"""Corruption cleanup reports."""

from typing import Any

from pydantic import BaseModel, Field


class CleanupResult(BaseModel):
    """What the guard found in a document and what it removed."""

    cleaned_data: Any = None
    issues_found: list[str] = Field(default_factory=list)
    was_corrupted: bool = False
    cleanup_actions: list[str] = Field(default_factory=list)


class SectionCleanupDetail(BaseModel):
    """Cleanup performed on one stored report section."""

    section_id: str
    title: str = ""
    issues_found: list[str] = Field(default_factory=list)
    cleanup_actions: list[str] = Field(default_factory=list)


class SectionCleanupReport(BaseModel):
    """Summary of a sweep over stored report sections."""

    total_sections: int = 0
    corrupted_sections: int = 0
    cleaned_sections: int = 0
    errors: list[str] = Field(default_factory=list)
    cleanup_details: list[SectionCleanupDetail] = Field(default_factory=list)

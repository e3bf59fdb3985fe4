"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone

import pytest

from structedit.core import ChangeTrackingService, ChangeTracker
from structedit.models import FieldSchema, FieldType, SectionSchema
from structedit.storage import InMemoryMetadataStore

SECTION_ID = "3f2b8c1e-9d4a-4e6b-8a7c-1b2c3d4e5f60"
OTHER_SECTION_ID = "7a1c2d3e-4f5a-4b6c-9d8e-0f1a2b3c4d5e"
REPORT_ID = "c0ffee00-1234-4abc-8def-0123456789ab"


@pytest.fixture
def section_id():
    return SECTION_ID


@pytest.fixture
def report_id():
    return REPORT_ID


@pytest.fixture
def nested_schema():
    """Section schema with nested objects and an array field."""
    return SectionSchema(
        key="test_section",
        title="Test Section",
        fields=[
            FieldSchema(key="simple_string", type=FieldType.STRING, label="Simple String"),
            FieldSchema(
                key="nested_object",
                type=FieldType.OBJECT,
                children=[
                    FieldSchema(key="child_string", type=FieldType.STRING),
                    FieldSchema(
                        key="deep_nested",
                        type=FieldType.OBJECT,
                        children=[FieldSchema(key="deep_value", type=FieldType.STRING)],
                    ),
                ],
            ),
            FieldSchema(key="simple_array", type=FieldType.ARRAY),
        ],
    )


@pytest.fixture
def assessment_schema():
    """Schema shaped like a speech-language assessment section."""
    return SectionSchema(
        key="assessment_results",
        title="Assessment Results",
        prose_template="Voice: {observations.voice}. Fluency within limits: {observations.fluent}.",
        fields=[
            FieldSchema(
                key="observations",
                type=FieldType.OBJECT,
                children=[
                    FieldSchema(key="voice", type=FieldType.ARRAY),
                    FieldSchema(key="fluent", type=FieldType.BOOLEAN),
                    FieldSchema(key="notes", type=FieldType.PARAGRAPH),
                    FieldSchema(
                        key="severity",
                        type=FieldType.SELECT,
                        options=["mild", "moderate", "severe"],
                    ),
                ],
            ),
            FieldSchema(
                key="standardized_tests",
                type=FieldType.ARRAY,
                children=[
                    FieldSchema(key="name", type=FieldType.STRING, required=True),
                    FieldSchema(key="score", type=FieldType.NUMBER),
                ],
            ),
        ],
    )


@pytest.fixture
def sample_document():
    """A section document matching the assessment schema."""
    return {
        "observations": {"voice": [], "fluent": True, "notes": "Cooperative."},
        "standardized_tests": [{"name": "CELF-5", "score": 92}],
    }


class StepClock:
    """Clock advancing one minute per call, for ordered timestamps."""

    def __init__(self, start=None, step=timedelta(minutes=1)):
        self.current = start or datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self):
        now = self.current
        self.current = self.current + self.step
        return now


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def store():
    return InMemoryMetadataStore()


@pytest.fixture
def service(store):
    return ChangeTrackingService(store)


@pytest.fixture
def tracker(clock):
    """Tracker without persistence."""
    return ChangeTracker(report_id=REPORT_ID, persistence_enabled=False, clock=clock)

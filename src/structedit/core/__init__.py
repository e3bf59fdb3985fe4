"""Core engine: path resolution, integrity guarding and change tracking.

1. resolver - read/write/delete values by field path, schema path checks
2. merge - replace/append/merge strategies
3. guard - update validation, Russian-doll and circular-reference repair
4. tracker - per-report change log with subscribers and persistence
5. service - filtering, statistics and retention over stored change logs
6. editor - guard -> resolver -> tracker for one field update
"""

from .changes import compute_statistics, filter_changes, prune_changes
from .editor import apply_field_update
from .guard import (
    CIRCULAR_REFERENCE_MARKER,
    DataIntegrityGuard,
    data_integrity_guard,
    validate_and_clean_field_update,
)
from .merge import merge_values
from .paths import PathPart, parse_field_path
from .resolver import (
    FieldPathResolver,
    deep_equal,
    delete_field_path,
    field_path_resolver,
    get_all_field_paths,
    get_changed_paths,
    get_field_schema,
    get_field_value,
    has_field_path,
    render_prose,
    set_field_value,
    validate_field_path,
)
from .service import ChangeTrackingService
from .tracker import ChangeTracker, TrackerRegistry

__all__ = [
    # Paths
    "PathPart",
    "parse_field_path",
    # Resolver
    "FieldPathResolver",
    "field_path_resolver",
    "get_field_value",
    "set_field_value",
    "has_field_path",
    "delete_field_path",
    "get_field_schema",
    "validate_field_path",
    "get_all_field_paths",
    "get_changed_paths",
    "deep_equal",
    "render_prose",
    # Merge
    "merge_values",
    # Guard
    "CIRCULAR_REFERENCE_MARKER",
    "DataIntegrityGuard",
    "data_integrity_guard",
    "validate_and_clean_field_update",
    # Tracking
    "ChangeTracker",
    "TrackerRegistry",
    "ChangeTrackingService",
    "compute_statistics",
    "filter_changes",
    "prune_changes",
    # Editing
    "apply_field_update",
]

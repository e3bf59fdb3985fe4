"""Metadata stores holding each report's change-tracking blob.

A store is opaque key-value storage keyed by report id. The blob shape is
``ChangeTrackingMetadata.to_blob()``.
"""

import copy
from contextlib import AbstractAsyncContextManager
from typing import Any, Awaitable, Callable, Optional, Protocol, runtime_checkable

from sqlalchemy.ext.asyncio import AsyncSession

from .database import get_session
from .repositories import ReportRepository


SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


@runtime_checkable
class MetadataStore(Protocol):
    """Storage consumed by the change tracker."""

    def load(self, report_id: str) -> Awaitable[Optional[dict[str, Any]]]:
        """Return the stored blob, or None when the report has none."""
        ...

    def save(self, report_id: str, blob: dict[str, Any]) -> Awaitable[bool]:
        """Store the blob; return False when the write was rejected."""
        ...


class InMemoryMetadataStore:
    """Process-local store, for single-process use and tests."""

    def __init__(self, initial: Optional[dict[str, dict[str, Any]]] = None):
        self._blobs: dict[str, dict[str, Any]] = copy.deepcopy(initial) if initial else {}

    async def load(self, report_id: str) -> Optional[dict[str, Any]]:
        blob = self._blobs.get(report_id)
        return copy.deepcopy(blob) if blob is not None else None

    async def save(self, report_id: str, blob: dict[str, Any]) -> bool:
        self._blobs[report_id] = copy.deepcopy(blob)
        return True

    def __contains__(self, report_id: str) -> bool:
        return report_id in self._blobs


class SqlMetadataStore:
    """Store backed by the ``reports.change_tracking_metadata`` column."""

    def __init__(self, session_factory: SessionFactory = get_session):
        self.session_factory = session_factory

    async def load(self, report_id: str) -> Optional[dict[str, Any]]:
        async with self.session_factory() as session:
            return await ReportRepository(session).get_change_metadata(report_id)

    async def save(self, report_id: str, blob: dict[str, Any]) -> bool:
        async with self.session_factory() as session:
            return await ReportRepository(session).update_change_metadata(report_id, blob)

"""Repository layer for database CRUD operations."""

from typing import Any, Optional, Sequence, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .orm_models import ReportORM, ReportSectionORM


def _as_uuid(value: Union[str, UUID]) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


class ReportRepository:
    """Repository for Report operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, report_id: Union[str, UUID]) -> Optional[ReportORM]:
        """Get report by ID."""
        result = await self.session.execute(
            select(ReportORM).where(ReportORM.id == _as_uuid(report_id))
        )
        return result.scalar_one_or_none()

    async def get_change_metadata(self, report_id: Union[str, UUID]) -> Optional[dict[str, Any]]:
        """Get the change-tracking blob of a report."""
        result = await self.session.execute(
            select(ReportORM.change_tracking_metadata).where(
                ReportORM.id == _as_uuid(report_id)
            )
        )
        return result.scalar_one_or_none()

    async def update_change_metadata(
        self, report_id: Union[str, UUID], metadata: dict[str, Any]
    ) -> bool:
        """Replace the change-tracking blob. Returns False for unknown reports."""
        report = await self.get_by_id(report_id)
        if report is None:
            return False
        report.change_tracking_metadata = metadata
        await self.session.flush()
        return True


class SectionRepository:
    """Repository for ReportSection operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, section_id: Union[str, UUID]) -> Optional[ReportSectionORM]:
        """Get section by ID."""
        result = await self.session.execute(
            select(ReportSectionORM).where(ReportSectionORM.id == _as_uuid(section_id))
        )
        return result.scalar_one_or_none()

    async def get_report_sections(self, report_id: Union[str, UUID]) -> Sequence[ReportSectionORM]:
        """Get all sections of a report in display order."""
        result = await self.session.execute(
            select(ReportSectionORM)
            .where(ReportSectionORM.report_id == _as_uuid(report_id))
            .order_by(ReportSectionORM.order_index)
        )
        return result.scalars().all()

    async def list_with_structured_data(self, limit: Optional[int] = None) -> Sequence[ReportSectionORM]:
        """Get sections that carry a structured document."""
        query = (
            select(ReportSectionORM)
            .where(ReportSectionORM.structured_data.is_not(None))
            .order_by(ReportSectionORM.created_at)
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return result.scalars().all()

    async def update_structured_data(
        self, section_id: Union[str, UUID], structured_data: Any
    ) -> bool:
        """Replace a section's document. Returns False for unknown sections."""
        section = await self.get_by_id(section_id)
        if section is None:
            return False
        section.structured_data = structured_data
        await self.session.flush()
        return True

"""SQLAlchemy ORM models for structedit.

Section documents live in ``report_sections.structured_data``; each report's
change log lives in ``reports.change_tracking_metadata``. Both are JSONB
blobs whose shape is described outside the database.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


class ReportORM(Base):
    """Report table - one assessment report and its change log."""

    __tablename__ = "reports"

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    report_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Change tracking blob: {field_changes, last_ai_update, validation_status, ...}
    change_tracking_metadata: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    sections: Mapped[list["ReportSectionORM"]] = relationship(
        back_populates="report", cascade="all, delete-orphan"
    )


class ReportSectionORM(Base):
    """Report section table - one section document per row."""

    __tablename__ = "report_sections"

    id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), primary_key=True, default=uuid4
    )
    report_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True), ForeignKey("reports.id", ondelete="CASCADE")
    )
    section_type: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    order_index: Mapped[int] = mapped_column(Integer, default=0)

    # Section document and its rendered prose
    structured_data: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    report: Mapped["ReportORM"] = relationship(back_populates="sections")

    __table_args__ = (
        Index("ix_report_sections_report_order", "report_id", "order_index"),
    )

"""Storage layer for structedit.

Provides database access via SQLAlchemy with PostgreSQL, and the metadata
stores the change tracker persists through.
"""

from .database import (
    Base,
    async_session_factory,
    close_db,
    engine,
    get_session,
    init_db,
)
from .orm_models import (
    ReportORM,
    ReportSectionORM,
)
from .repositories import (
    ReportRepository,
    SectionRepository,
)
from .store import (
    InMemoryMetadataStore,
    MetadataStore,
    SqlMetadataStore,
)

__all__ = [
    # Database
    "Base",
    "engine",
    "async_session_factory",
    "get_session",
    "init_db",
    "close_db",
    # ORM Models
    "ReportORM",
    "ReportSectionORM",
    # Repositories
    "ReportRepository",
    "SectionRepository",
    # Metadata stores
    "MetadataStore",
    "InMemoryMetadataStore",
    "SqlMetadataStore",
]

"""Repair of section documents already corrupted in storage.

Scans ``report_sections.structured_data`` with the integrity guard and writes
cleaned documents back, one transaction per section.
"""

from typing import Optional

from structedit.core.guard import DataIntegrityGuard, data_integrity_guard
from structedit.models import SectionCleanupDetail, SectionCleanupReport
from structedit.storage import SectionRepository, get_session
from structedit.storage.store import SessionFactory
from structedit.utils.logging import get_logger

logger = get_logger(__name__)


def _detail(section, result) -> SectionCleanupDetail:
    return SectionCleanupDetail(
        section_id=str(section.id),
        title=section.title or "",
        issues_found=result.issues_found,
        cleanup_actions=result.cleanup_actions,
    )


async def cleanup_corrupted_sections(
    session_factory: SessionFactory = get_session,
    guard: Optional[DataIntegrityGuard] = None,
    dry_run: bool = False,
) -> SectionCleanupReport:
    """Clean every stored section whose document the guard flags.

    Each write commits in its own session, so a failed section never undoes
    the others. Failures, including a failed fetch, are collected in the
    report rather than raised. With ``dry_run`` nothing is written back.
    """
    guard = guard or data_integrity_guard
    report = SectionCleanupReport()

    try:
        async with session_factory() as session:
            sections = await SectionRepository(session).list_with_structured_data()
    except Exception as exc:
        logger.exception("Error fetching sections for cleanup")
        report.errors.append(f"Error fetching sections: {exc}")
        return report

    report.total_sections = len(sections)
    logger.info("Found %d sections with structured_data", report.total_sections)

    for section in sections:
        try:
            result = guard.clean_corrupted_data(section.structured_data)
            if not result.was_corrupted:
                continue

            report.corrupted_sections += 1
            logger.warning(
                "Corrupted data in section %s (%s): %s",
                section.id,
                section.title,
                ", ".join(result.issues_found),
            )
            if dry_run:
                continue

            async with session_factory() as session:
                updated = await SectionRepository(session).update_structured_data(
                    section.id, result.cleaned_data
                )
            if not updated:
                report.errors.append(f"Section {section.id} no longer exists")
                continue

            # Counted only once the session has committed.
            report.cleaned_sections += 1
            report.cleanup_details.append(_detail(section, result))
        except Exception as exc:
            logger.exception("Error processing section %s", section.id)
            report.errors.append(f"Error processing section {section.id}: {exc}")

    logger.info(
        "Cleanup complete: %d/%d corrupted sections cleaned",
        report.cleaned_sections,
        report.corrupted_sections,
    )
    return report


async def identify_corrupted_sections(
    session_factory: SessionFactory = get_session,
    guard: Optional[DataIntegrityGuard] = None,
) -> list[SectionCleanupDetail]:
    """List stored sections the guard would clean, without changing them.

    A failed fetch is logged and yields an empty list.
    """
    guard = guard or data_integrity_guard

    try:
        async with session_factory() as session:
            sections = await SectionRepository(session).list_with_structured_data()
    except Exception:
        logger.exception("Error fetching sections to identify corruption")
        return []

    corrupted = []
    for section in sections:
        result = guard.clean_corrupted_data(section.structured_data)
        if result.was_corrupted:
            corrupted.append(_detail(section, result))
    return corrupted

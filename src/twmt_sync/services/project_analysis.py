"""Analyze a project's pack, auto-apply the diff and record the outcome."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from twmt_sync.exceptions import NotFoundError, PersistenceError
from twmt_sync.models.project import Project
from twmt_sync.services.caches import AnalysisCacheStore
from twmt_sync.services.diff_analyzer import DiffResult, analyze_changes
from twmt_sync.services.progress import ScanLogCallback, ScanLogLevel, noop_log
from twmt_sync.services.protocols import ArchiveExtractor, TabularParser
from twmt_sync.services.reconciliation import (
    add_new_units,
    apply_modified_source_texts,
    mark_removed_units_obsolete,
    reactivate_obsolete_units,
)
from twmt_sync.services.workshop_metadata import advance_watermark

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ApplyOutcome:
    units_added: int = 0
    source_texts_updated: int = 0
    translations_reset: int = 0
    units_obsoleted: int = 0
    units_reactivated: int = 0
    translations_flagged_for_review: int = 0
    failures: int = 0

    @property
    def applied_anything(self) -> bool:
        return (
            self.units_added > 0
            or self.source_texts_updated > 0
            or self.translations_reset > 0
            or self.units_obsoleted > 0
            or self.units_reactivated > 0
        )


def set_mod_update_impact(session: Session, project_id: str, impacted: bool = True) -> None:
    project = session.get(Project, project_id)
    if project is None:
        raise NotFoundError(f"Project {project_id} not found")
    try:
        project.has_mod_update_impact = impacted
        project.updated_at = datetime.now(UTC)
        session.add(project)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceError(f"Failed to flag project {project_id}") from exc


def apply_diff(
    session: Session,
    project_id: str,
    diff: DiffResult,
    *,
    on_log: ScanLogCallback = noop_log,
) -> ApplyOutcome:
    """Run the reconciliation operations in order: new, modified, removed, reactivated.

    A failing operation is logged and the remaining ones still run. The
    project is flagged as impacted when anything changed.
    """
    outcome = ApplyOutcome()

    if diff.new_unit_keys:
        on_log(f"  Adding {len(diff.new_unit_keys)} new units...", ScanLogLevel.INFO)
        try:
            outcome.units_added = add_new_units(
                session,
                project_id,
                diff,
                lambda done, total: on_log(
                    f"  Adding new units: {done}/{total}", ScanLogLevel.INFO
                ),
            )
        except PersistenceError as exc:
            logger.warning("Failed to add new units: %s", exc)
            outcome.failures += 1

    if diff.modified_unit_keys:
        on_log(f"  Updating {len(diff.modified_unit_keys)} modified units...", ScanLogLevel.INFO)
        try:
            modified = apply_modified_source_texts(session, project_id, diff)
            outcome.source_texts_updated = modified.source_texts_updated
            outcome.translations_reset = modified.translations_reset
        except PersistenceError as exc:
            logger.warning("Failed to apply source text changes: %s", exc)
            outcome.failures += 1

    if diff.removed_unit_keys:
        on_log(
            f"  Marking {len(diff.removed_unit_keys)} removed units as obsolete...",
            ScanLogLevel.INFO,
        )
        try:
            outcome.units_obsoleted = mark_removed_units_obsolete(session, project_id, diff)
        except PersistenceError as exc:
            logger.warning("Failed to mark removed units obsolete: %s", exc)
            outcome.failures += 1

    if diff.reactivated_unit_keys:
        on_log(f"  Reactivating {len(diff.reactivated_unit_keys)} units...", ScanLogLevel.INFO)
        try:
            reactivated = reactivate_obsolete_units(session, project_id, diff)
            outcome.units_reactivated = reactivated.units_reactivated
            outcome.translations_flagged_for_review = reactivated.translations_flagged_for_review
        except PersistenceError as exc:
            logger.warning("Failed to reactivate obsolete units: %s", exc)
            outcome.failures += 1

    if outcome.applied_anything:
        try:
            set_mod_update_impact(session, project_id, True)
        except PersistenceError as exc:
            logger.warning("Failed to set mod update impact flag: %s", exc)
    return outcome


async def analyze_and_apply(
    session: Session,
    project_id: str,
    pack_file_path: str,
    file_last_modified: int,
    *,
    extractor: ArchiveExtractor,
    parser: TabularParser,
    cancel_event: threading.Event | None = None,
    on_log: ScanLogCallback = noop_log,
) -> tuple[DiffResult, ApplyOutcome]:
    """Fresh analysis followed by auto-apply and an analysis cache write.

    When the apply changed anything the cache records zero pending changes;
    otherwise the real counts are cached so the mod keeps surfacing them.
    If any reconciliation step failed the cache entry is dropped instead, so
    the next pass analyzes the pack again and retries. Analysis failures
    propagate and nothing is cached.
    """
    diff = await analyze_changes(
        session,
        project_id,
        pack_file_path,
        extractor=extractor,
        parser=parser,
        cancel_event=cancel_event,
    )
    outcome = ApplyOutcome()
    if diff.has_changes:
        outcome = apply_diff(session, project_id, diff, on_log=on_log)

    store = AnalysisCacheStore(session)
    if outcome.failures:
        logger.warning(
            "%d reconciliation step(s) failed for %s, analysis will be retried",
            outcome.failures,
            pack_file_path,
        )
        store.delete(project_id, pack_file_path)
        return diff, outcome

    to_cache = diff
    if outcome.applied_anything:
        to_cache = DiffResult(
            total_pack_units=diff.total_pack_units,
            total_project_units=diff.total_project_units,
        )
    store.upsert(
        to_cache.to_cache_entry(project_id, pack_file_path, file_last_modified)
    )
    return diff, outcome


def dismiss_pending_changes(
    session: Session,
    project_id: str,
    pack_file_path: str,
    workshop_id: str,
    time_updated: int,
) -> bool:
    """Acknowledge a mod's pending changes and advance its watermark.

    Returns whether a cached analysis entry was cleared.
    """
    store = AnalysisCacheStore(session)
    entry = store.get_by_project_and_path(project_id, pack_file_path)
    cleared = False
    if entry is not None:
        entry.new_units_count = 0
        entry.removed_units_count = 0
        entry.modified_units_count = 0
        entry.reactivated_units_count = 0
        store.upsert(entry)
        cleared = True
    advance_watermark(session, workshop_id, time_updated)
    logger.info("Dismissed pending changes of %s for project %s", workshop_id, project_id)
    return cleared

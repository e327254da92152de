"""Application of a :class:`DiffResult` to the translation tables.

Every operation is idempotent per key and commits once. Keys are processed in
chunks so ``IN`` clauses stay under SQLite's bound-parameter limit.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from twmt_sync.constants import BULK_CHUNK_SIZE
from twmt_sync.exceptions import PersistenceError
from twmt_sync.models.project import ProjectLanguage
from twmt_sync.models.translation import TranslationStatus, TranslationUnit, TranslationVersion
from twmt_sync.services.diff_analyzer import DiffResult
from twmt_sync.services.progress import ApplyProgressCallback, noop_progress

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ModifiedApplyResult:
    source_texts_updated: int = 0
    translations_reset: int = 0


@dataclass(frozen=True, slots=True)
class ReactivationResult:
    units_reactivated: int = 0
    translations_flagged_for_review: int = 0


def _chunked(keys: list[str], size: int = BULK_CHUNK_SIZE) -> Iterator[list[str]]:
    for i in range(0, len(keys), size):
        yield keys[i : i + size]


def _units_by_key(
    session: Session, project_id: str, keys: list[str], *, obsolete: bool | None = None
) -> list[TranslationUnit]:
    stmt = select(TranslationUnit).where(
        TranslationUnit.project_id == project_id,
        TranslationUnit.key.in_(keys),  # type: ignore[attr-defined]
    )
    if obsolete is not None:
        stmt = stmt.where(TranslationUnit.is_obsolete == obsolete)
    return list(session.exec(stmt).all())


def _versions_for_units(session: Session, unit_ids: list[str]) -> list[TranslationVersion]:
    if not unit_ids:
        return []
    return list(
        session.exec(
            select(TranslationVersion).where(TranslationVersion.unit_id.in_(unit_ids))  # type: ignore[attr-defined]
        ).all()
    )


def add_new_units(
    session: Session,
    project_id: str,
    diff: DiffResult,
    on_progress: ApplyProgressCallback = noop_progress,
) -> int:
    """Insert new units with one pending version per project language.

    Keys that already exist in the project are skipped.
    """
    units = diff.new_units_data
    if not units:
        return 0
    language_ids = list(
        session.exec(
            select(ProjectLanguage.id).where(ProjectLanguage.project_id == project_id)
        ).all()
    )
    now = datetime.now(UTC)
    inserted = 0
    processed = 0
    try:
        for start in range(0, len(units), BULK_CHUNK_SIZE):
            chunk = units[start : start + BULK_CHUNK_SIZE]
            existing = set(
                session.exec(
                    select(TranslationUnit.key).where(
                        TranslationUnit.project_id == project_id,
                        TranslationUnit.key.in_([u.key for u in chunk]),  # type: ignore[attr-defined]
                    )
                ).all()
            )
            for data in chunk:
                if data.key in existing:
                    continue
                unit = TranslationUnit(
                    project_id=project_id,
                    key=data.key,
                    source_text=data.source_text,
                    source_loc_file=data.source_loc_file,
                    created_at=now,
                    updated_at=now,
                )
                session.add(unit)
                for language_id in language_ids:
                    session.add(
                        TranslationVersion(
                            unit_id=unit.id,
                            project_language_id=language_id,
                            status=TranslationStatus.PENDING,
                            created_at=now,
                            updated_at=now,
                        )
                    )
                existing.add(data.key)
                inserted += 1
            session.flush()
            processed += len(chunk)
            on_progress(processed, len(units))
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceError(f"Failed to add new units to project {project_id}") from exc
    logger.info("Added %d new units to project %s", inserted, project_id)
    return inserted


def apply_modified_source_texts(
    session: Session,
    project_id: str,
    diff: DiffResult,
    on_progress: ApplyProgressCallback = noop_progress,
) -> ModifiedApplyResult:
    """Update changed source texts and reset every version of those units to pending.

    The reset ignores the previous status: an approved translation of an old
    source text is no longer a translation of the new one.
    """
    keys = sorted(diff.modified_source_texts)
    if not keys:
        return ModifiedApplyResult()
    now = datetime.now(UTC)
    updated = 0
    reset = 0
    processed = 0
    try:
        for chunk in _chunked(keys):
            units = _units_by_key(session, project_id, chunk, obsolete=False)
            for unit in units:
                new_text = diff.modified_source_texts[unit.key]
                if unit.source_text != new_text:
                    unit.source_text = new_text
                    unit.updated_at = now
                    session.add(unit)
                    updated += 1
            for version in _versions_for_units(session, [u.id for u in units]):
                if version.status != TranslationStatus.PENDING:
                    reset += 1
                version.status = TranslationStatus.PENDING
                version.updated_at = now
                session.add(version)
            processed += len(chunk)
            on_progress(processed, len(keys))
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceError(
            f"Failed to apply source text changes to project {project_id}"
        ) from exc
    logger.info(
        "Project %s: %d source texts updated, %d translations reset to pending",
        project_id,
        updated,
        reset,
    )
    return ModifiedApplyResult(source_texts_updated=updated, translations_reset=reset)


def mark_removed_units_obsolete(
    session: Session,
    project_id: str,
    diff: DiffResult,
    on_progress: ApplyProgressCallback = noop_progress,
) -> int:
    keys = sorted(diff.removed_unit_keys)
    if not keys:
        return 0
    now = datetime.now(UTC)
    marked = 0
    processed = 0
    try:
        for chunk in _chunked(keys):
            for unit in _units_by_key(session, project_id, chunk, obsolete=False):
                unit.is_obsolete = True
                unit.updated_at = now
                session.add(unit)
                marked += 1
            processed += len(chunk)
            on_progress(processed, len(keys))
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceError(f"Failed to mark units obsolete in project {project_id}") from exc
    logger.info("Marked %d units obsolete in project %s", marked, project_id)
    return marked


def reactivate_obsolete_units(
    session: Session,
    project_id: str,
    diff: DiffResult,
    on_progress: ApplyProgressCallback = noop_progress,
) -> ReactivationResult:
    """Bring obsolete units back and flag their existing translations for review.

    Versions still pending stay pending; anything already translated moves to
    ``needs_review``.
    """
    keys = sorted(diff.reactivated_unit_keys)
    if not keys:
        return ReactivationResult()
    now = datetime.now(UTC)
    reactivated = 0
    flagged = 0
    processed = 0
    try:
        for chunk in _chunked(keys):
            units = _units_by_key(session, project_id, chunk, obsolete=True)
            for unit in units:
                unit.is_obsolete = False
                new_text = diff.reactivated_source_texts.get(unit.key)
                if new_text is not None:
                    unit.source_text = new_text
                unit.updated_at = now
                session.add(unit)
                reactivated += 1
            for version in _versions_for_units(session, [u.id for u in units]):
                if version.status in (TranslationStatus.PENDING, TranslationStatus.NEEDS_REVIEW):
                    continue
                version.status = TranslationStatus.NEEDS_REVIEW
                version.updated_at = now
                session.add(version)
                flagged += 1
            processed += len(chunk)
            on_progress(processed, len(keys))
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceError(f"Failed to reactivate units in project {project_id}") from exc
    logger.info(
        "Reactivated %d units in project %s, %d translations flagged for review",
        reactivated,
        project_id,
        flagged,
    )
    return ReactivationResult(
        units_reactivated=reactivated, translations_flagged_for_review=flagged
    )

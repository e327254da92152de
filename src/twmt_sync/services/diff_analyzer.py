"""Diff of a pack's localization entries against a project's translation units.

Pack keys fall into exactly one of new, reactivated, modified or unchanged;
active project keys missing from the pack are removed. Keys and texts are
compared with exact string equality.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import threading
from dataclasses import dataclass, field

from sqlmodel import Session, select

from twmt_sync.exceptions import (
    ExternalToolError,
    NotFoundError,
    OperationCancelledError,
    TabularParseError,
)
from twmt_sync.models.project import Project
from twmt_sync.models.scan_cache import ModUpdateAnalysisCache
from twmt_sync.models.translation import TranslationUnit
from twmt_sync.schemas.analysis import AnalysisOut, AnalysisSummary
from twmt_sync.services.protocols import ArchiveExtractor, TabularParser

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PackUnit:
    key: str
    source_text: str
    source_loc_file: str | None = None


@dataclass(slots=True)
class DiffResult:
    new_unit_keys: set[str] = field(default_factory=set)
    new_units_data: list[PackUnit] = field(default_factory=list)
    removed_unit_keys: set[str] = field(default_factory=set)
    modified_unit_keys: set[str] = field(default_factory=set)
    modified_source_texts: dict[str, str] = field(default_factory=dict)
    reactivated_unit_keys: set[str] = field(default_factory=set)
    reactivated_source_texts: dict[str, str] = field(default_factory=dict)
    total_pack_units: int = 0
    total_project_units: int = 0

    @property
    def total_changes(self) -> int:
        return (
            len(self.new_unit_keys)
            + len(self.removed_unit_keys)
            + len(self.modified_unit_keys)
            + len(self.reactivated_unit_keys)
        )

    @property
    def has_changes(self) -> bool:
        return self.total_changes > 0

    def to_summary(self) -> AnalysisSummary:
        return AnalysisSummary(
            new_units_count=len(self.new_unit_keys),
            removed_units_count=len(self.removed_unit_keys),
            modified_units_count=len(self.modified_unit_keys),
            reactivated_units_count=len(self.reactivated_unit_keys),
            total_pack_units=self.total_pack_units,
            total_project_units=self.total_project_units,
            has_changes=self.has_changes,
        )

    def to_out(self) -> AnalysisOut:
        return AnalysisOut(
            **self.to_summary().model_dump(),
            new_unit_keys=sorted(self.new_unit_keys),
            removed_unit_keys=sorted(self.removed_unit_keys),
            modified_unit_keys=sorted(self.modified_unit_keys),
            reactivated_unit_keys=sorted(self.reactivated_unit_keys),
        )

    def to_cache_entry(
        self, project_id: str, pack_file_path: str, file_last_modified: int
    ) -> ModUpdateAnalysisCache:
        return ModUpdateAnalysisCache(
            project_id=project_id,
            pack_file_path=pack_file_path,
            file_last_modified=file_last_modified,
            new_units_count=len(self.new_unit_keys),
            removed_units_count=len(self.removed_unit_keys),
            modified_units_count=len(self.modified_unit_keys),
            reactivated_units_count=len(self.reactivated_unit_keys),
            total_pack_units=self.total_pack_units,
            total_project_units=self.total_project_units,
        )


def summary_from_cache(entry: ModUpdateAnalysisCache) -> AnalysisSummary:
    return AnalysisSummary(
        new_units_count=entry.new_units_count,
        removed_units_count=entry.removed_units_count,
        modified_units_count=entry.modified_units_count,
        reactivated_units_count=entry.reactivated_units_count,
        total_pack_units=entry.total_pack_units,
        total_project_units=entry.total_project_units,
        has_changes=entry.has_changes,
    )


def compute_diff(
    pack_units: dict[str, PackUnit],
    active_units: dict[str, str],
    obsolete_keys: set[str],
) -> DiffResult:
    """Categorize *pack_units* against the project's active and obsolete keys."""
    diff = DiffResult(total_pack_units=len(pack_units), total_project_units=len(active_units))

    for key, unit in pack_units.items():
        current = active_units.get(key)
        if current is None:
            if key in obsolete_keys:
                diff.reactivated_unit_keys.add(key)
                diff.reactivated_source_texts[key] = unit.source_text
            else:
                diff.new_unit_keys.add(key)
                diff.new_units_data.append(unit)
        elif current != unit.source_text:
            diff.modified_unit_keys.add(key)
            diff.modified_source_texts[key] = unit.source_text

    diff.removed_unit_keys = {k for k in active_units if k not in pack_units}
    return diff


def load_project_units(session: Session, project_id: str) -> tuple[dict[str, str], set[str]]:
    """Return ``(active key -> source text, obsolete keys)`` for a project."""
    rows = session.exec(
        select(TranslationUnit.key, TranslationUnit.source_text, TranslationUnit.is_obsolete).where(
            TranslationUnit.project_id == project_id
        )
    ).all()
    active: dict[str, str] = {}
    obsolete: set[str] = set()
    for key, text, is_obsolete in rows:
        if is_obsolete:
            obsolete.add(key)
        else:
            active[key] = text
    return active, obsolete


def read_pack_units(
    tsv_files: list[str], output_directory: str, parser: TabularParser
) -> dict[str, PackUnit]:
    """Parse extracted TSV tables into ``key -> PackUnit``.

    Tables are read in lexicographic order of their path inside the pack and
    the first occurrence of a duplicated key wins. Unparsable tables are
    skipped, but when none of them parse the whole read fails rather than
    reporting an empty pack.
    """
    by_loc_file: list[tuple[str, str]] = []
    for path in tsv_files:
        rel = os.path.relpath(path, output_directory).replace(os.sep, "/")
        if rel.lower().endswith(".tsv"):
            rel = rel[:-4]
        by_loc_file.append((rel, path))
    by_loc_file.sort()

    units: dict[str, PackUnit] = {}
    duplicates = 0
    parsed_tables = 0
    for loc_file, path in by_loc_file:
        try:
            parsed = parser.parse(path)
        except TabularParseError as exc:
            logger.warning("Skipping unparsable table %s: %s", loc_file, exc.reason)
            continue
        parsed_tables += 1
        for entry in parsed.entries:
            if entry.key in units:
                duplicates += 1
                continue
            units[entry.key] = PackUnit(
                key=entry.key, source_text=entry.value, source_loc_file=loc_file
            )
    if by_loc_file and not parsed_tables:
        raise ExternalToolError(
            f"None of the {len(by_loc_file)} extracted loc tables could be parsed"
        )
    if duplicates:
        logger.debug("Ignored %d duplicate keys across loc tables", duplicates)
    return units


def _cleanup(directory: str) -> None:
    try:
        shutil.rmtree(directory)
    except OSError as exc:
        logger.warning("Failed to remove extraction directory %s: %s", directory, exc)


async def analyze_changes(
    session: Session,
    project_id: str,
    pack_file_path: str,
    *,
    extractor: ArchiveExtractor,
    parser: TabularParser,
    cancel_event: threading.Event | None = None,
) -> DiffResult:
    """Extract the pack's loc tables and diff them against the project.

    Nothing is written: an extraction failure or cancellation propagates and
    leaves both the caches and the translation units untouched.
    """
    if session.get(Project, project_id) is None:
        raise NotFoundError(f"Project {project_id} not found")

    active, obsolete = load_project_units(session, project_id)

    out_dir = tempfile.mkdtemp(prefix="twmt_analysis_")
    try:
        extract = await extractor.extract_tsv(pack_file_path, out_dir, cancel_event=cancel_event)
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelledError("Analysis cancelled")
        pack_units = read_pack_units(extract.extracted_files, extract.output_directory, parser)
    finally:
        _cleanup(out_dir)

    diff = compute_diff(pack_units, active, obsolete)
    logger.info(
        "Analysis of %s: %d new, %d removed, %d modified, %d reactivated "
        "(%d pack / %d project units)",
        os.path.basename(pack_file_path),
        len(diff.new_unit_keys),
        len(diff.removed_unit_keys),
        len(diff.modified_unit_keys),
        len(diff.reactivated_unit_keys),
        diff.total_pack_units,
        diff.total_project_units,
    )
    return diff

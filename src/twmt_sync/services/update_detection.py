"""Workshop scan: discover mods, detect updates and reconcile imported projects.

Per mod the pass decides between three outcomes:

* the local pack is older than the remote update: flag ``needs_download``;
* the mod is imported and either a new remote update arrived or the analysis
  cache is stale: analyze, auto-apply, and surface the diff;
* otherwise reuse the cached analysis.

The stored remote timestamp (watermark) only advances when a pass sees no
pending changes for the mod, or when the user dismisses them.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass

from sqlmodel import Session, select

from twmt_sync.config import Settings
from twmt_sync.exceptions import (
    ConfigurationError,
    NotFoundError,
    OperationCancelledError,
    SyncError,
)
from twmt_sync.models.game import GameInstallation
from twmt_sync.models.project import Project
from twmt_sync.parsing.tsv_parser import TsvParser
from twmt_sync.rpfm.cli import build_rpfm_cli
from twmt_sync.schemas.analysis import AnalysisSummary
from twmt_sync.schemas.mod import DetectedModSummary, ModScanResult, ModUpdateStatus
from twmt_sync.services.caches import AnalysisCacheStore, ScanCacheStore
from twmt_sync.services.content_probe import probe_localization_content
from twmt_sync.services.diff_analyzer import summary_from_cache
from twmt_sync.services.pack_inventory import ModArchiveRecord, collect_pack_files
from twmt_sync.services.progress import ScanLogCallback, ScanLogLevel, noop_log
from twmt_sync.services.project_analysis import analyze_and_apply
from twmt_sync.services.protocols import (
    ArchiveExtractor,
    ArchiveInspector,
    RemoteCatalog,
    TabularParser,
)
from twmt_sync.services.workshop_metadata import (
    MergedMetadata,
    SteamWorkshopCatalog,
    advance_watermark,
    merge_remote_metadata,
)
from twmt_sync.utils.paths import to_native_path

logger = logging.getLogger(__name__)

# Active scan cancel events keyed by game_code
_cancel_events: dict[str, threading.Event] = {}
_cancel_lock = threading.Lock()


@dataclass(frozen=True, slots=True)
class ScanDependencies:
    inspector: ArchiveInspector
    extractor: ArchiveExtractor
    parser: TabularParser
    catalog: RemoteCatalog


def build_scan_dependencies(settings: Settings) -> ScanDependencies:
    rpfm = build_rpfm_cli(settings)
    return ScanDependencies(
        inspector=rpfm,
        extractor=rpfm,
        parser=TsvParser(),
        catalog=SteamWorkshopCatalog(
            base_url=settings.steam_api_url,
            api_key=settings.steam_api_key,
            batch_size=settings.steam_batch_size,
        ),
    )


def register_scan(game_code: str) -> threading.Event:
    event = threading.Event()
    with _cancel_lock:
        _cancel_events[game_code] = event
    return event


def release_scan(game_code: str, event: threading.Event) -> None:
    with _cancel_lock:
        if _cancel_events.get(game_code) is event:
            del _cancel_events[game_code]


def cancel_scan(game_code: str) -> bool:
    with _cancel_lock:
        event = _cancel_events.get(game_code)
    if event is None:
        return False
    event.set()
    return True


def _get_game(session: Session, game_code: str) -> GameInstallation:
    game = session.exec(
        select(GameInstallation).where(GameInstallation.game_code == game_code)
    ).first()
    if not game:
        raise NotFoundError(f"Game installation '{game_code}' not found")
    return game


def _projects_by_workshop_id(session: Session) -> dict[str, Project]:
    projects = session.exec(select(Project).where(Project.mod_steam_id.is_not(None))).all()  # type: ignore[union-attr]
    return {p.mod_steam_id: p for p in projects if p.mod_steam_id}


def _base_summary(
    record: ModArchiveRecord, meta: MergedMetadata, project: Project | None
) -> DetectedModSummary:
    return DetectedModSummary(
        workshop_id=record.workshop_id,
        name=meta.title,
        pack_file_path=record.pack_file_path,
        pack_file_name=record.pack_file_name,
        image_path=record.image_path,
        is_already_imported=project is not None,
        existing_project_id=project.id if project else None,
        is_hidden=meta.is_hidden,
        subscriptions=meta.subscriptions,
        time_updated=meta.time_updated,
        local_file_last_modified=record.last_modified,
    )


def _finish(
    summary: DetectedModSummary,
    status: ModUpdateStatus,
    analysis: AnalysisSummary | None = None,
) -> DetectedModSummary:
    summary.update_status = status
    summary.update_analysis = analysis
    summary.requires_action = status in (
        ModUpdateStatus.NEEDS_DOWNLOAD,
        ModUpdateStatus.HAS_CHANGES,
    )
    return summary


async def _resolve_mod(
    session: Session,
    record: ModArchiveRecord,
    meta: MergedMetadata,
    project: Project | None,
    deps: ScanDependencies,
    *,
    on_log: ScanLogCallback,
    cancel_event: threading.Event | None,
) -> tuple[DetectedModSummary, bool]:
    """Classify one mod, running analysis and auto-apply when warranted.

    Returns the summary and whether translation data changed.
    """
    summary = _base_summary(record, meta, project)
    time_updated = meta.time_updated
    cached = meta.cached_time_updated
    local_up_to_date = time_updated is None or record.last_modified >= time_updated
    has_new_remote = cached is not None and time_updated is not None and time_updated != cached

    if not local_up_to_date:
        return _finish(summary, ModUpdateStatus.NEEDS_DOWNLOAD), False

    if project is None:
        if has_new_remote:
            advance_watermark(session, record.workshop_id, time_updated)  # type: ignore[arg-type]
        return _finish(summary, ModUpdateStatus.UP_TO_DATE), False

    cache_entry = AnalysisCacheStore(session).get_valid(
        (project.id, record.pack_file_path), record.last_modified
    )

    if has_new_remote or cache_entry is None:
        on_log(f"Analyzing changes: {meta.title}", ScanLogLevel.INFO)
        diff, outcome = await analyze_and_apply(
            session,
            project.id,
            record.pack_file_path,
            record.last_modified,
            extractor=deps.extractor,
            parser=deps.parser,
            cancel_event=cancel_event,
            on_log=on_log,
        )
        analysis = diff.to_summary()
        if diff.has_changes:
            # watermark held until a later pass sees nothing pending
            return _finish(summary, ModUpdateStatus.HAS_CHANGES, analysis), outcome.applied_anything
        if has_new_remote:
            advance_watermark(session, record.workshop_id, time_updated)  # type: ignore[arg-type]
        return _finish(summary, ModUpdateStatus.UP_TO_DATE, analysis), False

    analysis = summary_from_cache(cache_entry)
    if analysis.has_changes:
        return _finish(summary, ModUpdateStatus.HAS_CHANGES, analysis), False
    return _finish(summary, ModUpdateStatus.UP_TO_DATE, analysis), False


async def scan_mods(
    session: Session,
    game_code: str,
    deps: ScanDependencies,
    *,
    on_log: ScanLogCallback = noop_log,
    cancel_event: threading.Event | None = None,
) -> ModScanResult:
    """Scan the game's Workshop folder and reconcile every imported mod.

    Mods are processed one at a time. A failure on one mod marks it
    ``unresolved`` and the scan continues; configuration errors and
    cancellation abort the whole scan.
    """
    game = _get_game(session, game_code)
    if not game.steam_workshop_path:
        logger.info("No Workshop path configured for %s", game_code)
        on_log(f"No Workshop folder configured for {game_code}", ScanLogLevel.WARNING)
        return ModScanResult()

    root = to_native_path(game.steam_workshop_path)
    if not os.path.isdir(root):
        logger.info("Workshop folder does not exist: %s", root)
        on_log(f"Workshop folder not found: {root}", ScanLogLevel.WARNING)
        return ModScanResult()

    on_log(f"Scanning Workshop folder: {root}", ScanLogLevel.INFO)
    records = collect_pack_files(root)
    on_log(f"Found {len(records)} mods with pack files", ScanLogLevel.INFO)

    probe = await probe_localization_content(
        records,
        deps.inspector,
        ScanCacheStore(session),
        on_log=on_log,
        cancel_event=cancel_event,
    )
    mods = probe.with_localization
    on_log(
        f"{len(mods)} mods with localization files "
        f"({probe.cache_hits} cached, {probe.scans} scanned, {probe.skipped} skipped)",
        ScanLogLevel.INFO,
    )
    if probe.skipped:
        on_log(
            f"{probe.skipped} mods skipped: pack tool unavailable",
            ScanLogLevel.WARNING,
        )

    try:
        app_id = int(game.steam_app_id or 0)
    except ValueError:
        app_id = 0
    fetched = await deps.catalog.fetch_batch([m.workshop_id for m in mods], app_id)
    metadata = merge_remote_metadata(session, mods, fetched)
    stale = sum(1 for meta in metadata.values() if not meta.fetched)
    if mods and stale == len(mods):
        on_log("Workshop metadata unavailable, using cached data", ScanLogLevel.WARNING)
    elif stale:
        on_log(
            f"Workshop metadata missing for {stale} of {len(mods)} mods, using cached data",
            ScanLogLevel.WARNING,
        )
    projects = _projects_by_workshop_id(session)

    summaries: list[DetectedModSummary] = []
    stats_changed = False
    for record in mods:
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelledError("Scan cancelled")
        meta = metadata[record.workshop_id]
        project = projects.get(record.workshop_id)
        try:
            summary, changed = await _resolve_mod(
                session,
                record,
                meta,
                project,
                deps,
                on_log=on_log,
                cancel_event=cancel_event,
            )
        except (ConfigurationError, OperationCancelledError):
            raise
        except SyncError as exc:
            logger.warning("Update check failed for %s: %s", record.workshop_id, exc)
            on_log(f"Failed to analyze {meta.title}: {exc}", ScanLogLevel.ERROR)
            summary = _finish(_base_summary(record, meta, project), ModUpdateStatus.UNRESOLVED)
            changed = False

        if summary.requires_action:
            on_log(f"{summary.name}: {summary.update_status}", ScanLogLevel.INFO)
        summaries.append(summary)
        stats_changed = stats_changed or changed

    logger.info(
        "Scan of %s complete: %d mods, translation stats changed=%s",
        game_code,
        len(summaries),
        stats_changed,
    )
    on_log(f"Scan complete: {len(summaries)} mods", ScanLogLevel.INFO)
    return ModScanResult(mods=summaries, translation_stats_changed=stats_changed)

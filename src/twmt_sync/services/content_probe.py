from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field

from twmt_sync.exceptions import (
    ExternalToolError,
    ExternalToolTimeoutError,
    ExternalToolUnavailableError,
    NotFoundError,
    OperationCancelledError,
)
from twmt_sync.models.scan_cache import ModScanCache
from twmt_sync.rpfm.output_parser import filter_localization_files
from twmt_sync.services.caches import ScanCacheStore
from twmt_sync.services.pack_inventory import ModArchiveRecord
from twmt_sync.services.progress import ScanLogCallback, ScanLogLevel, noop_log
from twmt_sync.services.protocols import ArchiveInspector

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ProbeResult:
    with_localization: list[ModArchiveRecord] = field(default_factory=list)
    cache_hits: int = 0
    scans: int = 0
    skipped: int = 0


async def probe_localization_content(
    records: list[ModArchiveRecord],
    inspector: ArchiveInspector,
    cache: ScanCacheStore,
    *,
    on_log: ScanLogCallback = noop_log,
    cancel_event: threading.Event | None = None,
) -> ProbeResult:
    """Keep only the records whose pack contains ``.loc`` tables.

    Valid cache entries are reused as-is. Other packs are listed with the
    inspector; if the inspector is unavailable those packs are dropped rather
    than recorded as having no localization. All cache writes are flushed in
    one batch after the loop.
    """
    result = ProbeResult()
    tool_available = inspector.is_available()
    if not tool_available:
        logger.warning("Pack inspector unavailable, only cached scan results will be used")

    cached = cache.get_by_paths([r.pack_file_path for r in records])
    updates: list[ModScanCache] = []
    total = len(records)

    for i, record in enumerate(records, 1):
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelledError("Scan cancelled")

        entry = cached.get(record.pack_file_path)
        if entry is not None and entry.is_valid_for(record.last_modified):
            result.cache_hits += 1
            if entry.has_loc_files:
                result.with_localization.append(record)
            else:
                logger.debug("Cached: %s has no loc files", record.pack_file_name)
            continue

        if not tool_available:
            result.skipped += 1
            continue

        on_log(f"[{i}/{total}] Scanning: {record.pack_file_name}", ScanLogLevel.INFO)
        result.scans += 1
        try:
            contents = await inspector.list_contents(record.pack_file_path)
            has_loc = bool(filter_localization_files(contents))
        except (ExternalToolTimeoutError, ExternalToolUnavailableError) as exc:
            # retryable, leave the cache untouched
            logger.warning("Skipping %s: %s", record.pack_file_path, exc)
            result.skipped += 1
            continue
        except (ExternalToolError, NotFoundError) as exc:
            logger.warning("Failed to list %s: %s", record.pack_file_path, exc)
            has_loc = False

        updates.append(
            ModScanCache(
                pack_file_path=record.pack_file_path,
                file_last_modified=record.last_modified,
                has_loc_files=has_loc,
                scanned_at=int(time.time()),
            )
        )
        if has_loc:
            result.with_localization.append(record)

    cache.put_many(updates)
    logger.info(
        "Cache: %d hits, %d scans, %d skipped", result.cache_hits, result.scans, result.skipped
    )
    return result

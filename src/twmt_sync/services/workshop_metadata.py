"""Workshop metadata fetching and merging with the locally stored records.

The stored ``WorkshopMod.time_updated`` is the reconciliation watermark, so
a fetch never overwrites it on an existing record; only
:func:`advance_watermark` moves it.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from twmt_sync.constants import BULK_CHUNK_SIZE
from twmt_sync.exceptions import NotFoundError, PersistenceError
from twmt_sync.models.workshop import WorkshopMod
from twmt_sync.services.pack_inventory import ModArchiveRecord
from twmt_sync.steam.client import (
    BASE_URL,
    MAX_ITEMS_PER_REQUEST,
    WorkshopApiError,
    WorkshopClient,
    WorkshopModInfo,
)

logger = logging.getLogger(__name__)

_SEPARATORS_RE = re.compile(r"[_-]+")


def humanize_mod_name(name: str) -> str:
    """``my_cool-mod`` -> ``My Cool Mod``."""
    words = _SEPARATORS_RE.sub(" ", name).split()
    return " ".join(w[:1].upper() + w[1:].lower() for w in words)


class SteamWorkshopCatalog:
    """Best-effort batch fetch; a failed request only loses its own batch."""

    def __init__(
        self,
        base_url: str = BASE_URL,
        api_key: str = "",
        batch_size: int = MAX_ITEMS_PER_REQUEST,
    ) -> None:
        self._base_url = base_url
        self._api_key = api_key
        self._batch_size = max(1, min(batch_size, MAX_ITEMS_PER_REQUEST))

    async def fetch_batch(self, workshop_ids: list[str], app_id: int) -> dict[str, WorkshopModInfo]:
        result: dict[str, WorkshopModInfo] = {}
        if not workshop_ids:
            return result
        async with WorkshopClient(self._base_url, self._api_key) as client:
            for start in range(0, len(workshop_ids), self._batch_size):
                batch = workshop_ids[start : start + self._batch_size]
                try:
                    mods = await client.get_published_file_details(batch, app_id)
                except (httpx.HTTPError, WorkshopApiError) as exc:
                    logger.warning(
                        "Failed to fetch workshop batch %d-%d: %s",
                        start,
                        start + len(batch),
                        exc,
                    )
                    continue
                for mod in mods:
                    result[mod.workshop_id] = mod
        return result


@dataclass(frozen=True, slots=True)
class MergedMetadata:
    workshop_id: str
    title: str
    subscriptions: int | None
    # Remote timestamp for this pass: fresh from the API when fetched,
    # otherwise the stored watermark.
    time_updated: int | None
    # Watermark as stored before this pass.
    cached_time_updated: int | None
    is_hidden: bool = False
    fetched: bool = False


def get_workshop_mods(session: Session, workshop_ids: list[str]) -> dict[str, WorkshopMod]:
    found: dict[str, WorkshopMod] = {}
    ids = sorted(set(workshop_ids))
    for i in range(0, len(ids), BULK_CHUNK_SIZE):
        rows = session.exec(
            select(WorkshopMod).where(WorkshopMod.workshop_id.in_(ids[i : i + BULK_CHUNK_SIZE]))  # type: ignore[attr-defined]
        ).all()
        for row in rows:
            found[row.workshop_id] = row
    return found


def _tags_json(tags: list[str]) -> str:
    return json.dumps(sorted(tags))


def _apply_fetched(
    existing: WorkshopMod | None, info: WorkshopModInfo, now: datetime
) -> WorkshopMod:
    if existing is None:
        return WorkshopMod(
            workshop_id=info.workshop_id,
            app_id=info.app_id,
            title=info.title,
            workshop_url=info.workshop_url,
            file_size=info.file_size,
            time_created=info.time_created,
            time_updated=info.time_updated,
            subscriptions=info.subscriptions,
            tags=_tags_json(info.tags),
            created_at=now,
            updated_at=now,
            last_checked_at=now,
        )

    tags = _tags_json(info.tags)
    changed = (
        existing.title != info.title
        or existing.workshop_url != info.workshop_url
        or existing.file_size != info.file_size
        or existing.time_created != info.time_created
        or existing.subscriptions != info.subscriptions
        or _tags_json(json.loads(existing.tags or "[]")) != tags
    )
    if changed:
        existing.title = info.title
        existing.workshop_url = info.workshop_url
        existing.file_size = info.file_size
        existing.time_created = info.time_created
        existing.subscriptions = info.subscriptions
        existing.tags = tags
        existing.updated_at = now
    existing.last_checked_at = now
    return existing


def merge_remote_metadata(
    session: Session,
    records: list[ModArchiveRecord],
    fetched: dict[str, WorkshopModInfo],
) -> dict[str, MergedMetadata]:
    """Combine fetched metadata with stored records for every scanned mod.

    Title resolution falls back from the fetched record to the stored one and
    finally to a name derived from the pack file, so offline scans still
    produce a displayable title.
    """
    stored = get_workshop_mods(session, [r.workshop_id for r in records])
    now = datetime.now(UTC)
    merged: dict[str, MergedMetadata] = {}

    try:
        for record in records:
            existing = stored.get(record.workshop_id)
            cached_time = existing.time_updated if existing else None
            info = fetched.get(record.workshop_id)

            if info is not None:
                row = _apply_fetched(existing, info, now)
                session.add(row)
                merged[record.workshop_id] = MergedMetadata(
                    workshop_id=record.workshop_id,
                    title=info.title,
                    subscriptions=info.subscriptions,
                    time_updated=info.time_updated,
                    cached_time_updated=cached_time,
                    is_hidden=row.is_hidden,
                    fetched=True,
                )
            elif existing is not None:
                merged[record.workshop_id] = MergedMetadata(
                    workshop_id=record.workshop_id,
                    title=existing.title,
                    subscriptions=existing.subscriptions,
                    time_updated=existing.time_updated,
                    cached_time_updated=cached_time,
                    is_hidden=existing.is_hidden,
                )
            else:
                merged[record.workshop_id] = MergedMetadata(
                    workshop_id=record.workshop_id,
                    title=humanize_mod_name(record.base_name),
                    subscriptions=None,
                    time_updated=None,
                    cached_time_updated=None,
                )
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceError("Failed to persist workshop metadata") from exc
    return merged


def advance_watermark(session: Session, workshop_id: str, time_updated: int) -> None:
    """Record *time_updated* as the last remote update fully reconciled."""
    row = session.exec(select(WorkshopMod).where(WorkshopMod.workshop_id == workshop_id)).first()
    if row is None:
        raise NotFoundError(f"Workshop mod {workshop_id} not found")
    try:
        row.time_updated = time_updated
        row.updated_at = datetime.now(UTC)
        session.add(row)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceError(f"Failed to update watermark of {workshop_id}") from exc
    logger.info("Watermark of %s advanced to %d", workshop_id, time_updated)


def set_hidden(session: Session, workshop_id: str, hidden: bool) -> WorkshopMod:
    row = session.exec(select(WorkshopMod).where(WorkshopMod.workshop_id == workshop_id)).first()
    if row is None:
        raise NotFoundError(f"Workshop mod {workshop_id} not found")
    try:
        row.is_hidden = hidden
        row.updated_at = datetime.now(UTC)
        session.add(row)
        session.commit()
        session.refresh(row)
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceError(f"Failed to update hidden flag of {workshop_id}") from exc
    return row

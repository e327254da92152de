"""Timestamp-validated caches backed by SQLModel tables.

Validity is never time-based: an entry is usable only while the pack file's
last-modified second still equals the value stored when it was written.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Hashable, Iterable
from typing import Generic, Protocol, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from twmt_sync.constants import BULK_CHUNK_SIZE
from twmt_sync.exceptions import PersistenceError
from twmt_sync.models.scan_cache import ModScanCache, ModUpdateAnalysisCache

logger = logging.getLogger(__name__)


class CacheEntry(Protocol):
    def is_valid_for(self, current_last_modified: int) -> bool: ...


K = TypeVar("K", bound=Hashable)
E = TypeVar("E", bound=CacheEntry)


class KeyedCache(ABC, Generic[K, E]):
    @abstractmethod
    def get_many(self, keys: Iterable[K]) -> dict[K, E]:
        """Return stored entries for *keys*; missing keys are absent from the result."""

    @abstractmethod
    def put_many(self, entries: list[E]) -> None:
        """Insert or replace *entries* in one transaction."""

    def get(self, key: K) -> E | None:
        return self.get_many([key]).get(key)

    def get_valid(self, key: K, current_last_modified: int) -> E | None:
        entry = self.get(key)
        if entry is not None and entry.is_valid_for(current_last_modified):
            return entry
        return None


def _chunks(items: list, size: int = BULK_CHUNK_SIZE):
    for i in range(0, len(items), size):
        yield items[i : i + size]


class ScanCacheStore(KeyedCache[str, ModScanCache]):
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_many(self, keys: Iterable[str]) -> dict[str, ModScanCache]:
        return self.get_by_paths(list(keys))

    def put_many(self, entries: list[ModScanCache]) -> None:
        self.upsert_batch(entries)

    def get_by_paths(self, paths: list[str]) -> dict[str, ModScanCache]:
        result: dict[str, ModScanCache] = {}
        for chunk in _chunks(sorted(set(paths))):
            rows = self._session.exec(
                select(ModScanCache).where(ModScanCache.pack_file_path.in_(chunk))  # type: ignore[attr-defined]
            ).all()
            for row in rows:
                result[row.pack_file_path] = row
        return result

    def upsert_batch(self, entries: list[ModScanCache]) -> None:
        if not entries:
            return
        existing = self.get_by_paths([e.pack_file_path for e in entries])
        try:
            for entry in entries:
                row = existing.get(entry.pack_file_path)
                if row is None:
                    self._session.add(entry)
                    existing[entry.pack_file_path] = entry
                    continue
                row.file_last_modified = entry.file_last_modified
                row.has_loc_files = entry.has_loc_files
                row.scanned_at = entry.scanned_at
                self._session.add(row)
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise PersistenceError(f"Failed to upsert {len(entries)} scan cache entries") from exc
        logger.debug("Upserted %d scan cache entries", len(entries))


class AnalysisCacheStore(KeyedCache[tuple[str, str], ModUpdateAnalysisCache]):
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_many(
        self, keys: Iterable[tuple[str, str]]
    ) -> dict[tuple[str, str], ModUpdateAnalysisCache]:
        result: dict[tuple[str, str], ModUpdateAnalysisCache] = {}
        for project_id, path in keys:
            entry = self.get_by_project_and_path(project_id, path)
            if entry is not None:
                result[(project_id, path)] = entry
        return result

    def put_many(self, entries: list[ModUpdateAnalysisCache]) -> None:
        for entry in entries:
            self.upsert(entry)

    def get_by_project_and_path(
        self, project_id: str, pack_file_path: str
    ) -> ModUpdateAnalysisCache | None:
        return self._session.exec(
            select(ModUpdateAnalysisCache).where(
                ModUpdateAnalysisCache.project_id == project_id,
                ModUpdateAnalysisCache.pack_file_path == pack_file_path,
            )
        ).first()

    def upsert(self, entry: ModUpdateAnalysisCache) -> ModUpdateAnalysisCache:
        row = self.get_by_project_and_path(entry.project_id, entry.pack_file_path)
        try:
            if row is None:
                row = entry
            else:
                row.file_last_modified = entry.file_last_modified
                row.new_units_count = entry.new_units_count
                row.removed_units_count = entry.removed_units_count
                row.modified_units_count = entry.modified_units_count
                row.reactivated_units_count = entry.reactivated_units_count
                row.total_pack_units = entry.total_pack_units
                row.total_project_units = entry.total_project_units
                row.analyzed_at = entry.analyzed_at
            self._session.add(row)
            self._session.commit()
            self._session.refresh(row)
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise PersistenceError(
                f"Failed to upsert analysis cache for {entry.pack_file_path}"
            ) from exc
        return row

    def delete(self, project_id: str, pack_file_path: str) -> bool:
        """Drop the entry so the next pass re-analyzes the pack."""
        row = self.get_by_project_and_path(project_id, pack_file_path)
        if row is None:
            return False
        try:
            self._session.delete(row)
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise PersistenceError(
                f"Failed to drop analysis cache for {pack_file_path}"
            ) from exc
        return True

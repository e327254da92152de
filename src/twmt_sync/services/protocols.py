"""Collaborator interfaces the sync services depend on.

:class:`~twmt_sync.rpfm.cli.RpfmCli` satisfies both archive protocols,
:class:`~twmt_sync.parsing.tsv_parser.TsvParser` the parser one and
:class:`~twmt_sync.services.workshop_metadata.SteamWorkshopCatalog` the
catalog one. Tests substitute in-memory fakes.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from twmt_sync.parsing.tsv_parser import TsvParseResult
    from twmt_sync.rpfm.cli import ExtractResult
    from twmt_sync.steam.client import WorkshopModInfo


class ArchiveInspector(Protocol):
    def is_available(self) -> bool: ...

    async def list_contents(self, pack_file_path: str) -> list[str]: ...


class ArchiveExtractor(Protocol):
    async def extract_tsv(
        self,
        pack_file_path: str,
        output_dir: str | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> ExtractResult: ...


class TabularParser(Protocol):
    def parse(self, file_path: str) -> TsvParseResult: ...


class RemoteCatalog(Protocol):
    async def fetch_batch(
        self, workshop_ids: list[str], app_id: int
    ) -> dict[str, WorkshopModInfo]: ...

"""Async wrapper around the rpfm_cli executable.

Only the two capabilities the sync engine needs are exposed: listing the
entries of a pack and extracting its ``.loc`` tables as TSV files.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
import threading
from dataclasses import dataclass, field

from twmt_sync.config import Settings
from twmt_sync.exceptions import (
    ConfigurationError,
    ExternalToolError,
    ExternalToolTimeoutError,
    ExternalToolUnavailableError,
    NotFoundError,
    OperationCancelledError,
)
from twmt_sync.rpfm.game_schema import schema_file_name, schema_file_path
from twmt_sync.rpfm.output_parser import (
    calculate_timeout,
    filter_localization_files,
    parse_error_message,
    parse_file_list,
)

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.2
_LIST_TIMEOUT = 60.0
_DEFAULT_EXECUTABLES = ("rpfm_cli", "rpfm_cli.exe")


@dataclass(frozen=True, slots=True)
class ExtractResult:
    pack_file_path: str
    output_directory: str
    extracted_files: list[str] = field(default_factory=list)
    total_size_bytes: int = 0


class RpfmCli:
    def __init__(
        self,
        executable: str,
        schema_dir: str,
        game: str,
        *,
        timeout_base: float = 60.0,
        timeout_per_mb: float = 2.0,
    ) -> None:
        self._executable = executable
        self._schema_dir = schema_dir
        self._game = game
        self._timeout_base = timeout_base
        self._timeout_per_mb = timeout_per_mb

    @property
    def game(self) -> str:
        return self._game

    def resolve_executable(self) -> str | None:
        if self._executable:
            if os.path.isfile(self._executable):
                return self._executable
            return shutil.which(self._executable)
        for name in _DEFAULT_EXECUTABLES:
            found = shutil.which(name)
            if found:
                return found
        return None

    def is_available(self) -> bool:
        return self.resolve_executable() is not None

    def _require_executable(self) -> str:
        exe = self.resolve_executable()
        if exe is None:
            raise ExternalToolUnavailableError(
                f"rpfm_cli not found (configured path: {self._executable or '<PATH>'})"
            )
        return exe

    def _require_schema_file(self) -> str:
        if not self._schema_dir or not os.path.isdir(self._schema_dir):
            raise ConfigurationError(f"RPFM schema directory not found: {self._schema_dir}")
        path = schema_file_path(self._schema_dir, self._game)
        if not os.path.isfile(path):
            raise ConfigurationError(
                f"RPFM schema file not found: {path} "
                f"(expected schema_{schema_file_name(self._game)}.ron)"
            )
        return path

    async def _run(
        self,
        args: list[str],
        *,
        timeout: float,
        cancel_event: threading.Event | None = None,
    ) -> tuple[int, str, str]:
        exe = self._require_executable()
        try:
            proc = await asyncio.create_subprocess_exec(
                exe,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ExternalToolUnavailableError(f"Cannot start rpfm_cli: {exc}") from exc

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        communicate = asyncio.ensure_future(proc.communicate())
        try:
            while not communicate.done():
                if cancel_event is not None and cancel_event.is_set():
                    raise OperationCancelledError("rpfm_cli invocation cancelled")
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise ExternalToolTimeoutError(
                        f"rpfm_cli timed out after {timeout:.0f}s", timeout=timeout
                    )
                await asyncio.wait({communicate}, timeout=min(_POLL_INTERVAL, remaining))
        except BaseException:
            if proc.returncode is None:
                proc.kill()
            await asyncio.gather(communicate, return_exceptions=True)
            raise

        stdout_b, stderr_b = communicate.result()
        return (
            proc.returncode if proc.returncode is not None else -1,
            stdout_b.decode("utf-8", errors="replace"),
            stderr_b.decode("utf-8", errors="replace"),
        )

    async def list_contents(self, pack_file_path: str) -> list[str]:
        """Return every entry path inside *pack_file_path*."""
        if not os.path.isfile(pack_file_path):
            raise NotFoundError(f"Pack file not found: {pack_file_path}")
        code, stdout, stderr = await self._run(
            ["--game", self._game, "pack", "list", "--pack-path", pack_file_path],
            timeout=_LIST_TIMEOUT,
        )
        if code != 0:
            raise ExternalToolError(
                f"Failed to list {pack_file_path}: {parse_error_message(stderr)}",
                exit_code=code,
                stderr=stderr,
            )
        return parse_file_list(stdout)

    async def extract_tsv(
        self,
        pack_file_path: str,
        output_dir: str | None = None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> ExtractResult:
        """Extract every ``.loc`` table of the pack as ``<output_dir>/<entry>.tsv``.

        A single table that fails to extract is logged and skipped. The caller
        owns ``output_directory`` and must delete it.
        """
        if not os.path.isfile(pack_file_path):
            raise NotFoundError(f"Pack file not found: {pack_file_path}")
        schema_file = self._require_schema_file()

        out_dir = output_dir or tempfile.mkdtemp(prefix="rpfm_extract_tsv_")
        os.makedirs(out_dir, exist_ok=True)

        loc_files = filter_localization_files(await self.list_contents(pack_file_path))
        logger.info("Extracting %d loc tables from %s", len(loc_files), pack_file_path)
        if not loc_files:
            return ExtractResult(pack_file_path=pack_file_path, output_directory=out_dir)

        timeout = calculate_timeout(
            os.path.getsize(pack_file_path),
            base_seconds=self._timeout_base,
            per_mb_seconds=self._timeout_per_mb,
        )

        extracted: list[str] = []
        total_size = 0
        last_error = ""
        for i, loc_file in enumerate(loc_files, 1):
            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelledError("Extraction cancelled")
            logger.debug("Extracting as TSV: %s (%d/%d)", loc_file, i, len(loc_files))
            code, _stdout, stderr = await self._run(
                [
                    "--game",
                    self._game,
                    "pack",
                    "extract",
                    "--pack-path",
                    pack_file_path,
                    "--file-path",
                    f"{loc_file};{out_dir}",
                    "--tables-as-tsv",
                    schema_file,
                ],
                timeout=timeout,
                cancel_event=cancel_event,
            )
            if code != 0:
                last_error = parse_error_message(stderr)
                logger.warning("TSV extraction failed for %s: %s", loc_file, last_error)
                continue

            tsv_path = os.path.join(out_dir, f"{loc_file.replace('/', os.sep)}.tsv")
            if os.path.isfile(tsv_path):
                extracted.append(tsv_path)
                total_size += os.path.getsize(tsv_path)
            else:
                logger.warning("Extracted TSV not found at expected path: %s", tsv_path)

        if not extracted:
            raise ExternalToolError(
                f"No loc table could be extracted from {pack_file_path}"
                + (f": {last_error}" if last_error else "")
            )

        logger.info(
            "TSV extraction complete: %d/%d files, %dKB",
            len(extracted),
            len(loc_files),
            total_size // 1024,
        )
        return ExtractResult(
            pack_file_path=pack_file_path,
            output_directory=out_dir,
            extracted_files=extracted,
            total_size_bytes=total_size,
        )


def build_rpfm_cli(settings: Settings) -> RpfmCli:
    return RpfmCli(
        settings.rpfm_path,
        settings.rpfm_schema_path,
        settings.rpfm_game,
        timeout_base=settings.extract_timeout_base,
        timeout_per_mb=settings.extract_timeout_per_mb,
    )

"""Helpers for interpreting rpfm_cli output."""

import re

from twmt_sync.constants import LOC_EXTENSION

_BULLET_RE = re.compile(r"^(?:[-*•]\s+|\d+[.)]\s+)")
_ERROR_LINE_RE = re.compile(r"\berror\b[:\s]*(.*)", re.IGNORECASE)


def parse_file_list(stdout: str) -> list[str]:
    """Split ``pack list`` output into entry paths, one per non-empty line.

    Leading bullets or numbering added by some rpfm_cli versions are dropped.
    """
    files: list[str] = []
    for raw in stdout.splitlines():
        line = raw.strip()
        if not line:
            continue
        line = _BULLET_RE.sub("", line).strip()
        if line:
            files.append(line.replace("\\", "/"))
    return files


def filter_localization_files(paths: list[str]) -> list[str]:
    return [p for p in paths if p.lower().endswith(LOC_EXTENSION)]


def parse_error_message(stderr: str) -> str:
    lines = [ln.strip() for ln in stderr.splitlines() if ln.strip()]
    if not lines:
        return "Unknown RPFM error"
    for line in lines:
        m = _ERROR_LINE_RE.search(line)
        if m and m.group(1).strip():
            return m.group(1).strip()
    return lines[-1]


def calculate_timeout(size_bytes: int, *, base_seconds: float, per_mb_seconds: float) -> float:
    """Size-proportional timeout for commands that read a whole pack."""
    size_mb = size_bytes / (1024 * 1024)
    return base_seconds + size_mb * per_mb_seconds

"""Parser for the TSV tables rpfm_cli writes for ``.loc`` files.

Layout of an extracted table::

    key<TAB>text<TAB>tooltip
    #Loc_PackedFile;1;text/db/my_mod.loc
    some_key<TAB>Display text<TAB>false

Lines starting with ``#`` are metadata and blank lines are ignored. When the
header row is present the ``text`` column is used as the value, otherwise
the second column. Values use backslash escapes for ``\\n``, ``\\t``,
``\\r`` and ``\\\\``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from twmt_sync.exceptions import TabularParseError

logger = logging.getLogger(__name__)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\"}


@dataclass(frozen=True, slots=True)
class LocalizationEntry:
    key: str
    value: str
    line_number: int


@dataclass(slots=True)
class TsvParseResult:
    path: str
    entries: list[LocalizationEntry] = field(default_factory=list)
    skipped_lines: int = 0


def unescape_value(value: str) -> str:
    if "\\" not in value:
        return value
    out: list[str] = []
    i = 0
    while i < len(value):
        ch = value[i]
        if ch == "\\" and i + 1 < len(value) and value[i + 1] in _ESCAPES:
            out.append(_ESCAPES[value[i + 1]])
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


class TsvParser:
    def __init__(self, encoding: str = "utf-8-sig") -> None:
        self._encoding = encoding

    def parse(self, file_path: str | Path) -> TsvParseResult:
        path = Path(file_path)
        try:
            content = path.read_text(encoding=self._encoding)
        except FileNotFoundError as exc:
            raise TabularParseError(str(path), "file not found") from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise TabularParseError(str(path), str(exc)) from exc
        return self.parse_string(content, str(path))

    def parse_string(self, content: str, source: str = "<string>") -> TsvParseResult:
        result = TsvParseResult(path=source)
        value_col = 1
        header_seen = False

        for line_number, raw in enumerate(content.split("\n"), 1):
            line = raw.rstrip("\r\n")
            if not line.strip() or line.lstrip().startswith("#"):
                continue
            parts = line.split("\t")

            if not header_seen:
                header_seen = True
                lowered = [p.strip().lower() for p in parts]
                if lowered and lowered[0] == "key" and "text" in lowered:
                    value_col = lowered.index("text")
                    continue

            if len(parts) <= value_col:
                result.skipped_lines += 1
                logger.debug(
                    "%s:%d: expected at least %d columns", source, line_number, value_col + 1
                )
                continue

            key = parts[0].strip()
            if not key:
                result.skipped_lines += 1
                continue
            result.entries.append(
                LocalizationEntry(
                    key=key,
                    value=unescape_value(parts[value_col]),
                    line_number=line_number,
                )
            )
        return result

from collections.abc import Callable
from enum import StrEnum


class ScanLogLevel(StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


ScanLogCallback = Callable[[str, ScanLogLevel], None]
ApplyProgressCallback = Callable[[int, int], None]


def noop_log(message: str, level: ScanLogLevel) -> None:
    pass


def noop_progress(processed: int, total: int) -> None:
    pass

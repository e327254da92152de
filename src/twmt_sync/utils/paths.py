"""Path conversion for Workshop folders configured with Windows paths.

Game installations store the Workshop folder as entered on Windows
(``C:\\Program Files (x86)\\Steam\\steamapps\\workshop\\content\\1142710``).
When the backend runs under WSL it must be read as ``/mnt/c/...``.
"""

import os
import re
import sys

_DRIVE_RE = re.compile(r"^([A-Za-z]):[/\\]")


def to_native_path(windows_path: str) -> str:
    """Convert a Windows path to a native OS path.

    On Linux (WSL): ``G:\\Foo\\Bar`` → ``/mnt/g/Foo/Bar``
    On Windows: returns the path with normalized separators.
    """
    if not windows_path:
        return windows_path

    if sys.platform == "linux":
        m = _DRIVE_RE.match(windows_path)
        if m:
            drive = m.group(1).lower()
            rest = windows_path[3:].replace("\\", "/")
            return f"/mnt/{drive}/{rest}"
        if windows_path.startswith("/"):
            return windows_path

    return os.path.normpath(windows_path)

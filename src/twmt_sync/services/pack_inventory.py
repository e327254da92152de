"""Discovery of pack files inside a Steam Workshop content folder.

The workshop folder for a game (``steamapps/workshop/content/<app_id>``)
holds one subdirectory per subscribed mod, named by its numeric Workshop ID.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from twmt_sync.constants import IMAGE_EXTENSIONS, PACK_EXTENSION, WORKSHOP_ID_RE

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ModArchiveRecord:
    workshop_id: str
    directory_path: str
    pack_file_path: str
    pack_file_name: str
    last_modified: int
    image_path: str | None = None

    @property
    def base_name(self) -> str:
        return os.path.splitext(self.pack_file_name)[0]


def _list_files(directory: str) -> list[str]:
    try:
        with os.scandir(directory) as it:
            return [e.name for e in it if e.is_file()]
    except OSError as exc:
        logger.warning("Cannot read mod directory %s: %s", directory, exc)
        return []


def find_mod_image(
    directory: str, pack_base_name: str, file_names: list[str] | None = None
) -> str | None:
    """Pick a preview image for a mod folder.

    Order: ``<pack>.jpg|.jpeg|.png``, then ``preview.*``, then any image.
    """
    names = file_names if file_names is not None else _list_files(directory)
    lowered = {n.lower(): n for n in names}

    for ext in IMAGE_EXTENSIONS:
        hit = lowered.get(f"{pack_base_name.lower()}{ext}")
        if hit:
            return os.path.join(directory, hit)
    for ext in IMAGE_EXTENSIONS:
        hit = lowered.get(f"preview{ext}")
        if hit:
            return os.path.join(directory, hit)
    for name in sorted(names):
        if name.lower().endswith(IMAGE_EXTENSIONS):
            return os.path.join(directory, name)
    return None


def inspect_mod_directory(directory: str, workshop_id: str) -> ModArchiveRecord | None:
    names = _list_files(directory)
    packs = sorted(n for n in names if n.lower().endswith(PACK_EXTENSION))
    if not packs:
        logger.debug("No pack file in %s", directory)
        return None
    if len(packs) > 1:
        logger.debug("Multiple pack files in %s, using %s", directory, packs[0])

    pack_name = packs[0]
    pack_path = os.path.join(directory, pack_name)
    try:
        mtime = int(os.stat(pack_path).st_mtime)
    except OSError as exc:
        logger.warning("Cannot stat %s: %s", pack_path, exc)
        return None

    return ModArchiveRecord(
        workshop_id=workshop_id,
        directory_path=directory,
        pack_file_path=pack_path,
        pack_file_name=pack_name,
        last_modified=mtime,
        image_path=find_mod_image(directory, os.path.splitext(pack_name)[0], names),
    )


def collect_pack_files(workshop_root: str) -> list[ModArchiveRecord]:
    """Walk *workshop_root* and return one record per mod folder holding a pack.

    Unreadable folders are skipped; the walk itself never fails.
    """
    try:
        with os.scandir(workshop_root) as it:
            subdirs = sorted((e.name, e.path) for e in it if e.is_dir())
    except OSError as exc:
        logger.warning("Cannot read workshop folder %s: %s", workshop_root, exc)
        return []

    records: list[ModArchiveRecord] = []
    for name, path in subdirs:
        if not WORKSHOP_ID_RE.match(name):
            continue
        record = inspect_mod_directory(path, name)
        if record is not None:
            records.append(record)
    logger.info("Found %d workshop mods with pack files in %s", len(records), workshop_root)
    return records

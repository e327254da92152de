import os

from twmt_sync.constants import RPFM_SCHEMA_NAMES


def schema_file_name(game: str) -> str:
    """Short schema name for an RPFM game key (``warhammer_3`` -> ``wh3``)."""
    return RPFM_SCHEMA_NAMES.get(game, game)


def schema_file_path(schema_dir: str, game: str) -> str:
    return os.path.join(schema_dir, f"schema_{schema_file_name(game)}.ron")

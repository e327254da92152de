import time
import uuid

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


def _now_epoch() -> int:
    return int(time.time())


class ModScanCache(SQLModel, table=True):
    """Whether a pack file contained .loc files the last time it was listed."""

    __tablename__ = "mod_scan_cache"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    pack_file_path: str = Field(index=True, unique=True)
    file_last_modified: int
    has_loc_files: bool
    scanned_at: int = Field(default_factory=_now_epoch)

    def is_valid_for(self, current_last_modified: int) -> bool:
        return self.file_last_modified == current_last_modified


class ModUpdateAnalysisCache(SQLModel, table=True):
    """Diff counts of the last analysis of a pack file against a project."""

    __tablename__ = "mod_update_analysis_cache"
    __table_args__ = (UniqueConstraint("project_id", "pack_file_path"),)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    project_id: str = Field(foreign_key="projects.id", index=True)
    pack_file_path: str
    file_last_modified: int
    new_units_count: int = 0
    removed_units_count: int = 0
    modified_units_count: int = 0
    reactivated_units_count: int = 0
    total_pack_units: int = 0
    total_project_units: int = 0
    analyzed_at: int = Field(default_factory=_now_epoch)

    def is_valid_for(self, current_last_modified: int) -> bool:
        return self.file_last_modified == current_last_modified

    @property
    def has_changes(self) -> bool:
        return (
            self.new_units_count > 0
            or self.removed_units_count > 0
            or self.modified_units_count > 0
            or self.reactivated_units_count > 0
        )

from enum import StrEnum

from pydantic import BaseModel

from twmt_sync.schemas.analysis import AnalysisSummary


class ModUpdateStatus(StrEnum):
    UP_TO_DATE = "up_to_date"
    NEEDS_DOWNLOAD = "needs_download"
    HAS_CHANGES = "has_changes"
    UNRESOLVED = "unresolved"


class DetectedModSummary(BaseModel):
    workshop_id: str
    name: str
    pack_file_path: str
    pack_file_name: str
    image_path: str | None = None
    is_already_imported: bool = False
    existing_project_id: str | None = None
    is_hidden: bool = False
    subscriptions: int | None = None
    time_updated: int | None = None
    local_file_last_modified: int
    update_status: ModUpdateStatus = ModUpdateStatus.UP_TO_DATE
    requires_action: bool = False
    update_analysis: AnalysisSummary | None = None


class ModScanResult(BaseModel):
    mods: list[DetectedModSummary] = []
    translation_stats_changed: bool = False


class HiddenUpdate(BaseModel):
    hidden: bool


class HiddenResult(BaseModel):
    workshop_id: str
    is_hidden: bool

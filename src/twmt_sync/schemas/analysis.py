from pydantic import BaseModel


class AnalysisSummary(BaseModel):
    new_units_count: int = 0
    removed_units_count: int = 0
    modified_units_count: int = 0
    reactivated_units_count: int = 0
    total_pack_units: int = 0
    total_project_units: int = 0
    has_changes: bool = False


class AnalysisOut(AnalysisSummary):
    new_unit_keys: list[str] = []
    removed_unit_keys: list[str] = []
    modified_unit_keys: list[str] = []
    reactivated_unit_keys: list[str] = []


class AnalysisRequest(BaseModel):
    pack_file_path: str


class ApplyResult(BaseModel):
    analysis: AnalysisSummary
    units_added: int = 0
    source_texts_updated: int = 0
    translations_reset: int = 0
    units_obsoleted: int = 0
    units_reactivated: int = 0
    translations_flagged_for_review: int = 0


class DismissRequest(BaseModel):
    pack_file_path: str
    workshop_id: str
    time_updated: int


class DismissResult(BaseModel):
    cache_cleared: bool
    watermark: int

from twmt_sync.models.game import GameInstallation
from twmt_sync.models.project import Project, ProjectLanguage
from twmt_sync.models.scan_cache import ModScanCache, ModUpdateAnalysisCache
from twmt_sync.models.translation import TranslationStatus, TranslationUnit, TranslationVersion
from twmt_sync.models.workshop import WorkshopMod

__all__ = [
    "GameInstallation",
    "ModScanCache",
    "ModUpdateAnalysisCache",
    "Project",
    "ProjectLanguage",
    "TranslationStatus",
    "TranslationUnit",
    "TranslationVersion",
    "WorkshopMod",
]

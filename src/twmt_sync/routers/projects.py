import os

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from twmt_sync.database import get_session
from twmt_sync.exceptions import SyncError
from twmt_sync.models.project import Project
from twmt_sync.routers.deps import get_scan_dependencies, http_error
from twmt_sync.schemas.analysis import (
    AnalysisOut,
    AnalysisRequest,
    ApplyResult,
    DismissRequest,
    DismissResult,
)
from twmt_sync.services.diff_analyzer import analyze_changes
from twmt_sync.services.project_analysis import analyze_and_apply, dismiss_pending_changes
from twmt_sync.services.update_detection import ScanDependencies

router = APIRouter(prefix="/projects/{project_id}/analysis", tags=["analysis"])


def _get_project(project_id: str, session: Session) -> Project:
    project = session.get(Project, project_id)
    if not project:
        raise HTTPException(404, f"Project '{project_id}' not found")
    return project


@router.post("", response_model=AnalysisOut)
async def analyze(
    project_id: str,
    body: AnalysisRequest,
    session: Session = Depends(get_session),
    deps: ScanDependencies = Depends(get_scan_dependencies),
) -> AnalysisOut:
    _get_project(project_id, session)
    try:
        diff = await analyze_changes(
            session,
            project_id,
            body.pack_file_path,
            extractor=deps.extractor,
            parser=deps.parser,
        )
    except SyncError as exc:
        raise http_error(exc) from exc
    return diff.to_out()


@router.post("/apply", response_model=ApplyResult)
async def apply(
    project_id: str,
    body: AnalysisRequest,
    session: Session = Depends(get_session),
    deps: ScanDependencies = Depends(get_scan_dependencies),
) -> ApplyResult:
    _get_project(project_id, session)
    try:
        mtime = int(os.stat(body.pack_file_path).st_mtime)
    except OSError as exc:
        raise HTTPException(404, f"Pack file not found: {body.pack_file_path}") from exc
    try:
        diff, outcome = await analyze_and_apply(
            session,
            project_id,
            body.pack_file_path,
            mtime,
            extractor=deps.extractor,
            parser=deps.parser,
        )
    except SyncError as exc:
        raise http_error(exc) from exc
    return ApplyResult(
        analysis=diff.to_summary(),
        units_added=outcome.units_added,
        source_texts_updated=outcome.source_texts_updated,
        translations_reset=outcome.translations_reset,
        units_obsoleted=outcome.units_obsoleted,
        units_reactivated=outcome.units_reactivated,
        translations_flagged_for_review=outcome.translations_flagged_for_review,
    )


@router.post("/dismiss", response_model=DismissResult)
def dismiss(
    project_id: str,
    body: DismissRequest,
    session: Session = Depends(get_session),
) -> DismissResult:
    _get_project(project_id, session)
    try:
        cleared = dismiss_pending_changes(
            session, project_id, body.pack_file_path, body.workshop_id, body.time_updated
        )
    except SyncError as exc:
        raise http_error(exc) from exc
    return DismissResult(cache_cleared=cleared, watermark=body.time_updated)

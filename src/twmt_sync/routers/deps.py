"""Shared FastAPI dependencies used across routers."""

from functools import lru_cache

from fastapi import HTTPException
from sqlmodel import Session, select

from twmt_sync.config import settings
from twmt_sync.exceptions import NotFoundError, OperationCancelledError, SyncError, ValidationError
from twmt_sync.models.game import GameInstallation
from twmt_sync.services.update_detection import ScanDependencies, build_scan_dependencies


def get_game_or_404(game_code: str, session: Session) -> GameInstallation:
    """Look up a game installation by code, raising 404 if not found."""
    game = session.exec(
        select(GameInstallation).where(GameInstallation.game_code == game_code)
    ).first()
    if not game:
        raise HTTPException(404, f"Game '{game_code}' not found")
    return game


@lru_cache
def get_scan_dependencies() -> ScanDependencies:
    return build_scan_dependencies(settings)


def http_error(exc: SyncError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(404, str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(422, str(exc))
    if isinstance(exc, OperationCancelledError):
        return HTTPException(409, str(exc))
    return HTTPException(502, str(exc))

import asyncio
import json
import logging
import queue
import threading

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse
from sqlmodel import Session

from twmt_sync import database
from twmt_sync.database import get_session
from twmt_sync.exceptions import OperationCancelledError, SyncError
from twmt_sync.routers.deps import get_game_or_404, get_scan_dependencies, http_error
from twmt_sync.schemas.mod import HiddenResult, HiddenUpdate, ModScanResult
from twmt_sync.services.progress import ScanLogLevel
from twmt_sync.services.update_detection import (
    ScanDependencies,
    cancel_scan,
    register_scan,
    release_scan,
    scan_mods,
)
from twmt_sync.services.workshop_metadata import set_hidden

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/games/{game_code}/mods", tags=["mods"])


@router.post("/scan", response_model=ModScanResult)
async def scan(
    game_code: str,
    session: Session = Depends(get_session),
    deps: ScanDependencies = Depends(get_scan_dependencies),
) -> ModScanResult:
    get_game_or_404(game_code, session)
    cancel_event = register_scan(game_code)
    try:
        return await scan_mods(session, game_code, deps, cancel_event=cancel_event)
    except SyncError as exc:
        raise http_error(exc) from exc
    finally:
        release_scan(game_code, cancel_event)


@router.post("/scan-stream")
def scan_stream(
    game_code: str,
    deps: ScanDependencies = Depends(get_scan_dependencies),
) -> StreamingResponse:
    q: queue.Queue[dict | None] = queue.Queue()
    cancel_event = register_scan(game_code)

    def on_log(message: str, level: ScanLogLevel) -> None:
        q.put({"event": "log", "level": str(level), "message": message})

    def run_scan() -> None:
        try:
            with Session(database.engine) as session:
                result = asyncio.run(
                    scan_mods(session, game_code, deps, on_log=on_log, cancel_event=cancel_event)
                )
            q.put({"event": "done", "result": result.model_dump(mode="json")})
        except OperationCancelledError:
            logger.info("Scan of '%s' cancelled", game_code)
            q.put({"event": "cancelled", "message": "Scan cancelled"})
        except SyncError as exc:
            logger.warning("Scan of '%s' failed: %s", game_code, exc)
            q.put({"event": "error", "message": str(exc)})
        except Exception:
            logger.exception("Scan failed for game '%s'", game_code)
            q.put({"event": "error", "message": "Scan failed unexpectedly"})
        finally:
            release_scan(game_code, cancel_event)
            q.put(None)

    threading.Thread(target=run_scan, daemon=True).start()

    def event_stream():
        while True:
            item = q.get()
            if item is None:
                break
            yield f"data: {json.dumps(item)}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.post("/scan/cancel")
def cancel(game_code: str) -> dict[str, bool]:
    if not cancel_scan(game_code):
        raise HTTPException(404, f"No scan running for '{game_code}'")
    return {"cancelled": True}


@router.put("/{workshop_id}/hidden", response_model=HiddenResult)
def update_hidden(
    game_code: str,
    workshop_id: str,
    body: HiddenUpdate,
    session: Session = Depends(get_session),
) -> HiddenResult:
    get_game_or_404(game_code, session)
    try:
        mod = set_hidden(session, workshop_id, body.hidden)
    except SyncError as exc:
        raise http_error(exc) from exc
    return HiddenResult(workshop_id=mod.workshop_id, is_hidden=mod.is_hidden)

from fastapi import APIRouter

from twmt_sync.routers.mods import router as mods_router
from twmt_sync.routers.projects import router as projects_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(mods_router)
api_router.include_router(projects_router)

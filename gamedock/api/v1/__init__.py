"""API v1 router."""

from fastapi import APIRouter

from gamedock.api.v1.admin import router as admin_router
from gamedock.api.v1.host import router as host_router
from gamedock.api.v1.sessions import router as sessions_router
from gamedock.api.v1.volumes import router as volumes_router

router = APIRouter()

router.include_router(sessions_router, prefix="/sessions", tags=["sessions"])
router.include_router(volumes_router, prefix="/volumes", tags=["volumes"])
router.include_router(host_router, tags=["host"])
router.include_router(admin_router)  # /admin prefix is in the router itself

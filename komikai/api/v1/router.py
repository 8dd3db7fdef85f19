"""API v1 router aggregator.

All v1 endpoint routers are included here; main.py mounts this router at
/api/v1.
"""

from fastapi import APIRouter

from komikai.api.v1 import auth, process, status

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(process.router, prefix="/process", tags=["process"])
router.include_router(status.router, tags=["status"])

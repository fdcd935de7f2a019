from fastapi import APIRouter

from app.api.metrics import router as metrics_router
from app.api.status import router as status_router
from app.api.upload import router as upload_router

router = APIRouter()

router.include_router(status_router)
router.include_router(upload_router)
router.include_router(metrics_router)

from __future__ import annotations

from fastapi import APIRouter

from duezo.modules.bills.api import router as bills_router
from duezo.modules.extraction.api import router as extraction_router
from duezo.modules.identity.api import router as identity_router
from duezo.modules.notifications.api import router as notifications_router
from duezo.modules.review.api import router as review_router

router = APIRouter()

router.include_router(identity_router, prefix="/api")
router.include_router(review_router, prefix="/api")
router.include_router(extraction_router, prefix="/api")
router.include_router(bills_router, prefix="/api")
router.include_router(notifications_router, prefix="/api")


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}

"""API v1 router aggregator."""

from fastapi import APIRouter

from deltagov.api.v1 import bills, ingest

router = APIRouter(prefix="/api/v1")
router.include_router(bills.router)
router.include_router(ingest.router)

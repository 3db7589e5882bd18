"""FastAPI application exposing the report aggregation core."""

import logging

from fastapi import FastAPI

from config.settings import settings
from supply_reports.action.routers.flow import router as flow_router
from supply_reports.action.routers.reports import router as reports_router

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.api_title, version=settings.api_version)

# ---------------------------------------------------------------------------
# Include modular routers
# ---------------------------------------------------------------------------

app.include_router(reports_router)
app.include_router(flow_router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "version": settings.api_version}

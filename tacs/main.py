"""TACS FastAPI application."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tacs.api.admin import router as admin_router
from tacs.api.decisions import router as decisions_router
from tacs.api.health import router as health_router
from tacs.api.reports import router as reports_router
from tacs.config import settings

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="TACS - Telemetry Activation Control Service",
    description="Decides per call site whether traces, logs and metrics are produced",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router, tags=["Health"])
app.include_router(decisions_router, prefix="/v1", tags=["Decisions"])
app.include_router(admin_router, prefix="/v1/admin", tags=["Admin"])
app.include_router(reports_router, prefix="/v1/reports", tags=["Reports"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {"service": "TACS", "version": "0.1.0", "docs": "/docs"}

"""
Campaign Pool - FastAPI Application
Trigger surface for the campaign budget distribution engine.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from campaign_pool.api import distribution, submissions
from campaign_pool.config import settings
from campaign_pool.core.exceptions import CampaignPoolException, ErrorKind
from campaign_pool.core.logging_config import setup_logging
from campaign_pool.database import engine, init_db
from campaign_pool.schemas.common import ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INSUFFICIENT_DATA: 422,
    ErrorKind.EXTERNAL_FETCH_FAILURE: 502,
    ErrorKind.TRANSACTION_TIMEOUT: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    setup_logging(settings.LOG_LEVEL)
    await init_db()
    yield
    await engine.dispose()


app = FastAPI(
    title="Campaign Pool API",
    description="Engagement-weighted campaign budget distribution",
    version="1.0.0",
    lifespan=lifespan,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}
)


@app.exception_handler(CampaignPoolException)
async def campaign_pool_exception_handler(request: Request, exc: CampaignPoolException):
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(detail=exc.message, kind=exc.kind).model_dump(mode="json")
    )


app.include_router(distribution.cron_router)
app.include_router(distribution.admin_router)
app.include_router(distribution.router)
app.include_router(submissions.router)


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check."""
    return HealthResponse()

"""
FastAPI application entry point for the Call Metrics API.

Configures logging and CORS, opens the asyncpg pool in the lifespan and
registers the KPI router. Error responses use the same {success, data, error}
envelope as successful ones.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from starlette.exceptions import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from callmetrics import __version__
from callmetrics.api.kpis import router as kpis_router
from callmetrics.core.database import close_db, init_db
from callmetrics.core.dependencies import get_cache
from callmetrics.models.schemas import APIResponse

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Open the database pool on startup and close it on shutdown.

    A failed pool open is logged and startup continues; routes then report
    the store as unavailable (503) instead of the process refusing to start.
    """
    logger.info("Call Metrics API starting")
    try:
        await init_db()
        logger.info("Database connection pool initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")

    yield

    logger.info("Call Metrics API shutting down")
    try:
        await close_db()
        logger.info("Database connection pool closed")
    except Exception as e:
        logger.error(f"Error closing database pool: {e}")


app = FastAPI(
    title="Call Metrics API",
    version=__version__,
    description=(
        "Period-over-period call-center KPIs, client health scorecards, "
        "historical trends, payment outcomes and delinquency breakdowns."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",  # dashboard dev server
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(kpis_router, tags=["kpis"])


@app.exception_handler(HTTPException)
async def envelope_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    """Wrap HTTP errors in the {success, data, error} envelope."""
    body = APIResponse(success=False, error=str(exc.detail))
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancer probes.

    Returns:
        Dict with status 'healthy' and response cache statistics.
    """
    return {"status": "healthy", "cache": get_cache().metrics()}


@app.get("/")
async def root():
    return {
        "name": "Call Metrics API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "callmetrics.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )

"""
Dosetrack FastAPI Application

Main entry point for the Dosetrack adherence API.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Common library imports
from common.database import MongoDB
from common.utils import success_response

# App-specific imports
from dosetrack.config import settings
from dosetrack.routers import adherence_router
from dosetrack.adherence.dependencies import init_adherence_services

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


# =============================================================================
# Database Instance
# =============================================================================
main_db = MongoDB()


# =============================================================================
# Application Lifespan
# =============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Connects the database, initializes services and starts the day
    boundary timer; tears everything down on shutdown.
    """
    # Startup
    logger.info("Starting Dosetrack API...")
    settings.validate_required()

    await main_db.connect(
        uri=settings.MONGODB_URI,
        database_name=settings.MONGODB_DATABASE,
        indexes={settings.RECORDS_COLLECTION: [[("userId", 1), ("date", -1)]]},
    )

    session = init_adherence_services(db=main_db.db, settings=settings)
    session.start()
    logger.info("Dosetrack API started successfully!")

    yield

    # Shutdown
    logger.info("Shutting down Dosetrack API...")
    await session.close()
    await main_db.disconnect()
    logger.info("Dosetrack API shut down complete.")


# =============================================================================
# FastAPI Application
# =============================================================================
app = FastAPI(
    title="Dosetrack API",
    description="Once-daily dose adherence tracking",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.is_development() else None,
    redoc_url="/redoc" if settings.is_development() else None,
)

# =============================================================================
# CORS Middleware
# =============================================================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

# =============================================================================
# Include Routers
# =============================================================================
API_PREFIX = "/api/v1/tracker"

app.include_router(adherence_router, prefix=API_PREFIX, tags=["Adherence"])


# =============================================================================
# Health Check Endpoint
# =============================================================================
@app.get("/health", tags=["Health"])
async def health():
    """
    Health check endpoint.

    Returns the status of the API and database connection.
    """
    return success_response({
        "status": "ok",
        "version": "1.0.0",
        "database": main_db.is_connected,
    })


# =============================================================================
# Run with Uvicorn
# =============================================================================
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development(),
    )

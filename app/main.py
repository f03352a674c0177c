import logging
from fastapi import FastAPI
from contextlib import asynccontextmanager
from app.api.routes import router
from app.core.logging import setup_logging

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Configure logging on startup.
    """
    # Startup
    setup_logging()
    logger.info("Starting Server Time Probe...")

    yield

    # Shutdown
    logger.info("Shutting down Server Time Probe...")

app = FastAPI(
    title="Server Time Probe",
    description="API for estimating a remote server's clock from its HTTP Date header",
    version="1.0.0",
    lifespan=lifespan
)

# Include API routes
app.include_router(router)

@app.get("/")
async def root():
    """Root endpoint with basic info"""
    return {
        "service": "Server Time Probe",
        "version": "1.0.0",
        "endpoints": {
            "check_time": "POST /api/check-time",
            "health": "GET /health"
        }
    }

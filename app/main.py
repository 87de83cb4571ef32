"""
FastAPI entrypoint for the Timeline Render Service.

* POST /renders queues a render and returns a job id immediately
* GET /renders/{job_id}/status and /result poll the job
* The CLI (run_render.py) runs the same pipeline synchronously
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes_render import get_orchestrator
from app.api.routes_render import router as renders_router
from app.core.config import settings
from app.core.logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=settings.log_level, log_file=settings.log_file)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Debug mode: {settings.debug}")
    logger.info(f"Storage: {settings.storage_backend} | Job store: {settings.job_store}")
    logger.info("=" * 60)
    yield
    # Shutdown
    logger.info("Shutting down application")
    if get_orchestrator.cache_info().currsize:
        get_orchestrator().shutdown(wait=False)


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Timeline Render Service - turns per-second timelines into published videos",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify allowed origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(renders_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "status": "running",
        "endpoints": {
            "submit_render": "/renders",
            "render_status": "/renders/{job_id}/status",
            "render_result": "/renders/{job_id}/result",
            "docs": "/docs",
        },
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )

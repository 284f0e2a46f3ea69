"""
Media Catalog API

FastAPI backend for the media catalog: bulk CSV/JSON import through a
staging-then-merge pipeline, plus item listing.

Usage:
    uvicorn main:app --reload
"""

# Load environment variables from .env file FIRST
from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.config import Config

# Configure logging from environment
logging.basicConfig(
    level=getattr(logging, Config.log_level(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)
logger.info(f"Starting with LOG_LEVEL={Config.log_level()}, DEV_MODE={Config.is_dev()}")
from fastapi.middleware.cors import CORSMiddleware

from app.routes import imports_router, items_router
from app.services.media_repository import get_media_repository

# Startup state - set to True once DB is ready
_is_ready = False


def is_ready() -> bool:
    """Check if the service is ready to handle requests."""
    return _is_ready


def set_ready(ready: bool = True):
    """Set the service ready state."""
    global _is_ready
    _is_ready = ready


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown."""
    # Startup: migrate the schema, then mark as ready
    repo = get_media_repository()
    logger.info(f"Database ready at {repo.db_path} ({repo.count()} media items)")
    set_ready(True)
    logger.info("Service ready to handle requests")
    yield
    # Shutdown
    set_ready(False)
    repo.close()


app = FastAPI(
    title="Media Catalog API",
    description="Bulk-import vendor media metadata and browse the catalog",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware for the web frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def warmup_middleware(request: Request, call_next):
    """Return 503 with retry hint if service is still warming up."""
    # Always allow health checks (for probes) and root
    if request.url.path in ("/health", "/", "/docs", "/openapi.json"):
        return await call_next(request)

    if not is_ready():
        return JSONResponse(
            status_code=503,
            content={
                "error": "Service warming up",
                "message": "The server is starting up. Please retry in a few seconds.",
                "retry_after": 10,
            },
            headers={"Retry-After": "10"},
        )

    return await call_next(request)

# Include routers
app.include_router(imports_router, tags=["import"])
app.include_router(items_router, tags=["items"])


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Media Catalog API",
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    """Health check endpoint for container probes."""
    return {"status": "healthy"}

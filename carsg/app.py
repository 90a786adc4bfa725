import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.cache import CLEANUP_INTERVAL_SECONDS, cleanup_caches
from .core.config import Config
from .core.lazy import loaded_modules, preload_common_dependencies, startup_info
from .core.middleware import (
    ALLOWED_HEADERS,
    ALLOWED_METHODS,
    PREFLIGHT_MAX_AGE,
    global_exception_handler,
    log_requests,
    preflight_response,
)
from .routes import api_router
from .services.realtime import manager
from .services.supabase_service import check_connection

logger = logging.getLogger(__name__)


async def _clean_caches_periodically(interval: float = CLEANUP_INTERVAL_SECONDS):
    while True:
        await asyncio.sleep(interval)
        removed = cleanup_caches()
        manager.connection_limiter.sweep()
        manager.message_limiter.sweep()
        if removed:
            logger.info(f"Cache cleanup removed {removed} expired entries")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Preload common dependencies and keep the in-memory caches trimmed."""
    preload_common_dependencies()
    cleanup_task = asyncio.create_task(_clean_caches_periodically())
    yield
    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass


# Initialize FastAPI
app = FastAPI(title="Cars-G API", version=Config.VERSION, lifespan=lifespan)

# CORS setup
ALLOWED_ORIGINS = Config.allowed_origins()

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=ALLOWED_METHODS.split(","),
    allow_headers=ALLOWED_HEADERS.split(","),
    max_age=PREFLIGHT_MAX_AGE,
)

@app.middleware("http")
async def _log_requests(request, call_next):
    return await log_requests(request, call_next)

@app.exception_handler(Exception)
async def _global_exception_handler(request, exc):
    return await global_exception_handler(request, exc)


app.include_router(api_router)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await manager.serve(websocket)


@app.options("/{full_path:path}")
async def preflight(request: Request, full_path: str):
    return preflight_response(request)


@app.get("/health")
async def health_check():
    """Basic health and dependency checks for the API."""
    health_start_time = time.time()

    try:
        # Check configuration and Supabase connection
        Config.validate()
        check_connection()

        health_duration = time.time() - health_start_time

        return {
            "status": "healthy",
            "service": "cars-g-api",
            "environment": Config.ENVIRONMENT,
            "timestamp": datetime.now().isoformat(),
            "response_time_ms": round(health_duration * 1000, 2)
        }
    except Exception as e:
        health_duration = time.time() - health_start_time
        logger.error(f"Health check failed: {str(e)} - Duration: {health_duration:.1f}s")

        return {
            "status": "unhealthy",
            "service": "cars-g-api",
            "environment": Config.ENVIRONMENT,
            "timestamp": datetime.now().isoformat(),
            "error": str(e),
            "response_time_ms": round(health_duration * 1000, 2)
        }


@app.get("/ping")
async def ping():
    return {"status": "ok", "timestamp": datetime.now().isoformat()}


@app.get("/ready")
async def readiness():
    """Readiness probe: 503 until configuration and Supabase are usable."""
    checks = {"config": True, "database": True}
    try:
        Config.validate()
    except ValueError as e:
        logger.warning(f"Readiness: {e}")
        checks["config"] = False
    if checks["config"]:
        try:
            check_connection()
        except Exception as e:
            logger.warning(f"Readiness: Supabase unreachable: {e}")
            checks["database"] = False

    ready = all(checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"ready": ready, "checks": checks, "timestamp": datetime.now().isoformat()},
    )


@app.get("/startup")
async def startup():
    return {
        "status": "started",
        **startup_info(),
        "preloaded": loaded_modules(),
    }


@app.get("/api/status")
async def api_status():
    return {
        "status": "ok",
        "version": Config.VERSION,
        "environment": Config.ENVIRONMENT,
        "websocket": {"connections": len(manager.connections), "rooms": len(manager.rooms)},
        "timestamp": datetime.now().isoformat(),
    }


@app.get("/")
async def root():
    """Return basic API information."""

    return {
        "service": "Cars-G API",
        "version": Config.VERSION,
        "endpoints": {
            "api": "/api",
            "websocket": "/ws",
            "health": "/health",
            "ready": "/ready",
            "status": "/api/status"
        },
        "timestamp": datetime.now().isoformat(),
        "description": "Backend API for community car-issue reporting"
    }

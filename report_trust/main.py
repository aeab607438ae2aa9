"""
FastAPI application main module.
Middleware, domain error mapping, background trust jobs and health checks.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import time
import uuid
import os
from contextlib import asynccontextmanager
from report_trust.api.v1 import api_router
from report_trust.utils import setup_logging, get_logger
from report_trust.jobs.worker import ClusteringScheduler, TrustWorker, create_queue
from report_trust.database import engine, Base, SessionLocal
from report_trust.errors import TrustEngineError
from report_trust.services.notifier import change_notifier
from report_trust.utils.circuit_breaker import GLOBAL_CIRCUIT_BREAKER

# Setup logging before creating the app
setup_logging(
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    log_file=os.getenv("LOG_FILE", "logs/report_trust.log"),
    enable_console=True
)

logger = get_logger(__name__)

SERVICE_NAME = "report-trust-engine"
SERVICE_VERSION = "1.0.0"

_worker: TrustWorker | None = None
_scheduler: ClusteringScheduler | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Creates tables, then starts the job queue, trust worker and clustering scheduler.
    """
    logger.info("Application startup initiated")

    global _worker, _scheduler
    try:
        logger.info("Creating database tables")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")

        queue = create_queue()
        # endpoints reach the queue through app.state (see api.deps.get_job_queue)
        app.state.queue = queue  # type: ignore[attr-defined]
        _worker = TrustWorker(queue)
        _worker.start()
        _scheduler = ClusteringScheduler(queue)
        _scheduler.start()
        logger.info("Trust queue + worker started", clustering_interval=_scheduler.interval_seconds)

        if change_notifier.redis_healthy() is False:
            logger.warning("Redis event mirror configured but unreachable; in-process delivery only")

        logger.info("Application startup completed successfully")
        yield
    except Exception as e:  # pragma: no cover
        logger.error("Application startup failed", error=str(e), exc_info=True)
        raise
    finally:
        logger.info("Application shutdown initiated")
        if _scheduler:
            _scheduler.stop()
        if _worker:
            _worker.stop()
            logger.info("Trust worker stop signal sent")
        queue = getattr(app.state, "queue", None)
        if queue is not None:
            queue.shutdown()
        change_notifier.close()
        logger.info("Application shutdown completed")


app = FastAPI(
    title="Report Trust & Integrity Engine",
    description="""
    Trust layer for crowd-sourced disaster reports.

    ## Features
    * **Votes and verifications** - one per user and report, counters kept consistent under concurrency
    * **Consensus score** - 0-100 blend of votes, verifications, classifier score and official confirmation
    * **Official confirmation** - volunteers, NGOs and admins once enough verifications exist
    * **Fake detection** - suspicion score and flags from text, image metadata and reporter patterns
    * **Duplicate clustering** - explainable groups of likely duplicate reports
    * **Live updates** - change events over WebSocket at `/api/v1/ws`

    ## Authentication
    Use Bearer token authentication with your API key:
    ```
    Authorization: Bearer <api_key>
    ```
    """,
    version=SERVICE_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/api/v1/openapi.json",
    lifespan=lifespan,
)

# CORS middleware - configure appropriately for production
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Compression middleware for better performance
app.add_middleware(GZipMiddleware, minimum_size=1000)


# Request ID and comprehensive logging middleware
@app.middleware("http")
async def add_request_context_and_logging(request: Request, call_next):
    """
    Add request ID, timing, and request/response logging.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    request.state.start_time = time.time()

    logger.info(
        "Request started",
        method=request.method,
        url=str(request.url),
        user_agent=request.headers.get("User-Agent"),
        remote_addr=request.client.host if request.client else "unknown",
        request_id=request_id
    )

    response = await call_next(request)

    process_time = time.time() - request.state.start_time

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"

    logger.info(
        "Request completed",
        method=request.method,
        url=str(request.url),
        status_code=response.status_code,
        process_time_ms=round(process_time * 1000, 2),
        request_id=request_id
    )

    return response


# Custom exception handlers
@app.exception_handler(TrustEngineError)
async def trust_engine_exception_handler(request: Request, exc: TrustEngineError):
    """Translate domain errors into the standard error envelope."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "Domain error",
        status_code=exc.status_code,
        code=exc.code,
        detail=exc.message,
        request_id=request_id,
        url=str(request.url),
        method=request.method
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            **exc.to_payload(),
            "request_id": request_id
        }
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "Request validation failed",
        errors=exc.errors(),
        request_id=request_id,
        url=str(request.url),
        method=request.method
    )

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "message": "Request validation failed",
            "code": "REQUEST_VALIDATION_ERROR",
            "details": jsonable_errors(exc),
            "request_id": request_id
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry exception instances that json cannot encode
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.warning(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        request_id=request_id,
        url=str(request.url),
        method=request.method
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "message": exc.detail,
            "request_id": request_id
        },
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "Unhandled exception",
        error=str(exc),
        error_type=type(exc).__name__,
        request_id=request_id,
        url=str(request.url),
        method=request.method,
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "Internal server error",
            "request_id": request_id
        }
    )


# Health check endpoints
@app.get("/health", tags=["health"], summary="Basic health check")
def health_check():
    """Basic health check endpoint for load balancers."""
    redis_mirror = change_notifier.redis_healthy()
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": time.time(),
        "queue_backend": "memory",
        **({"redis_status": "healthy" if redis_mirror else "unavailable"} if redis_mirror is not None else {}),
    }


@app.get("/health/detailed", tags=["health"], summary="Detailed health check")
def detailed_health_check():
    """Detailed health check with database, event mirror, queue and analyzer status."""
    health_status = {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": time.time(),
        "checks": {}
    }

    try:
        from sqlalchemy import text
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
        health_status["checks"]["database"] = "healthy"
    except Exception as e:
        health_status["checks"]["database"] = f"unhealthy: {str(e)}"
        health_status["status"] = "degraded"

    redis_mirror = change_notifier.redis_healthy()
    if redis_mirror is not None:
        health_status["checks"]["redis"] = "healthy" if redis_mirror else "unavailable"
        if not redis_mirror and health_status["status"] == "healthy":
            health_status["status"] = "degraded"

    health_status["checks"]["notifier"] = {
        "subscribers": change_notifier.subscriber_count(),
        "published": change_notifier.published_count,
        "dropped_subscribers": change_notifier.dropped_subscribers,
        "mirror_backlog": change_notifier.mirror_backlog(),
        "mirror_dropped": change_notifier.mirror_dropped,
    }

    queue = getattr(app.state, "queue", None)  # type: ignore[attr-defined]
    if queue is not None:
        snap = queue.snapshot()
        health_status["checks"]["queue"] = {
            k: v for k, v in snap.items() if k in {"depth", "ready", "scheduled"}
        }

    health_status["checks"]["image_analyzer"] = GLOBAL_CIRCUIT_BREAKER.snapshot().get(
        "image_analyzer", {"state": "CLOSED", "failures": 0}
    )

    return health_status


# API Documentation root
@app.get("/", tags=["root"])
async def root():
    """API root endpoint with basic information."""
    return {
        "message": "Report Trust & Integrity Engine API",
        "version": SERVICE_VERSION,
        "documentation": "/docs",
        "health_check": "/health",
        "api_base": "/api/v1",
        "websocket": "/api/v1/ws"
    }


# Include API router with version prefix
app.include_router(api_router, prefix="/api/v1")

# Development server configuration
if __name__ == "__main__":
    import uvicorn

    logger.info("Starting development server")

    uvicorn.run(
        "report_trust.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        reload_dirs=["report_trust"],
        log_level="info",
        access_log=True
    )

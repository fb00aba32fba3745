"""
FastAPI application entry point.
"""

import logging
import os
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pickup_push.db import close_db, init_db
from pickup_push.errors import AuthError, PushError, ValidationError
from pickup_push.settings import settings

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s" if settings.log_format == "text" else None,
)
logger = logging.getLogger(__name__)

STATIC_DIR = os.path.join(os.path.dirname(__file__), "static")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting %s...", settings.app_name)
    await init_db()
    if not settings.push_enabled:
        logger.warning("VAPID keys not set; push endpoints will answer 500 until configured")
    yield
    logger.info("Shutting down %s...", settings.app_name)
    await close_db()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request ID middleware
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Add request ID to all requests for logging."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# Health check endpoint
@app.get("/healthz", tags=["health"])
@app.get("/health", tags=["health"])
async def healthz():
    """Health check endpoint for load balancers."""
    return {"status": "healthy"}


# Version endpoint for cache management
@app.get("/version", tags=["meta"])
async def version():
    """Return app version for service worker cache invalidation."""
    return {
        "version": settings.app_version,
        "build_sha": settings.build_sha,
        "cache_key": f"pickup-push-{settings.app_version}-{settings.build_sha[:8] if settings.build_sha else 'dev'}",
    }


# Service Worker - must be served from root for correct scope
@app.get("/sw.js", tags=["pwa"])
async def service_worker():
    """Serve service worker from root for full scope coverage.

    Service workers can only control pages at their level or below.
    """
    return FileResponse(
        os.path.join(STATIC_DIR, "sw.js"),
        media_type="application/javascript",
        headers={
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "Service-Worker-Allowed": "/",
        },
    )


# Import and include routers
from pickup_push.routers import cron, push  # noqa: E402

app.include_router(push.router)
app.include_router(cron.router)


@app.exception_handler(PushError)
async def push_error_handler(request: Request, exc: PushError):
    """Translate application errors into JSON responses."""
    if isinstance(exc, AuthError):
        # Generic message; the reason stays in the logs
        logger.info("Rejected unauthenticated request to %s: %s", request.url.path, exc.message)
        return JSONResponse(
            {"detail": "Not authenticated"},
            status_code=401,
            headers={"WWW-Authenticate": "Bearer"},
        )
    if isinstance(exc, ValidationError):
        return JSONResponse({"detail": exc.message}, status_code=400)

    logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse({"detail": exc.public_message}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed or missing request bodies are a client error."""
    errors = exc.errors()
    location = ".".join(str(part) for part in errors[0].get("loc", ())) if errors else ""
    message = f"Invalid request body ({location})" if location else "Invalid request body"
    return JSONResponse({"detail": message}, status_code=400)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions with JSON responses."""
    if exc.status_code >= 500:
        logger.error("Server error %s on %s: %s", exc.status_code, request.url.path, exc.detail)
    return JSONResponse(
        {"detail": exc.detail},
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


# Generic exception handler for unhandled errors
@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Log unhandled exceptions and answer with a generic 500."""
    logger.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=True)
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "pickup_push.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )

"""
FastAPI application entry point for the MedMatch matching engine.

This is the main app that:
- Initializes FastAPI with CORS
- Registers all API routers
- Maps matching errors to HTTP responses
- Sets up database connection lifecycle
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

from medmatch import database
from medmatch.config import settings
from medmatch.errors import MatchingError
from medmatch.services.notifications import notification_dispatcher
# Import API routers
from medmatch.api import connections, discovery, postings, professionals, responses

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "RESOURCE_NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.

    On startup: Create tables in debug mode (production runs Alembic)
    On shutdown: Flush pending notifications, close database connections
    """
    # Startup
    logger.info("Starting MedMatch API...")
    logger.info(f"Database: {settings.database_url.split('@')[1] if '@' in settings.database_url else 'configured'}")
    logger.info(f"Debug mode: {settings.debug}")
    if settings.debug:
        await database.init_db()

    yield

    # Shutdown
    logger.info("Shutting down MedMatch API...")
    await notification_dispatcher.drain()
    await database.close_db()


# Initialize FastAPI app
app = FastAPI(
    title="MedMatch API",
    description="Job matching between clinics and doctors",
    version="1.0.0",
    debug=settings.debug,
    lifespan=lifespan,
)

# Configure CORS
# Set ALLOWED_ORIGINS environment variable with comma-separated domains
allowed_origins = [
    "http://localhost:3000",  # Local development
]

if settings.allowed_origins:
    allowed_origins.extend(settings.allowed_origins.split(','))

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def error_body(request: Request, code: str, message: str, details=None) -> dict:
    return {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "path": request.url.path,
        },
    }


@app.exception_handler(MatchingError)
async def matching_error_handler(request: Request, exc: MatchingError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} refused: {exc.code} {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.code, exc.message, exc.details),
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"), str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content=error_body(
            request,
            "VALIDATION_ERROR",
            "Request validation failed",
            {"errors": [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]},
        ),
    )


# Health check endpoint
@app.get("/health")
async def health_check(db: AsyncSession = Depends(database.get_db)):
    """Health check including a database round trip."""
    await db.execute(text("SELECT 1"))
    return {
        "status": "healthy",
        "database": "ok",
        "service": "MedMatch API",
        "version": "1.0.0",
    }


# Root endpoint
@app.get("/")
async def root():
    """API root with basic info."""
    return {
        "message": "MedMatch API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }


# Register API routers
app.include_router(discovery.router, prefix="/api/discovery", tags=["discovery"])
app.include_router(postings.router, prefix="/api/postings", tags=["postings"])
app.include_router(responses.router, prefix="/api/responses", tags=["responses"])
app.include_router(professionals.router, prefix="/api/professionals", tags=["professionals"])
app.include_router(connections.router, prefix="/api", tags=["connections"])

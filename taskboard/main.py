import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from . import db
from .config import get_settings
from .errors import TaskboardError
from .logging_setup import setup_logging
from .revalidation import PageRevalidator
from .routes import categories, tasks, updates

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    # Startup
    try:
        await db.init_db(settings)
        logger.info("Database initialized successfully")
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Database connection failed, store-backed routes will fail: {e}")
    yield
    # Shutdown
    await db.close_db()


# Create FastAPI app
app = FastAPI(
    title="Taskboard API",
    description="Owner-scoped task and category management",
    version=VERSION,
    lifespan=lifespan,
)
app.state.revalidator = PageRevalidator()

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    response = await call_next(request)
    logger.info(
        f"{request.method} {request.url.path} -> {response.status_code}",
        extra={"path": request.url.path, "status_code": response.status_code},
    )
    return response


# Include routers
app.include_router(tasks.router, prefix="/api")
app.include_router(categories.router, prefix="/api")
app.include_router(updates.router, prefix="/api")


@app.exception_handler(TaskboardError)
async def taskboard_error_handler(request: Request, exc: TaskboardError):
    logger.error(
        f"TaskboardError: {exc.message}",
        extra={"error_code": exc.code, "path": request.url.path},
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed requests (bad path ids, non-object bodies) in the failure shape"""
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")
    errors = {}
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"] if loc not in ("body", "path", "query"))
        errors.setdefault(field or "_request", []).append(error["msg"])
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": "Invalid request data", "errors": errors},
    )


@app.exception_handler(Exception)
async def generic_error_handler(request: Request, exc: Exception):
    """Catch-all, never leaks internal details"""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": "An unexpected error occurred. Please try again."},
    )


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Taskboard API",
        "version": VERSION,
        "status": "running",
        "docs": "/docs",
        "health": "/health",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    if db.db_manager is None:
        database = "not_initialized"
    else:
        database = "ok" if await db.db_manager.health_check() else "unavailable"
    return {
        "status": "healthy",
        "service": "taskboard-api",
        "version": VERSION,
        "database": database,
        "update_connections": app.state.revalidator.connections.connection_count(),
    }


@app.get("/api/info")
async def api_info():
    """API information endpoint"""
    return {
        "endpoints": {
            "tasks": "/api/tasks",
            "task_summary": "/api/tasks/summary",
            "categories": "/api/categories",
            "websockets": {
                "updates": "/api/ws/updates?token=<access token>",
            },
        },
        "features": [
            "Owner-scoped CRUD operations for tasks",
            "Categories with display colors",
            "Page-refresh signals over WebSocket",
            "Async database operations with PostgreSQL",
        ],
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "taskboard.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="info",
    )

"""
FastAPI Application Entry Point
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from phishsim.api.v1.routes import api_router
from phishsim.core.config import get_config_manager, get_settings, validate_config_on_startup
from phishsim.infrastructure.storage.database import init_db, sqlite_lock_timeout

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan - startup and shutdown events.

    Startup:
    - Validates dispatch and token configuration
    - Creates database tables and the session factory
    """
    # ========================
    # STARTUP
    # ========================
    logger.info("Starting Phishing Simulation Campaign API...")

    settings = get_settings()
    strict_validation = settings.environment == "production"

    try:
        validate_config_on_startup(get_config_manager(), strict=strict_validation)
    except RuntimeError as e:
        logger.error(f"Startup failed: {e}")
        raise

    config = get_config_manager()
    init_db(settings.database_url, sqlite_lock_timeout(config.dispatch_config().timeout_seconds))
    logger.info("Phishing Simulation Campaign API started successfully")

    yield  # Application is running

    # ========================
    # SHUTDOWN
    # ========================
    logger.info("Phishing Simulation Campaign API shutdown complete")


app = FastAPI(
    title="Phishing Simulation Campaign API",
    description="Campaign lifecycle, batch dispatch and delivery tracking",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"success": False, "message": message})


# Include API routes
app.include_router(api_router, prefix=get_settings().api_prefix)


@app.get("/")
async def root():
    return {"message": "Phishing Simulation Campaign API", "status": "running"}


@app.get("/health")
async def health_check():
    """Liveness check"""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

"""Road Trip Planner FastAPI Application.

Main entry point for the backend API server.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from roadtrip.api import router
from roadtrip.api.routes import shutdown_services
from roadtrip.config import get_settings
from roadtrip.models import AppError, ErrorCode

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(f"[APP] Starting (default origin: {settings.default_origin})")
    yield
    # Shutdown: cancel running jobs, drop stored jobs, close provider clients
    await shutdown_services()


app = FastAPI(
    title="Road Trip Planner API",
    description="Multi-source road trip route generation",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(status_code: int, code: ErrorCode, message: str, user_message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {
                "code": code.value,
                "message": message,
                "user_message": user_message,
            },
        },
    )


# Global exception handlers
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Render errors raised by route handlers."""
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Handle request body and path validation errors."""
    return _error_response(
        422,
        ErrorCode.VALIDATION_ERROR,
        str(exc.errors()),
        "Invalid request format. Please check your input.",
    )


@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError):
    """Handle Pydantic validation errors."""
    return _error_response(
        422,
        ErrorCode.VALIDATION_ERROR,
        str(exc),
        "Invalid request format. Please check your input.",
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors."""
    logger.exception(f"[APP] Unhandled error on {request.url.path}: {exc}")
    return _error_response(
        500,
        ErrorCode.API_ERROR,
        str(exc),
        "Something went wrong. Please try again.",
    )


# Include API routes
app.include_router(router, prefix="/api")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}

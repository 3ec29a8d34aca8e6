#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
FastAPI Web Server - REST API for Best Publishing.

Thin orchestration shell: app creation, middleware, error mapping,
router includes, startup events.

Usage:
    uvicorn api.main:app --host 0.0.0.0 --port 8000
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

from config.logging_config import setup_logging, get_logger
from config.settings import settings as _settings

setup_logging()
logger = get_logger(__name__)

from core.publishing.exceptions import PublishingError

from api.rate_limiter import limiter, rate_limit_exceeded_handler
from api.routes.health import router as health_router
from api.book_router import router as book_router

# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Best Publishing API",
    description="Chapter folder management and EPub publishing for books",
    version="1.0.0"
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# HTTP status per error kind; unknown kinds are server errors
ERROR_STATUS = {
    "invalid_input": 400,
    "not_found": 404,
    "invalid_position": 409,
    "busy": 409,
    "incomplete_chapter": 422,
    "partial_apply_failure": 500,
    "assembly_io_failure": 500,
    "store_error": 500,
    "store_busy": 503,
}


@app.exception_handler(PublishingError)
def publishing_error_handler(request: Request, exc: PublishingError):
    status = ERROR_STATUS.get(exc.kind, 500)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed [{exc.kind}]: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected [{exc.kind}]: {exc.message}")
    return JSONResponse(
        status_code=status,
        content={"success": False, "error": exc.to_dict()},
    )


# CORS middleware - origins from settings (env var) or dev defaults
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)

app.include_router(health_router)
app.include_router(book_router)


@app.on_event("startup")
def startup_publishing_service():
    """Open the stores up front so the first request does not pay for it."""
    from core.publishing.service import get_publishing_service

    service = get_publishing_service()
    logger.info(
        f"Publishing service ready [store={service.config.store_db_path}, "
        f"artifacts={service.config.artifact_dir}]"
    )


if __name__ == "__main__":
    import uvicorn

    _settings.print_config()
    uvicorn.run("api.main:app", host="0.0.0.0", port=8000)

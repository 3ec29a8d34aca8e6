#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Rate Limiting Module for the Publishing API

Limits are "count/period" strings (e.g. "10/minute") taken from settings,
keyed by API key when one is sent and by client IP otherwise.

Usage:
    from api.rate_limiter import limiter, rate_limit_config

    @router.post("/api/books/{isbn}/publish")
    @limiter.limit(rate_limit_config.get_limit("publish"))
    def publish_book(request: Request, isbn: str):
        ...
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from config.settings import settings


@dataclass
class RateLimitConfig:
    """Per-category limits; anything unlisted falls back to ``default``."""

    defaults: Dict[str, str] = field(default_factory=lambda: {
        "health": "120/minute",
        "read": "120/minute",
        "chapter_write": "60/minute",
        "publish": settings.publish_rate_limit,
        "default": settings.rate_limit,
    })

    def get_limit(self, endpoint: str) -> str:
        return self.defaults.get(endpoint, self.defaults["default"])


rate_limit_config = RateLimitConfig()


def get_user_identifier(request: Request) -> str:
    """API key prefix if present, otherwise the client address."""
    if api_key := request.headers.get("X-API-Key"):
        return f"api:{api_key[:8]}"
    return get_remote_address(request)


def create_limiter(key_func: Optional[Callable] = None) -> Limiter:
    return Limiter(
        key_func=key_func or get_user_identifier,
        default_limits=[rate_limit_config.get_limit("default")],
        enabled=settings.rate_limit_enabled,
    )


limiter = create_limiter()


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """JSON 429 with a Retry-After header, shaped like the other API errors."""
    limit_value = str(exc.detail) if hasattr(exc, "detail") else "Rate limit exceeded"

    retry_after = 60
    if "second" in limit_value:
        retry_after = 1
    elif "hour" in limit_value:
        retry_after = 3600

    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": {
                "kind": "rate_limited",
                "message": "Too many requests. Please slow down.",
                "context": {"limit": limit_value, "retry_after_seconds": retry_after},
            },
            "timestamp": time.time(),
        },
        headers={"Retry-After": str(retry_after)},
    )

"""
FastAPI middleware for rate limiting, logging, and error handling
"""
import time
import uuid
from typing import Callable
from fastapi import Request, HTTPException, status
from fastapi.responses import JSONResponse
from collections import defaultdict
from datetime import datetime, timedelta, timezone
import logging

from dexarb.core.exceptions import DexArbitrageException

logger = logging.getLogger(__name__)


class RateLimiter:
    """Simple in-memory rate limiter"""

    def __init__(self, requests_per_minute: int = 60):
        self.requests_per_minute = requests_per_minute
        self.requests: defaultdict = defaultdict(list)

    def is_allowed(self, client_id: str) -> bool:
        """Check if request is allowed"""
        now = datetime.now(timezone.utc)
        minute_ago = now - timedelta(minutes=1)

        # Clean old requests
        self.requests[client_id] = [
            req_time for req_time in self.requests[client_id]
            if req_time > minute_ago
        ]

        # Check limit
        if len(self.requests[client_id]) >= self.requests_per_minute:
            return False

        # Add current request
        self.requests[client_id].append(now)
        return True

    def remaining(self, client_id: str) -> int:
        return max(self.requests_per_minute - len(self.requests[client_id]), 0)


def make_rate_limit_middleware(rate_limiter: RateLimiter) -> Callable:
    """Rate limiting middleware bound to one limiter"""

    async def rate_limit_middleware(request: Request, call_next: Callable):
        # Skip rate limiting for health check
        if request.url.path == "/api/health":
            return await call_next(request)

        client_id = request.client.host if request.client else "unknown"

        if not rate_limiter.is_allowed(client_id):
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": "Rate limit exceeded",
                    "message": f"Maximum {rate_limiter.requests_per_minute} requests per minute"
                }
            )

        response = await call_next(request)

        # Add rate limit headers
        response.headers["X-RateLimit-Limit"] = str(rate_limiter.requests_per_minute)
        response.headers["X-RateLimit-Remaining"] = str(rate_limiter.remaining(client_id))

        return response

    return rate_limit_middleware


async def logging_middleware(request: Request, call_next: Callable):
    """Request/response logging middleware"""

    # Generate request ID
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()

    logger.info(
        "Request started",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path
        }
    )

    response = await call_next(request)

    duration = time.time() - start_time

    logger.info(
        "Request completed",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(duration * 1000, 2)
        }
    )

    # Add request ID to response headers
    response.headers["X-Request-ID"] = request_id

    return response


async def security_headers_middleware(request: Request, call_next: Callable):
    """Security headers (supplemental to FastAPI CORS)"""
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"

    return response


async def error_handling_middleware(request: Request, call_next: Callable):
    """Global error handling middleware"""
    try:
        return await call_next(request)
    except HTTPException:
        # Let FastAPI handle HTTP exceptions
        raise
    except DexArbitrageException as e:
        logger.error(f"Request failed: {e.message}", extra={"path": request.url.path})

        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "error": e.code or "SERVICE_ERROR",
                "message": e.message,
                "request_id": getattr(request.state, "request_id", None)
            }
        )
    except Exception as e:
        logger.error(f"Unhandled exception: {str(e)}", exc_info=True)

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "message": "An unexpected error occurred",
                "request_id": getattr(request.state, "request_id", None)
            }
        )

"""Rate limiting using slowapi"""

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
import logging

from storefront.core.config import settings
from storefront.core.security import SecurityUtils
from storefront.core.exceptions import UnauthorizedException

logger = logging.getLogger(__name__)

def get_rate_limit_key(request: Request) -> str:
    """Key requests by authenticated user, falling back to the client IP"""
    authorization = request.headers.get("Authorization", "")
    if authorization.lower().startswith("bearer "):
        try:
            user_id = SecurityUtils.decode_token(authorization[7:]).get("sub")
        except UnauthorizedException:
            user_id = None
        if user_id:
            return f"user:{user_id}"

    # X-Forwarded-For is client controlled unless a trusted proxy sets it
    forwarded = request.headers.get("X-Forwarded-For") if settings.RATE_LIMIT_TRUST_FORWARDED_FOR else None
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = get_remote_address(request) if request.client else "unknown"

    return f"ip:{ip}"

limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)

async def custom_rate_limit_handler(request: Request, exc: RateLimitExceeded) -> Response:
    logger.warning(f"Rate limit exceeded for {get_rate_limit_key(request)} on {request.url.path}")
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": f"Too many requests. {exc.detail}",
            "code": "RATE_LIMIT_EXCEEDED",
        }
    )

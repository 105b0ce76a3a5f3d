# labtrack/core/rate_limiter.py
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request

from labtrack.core.config import RATE_LIMIT_ENABLED

# In-memory limiter keyed on client address
limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)


def get_rate_limiter() -> Limiter:
    return limiter


def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit exceeded on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=429,
        content={"detail": f"Rate limit exceeded: {exc.detail}"},
    )

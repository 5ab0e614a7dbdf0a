"""Rate limiting middleware using slowapi.

Default limits:
- Global: 100 req/min per IP
- Read endpoints: 60 req/min (CSV + ETL aggregation)
- Proxy endpoints: 30 req/min (upstream public APIs / model server)
- Backtest runs: 5 req/min (one model call per window)
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from ..utils.client_ip import get_client_ip

logger = logging.getLogger("api.rate_limit")


limiter = Limiter(
    key_func=get_client_ip,
    default_limits=["100/minute"],
    storage_uri="memory://",
)


# Usage: @rate_limit_read on aggregation endpoints
rate_limit_read = limiter.limit("60/minute")
rate_limit_proxy = limiter.limit("30/minute")
rate_limit_backtest = limiter.limit("5/minute")
rate_limit_health = limiter.limit("120/minute")


# Seconds a limited client is told to wait (window of the per-minute limits)
RETRY_AFTER_SECONDS = 60


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    logger.warning(
        f"Rate limit exceeded: ip={get_client_ip(request)} "
        f"{request.method} {request.url.path} ({exc.detail})"
    )
    body = {"error": "Too many requests", "code": "RATE_LIMIT_EXCEEDED", "detail": str(exc.detail)}
    return JSONResponse(status_code=429, content=body, headers={"Retry-After": str(RETRY_AFTER_SECONDS)})


def setup_rate_limiting(app: FastAPI) -> None:
    """Attach the shared limiter, its middleware and the 429 handler to ``app``."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
    logger.info("Rate limiting enabled")

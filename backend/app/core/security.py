"""Security dependencies: client identification, rate limiting, access logging"""
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, Request

from app.core.config import settings
from app.core.exceptions import RateLimitExceeded
from app.core.logging import security_logger
from app.core.metrics import rate_limited_counter
from app.db.redis import KVStore, check_rate_limit, get_kv_store

api_access_logger = logging.getLogger("api_access")


def get_client_identifier(request: Request) -> str:
    """Get a unique identifier for rate limiting (first X-Forwarded-For hop, else client host)"""
    client_ip = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if not client_ip:
        client_ip = request.client.host if request.client else "unknown"
    return f"ip:{client_ip}"


class RateLimit:
    """Dependency: fixed-window rate limit for one endpoint.

    Usage:
        @router.post("/complete", dependencies=[Depends(RateLimit("games", settings.RATE_LIMIT_GAMES))])
    """

    def __init__(self, endpoint: str, limit: int, window: Optional[int] = None):
        self.endpoint = endpoint
        self.limit = limit
        self.window = window or settings.RATE_LIMIT_WINDOW

    def __call__(self, request: Request, store: KVStore = Depends(get_kv_store)) -> None:
        identifier = get_client_identifier(request)
        result = check_rate_limit(store, identifier, self.endpoint, self.limit, self.window)
        if not result.allowed:
            rate_limited_counter.labels(endpoint=self.endpoint).inc()
            security_logger.warning(
                f"Rate limit exceeded - Identifier: {identifier}, Endpoint: {self.endpoint}"
            )
            raise RateLimitExceeded("Too many requests. Please try again later.")


def log_api_access(
    request: Request,
    status_code: int = 200,
    error: Optional[str] = None
):
    """Log detailed API access information"""
    client_ip = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if not client_ip:
        client_ip = request.client.host if request.client else "unknown"

    log_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "method": request.method,
        "path": request.url.path,
        "query": str(request.url.query) if request.url.query else None,
        "client_ip": client_ip,
        "user_agent": request.headers.get("User-Agent", "unknown"),
        "origin": request.headers.get("Origin", "none"),
        "status_code": status_code,
    }
    if error:
        log_data["error"] = error

    if status_code >= 500:
        api_access_logger.error(json.dumps(log_data))
    elif status_code >= 400:
        api_access_logger.warning(json.dumps(log_data))
    else:
        api_access_logger.info(json.dumps(log_data))

"""
Simple memory-based rate limiter, keyed by client IP.
Each limiter owns its window store; nothing is shared across workers.
"""
import time
from typing import Dict, Optional, Tuple

from fastapi import HTTPException, Request

from onboardx.config import get_settings


def rate_limit(requests: Optional[int] = None, window: Optional[int] = None):
    """FastAPI dependency factory.

    Example: ``Depends(rate_limit(requests=5, window=60))``. Limits default
    to RATE_LIMIT_REQUESTS per RATE_LIMIT_WINDOW seconds.
    """
    store: Dict[str, Tuple[float, int]] = {}

    def limiter(request: Request) -> bool:
        settings = get_settings()
        max_requests = requests or settings.RATE_LIMIT_REQUESTS
        window_seconds = window or settings.RATE_LIMIT_WINDOW
        ip = request.client.host if request.client else "unknown"
        now = time.time()

        started, count = store.get(ip, (now, 0))
        if now - started > window_seconds:
            started, count = now, 0

        if count >= max_requests:
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded. Try again in {int(window_seconds - (now - started)) + 1} seconds.",
            )
        store[ip] = (started, count + 1)
        return True

    return limiter

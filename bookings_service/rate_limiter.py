# bookings_service/rate_limiter.py
import os
import time
from typing import Dict, List

from fastapi import HTTPException, Request, status

# Simple sliding-window rate limiter: N booking requests / WINDOW seconds per IP
WINDOW_SECONDS = 60
MAX_BOOKINGS_PER_WINDOW = int(os.getenv("MAX_BOOKINGS_PER_MINUTE", "5"))

_request_log: Dict[str, List[float]] = {}


def _prune_expired(window_start: float) -> None:
    # entries of clients with no request left in the window
    for client_ip in list(_request_log):
        timestamps = [ts for ts in _request_log[client_ip] if ts >= window_start]
        if timestamps:
            _request_log[client_ip] = timestamps
        else:
            del _request_log[client_ip]


def booking_rate_limiter(request: Request):
    """
    Rate limit public booking creation by client IP.

    Booking creation is unauthenticated, so the client address is the
    only key available.
    """
    # ❗ Skip rate limiting completely in automated tests
    if os.getenv("TESTING") == "1":
        return
    client_ip = request.client.host if request.client else "unknown"

    now = time.time()
    window_start = now - WINDOW_SECONDS

    _prune_expired(window_start)
    timestamps = _request_log.get(client_ip, [])

    if len(timestamps) >= MAX_BOOKINGS_PER_WINDOW:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many booking attempts. Please try again shortly.",
        )

    timestamps.append(now)
    _request_log[client_ip] = timestamps

from __future__ import annotations
import time
from typing import Dict, Tuple
from fastapi import HTTPException, Request
from photoportal.core.config import settings

# Fixed-window counters held in-process.
# Keys: ("login", client_ip) -> (window_start_epoch, count)
_counters: Dict[Tuple[str, ...], Tuple[int, int]] = {}

def client_ip(request: Request) -> str:
    # honor proxies if present; take the first hop
    xf = request.headers.get("x-forwarded-for")
    if xf:
        return xf.split(",")[0].strip()
    real = request.headers.get("x-real-ip")
    if real:
        return real.strip()
    return request.client.host if request.client else "unknown"

def _prune(now: int, window_seconds: int) -> None:
    # counters whose window has closed carry no state worth keeping
    expired = [k for k, (start, _) in _counters.items() if start + window_seconds <= now]
    for k in expired:
        del _counters[k]

def _bump(key: Tuple[str, ...], max_requests: int, window_seconds: int):
    now = int(time.time())
    window = now - (now % window_seconds)  # start-of-window
    _prune(now, window_seconds)
    start, count = _counters.get(key, (window, 0))
    if start != window:
        start, count = window, 0
    count += 1
    _counters[key] = (start, count)
    if count > max_requests:
        retry_after = start + window_seconds - now
        raise HTTPException(
            status_code=429,
            detail="Too many login attempts; try again later",
            headers={"Retry-After": str(max(0, retry_after))},
        )

def reset_counters() -> None:
    _counters.clear()

async def limit_login_by_ip(request: Request):
    _bump(
        ("login", client_ip(request)),
        settings.LOGIN_RATE_LIMIT_MAX_PER_IP,
        settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS,
    )

"""
Unit Tests: login rate limiter
==============================
"""

import time

import pytest
from fastapi import HTTPException

from photoportal.security import ratelimit


@pytest.mark.unit
def test_closed_windows_are_dropped():
    ratelimit.reset_counters()
    ratelimit._counters[("login", "203.0.113.9")] = (int(time.time()) - 3600, 4)

    ratelimit._bump(("login", "198.51.100.1"), max_requests=5, window_seconds=60)

    assert list(ratelimit._counters) == [("login", "198.51.100.1")]


@pytest.mark.unit
def test_open_window_keeps_counting():
    ratelimit.reset_counters()
    key = ("login", "198.51.100.1")

    for _ in range(3):
        ratelimit._bump(key, max_requests=3, window_seconds=3600)
    with pytest.raises(HTTPException) as exc:
        ratelimit._bump(key, max_requests=3, window_seconds=3600)

    assert exc.value.status_code == 429
    assert int(exc.value.headers["Retry-After"]) <= 3600

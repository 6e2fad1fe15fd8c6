from __future__ import annotations
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Tuple
from sqlalchemy.orm import Session

from photoportal.core.errors import NoTokenError, RefreshError
from photoportal.services.google_oauth import refresh_access_token
from photoportal.services.tokens import get_token, read_tokens, upsert_tokens

log = logging.getLogger(__name__)

# Refresh this long before the recorded expiry instead of waiting for a 401.
REFRESH_BUFFER = timedelta(minutes=5)

Refresher = Callable[[str], Awaitable[Dict[str, Any]]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_stale(expires_at: datetime, now: datetime | None = None) -> bool:
    return (now or _now()) >= _as_utc(expires_at) - REFRESH_BUFFER


async def _load_access_token(
    db: Session,
    provider: str,
    now: datetime | None,
    refresher: Refresher,
) -> Tuple[str, datetime]:
    row = get_token(db, provider)
    if row is None:
        raise NoTokenError(f"No {provider} token found. Sign in with {provider} from the admin panel first.")

    access_token, refresh_token = read_tokens(row)

    if access_token and not is_stale(row.expires_at, now):
        return access_token, _as_utc(row.expires_at)

    if not refresh_token:
        raise RefreshError(f"stored {provider} refresh token is unreadable; reconnect required")

    log.info("refreshing access token", extra={"provider": provider})
    new = await refresher(refresh_token)

    upsert_tokens(
        db,
        provider=provider,
        access_token=new["access_token"],
        refresh_token=new.get("refresh_token"),  # None keeps the stored one
        expires_at=new["expires_at"],
    )
    return new["access_token"], _as_utc(new["expires_at"])


async def get_access_token(
    db: Session,
    provider: str,
    *,
    now: datetime | None = None,
    refresher: Refresher = refresh_access_token,
) -> str:
    """
    Returns a usable access token for `provider`, refreshing it first when it is
    within REFRESH_BUFFER of expiry.

    Raises NoTokenError when nothing is stored (an admin must sign in again) and
    RefreshError when the token endpoint refuses the stored refresh token.
    Separate callers may both refresh; the last write wins. Callers sharing one
    `token_source` refresh at most once.
    """
    access_token, _ = await _load_access_token(db, provider, now, refresher)
    return access_token


def token_source(
    db: Session,
    provider: str,
    *,
    refresher: Refresher = refresh_access_token,
) -> Callable[[], Awaitable[str]]:
    """
    Zero-arg coroutine factory handed to adapters that need a bearer token.
    The token is reused until it goes stale, and concurrent callers wait on a
    single lookup (and refresh) instead of each starting their own.
    """
    lock = asyncio.Lock()
    cached: Dict[str, Any] = {}

    async def _get() -> str:
        async with lock:
            if cached and not is_stale(cached["expires_at"]):
                return cached["access_token"]
            access_token, expires_at = await _load_access_token(db, provider, None, refresher)
            cached.update(access_token=access_token, expires_at=expires_at)
            return access_token
    return _get

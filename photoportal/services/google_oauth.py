from __future__ import annotations
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Any
from urllib.parse import urlencode, urlparse

import httpx

from photoportal.core.config import settings
from photoportal.core.errors import RefreshError, RequestTimeoutError, UpstreamError
from photoportal.providers.base import Provider
from photoportal.providers.http import read_json
from photoportal.services.signing import create_state

log = logging.getLogger(__name__)

GOOGLE_AUTH_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"

DEFAULT_EXPIRES_IN = 3600

SCOPES = {
    Provider.GOOGLE_DRIVE: [
        "email",
        "profile",
        "https://www.googleapis.com/auth/drive.readonly",
    ],
    Provider.GOOGLE_PHOTOS: [
        "email",
        "profile",
        "https://www.googleapis.com/auth/photospicker.mediaitems.readonly",
    ],
}


def _ensure_client_config() -> None:
    if not settings.GOOGLE_CLIENT_ID or not settings.GOOGLE_CLIENT_SECRET:
        raise RuntimeError("Missing GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET in environment")


def _validate_redirect_host(redirect_uri: str) -> None:
    host = urlparse(redirect_uri).hostname or ""
    if host not in settings.ALLOWED_REDIRECT_HOSTS:
        raise ValueError(f"redirect_uri host '{host}' is not allowed")


def redirect_uri_for(provider: Provider) -> str:
    base = settings.GOOGLE_REDIRECT_BASE.rstrip("/")
    return f"{base}/auth/{provider.value}/callback"


def _expires_at(payload: Dict[str, Any]) -> datetime:
    expires_in = int(payload.get("expires_in") or DEFAULT_EXPIRES_IN)
    return datetime.now(timezone.utc) + timedelta(seconds=max(0, expires_in))


def build_consent_url(provider: Provider) -> str:
    """
    Google consent URL for `provider`. Offline access plus prompt=consent so the
    first connect always returns a refresh_token.
    """
    _ensure_client_config()
    redirect_uri = redirect_uri_for(provider)
    _validate_redirect_host(redirect_uri)

    params = {
        "client_id": settings.GOOGLE_CLIENT_ID,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": " ".join(SCOPES[provider]),
        "state": create_state(provider.value),
        "access_type": "offline",
        "include_granted_scopes": "true",
        "prompt": "consent",
    }
    return f"{GOOGLE_AUTH_ENDPOINT}?{urlencode(params)}"


async def _post_token_endpoint(data: Dict[str, str], transport: httpx.AsyncBaseTransport | None) -> httpx.Response:
    try:
        async with httpx.AsyncClient(timeout=15.0, transport=transport) as client:
            return await client.post(GOOGLE_TOKEN_ENDPOINT, data=data)
    except httpx.TimeoutException as e:
        raise RequestTimeoutError("token endpoint timed out") from e
    except httpx.HTTPError as e:
        raise UpstreamError(f"token endpoint unreachable: {e}") from e


async def exchange_code_for_tokens(
    provider: Provider,
    code: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Dict[str, Any]:
    """
    Exchange an authorization code.
    Returns: {access_token, refresh_token?, expires_at(datetime), scope}
    """
    _ensure_client_config()
    redirect_uri = redirect_uri_for(provider)
    _validate_redirect_host(redirect_uri)

    resp = await _post_token_endpoint({
        "code": code,
        "client_id": settings.GOOGLE_CLIENT_ID,
        "client_secret": settings.GOOGLE_CLIENT_SECRET,
        "redirect_uri": redirect_uri,
        "grant_type": "authorization_code",
    }, transport)

    if resp.status_code != 200:
        raise UpstreamError(f"token exchange failed: {resp.status_code} {resp.text[:200]}")

    j = read_json(resp)
    log.info("oauth code exchanged", extra={
        "provider": provider.value,
        "scope": j.get("scope"),
        "has_refresh_token": bool(j.get("refresh_token")),
    })
    return {
        "access_token": j.get("access_token"),
        "refresh_token": j.get("refresh_token"),  # absent on re-consent
        "expires_at": _expires_at(j),
        "scope": j.get("scope"),
    }


async def refresh_access_token(
    refresh_token: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Dict[str, Any]:
    """
    Trade a refresh_token for a new access_token.
    Returns: {access_token, refresh_token?, expires_at(datetime)}
    """
    _ensure_client_config()
    if not refresh_token:
        raise RefreshError("refresh_token required")

    resp = await _post_token_endpoint({
        "client_id": settings.GOOGLE_CLIENT_ID,
        "client_secret": settings.GOOGLE_CLIENT_SECRET,
        "refresh_token": refresh_token,
        "grant_type": "refresh_token",
    }, transport)

    if resp.status_code != 200:
        raise RefreshError(f"refresh failed: {resp.status_code} {resp.text[:200]}")

    j = read_json(resp)
    if not j.get("access_token"):
        raise RefreshError("refresh response carried no access_token")

    return {
        "access_token": j["access_token"],
        "refresh_token": j.get("refresh_token"),
        "expires_at": _expires_at(j),
    }

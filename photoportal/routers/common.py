from __future__ import annotations
import logging
from typing import List, Optional
from urllib.parse import urlencode

from fastapi import HTTPException

from photoportal.core.errors import PortalError, ValidationError
from photoportal.providers.base import MediaItem, Provider

log = logging.getLogger(__name__)

DRIVE_PROXY_PATH = "/google-drive/image"
PICKER_PROXY_PATH = "/google-photos-picker/image"


def http_error(e: PortalError) -> HTTPException:
    """HTTPException carrying the error's status; auth failures tell the client to reconnect."""
    if e.status_code >= 500:
        log.error("request failed", extra={"error_type": type(e).__name__, "error": str(e)})
    if e.needs_auth:
        return HTTPException(status_code=e.status_code, detail={"error": str(e), "needsAuth": True})
    return HTTPException(status_code=e.status_code, detail=str(e))


def split_ids(raw: Optional[str]) -> List[str]:
    ids = [p.strip() for p in (raw or "").split(",")]
    ids = [p for p in ids if p]
    if not ids:
        raise ValidationError("photoIds parameter is required")
    return ids


def proxied_thumbnail(provider: Provider, item: MediaItem, size: str = "220") -> Optional[str]:
    """
    Same-origin proxy URL for thumbnails the browser cannot load directly
    (Drive links need auth or trip CORS, Picker URLs always need a bearer token).
    None when the native URL is fine as is.
    """
    if provider is Provider.GOOGLE_DRIVE and item.id:
        qs = urlencode({"fileId": item.id, "thumbnailUrl": item.thumbnail_url, "size": size})
        return f"{DRIVE_PROXY_PATH}?{qs}"
    if provider is Provider.GOOGLE_PHOTOS and item.thumbnail_url:
        return f"{PICKER_PROXY_PATH}?{urlencode({'url': item.thumbnail_url})}"
    return None

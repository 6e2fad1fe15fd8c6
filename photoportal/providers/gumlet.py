from __future__ import annotations
import logging
from typing import Optional, Tuple

import httpx

from photoportal.core.config import settings
from photoportal.core.errors import AuthError, NotFoundError, UpstreamError, ValidationError
from photoportal.providers.base import DEFAULT_MIME_TYPE, MediaItem, MediaPage, Provider, fallback_filename, first_of
from photoportal.providers.http import dict_entries, read_json, send

log = logging.getLogger(__name__)


def thumbnail_for(url: str) -> str:
    # Gumlet transforms are path segments after /upload/
    if "/upload/" in url:
        return url.replace("/upload/", "/upload/w_400,h_400,c_fill/", 1)
    return url


class GumletAdapter:
    """Gumlet asset host, bearer-authenticated with the account API key."""

    provider = Provider.GUMLET

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key if api_key is not None else settings.GUMLET_API_KEY
        self._base_url = (base_url or settings.GUMLET_BASE_URL).rstrip("/")
        self._timeout = timeout or settings.API_TIMEOUT_SECONDS
        self._transport = transport

    def _headers(self) -> dict:
        if not self._api_key:
            raise ValidationError("GUMLET_API_KEY is not configured")
        return {"Authorization": f"Bearer {self._api_key}", "Accept": "application/json"}

    async def _get(self, path: str, params: dict | None = None) -> httpx.Response:
        params = {k: v for k, v in (params or {}).items() if v is not None}
        return await send("GET", f"{self._base_url}{path}", params=params, headers=self._headers(),
                          timeout=self._timeout, transport=self._transport)

    @staticmethod
    def _check(r: httpx.Response, not_found: str) -> None:
        if r.status_code < 400:
            return
        log.warning("gumlet api error", extra={"status": r.status_code, "body": r.text[:200]})
        if r.status_code == 404:
            raise NotFoundError(not_found)
        if r.status_code in (401, 403):
            raise AuthError("Gumlet rejected the API key")
        raise UpstreamError(f"gumlet api error: {r.status_code} {r.text[:200]}")

    @staticmethod
    def _to_item(a: dict) -> MediaItem:
        asset_id = str(first_of(a, "id", "asset_id", "_id", default=""))
        mime_type = first_of(a, "mime_type", "mimeType", "content_type", default=DEFAULT_MIME_TYPE)
        url = first_of(a, "url", "original_url", "source_url", default="")
        return MediaItem(
            id=asset_id,
            display_url=url,
            thumbnail_url=first_of(a, "thumbnail_url", "thumbnail", default=thumbnail_for(url)),
            mime_type=mime_type,
            filename=first_of(a, "filename", "name", "title", default=fallback_filename(asset_id, mime_type)),
        )

    @staticmethod
    def _next_cursor(data: dict) -> Optional[str]:
        pagination = data.get("pagination") or {}
        return (first_of(data, "next_cursor", "next_page_token", "next_cursor_token")
                or (pagination.get("next") if isinstance(pagination, dict) else None)
                or None)

    async def list_images(
        self,
        ref: Optional[str] = None,
        page_token: Optional[str] = None,
        page_size: int = 50,
    ) -> MediaPage:
        r = await self._get("/v1/assets", {
            "limit": max(1, min(page_size, 100)),
            "folder_id": ref,
            "cursor": page_token,
        })
        self._check(r, f"Folder not found: {ref}")

        data = read_json(r, (dict, list))
        assets = data if isinstance(data, list) else first_of(data, "assets", "items", "results", default=[])
        assets = dict_entries(assets)
        items = [self._to_item(a) for a in assets]
        items = [i for i in items if i.id and i.mime_type.startswith("image/")]
        log.info("listed gumlet folder", extra={"folder_id": ref, "count": len(items)})
        return MediaPage(items=items, next_page_token=None if isinstance(data, list) else self._next_cursor(data))

    async def get_file(self, file_id: str) -> MediaItem:
        if not file_id:
            raise ValidationError("File ID is required")
        r = await self._get(f"/v1/assets/{file_id}")
        self._check(r, f"File not found: {file_id}")
        data = read_json(r)
        if isinstance(data.get("asset"), dict):
            data = data["asset"]
        data.setdefault("id", file_id)
        return self._to_item(data)

    async def get_folder_name(self, ref: str) -> str:
        if not ref:
            raise ValidationError("Folder ID is required")
        r = await self._get(f"/v1/folders/{ref}")
        self._check(r, f"Folder not found: {ref}")
        return first_of(read_json(r), "name", "folder_name", "title", default="Unknown Folder")

    async def fetch_content(self, item: MediaItem, timeout: float) -> Tuple[bytes, str]:
        if not item.display_url:
            raise NotFoundError(f"No download URL for photo {item.id}")
        r = await send("GET", item.display_url, timeout=timeout, transport=self._transport)
        self._check(r, f"File not found: {item.id}")
        return r.content, r.headers.get("content-type") or item.mime_type

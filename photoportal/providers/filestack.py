"""
Filestack asset host. Authenticated by API key in the query string.

The store/list response shape is not documented consistently, so every field is
read through `first_of` with the names seen in practice.
"""
from __future__ import annotations
import logging
from typing import Optional, Tuple

import httpx

from photoportal.core.config import settings
from photoportal.core.errors import AuthError, NotFoundError, PortalError, UpstreamError, ValidationError
from photoportal.providers.base import DEFAULT_MIME_TYPE, MediaItem, MediaPage, Provider, fallback_filename, first_of
from photoportal.providers.http import dict_entries, read_json, send

log = logging.getLogger(__name__)

CDN_BASE = "https://cdn.filestackcontent.com"
THUMBNAIL_TRANSFORM = "resize=width:400,height:400,fit:clip"


class FilestackAdapter:
    provider = Provider.FILESTACK

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key if api_key is not None else settings.FILESTACK_API_KEY
        self._base_url = (base_url or settings.FILESTACK_BASE_URL).rstrip("/")
        self._timeout = timeout or settings.API_TIMEOUT_SECONDS
        self._transport = transport

    def _require_key(self) -> None:
        if not self._api_key:
            raise ValidationError("FILESTACK_API_KEY is not configured")

    async def _get(self, path: str, params: dict, *, timeout: float | None = None) -> httpx.Response:
        self._require_key()
        params = {"key": self._api_key, **{k: v for k, v in params.items() if v is not None}}
        return await send("GET", f"{self._base_url}{path}", params=params,
                          timeout=timeout or self._timeout, transport=self._transport)

    @staticmethod
    def _check(r: httpx.Response, not_found: str) -> None:
        if r.status_code < 400:
            return
        log.warning("filestack api error", extra={"status": r.status_code, "body": r.text[:200]})
        if r.status_code == 404:
            raise NotFoundError(not_found)
        if r.status_code in (401, 403):
            raise AuthError("Filestack rejected the API key")
        raise UpstreamError(f"filestack api error: {r.status_code} {r.text[:200]}")

    @staticmethod
    def _to_item(f: dict) -> MediaItem:
        handle = str(first_of(f, "handle", "url", "id", "_id", default=""))
        # a full CDN url may stand in for the handle
        if handle.startswith("http"):
            handle = handle.rstrip("/").rsplit("/", 1)[-1]
        mime_type = first_of(f, "mimetype", "mime_type", "type", default=DEFAULT_MIME_TYPE)
        display = first_of(f, "url", "source_url", default=f"{CDN_BASE}/{handle}")
        thumbnail = first_of(f, "thumbnail_url", "thumbnail",
                             default=f"{CDN_BASE}/{THUMBNAIL_TRANSFORM}/{handle}")
        return MediaItem(
            id=handle,
            display_url=display,
            thumbnail_url=thumbnail,
            mime_type=mime_type,
            filename=first_of(f, "filename", "name", "title", default=fallback_filename(handle, mime_type)),
        )

    @staticmethod
    def _next_cursor(data: dict) -> Optional[str]:
        pagination = data.get("pagination") or {}
        return (first_of(data, "next_cursor", "cursor", "next_page_token")
                or (pagination.get("next") if isinstance(pagination, dict) else None)
                or None)

    async def list_images(
        self,
        ref: Optional[str] = None,
        page_token: Optional[str] = None,
        page_size: int = 50,
    ) -> MediaPage:
        params = {
            "limit": max(1, min(page_size, 1000)),
            "path": ref,
            "cursor": page_token,
            "mimetype": "image/*",
        }
        r = await self._get("/store/list", params)
        self._check(r, f"Folder not found: {ref}")

        data = read_json(r, (dict, list))
        files = data if isinstance(data, list) else first_of(data, "files", "items", "results", default=[])
        files = dict_entries(files)
        items = [self._to_item(f) for f in files]
        items = [i for i in items if i.id and i.mime_type.startswith("image/")]
        log.info("listed filestack folder", extra={"path": ref, "count": len(items)})
        return MediaPage(items=items, next_page_token=None if isinstance(data, list) else self._next_cursor(data))

    async def get_file(self, file_id: str) -> MediaItem:
        if not file_id:
            raise ValidationError("File ID is required")
        r = await self._get("/store/metadata", {"handle": file_id})
        self._check(r, f"File not found: {file_id}")
        data = read_json(r)
        data.setdefault("handle", file_id)
        return self._to_item(data)

    async def get_folder_name(self, ref: str) -> str:
        if not ref:
            raise ValidationError("Folder reference is required")
        if "/" in ref.strip("/"):
            return ref.strip("/").rsplit("/", 1)[-1]
        try:
            r = await self._get("/store/metadata", {"handle": ref})
            self._check(r, f"Folder not found: {ref}")
            return first_of(read_json(r), "name", "filename", default=ref)
        except PortalError as e:
            log.info("filestack folder name lookup failed, using reference", extra={"ref": ref, "error": str(e)})
            return ref

    async def fetch_content(self, item: MediaItem, timeout: float) -> Tuple[bytes, str]:
        if not item.display_url:
            raise NotFoundError(f"No download URL for photo {item.id}")
        r = await send("GET", item.display_url, timeout=timeout, transport=self._transport)
        self._check(r, f"File not found: {item.id}")
        return r.content, r.headers.get("content-type") or item.mime_type

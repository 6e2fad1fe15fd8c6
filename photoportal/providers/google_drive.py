from __future__ import annotations
import logging
from typing import Awaitable, Callable, Optional, Tuple

import httpx

from photoportal.core.config import settings
from photoportal.core.errors import AuthError, NotFoundError, UpstreamError, ValidationError
from photoportal.providers.base import DEFAULT_MIME_TYPE, MediaItem, MediaPage, Provider
from photoportal.providers.http import dict_entries, read_json, send

log = logging.getLogger(__name__)

DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
FILE_FIELDS = "id,name,mimeType,thumbnailLink,webContentLink,webViewLink"


def _is_google_cdn(url: str) -> bool:
    return "googleusercontent.com" in url


class GoogleDriveAdapter:
    """Images in a Drive folder, read with the admin's stored OAuth credential."""

    provider = Provider.GOOGLE_DRIVE

    def __init__(
        self,
        token_source: Callable[[], Awaitable[str]],
        *,
        timeout: float | None = None,
        thumbnail_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._token_source = token_source
        self._timeout = timeout or settings.API_TIMEOUT_SECONDS
        self._thumbnail_timeout = thumbnail_timeout or settings.THUMBNAIL_TIMEOUT_SECONDS
        self._transport = transport

    async def _auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {await self._token_source()}"}

    async def _get(self, url: str, *, params: dict | None = None, timeout: float | None = None,
                   auth: bool = True) -> httpx.Response:
        headers = await self._auth_headers() if auth else {}
        return await send("GET", url, params=params, headers=headers,
                          timeout=timeout or self._timeout, transport=self._transport)

    def _check(self, r: httpx.Response, not_found: str) -> None:
        if r.status_code < 400:
            return
        log.warning("google drive api error", extra={"status": r.status_code, "body": r.text[:200]})
        if r.status_code == 404:
            raise NotFoundError(not_found)
        if r.status_code == 401:
            raise AuthError("Google Drive rejected the access token; sign in with Google Drive again")
        if r.status_code == 403:
            raise AuthError("Permission denied. Please ensure the Google account has access to this folder.")
        raise UpstreamError(f"google drive api error: {r.status_code} {r.text[:200]}")

    @staticmethod
    def _to_item(f: dict) -> MediaItem:
        file_id = f.get("id") or ""
        thumbnail = f.get("thumbnailLink")
        if not thumbnail and file_id:
            thumbnail = f"https://drive.google.com/thumbnail?id={file_id}&sz=w400-h400"
        display = f.get("webContentLink") or f.get("webViewLink") or ""
        return MediaItem(
            id=file_id,
            display_url=display,
            thumbnail_url=thumbnail or display,
            mime_type=f.get("mimeType") or DEFAULT_MIME_TYPE,
            filename=f.get("name") or "",
        )

    async def list_images(
        self,
        ref: Optional[str] = None,
        page_token: Optional[str] = None,
        page_size: int = 50,
    ) -> MediaPage:
        if not ref:
            raise ValidationError("Google Drive folder ID is required")

        folder = ref.replace("\\", "\\\\").replace("'", "\\'")
        params = {
            "q": f"'{folder}' in parents and mimeType contains 'image/' and trashed=false",
            "pageSize": max(1, min(page_size, 1000)),
            "fields": f"nextPageToken,files({FILE_FIELDS})",
            "pageToken": page_token,
        }
        params = {k: v for k, v in params.items() if v is not None}

        r = await self._get(DRIVE_FILES_URL, params=params)
        self._check(r, "Folder not found. Please check the folder ID.")

        data = read_json(r)
        files = dict_entries(data.get("files"))
        log.info("listed drive folder", extra={"folder_id": ref, "count": len(files),
                                               "has_next": bool(data.get("nextPageToken"))})
        return MediaPage(
            items=[self._to_item(f) for f in files],
            next_page_token=data.get("nextPageToken") or None,
        )

    async def get_file(self, file_id: str) -> MediaItem:
        if not file_id:
            raise ValidationError("File ID is required")
        r = await self._get(f"{DRIVE_FILES_URL}/{file_id}", params={"fields": FILE_FIELDS})
        self._check(r, f"File not found: {file_id}")
        return self._to_item(read_json(r))

    async def get_folder_name(self, ref: str) -> str:
        if not ref:
            raise ValidationError("Folder ID is required")
        r = await self._get(f"{DRIVE_FILES_URL}/{ref}", params={"fields": "name"})
        self._check(r, "Folder not found. Please check the folder ID and ensure it is accessible.")
        return read_json(r).get("name") or "Unknown Folder"

    async def fetch_content(self, item: MediaItem, timeout: float) -> Tuple[bytes, str]:
        r = await self._get(f"{DRIVE_FILES_URL}/{item.id}", params={"alt": "media"}, timeout=timeout)
        self._check(r, f"File not found: {item.id}")
        return r.content, r.headers.get("content-type") or item.mime_type

    async def fetch_thumbnail(self, file_id: str, thumbnail_url: str | None = None,
                              size: str = "220") -> Tuple[bytes, str]:
        """
        Thumbnail bytes for the image proxy. Google CDN links are often public, so
        they are tried anonymously before falling back to the bearer token. If the
        first URL fails, the file's current thumbnailLink is tried.
        """
        if thumbnail_url and thumbnail_url.startswith("http"):
            url = thumbnail_url
        else:
            url = f"https://drive.google.com/thumbnail?id={file_id}&sz=w{size}"

        r = await self._get_image(url)
        if r.status_code < 400:
            return r.content, r.headers.get("content-type") or DEFAULT_MIME_TYPE

        log.warning("thumbnail fetch failed, trying thumbnailLink",
                    extra={"file_id": file_id, "status": r.status_code})
        meta = await self._get(f"{DRIVE_FILES_URL}/{file_id}", params={"fields": "thumbnailLink"},
                               timeout=self._thumbnail_timeout)
        self._check(meta, f"File not found: {file_id}")
        link = read_json(meta).get("thumbnailLink")
        if not link:
            raise UpstreamError(f"Failed to fetch image: {r.status_code}")

        r = await self._get_image(link)
        if r.status_code >= 400:
            raise UpstreamError(f"Failed to fetch image: {r.status_code}")
        return r.content, r.headers.get("content-type") or DEFAULT_MIME_TYPE

    async def _get_image(self, url: str) -> httpx.Response:
        if _is_google_cdn(url):
            try:
                r = await self._get(url, timeout=self._thumbnail_timeout, auth=False)
                if r.status_code < 400:
                    return r
            except UpstreamError:
                log.warning("anonymous CDN fetch failed, retrying with auth", extra={"file_url_host": httpx.URL(url).host})
        return await self._get(url, timeout=self._thumbnail_timeout)

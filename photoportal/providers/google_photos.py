"""
Google Photos Picker adapter.

The Picker API has no folders: a visitor picks photos in a Google-hosted dialog
bound to a *session*, and the picked items are then listed through that session.
The session id therefore plays the role of the library reference everywhere
else uses a folder id.
"""
from __future__ import annotations
import asyncio
import logging
import re
from typing import Awaitable, Callable, Dict, Optional, Set, Tuple

import httpx

from photoportal.core.config import settings
from photoportal.core.errors import (
    AuthError, NotFoundError, RequestTimeoutError, UpstreamError, ValidationError,
)
from photoportal.providers.base import DEFAULT_MIME_TYPE, MediaItem, MediaPage, Provider, fallback_filename
from photoportal.providers.http import dict_entries, read_json, send

log = logging.getLogger(__name__)

PICKER_API = "https://photospicker.googleapis.com/v1"
DEFAULT_POLL_INTERVAL = 2.0
MAX_POLL_INTERVAL = 10.0

# Readiness gate shared by every adapter instance: one in-flight poll per session,
# and sessions seen ready are remembered for the life of the process.
_ready_sessions: Set[str] = set()
_pending_polls: Dict[str, asyncio.Task] = {}


def _parse_duration(value: Optional[str], default: float) -> float:
    # protobuf Duration JSON, e.g. "5s" or "1.5s"
    m = re.fullmatch(r"(\d+(?:\.\d+)?)s", value or "")
    return float(m.group(1)) if m else default


def _is_picker_media_url(url: str) -> bool:
    host = httpx.URL(url).host or ""
    return url.startswith("https://") and host.endswith(".googleusercontent.com")


class GooglePhotosPickerAdapter:
    provider = Provider.GOOGLE_PHOTOS

    def __init__(
        self,
        token_source: Callable[[], Awaitable[str]],
        *,
        session_id: Optional[str] = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._token_source = token_source
        self._session_id = session_id
        self._timeout = timeout or settings.API_TIMEOUT_SECONDS
        self._transport = transport

    async def _request(self, method: str, url: str, *, timeout: float | None = None, **kwargs) -> httpx.Response:
        headers = {"Authorization": f"Bearer {await self._token_source()}"}
        return await send(method, url, headers=headers, timeout=timeout or self._timeout,
                          transport=self._transport, **kwargs)

    def _check(self, r: httpx.Response, not_found: str) -> None:
        if r.status_code < 400:
            return
        log.warning("photos picker api error", extra={"status": r.status_code, "body": r.text[:200]})
        if r.status_code == 404:
            raise NotFoundError(not_found)
        if r.status_code in (401, 403):
            raise AuthError("Google Photos rejected the access token; sign in with Google Photos again")
        if r.status_code == 400 and "FAILED_PRECONDITION" in r.text:
            raise ValidationError("No photos have been picked in this session yet")
        raise UpstreamError(f"photos picker api error: {r.status_code} {r.text[:200]}")

    @staticmethod
    def _to_item(m: dict) -> MediaItem:
        media_file = m.get("mediaFile") or {}
        item_id = m.get("id") or ""
        base_url = media_file.get("baseUrl") or ""
        mime_type = media_file.get("mimeType") or DEFAULT_MIME_TYPE
        return MediaItem(
            id=item_id,
            display_url=base_url,
            thumbnail_url=f"{base_url}=w400-h400" if base_url else "",
            mime_type=mime_type,
            filename=media_file.get("filename") or fallback_filename(item_id, mime_type),
        )

    @staticmethod
    def _is_photo(m: dict) -> bool:
        kind = m.get("type")
        mime_type = (m.get("mediaFile") or {}).get("mimeType") or ""
        if kind:
            return kind == "PHOTO"
        return mime_type.startswith("image/")

    # ---- sessions ------------------------------------------------------------
    async def create_session(self) -> dict:
        r = await self._request("POST", f"{PICKER_API}/sessions", json={})
        self._check(r, "Picker session could not be created")
        data = read_json(r)
        log.info("picker session created", extra={"session_id": data.get("id")})
        return data

    async def get_session(self, session_id: str) -> dict:
        r = await self._request("GET", f"{PICKER_API}/sessions/{session_id}")
        self._check(r, f"Picker session not found: {session_id}")
        return read_json(r)

    async def _poll_until_set(self, session_id: str) -> None:
        while True:
            session = await self.get_session(session_id)
            if session.get("mediaItemsSet"):
                _ready_sessions.add(session_id)
                return
            interval = _parse_duration((session.get("pollingConfig") or {}).get("pollInterval"),
                                       DEFAULT_POLL_INTERVAL)
            await asyncio.sleep(min(interval, MAX_POLL_INTERVAL))

    async def _bounded_poll(self, session_id: str, timeout: float) -> None:
        try:
            await asyncio.wait_for(self._poll_until_set(session_id), timeout)
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError(f"picker session {session_id} not ready after {timeout:g}s") from e

    async def wait_until_ready(self, session_id: str, timeout: float | None = None) -> bool:
        """
        Block until the visitor has finished picking in `session_id`.
        All concurrent callers for a session share one poll; it resolves once and
        the result is cached. Raises RequestTimeoutError after `timeout` seconds.
        """
        if session_id in _ready_sessions:
            return True

        loop = asyncio.get_running_loop()
        task = _pending_polls.get(session_id)
        if task is None or task.done() or task.get_loop() is not loop:
            task = loop.create_task(
                self._bounded_poll(session_id, timeout or settings.PICKER_READY_TIMEOUT_SECONDS))
            _pending_polls[session_id] = task
            task.add_done_callback(lambda t: _pending_polls.pop(session_id, None)
                                   if _pending_polls.get(session_id) is t else None)
        await asyncio.shield(task)
        return True

    # ---- capability surface --------------------------------------------------
    async def list_images(
        self,
        ref: Optional[str] = None,
        page_token: Optional[str] = None,
        page_size: int = 50,
    ) -> MediaPage:
        session_id = ref or self._session_id
        if not session_id:
            raise ValidationError("A Photos Picker session ID is required")

        params = {
            "sessionId": session_id,
            "pageSize": max(1, min(page_size, 100)),
            "pageToken": page_token,
        }
        params = {k: v for k, v in params.items() if v is not None}

        r = await self._request("GET", f"{PICKER_API}/mediaItems", params=params)
        self._check(r, f"Picker session not found: {session_id}")

        data = read_json(r)
        picked = dict_entries(data.get("mediaItems"))
        items = [self._to_item(m) for m in picked if self._is_photo(m)]
        log.info("listed picker session", extra={"session_id": session_id, "count": len(items),
                                                 "skipped": len(picked) - len(items)})
        return MediaPage(items=items, next_page_token=data.get("nextPageToken") or None)

    async def get_file(self, file_id: str) -> MediaItem:
        if not file_id:
            raise ValidationError("File ID is required")
        if not self._session_id:
            raise NotFoundError(f"File not found: {file_id} (picked photos are only reachable through their session)")

        page_token = None
        while True:
            page = await self.list_images(self._session_id, page_token, page_size=100)
            for item in page.items:
                if item.id == file_id:
                    return item
            if not page.next_page_token:
                raise NotFoundError(f"File not found: {file_id}")
            page_token = page.next_page_token

    async def get_folder_name(self, ref: str) -> str:
        return ref

    async def fetch_content(self, item: MediaItem, timeout: float) -> Tuple[bytes, str]:
        if not item.display_url:
            raise NotFoundError(f"No download URL for photo {item.id}")
        r = await self._request("GET", f"{item.display_url}=d", timeout=timeout)
        self._check(r, f"File not found: {item.id}")
        return r.content, r.headers.get("content-type") or item.mime_type

    async def fetch_thumbnail(self, url: str) -> Tuple[bytes, str]:
        # bearer token only ever goes to Google's media host
        if not _is_picker_media_url(url):
            raise ValidationError("thumbnail URL must point at googleusercontent.com")
        r = await self._request("GET", url, timeout=settings.THUMBNAIL_TIMEOUT_SECONDS)
        self._check(r, "Image not found")
        return r.content, r.headers.get("content-type") or DEFAULT_MIME_TYPE

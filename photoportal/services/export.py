from __future__ import annotations
import asyncio
import io
import logging
import zipfile
from typing import Dict, List, Sequence, Tuple

from photoportal.core.config import settings
from photoportal.core.errors import NotFoundError, PortalError
from photoportal.providers.base import MediaItem, PhotoSource, fallback_filename

log = logging.getLogger(__name__)


def placeholder_item(photo_id: str) -> MediaItem:
    return MediaItem(id=photo_id, display_url="", thumbnail_url="", mime_type="",
                     filename=f"photo_{photo_id}.jpg")


class ExportService:
    """Turns a list of photo ids into displayable items or downloadable bytes."""

    def __init__(self, adapter: PhotoSource, *, download_timeout: float | None = None):
        self._adapter = adapter
        self._download_timeout = download_timeout or settings.DOWNLOAD_TIMEOUT_SECONDS

    async def _resolve_one(self, photo_id: str) -> MediaItem:
        try:
            return await self._adapter.get_file(photo_id)
        except PortalError as e:
            log.warning("photo lookup failed", extra={"photo_id": photo_id, "error": str(e)})
            return placeholder_item(photo_id)

    async def resolve_many(self, photo_ids: Sequence[str]) -> List[MediaItem]:
        """Concurrent lookups; same order and length as `photo_ids`, failures as placeholders."""
        return list(await asyncio.gather(*(self._resolve_one(pid) for pid in photo_ids)))

    async def _fetch(self, photo_id: str) -> Tuple[bytes, str, str]:
        item = await self._adapter.get_file(photo_id)
        content, content_type = await self._adapter.fetch_content(item, self._download_timeout)
        filename = item.filename or fallback_filename(photo_id, item.mime_type or content_type)
        return content, content_type, filename

    async def export_archive(self, photo_ids: Sequence[str]) -> bytes:
        """
        ZIP of every photo that could be fetched. Photos are fetched one at a
        time; a failure is logged and skipped. Entries are keyed by filename, so
        a later photo with the same name replaces an earlier one.

        Raises NotFoundError when nothing at all could be retrieved.
        """
        entries: Dict[str, bytes] = {}
        failed = 0
        for photo_id in photo_ids:
            try:
                content, _, filename = await self._fetch(photo_id)
            except PortalError as e:
                failed += 1
                log.warning("skipping photo in archive", extra={"photo_id": photo_id, "error": str(e)})
                continue
            entries[filename] = content

        if not entries:
            raise NotFoundError("no photos could be retrieved")

        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for filename, content in entries.items():
                zf.writestr(filename, content)

        log.info("built photo archive", extra={"requested": len(photo_ids), "files": len(entries),
                                               "failed": failed})
        return buf.getvalue()

    async def download_one(self, photo_id: str) -> Tuple[bytes, str, str]:
        """(content, content_type, filename) for a single photo; errors propagate."""
        return await self._fetch(photo_id)

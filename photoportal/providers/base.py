"""
Provider-agnostic types shared by the photo source adapters.

Each adapter implements the same capability surface on its own; nothing here
is a base class to inherit from.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Protocol, Tuple


class Provider(str, Enum):
    GOOGLE_DRIVE = "googledrive"
    GOOGLE_PHOTOS = "googlephotos"
    FILESTACK = "filestack"
    GUMLET = "gumlet"


# Providers whose adapters authenticate with a stored OAuth credential.
OAUTH_PROVIDERS = frozenset({Provider.GOOGLE_DRIVE, Provider.GOOGLE_PHOTOS})

DEFAULT_MIME_TYPE = "image/jpeg"

MIME_TO_EXT = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}


def extension_for(mime_type: Optional[str]) -> str:
    return MIME_TO_EXT.get((mime_type or "").lower(), "jpg")


def fallback_filename(item_id: str, mime_type: Optional[str] = None) -> str:
    return f"photo_{item_id}.{extension_for(mime_type)}"


@dataclass
class MediaItem:
    id: str
    display_url: str
    thumbnail_url: str
    mime_type: str
    filename: str


@dataclass
class MediaPage:
    items: List[MediaItem] = field(default_factory=list)
    next_page_token: Optional[str] = None


class PhotoSource(Protocol):
    provider: Provider

    async def list_images(
        self,
        ref: Optional[str] = None,
        page_token: Optional[str] = None,
        page_size: int = 50,
    ) -> MediaPage: ...

    async def get_file(self, file_id: str) -> MediaItem: ...

    async def get_folder_name(self, ref: str) -> str: ...

    async def fetch_content(self, item: MediaItem, timeout: float) -> Tuple[bytes, str]: ...


def first_of(data: dict, *keys, default=None):
    """First truthy value among `keys`; the asset hosts name the same field several ways."""
    for key in keys:
        value = data.get(key)
        if value:
            return value
    return default

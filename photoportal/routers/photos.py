from __future__ import annotations
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from photoportal.core.config import settings
from photoportal.core.errors import PortalError, ValidationError
from photoportal.providers.base import MediaItem, Provider
from photoportal.providers.drive_utils import extract_folder_id_from_url, generate_folder_link, is_valid_folder_id
from photoportal.providers.registry import ProviderRegistry, get_registry, parse_provider
from photoportal.routers.common import http_error, proxied_thumbnail

log = logging.getLogger(__name__)

router = APIRouter(tags=["photos"])


class PhotoOut(BaseModel):
    id: str
    baseUrl: str
    thumbnailUrl: str
    originalThumbnailUrl: Optional[str] = None
    mimeType: str
    filename: str


class PhotosResp(BaseModel):
    mediaItems: List[PhotoOut]
    nextPageToken: Optional[str] = None


class FolderInfoResp(BaseModel):
    folderId: str
    folderName: str
    folderLink: str


def _present(provider: Provider, item: MediaItem) -> PhotoOut:
    proxied = proxied_thumbnail(provider, item)
    return PhotoOut(
        id=item.id,
        baseUrl=item.display_url,
        thumbnailUrl=proxied or item.thumbnail_url,
        originalThumbnailUrl=item.thumbnail_url if proxied else None,
        mimeType=item.mime_type,
        filename=item.filename,
    )


def _drive_folder(folder_id: Optional[str]) -> str:
    if folder_id:
        extracted = extract_folder_id_from_url(folder_id)
        if not extracted:
            raise ValidationError("Invalid folder ID or URL")
        return extracted
    if settings.GOOGLE_DRIVE_FOLDER_ID:
        return settings.GOOGLE_DRIVE_FOLDER_ID
    raise ValidationError("Folder ID is required. Provide folderId or set GOOGLE_DRIVE_FOLDER_ID.")


@router.get("/photos", response_model=PhotosResp, response_model_exclude_none=True,
            summary="List one page of images from the selected provider")
async def list_photos(
    provider: Optional[str] = Query(None),
    page_token: Optional[str] = Query(None, alias="pageToken"),
    page_size: int = Query(50, alias="pageSize", ge=1, le=1000),
    folder_id: Optional[str] = Query(None, alias="folderId"),
    registry: ProviderRegistry = Depends(get_registry),
):
    try:
        prov = parse_provider(provider)
        ref = _drive_folder(folder_id) if prov is Provider.GOOGLE_DRIVE else folder_id
        adapter = registry.get(prov, session_id=ref)
        page = await adapter.list_images(ref, page_token, page_size)
    except PortalError as e:
        raise http_error(e)

    return PhotosResp(
        mediaItems=[_present(prov, item) for item in page.items],
        nextPageToken=page.next_page_token,
    )


@router.get("/google-drive/folder-info", response_model=FolderInfoResp, summary="Drive folder name and link")
async def drive_folder_info(
    folder_id: Optional[str] = Query(None, alias="folderId"),
    registry: ProviderRegistry = Depends(get_registry),
):
    if not folder_id:
        raise HTTPException(status_code=400, detail="folderId parameter is required")

    extracted = extract_folder_id_from_url(folder_id)
    if not extracted or not is_valid_folder_id(extracted):
        raise HTTPException(status_code=400, detail="Invalid folder ID or URL")

    try:
        name = await registry.get(Provider.GOOGLE_DRIVE).get_folder_name(extracted)
    except PortalError as e:
        raise http_error(e)

    return FolderInfoResp(folderId=extracted, folderName=name, folderLink=generate_folder_link(extracted))


@router.get("/google-drive/image", summary="Same-origin proxy for Drive thumbnails")
async def drive_image(
    file_id: Optional[str] = Query(None, alias="fileId"),
    thumbnail_url: Optional[str] = Query(None, alias="thumbnailUrl"),
    size: str = Query("220"),
    registry: ProviderRegistry = Depends(get_registry),
):
    if not file_id:
        raise HTTPException(status_code=400, detail="fileId parameter is required")

    try:
        adapter = registry.get(Provider.GOOGLE_DRIVE)
        content, content_type = await adapter.fetch_thumbnail(file_id, thumbnail_url, size)
    except PortalError as e:
        log.warning("drive image proxy failed", extra={"file_id": file_id, "error": str(e)})
        # the client falls back to originalThumbnailUrl
        return JSONResponse(status_code=500, content={"error": str(e), "useOriginalUrl": True})

    return Response(content=content, media_type=content_type,
                    headers={"Cache-Control": "public, max-age=3600"})

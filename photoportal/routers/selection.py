from __future__ import annotations
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from photoportal.core.errors import PortalError
from photoportal.db.session import get_db
from photoportal.providers.base import Provider
from photoportal.providers.drive_utils import extract_folder_id_from_url
from photoportal.providers.registry import ProviderRegistry, get_registry, parse_provider
from photoportal.routers.common import http_error
from photoportal.security.ratelimit import client_ip
from photoportal.services import submissions

log = logging.getLogger(__name__)

router = APIRouter(tags=["selection"])


class SelectionReq(BaseModel):
    # optional here so an empty or missing list is a 400 from the store, not a 422
    photoIds: Optional[List[str]] = None
    folderId: Optional[str] = None
    folderName: Optional[str] = None
    provider: Optional[str] = None


class SelectionResp(BaseModel):
    submissionId: str


async def _resolve_folder_name(registry: ProviderRegistry, provider: Provider, folder_id: str) -> Optional[str]:
    try:
        return await registry.get(provider, session_id=folder_id).get_folder_name(folder_id)
    except PortalError as e:
        log.warning("folder name lookup failed; storing submission without it",
                    extra={"folder_id": folder_id, "error": str(e)})
        return None


@router.post("/selection", response_model=SelectionResp, summary="Record a visitor's photo selection")
async def submit_selection(
    payload: SelectionReq,
    request: Request,
    db: Session = Depends(get_db),
    registry: ProviderRegistry = Depends(get_registry),
):
    try:
        provider = parse_provider(payload.provider)
        folder_id = payload.folderId
        if folder_id and provider is Provider.GOOGLE_DRIVE:
            folder_id = extract_folder_id_from_url(folder_id) or folder_id

        folder_name = payload.folderName
        if payload.photoIds and folder_id and not folder_name:
            folder_name = await _resolve_folder_name(registry, provider, folder_id)

        submission_id = submissions.create(
            db,
            payload.photoIds or [],
            folder_id=folder_id,
            folder_name=folder_name,
            provider=provider.value,
            metadata={
                "ip_address": client_ip(request),
                "user_agent": request.headers.get("user-agent") or "unknown",
            },
        )
    except PortalError as e:
        raise http_error(e)

    return SelectionResp(submissionId=submission_id)

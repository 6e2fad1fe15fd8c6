from __future__ import annotations
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from photoportal.core.config import settings
from photoportal.core.errors import PortalError, RequestTimeoutError
from photoportal.db.session import get_db
from photoportal.providers.base import Provider
from photoportal.providers.registry import ProviderRegistry, get_registry
from photoportal.routers.common import http_error
from photoportal.security.admin import require_admin
from photoportal.services.access_tokens import get_access_token

log = logging.getLogger(__name__)

router = APIRouter(prefix="/google-photos-picker", tags=["google-photos-picker"])


class SessionResp(BaseModel):
    sessionId: str
    pickerUri: Optional[str] = None


class SessionStateResp(BaseModel):
    sessionId: str
    ready: bool


class PickerTokenResp(BaseModel):
    accessToken: str
    developerKey: str


@router.post("/sessions", response_model=SessionResp, summary="Start a Photos Picker session")
async def create_session(registry: ProviderRegistry = Depends(get_registry)):
    try:
        data = await registry.get(Provider.GOOGLE_PHOTOS).create_session()
    except PortalError as e:
        raise http_error(e)
    if not data.get("id"):
        raise HTTPException(status_code=500, detail="picker session response carried no id")
    return SessionResp(sessionId=data["id"], pickerUri=data.get("pickerUri"))


@router.get("/sessions/{session_id}", response_model=SessionStateResp,
            summary="Whether the visitor has finished picking")
async def session_state(
    session_id: str,
    wait: bool = Query(False, description="block until ready, bounded by PICKER_READY_TIMEOUT_SECONDS"),
    registry: ProviderRegistry = Depends(get_registry),
):
    adapter = registry.get(Provider.GOOGLE_PHOTOS, session_id=session_id)
    try:
        if wait:
            ready = await adapter.wait_until_ready(session_id)
        else:
            ready = bool((await adapter.get_session(session_id)).get("mediaItemsSet"))
    except RequestTimeoutError:
        ready = False
    except PortalError as e:
        raise http_error(e)
    return SessionStateResp(sessionId=session_id, ready=ready)


@router.get("/image", summary="Proxy for Picker thumbnails, which need the bearer token")
async def picker_image(url: str = Query(..., min_length=1), registry: ProviderRegistry = Depends(get_registry)):
    try:
        content, content_type = await registry.get(Provider.GOOGLE_PHOTOS).fetch_thumbnail(url)
    except PortalError as e:
        log.warning("picker image proxy failed", extra={"error": str(e)})
        return JSONResponse(status_code=e.status_code, content={"error": str(e), "useOriginalUrl": True})
    return Response(content=content, media_type=content_type, headers={"Cache-Control": "private, max-age=3600"})


@router.get("/token", response_model=PickerTokenResp, dependencies=[Depends(require_admin)],
            summary="Access token and developer key for the client-side Picker")
async def picker_token(db: Session = Depends(get_db)):
    try:
        access = await get_access_token(db, Provider.GOOGLE_PHOTOS.value)
    except PortalError as e:
        raise http_error(e)
    return PickerTokenResp(accessToken=access, developerKey=settings.GOOGLE_API_KEY or settings.GOOGLE_CLIENT_ID)

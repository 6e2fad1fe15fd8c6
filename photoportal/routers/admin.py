from __future__ import annotations
import hmac
import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from photoportal.core.config import settings
from photoportal.core.errors import PortalError
from photoportal.db.models import Submission
from photoportal.db.session import get_db
from photoportal.providers.registry import ProviderRegistry, get_registry, parse_provider
from photoportal.routers.common import http_error, proxied_thumbnail, split_ids
from photoportal.security.admin import current_admin, require_admin
from photoportal.security.ratelimit import client_ip, limit_login_by_ip
from photoportal.services import submissions
from photoportal.services.export import ExportService
from photoportal.services.signing import create_admin_session
from photoportal.services.tokens import clear_all_tokens

log = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class LoginReq(BaseModel):
    username: str
    password: str


class MeResp(BaseModel):
    authenticated: bool
    username: Optional[str] = None


class SubmissionSummary(BaseModel):
    submissionId: str
    selectedPhotoIds: List[str]
    submittedAt: str
    photoCount: int
    folderId: Optional[str] = None
    folderName: Optional[str] = None
    provider: str


class AdminPhoto(BaseModel):
    id: str
    thumbnailUrl: str
    filename: str


class ClearTokensResp(BaseModel):
    success: bool
    deletedCount: int


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _summary(row: Submission) -> SubmissionSummary:
    return SubmissionSummary(
        submissionId=row.submission_id,
        selectedPhotoIds=row.selected_photo_ids,
        submittedAt=_as_utc(row.submitted_at).isoformat(),
        photoCount=row.photo_count,
        folderId=row.folder_id,
        folderName=row.folder_name,
        provider=row.provider,
    )


def _same(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def _attachment(filename: str) -> dict:
    safe = filename.replace('"', "").replace("\r", "").replace("\n", "")
    return {"Content-Disposition": f'attachment; filename="{safe}"'}


# ---- session -----------------------------------------------------------------
@router.post("/login", response_model=MeResp, dependencies=[Depends(limit_login_by_ip)],
             summary="Exchange admin credentials for a session cookie")
def login(payload: LoginReq, request: Request, response: Response):
    if not settings.ADMIN_USERNAME or not settings.ADMIN_PASSWORD:
        raise HTTPException(status_code=500, detail="admin credentials are not configured")

    # evaluate both so timing does not reveal which one was wrong
    user_ok = _same(payload.username, settings.ADMIN_USERNAME)
    pass_ok = _same(payload.password, settings.ADMIN_PASSWORD)
    if not (user_ok and pass_ok):
        log.warning("admin login failed", extra={"client_ip": client_ip(request)})
        raise HTTPException(status_code=401, detail="invalid username or password")

    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=create_admin_session(payload.username),
        max_age=settings.SESSION_TTL_SECONDS,
        httponly=True,
        samesite="lax",
        secure=settings.ENV != "dev",
    )
    log.info("admin logged in", extra={"client_ip": client_ip(request)})
    return MeResp(authenticated=True, username=payload.username)


@router.post("/logout", response_model=MeResp, summary="Clear the admin session cookie")
def logout(response: Response):
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return MeResp(authenticated=False)


@router.get("/me", response_model=MeResp, summary="Current admin session, if any")
def me(request: Request):
    username = current_admin(request)
    return MeResp(authenticated=bool(username), username=username)


# ---- submissions -------------------------------------------------------------
@router.get("/submissions", response_model=List[SubmissionSummary], dependencies=[Depends(require_admin)],
            summary="Stored selections, newest first")
def list_submissions(
    date_from: Optional[str] = Query(None, alias="dateFrom"),
    date_to: Optional[str] = Query(None, alias="dateTo"),
    submission_id: Optional[str] = Query(None, alias="submissionId"),
    folder_id: Optional[str] = Query(None, alias="folderId"),
    db: Session = Depends(get_db),
):
    try:
        rows = submissions.query(db, date_from, date_to, submission_id, folder_id)
    except PortalError as e:
        raise http_error(e)
    return [_summary(r) for r in rows]


@router.get("/photos", response_model=List[AdminPhoto], dependencies=[Depends(require_admin)],
            summary="Thumbnails and filenames for a list of photo ids")
async def admin_photos(
    photo_ids: Optional[str] = Query(None, alias="photoIds"),
    provider: Optional[str] = Query(None),
    session_id: Optional[str] = Query(None, alias="sessionId"),
    registry: ProviderRegistry = Depends(get_registry),
):
    try:
        ids = split_ids(photo_ids)
        prov = parse_provider(provider)
        items = await ExportService(registry.get(prov, session_id=session_id)).resolve_many(ids)
    except PortalError as e:
        raise http_error(e)

    return [
        AdminPhoto(
            id=item.id,
            thumbnailUrl=(proxied_thumbnail(prov, item) or item.thumbnail_url) if item.thumbnail_url else "",
            filename=item.filename,
        )
        for item in items
    ]


@router.get("/download", dependencies=[Depends(require_admin)],
            summary="One photo as a file, or several as a ZIP archive")
async def download(
    photo_ids: Optional[str] = Query(None, alias="photoIds"),
    submission_id: Optional[str] = Query(None, alias="submissionId"),
    provider: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    registry: ProviderRegistry = Depends(get_registry),
):
    if not photo_ids and not submission_id:
        raise HTTPException(status_code=400, detail="Either photoIds or submissionId parameter is required")

    try:
        if submission_id:
            row = submissions.get(db, submission_id)
            if row is None:
                raise HTTPException(status_code=404, detail="Submission not found")
            ids = row.selected_photo_ids
            prov = parse_provider(row.provider or provider)
            # picker submissions keep their session id as the folder reference
            service = ExportService(registry.get(prov, session_id=row.folder_id))
            archive = await service.export_archive(ids)
            log.info("submission archive served", extra={"submission_id": submission_id, "photos": len(ids)})
            return Response(content=archive, media_type="application/zip",
                            headers=_attachment(f"submission_{submission_id}_photos.zip"))

        ids = split_ids(photo_ids)
        service = ExportService(registry.get(parse_provider(provider)))
        if len(ids) == 1:
            content, content_type, filename = await service.download_one(ids[0])
            return Response(content=content, media_type=content_type, headers=_attachment(filename))

        archive = await service.export_archive(ids)
        return Response(content=archive, media_type="application/zip", headers=_attachment("photos.zip"))
    except PortalError as e:
        raise http_error(e)


# ---- credentials -------------------------------------------------------------
@router.post("/clear-tokens", response_model=ClearTokensResp, dependencies=[Depends(require_admin)],
             summary="Delete every stored OAuth credential")
def clear_tokens(db: Session = Depends(get_db)):
    deleted = clear_all_tokens(db)
    return ClearTokensResp(success=True, deletedCount=deleted)

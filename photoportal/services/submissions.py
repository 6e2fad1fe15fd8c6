from __future__ import annotations
import json
import logging
import secrets
import string
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from photoportal.core.errors import StorageError, ValidationError
from photoportal.db.models import Submission

log = logging.getLogger(__name__)

MAX_RESULTS = 100
_ID_ATTEMPTS = 3
_BASE36 = string.digits + string.ascii_lowercase


def new_submission_id() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"sub_{int(time.time() * 1000)}_{suffix}"


def _parse_date(value: Optional[str], field: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date") from None
    return parsed.astimezone(timezone.utc) if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def create(
    db: Session,
    selected_photo_ids: Sequence[str],
    folder_id: Optional[str] = None,
    folder_name: Optional[str] = None,
    provider: str = "googledrive",
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    """Persist a visitor's selection and return its submission id."""
    ids = [str(i) for i in (selected_photo_ids or []) if i]
    if not ids:
        raise ValidationError("selectedPhotoIds must be a non-empty list")

    metadata = metadata or {}
    for attempt in range(_ID_ATTEMPTS):
        row = Submission(
            submission_id=new_submission_id(),
            selected_photo_ids_json=json.dumps(ids),
            provider=provider,
            folder_id=folder_id or None,
            folder_name=folder_name or None,
            ip_address=metadata.get("ip_address"),
            user_agent=metadata.get("user_agent"),
        )
        db.add(row)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            log.warning("submission id collision, retrying", extra={"attempt": attempt + 1})
            continue
        log.info("submission stored", extra={"submission_id": row.submission_id, "photos": len(ids),
                                             "provider": provider, "folder_id": folder_id})
        return row.submission_id

    raise StorageError("could not allocate a unique submission id")


def query(
    db: Session,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    submission_id: Optional[str] = None,
    folder_id: Optional[str] = None,
) -> List[Submission]:
    """Newest first, at most MAX_RESULTS. A bare `date_to` day is inclusive."""
    q = db.query(Submission)

    start = _parse_date(date_from, "dateFrom")
    if start:
        q = q.filter(Submission.submitted_at >= start)

    end = _parse_date(date_to, "dateTo")
    if end:
        if len(date_to) == 10:  # YYYY-MM-DD
            end = end + timedelta(days=1)
        q = q.filter(Submission.submitted_at < end)

    if submission_id:
        q = q.filter(Submission.submission_id == submission_id)
    if folder_id:
        q = q.filter(Submission.folder_id == folder_id)

    return q.order_by(Submission.submitted_at.desc(), Submission.id.desc()).limit(MAX_RESULTS).all()


def get(db: Session, submission_id: str) -> Optional[Submission]:
    return db.query(Submission).filter(Submission.submission_id == submission_id).one_or_none()

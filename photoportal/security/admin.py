from __future__ import annotations
import logging
from typing import Optional
from fastapi import HTTPException, Request

from photoportal.core.config import settings
from photoportal.services.signing import SignatureError, verify_admin_session

log = logging.getLogger(__name__)


def current_admin(request: Request) -> Optional[str]:
    """Username from a valid session cookie, else None."""
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token:
        return None
    try:
        return verify_admin_session(token)
    except SignatureError as e:
        log.info("rejected admin session", extra={"reason": str(e)})
        return None


async def require_admin(request: Request) -> str:
    username = current_admin(request)
    if not username:
        # same answer for missing, expired and forged cookies
        raise HTTPException(status_code=401, detail="admin login required")
    return username

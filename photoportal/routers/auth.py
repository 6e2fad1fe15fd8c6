from __future__ import annotations
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from photoportal.core.errors import PortalError
from photoportal.db.session import get_db
from photoportal.providers.base import OAUTH_PROVIDERS, Provider
from photoportal.security.admin import require_admin
from photoportal.services.google_oauth import build_consent_url, exchange_code_for_tokens
from photoportal.services.signing import SignatureError, verify_state
from photoportal.services.tokens import get_token, upsert_tokens

log = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["oauth"])


class AuthURLResp(BaseModel):
    authUrl: str


class ConnectResp(BaseModel):
    connected: bool
    provider: str


def _oauth_provider(value: str) -> Provider:
    try:
        provider = Provider(value)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"unknown provider '{value}'") from None
    if provider not in OAUTH_PROVIDERS:
        raise HTTPException(status_code=400, detail=f"provider '{value}' does not use OAuth sign-in")
    return provider


@router.get("/{provider}/url", response_model=AuthURLResp, dependencies=[Depends(require_admin)],
            summary="Google consent URL for connecting a provider")
def auth_url(provider: str):
    prov = _oauth_provider(provider)
    try:
        return AuthURLResp(authUrl=build_consent_url(prov))
    except (RuntimeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{provider}/callback", response_model=ConnectResp,
            summary="OAuth callback: exchange the code and store the credential")
async def auth_callback(
    provider: str,
    code: str = Query(..., min_length=1),
    state: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    prov = _oauth_provider(provider)
    try:
        state_provider = verify_state(state)
    except SignatureError as e:
        raise HTTPException(status_code=400, detail=f"invalid state: {e}")
    if state_provider != prov.value:
        raise HTTPException(status_code=400, detail="invalid state: provider mismatch")

    try:
        token_data = await exchange_code_for_tokens(prov, code)
    except (RuntimeError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PortalError as e:
        raise HTTPException(status_code=400, detail=f"token exchange failed: {e}")

    access_token = token_data.get("access_token")
    if not access_token:
        raise HTTPException(status_code=400, detail="no access_token in response")

    refresh_token = token_data.get("refresh_token")  # absent on re-consent
    if not refresh_token and get_token(db, prov.value) is None:
        log.error("oauth callback without refresh token", extra={"provider": prov.value})
        raise HTTPException(
            status_code=400,
            detail="Google returned no refresh token. Remove the app's access from the Google account and connect again.",
        )

    try:
        upsert_tokens(
            db,
            provider=prov.value,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=token_data["expires_at"],
        )
    except PortalError as e:
        raise HTTPException(status_code=e.status_code, detail=f"failed to save tokens: {e}")

    return ConnectResp(connected=True, provider=prov.value)

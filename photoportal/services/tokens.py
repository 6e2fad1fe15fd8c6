from __future__ import annotations
import logging
from datetime import datetime
from sqlalchemy import delete
from sqlalchemy.orm import Session

from photoportal.core.errors import ValidationError
from photoportal.db.models import StoredToken
from photoportal.providers.base import OAUTH_PROVIDERS, Provider
from photoportal.services.crypto import encrypt_str, decrypt_str

log = logging.getLogger(__name__)


def _check_provider(provider: str) -> str:
    try:
        prov = Provider(provider)
    except ValueError:
        raise ValidationError(f"unknown provider '{provider}'") from None
    if prov not in OAUTH_PROVIDERS:
        raise ValidationError(f"provider '{provider}' does not use OAuth tokens")
    return prov.value


def get_token(db: Session, provider: str) -> StoredToken | None:
    provider = _check_provider(provider)
    return db.query(StoredToken).filter(StoredToken.provider == provider).one_or_none()


def upsert_tokens(
    db: Session,
    *,
    provider: str,
    access_token: str,
    refresh_token: str | None,
    expires_at: datetime,
) -> StoredToken:
    """
    Create or update the single row for `provider`.
    A missing `refresh_token` keeps the stored one; Google omits it on most refreshes.
    """
    provider = _check_provider(provider)
    row = db.query(StoredToken).filter(StoredToken.provider == provider).one_or_none()
    if row is None:
        if not refresh_token:
            raise ValidationError(f"no refresh token available for {provider}; re-consent is required")
        row = StoredToken(
            provider=provider,
            access_token_enc=encrypt_str(access_token),
            refresh_token_enc=encrypt_str(refresh_token),
            expires_at=expires_at,
        )
        db.add(row)
    else:
        row.access_token_enc = encrypt_str(access_token)
        if refresh_token:
            row.refresh_token_enc = encrypt_str(refresh_token)
        row.expires_at = expires_at

    db.commit()
    db.refresh(row)
    log.info("stored oauth token", extra={"provider": provider, "rotated_refresh": bool(refresh_token)})
    return row


def read_tokens(row: StoredToken) -> tuple[str | None, str | None]:
    """(access_token, refresh_token), decrypted."""
    return decrypt_str(row.access_token_enc), decrypt_str(row.refresh_token_enc)


def clear_all_tokens(db: Session) -> int:
    """Delete every stored credential. Returns the number of rows removed."""
    result = db.execute(delete(StoredToken))
    db.commit()
    log.warning("cleared all oauth tokens", extra={"deleted": result.rowcount})
    return result.rowcount or 0

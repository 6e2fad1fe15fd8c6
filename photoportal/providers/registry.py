from __future__ import annotations
from typing import Optional

import httpx
from fastapi import Depends
from sqlalchemy.orm import Session

from photoportal.core.config import settings
from photoportal.core.errors import ValidationError
from photoportal.db.session import get_db
from photoportal.providers.base import PhotoSource, Provider
from photoportal.providers.filestack import FilestackAdapter
from photoportal.providers.google_drive import GoogleDriveAdapter
from photoportal.providers.google_photos import GooglePhotosPickerAdapter
from photoportal.providers.gumlet import GumletAdapter
from photoportal.services.access_tokens import token_source


def parse_provider(value: Optional[str]) -> Provider:
    """Provider from a request value; empty means the configured default."""
    try:
        return Provider(value or settings.DEFAULT_PROVIDER)
    except ValueError:
        allowed = ", ".join(p.value for p in Provider)
        raise ValidationError(f"unknown provider '{value}' (expected one of: {allowed})") from None


class ProviderRegistry:
    """Builds request-scoped adapters; OAuth-backed ones read tokens through `db`."""

    def __init__(self, db: Session, transport: httpx.AsyncBaseTransport | None = None):
        self._db = db
        self._transport = transport

    def get(self, provider: Provider | str | None, session_id: Optional[str] = None) -> PhotoSource:
        provider = provider if isinstance(provider, Provider) else parse_provider(provider)

        if provider is Provider.GOOGLE_DRIVE:
            return GoogleDriveAdapter(token_source(self._db, provider.value), transport=self._transport)
        if provider is Provider.GOOGLE_PHOTOS:
            return GooglePhotosPickerAdapter(token_source(self._db, provider.value),
                                             session_id=session_id, transport=self._transport)
        if provider is Provider.FILESTACK:
            return FilestackAdapter(transport=self._transport)
        return GumletAdapter(transport=self._transport)


def get_registry(db: Session = Depends(get_db)) -> ProviderRegistry:
    return ProviderRegistry(db)

from __future__ import annotations
import json
from datetime import datetime, timezone
from sqlalchemy import Integer, String, DateTime, Text, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column
from .session import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoredToken(Base):
    """One OAuth credential per provider; the unique constraint is the invariant."""

    __tablename__ = "stored_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    provider: Mapped[str] = mapped_column(String(32), nullable=False)

    # Fernet-encrypted
    access_token_enc: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token_enc: Mapped[str] = mapped_column(Text, nullable=False)

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("provider", name="uq_storedtoken_provider"),
    )


class Submission(Base):
    __tablename__ = "submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    submission_id: Mapped[str] = mapped_column(String(64), nullable=False)
    selected_photo_ids_json: Mapped[str] = mapped_column(Text, nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    provider: Mapped[str] = mapped_column(String(32), nullable=False, default="googledrive")
    folder_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    folder_name: Mapped[str | None] = mapped_column(String(512), nullable=True)

    ip_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("submission_id", name="uq_submission_id"),
        Index("ix_submission_folder", "folder_id"),
        Index("ix_submission_submitted_at", "submitted_at"),
    )

    @property
    def selected_photo_ids(self) -> list[str]:
        return json.loads(self.selected_photo_ids_json or "[]")

    @property
    def photo_count(self) -> int:
        return len(self.selected_photo_ids)

"""
Plakita Backend — Pet SQLAlchemy Model
========================================

What:  ORM model representing the `pets` table.
Why:   The pet profile shown on the public page when someone scans a tag.
Who:   Created/updated by the claim saga and the dashboard edit; deleted only
       together with unlinking its tag.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from plakita.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Pet(Base):
    """A pet profile owned by one user account."""

    __tablename__ = "pets"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    # One of: dog, cat, bird, rabbit, other
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    breed: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # ── Owner Contact ─────────────────────────────────────────────────────
    owner_name: Mapped[str] = mapped_column(String(100), nullable=False)
    # Email or phone, free text as entered on the form
    owner_contact: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    owner_phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # True once the pet has been linked to a tag through a completed claim
    qr_activated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (Index("idx_pets_user_id", "user_id"),)

    def __repr__(self) -> str:
        return f"<Pet(id={self.id}, name='{self.name}', user_id={self.user_id})>"

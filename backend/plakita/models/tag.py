"""
Plakita Backend — Tag SQLAlchemy Model
========================================

What:  ORM model representing the `tags` table.
Why:   A tag is the registered identity of a physical QR/NFC marker.
Who:   Queried by the lookup cascade, mutated by the claim saga, the dashboard
       unlink action, the admin create/delete actions and the integrity repair.

Lifecycle:
    1. Created unclaimed by an admin (activated=false, pet_id/user_id NULL)
    2. Claimed by a user: pet_id, user_id, activated=true, activated_at=now
    3. Unlinked from the dashboard: pet_id=NULL, activated=false, user_id=NULL
    4. Re-claimable after unlinking; deletable only while fully unclaimed

Invariant:
    activated=true implies pet_id resolves to a pet whose user_id equals this
    tag's user_id. Rows breaking it are reported by the integrity scan.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from plakita.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Tag(Base):
    """A QR/NFC tag, keyed by its unique uppercase code."""

    __tablename__ = "tags"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # ── Code ──────────────────────────────────────────────────────────────
    # Stored uppercase (e.g. PLK-ABC123); comparisons are case-insensitive
    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)

    # ── Claim State ───────────────────────────────────────────────────────
    activated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    activated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )

    # Weak references: no foreign keys in the hosted schema
    pet_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True, default=None)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True, default=None)

    # Set by the mark_tag_as_nfc procedure when the tag carries an NFC chip
    has_nfc: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        Index("idx_tags_user_id", "user_id"),
        Index("idx_tags_pet_id", "pet_id"),
    )

    @property
    def is_unclaimed(self) -> bool:
        """True when the tag can be deleted: not activated, no pet, no owner."""
        return not self.activated and self.pet_id is None and self.user_id is None

    def __repr__(self) -> str:
        return (
            f"<Tag(code='{self.code}', activated={self.activated}, "
            f"pet_id={self.pet_id}, user_id={self.user_id})>"
        )

"""
Plakita Backend — Integrity Reconciliation Service
====================================================

What:  Finds activated tags whose links do not hold up, and repairs the ones
       that can be repaired without inventing data.
Why:   Pets can be deleted, and accounts removed, behind the tag's back
       (weak references, no foreign keys). Such a tag would send finders to a
       dead profile.
Who:   GET /api/admin/integrity (scan), POST /api/admin/integrity/repair.

Categories:
    orphaned_activation   activated, but pet_id is NULL or resolves to no pet
    ownerless_activation  activated, but user_id is NULL or resolves to no user
    owner_mismatch        activated, pet resolves, but pet.user_id != tag.user_id

Repair:
    orphaned_activation   → activated=false, pet_id=NULL   (tag becomes claimable)
    everything else       → manual_review                  (never fabricates rows)

    Best effort: each tag is repaired and committed on its own, a failure is
    recorded in that tag's outcome and the batch moves on. Nothing is retried;
    the admin re-runs the repair.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from plakita.exceptions import translate_store_error
from plakita.models.pet import Pet
from plakita.models.tag import Tag
from plakita.models.user import User
from plakita.schemas.admin import (
    IntegrityIssueResponse,
    IntegrityScanResponse,
    RepairOutcomeResponse,
    RepairReportResponse,
)

logger = logging.getLogger(__name__)

ORPHANED_ACTIVATION = "orphaned_activation"
OWNERLESS_ACTIVATION = "ownerless_activation"
OWNER_MISMATCH = "owner_mismatch"

ACTION_DEACTIVATED = "deactivated"
ACTION_MANUAL_REVIEW = "manual_review"
ACTION_NONE = "none"

_DESCRIPTIONS = {
    ORPHANED_ACTIVATION: "Tag is activated but its pet no longer exists",
    OWNERLESS_ACTIVATION: "Tag is activated but has no existing owner account",
    OWNER_MISMATCH: "Tag owner and pet owner are different accounts",
}


@dataclass
class IntegrityIssue:
    tag_id: UUID
    code: str
    category: str
    pet_id: Optional[UUID]
    user_id: Optional[UUID]

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self.category]


def classify(
    tag: Tag,
    pet_owner_id: Optional[UUID],
    pet_exists: bool,
    user_exists: bool,
) -> Optional[str]:
    """Category for an activated tag, or None when its links are consistent."""
    if not tag.activated:
        return None
    if tag.pet_id is None or not pet_exists:
        return ORPHANED_ACTIVATION
    if tag.user_id is None or not user_exists:
        return OWNERLESS_ACTIVATION
    if pet_owner_id != tag.user_id:
        return OWNER_MISMATCH
    return None


class IntegrityService:

    async def scan(self, db: AsyncSession) -> List[IntegrityIssue]:
        """One pass over activated tags, resolving pet and user with outer joins."""
        stmt = (
            select(Tag, Pet.id, Pet.user_id, User.id)
            .outerjoin(Pet, Pet.id == Tag.pet_id)
            .outerjoin(User, User.id == Tag.user_id)
            .where(Tag.activated.is_(True))
            .order_by(Tag.created_at)
        )
        try:
            rows = (await db.execute(stmt)).all()
        except SQLAlchemyError as e:
            raise translate_store_error(e, "integrity scan") from e

        issues: List[IntegrityIssue] = []
        for tag, pet_id, pet_owner_id, user_id in rows:
            category = classify(
                tag,
                pet_owner_id=pet_owner_id,
                pet_exists=pet_id is not None,
                user_exists=user_id is not None,
            )
            if category:
                issues.append(
                    IntegrityIssue(
                        tag_id=tag.id,
                        code=tag.code,
                        category=category,
                        pet_id=tag.pet_id,
                        user_id=tag.user_id,
                    )
                )

        logger.info("Integrity scan: %d activated tags, %d issues", len(rows), len(issues))
        return issues

    async def scan_report(self, db: AsyncSession) -> IntegrityScanResponse:
        issues = await self.scan(db)
        return IntegrityScanResponse(
            issues=[
                IntegrityIssueResponse(
                    tag_id=issue.tag_id,
                    code=issue.code,
                    category=issue.category,
                    pet_id=issue.pet_id,
                    user_id=issue.user_id,
                    description=issue.description,
                )
                for issue in issues
            ],
            total_count=len(issues),
        )

    async def repair(self, db: AsyncSession) -> RepairReportResponse:
        """Scans, then repairs every orphaned activation; returns one outcome per issue."""
        issues = await self.scan(db)
        outcomes: List[RepairOutcomeResponse] = []

        for issue in issues:
            if issue.category != ORPHANED_ACTIVATION:
                outcomes.append(
                    RepairOutcomeResponse(
                        tag_id=issue.tag_id,
                        code=issue.code,
                        category=issue.category,
                        success=False,
                        action=ACTION_MANUAL_REVIEW,
                    )
                )
                continue
            outcomes.append(await self._deactivate(db, issue))

        repaired = sum(1 for o in outcomes if o.success and o.action == ACTION_DEACTIVATED)
        skipped = sum(1 for o in outcomes if o.action == ACTION_MANUAL_REVIEW)
        failed = sum(1 for o in outcomes if not o.success and o.action != ACTION_MANUAL_REVIEW)
        logger.info(
            "Integrity repair: %d repaired, %d failed, %d left for manual review",
            repaired, failed, skipped,
        )
        return RepairReportResponse(
            outcomes=outcomes, repaired=repaired, failed=failed, skipped=skipped
        )

    async def _deactivate(self, db: AsyncSession, issue: IntegrityIssue) -> RepairOutcomeResponse:
        """Clears the dead pet link on one tag and commits it on its own."""
        try:
            result = await db.execute(
                update(Tag)
                .where(Tag.id == issue.tag_id, Tag.activated.is_(True))
                .values(activated=False, pet_id=None)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            error = translate_store_error(e, f"repairing tag {issue.code}")
            return RepairOutcomeResponse(
                tag_id=issue.tag_id,
                code=issue.code,
                category=issue.category,
                success=False,
                action=ACTION_NONE,
                error=error.message,
            )

        # Zero rows: deactivated by someone else since the scan
        action = ACTION_DEACTIVATED if result.rowcount else ACTION_NONE
        logger.info("Tag %s repaired: %s", issue.code, action)
        return RepairOutcomeResponse(
            tag_id=issue.tag_id,
            code=issue.code,
            category=issue.category,
            success=True,
            action=action,
        )


# ── Singleton Instance ────────────────────────────────────────────────────
integrity_service = IntegrityService()

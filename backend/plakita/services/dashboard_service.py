"""
Plakita Backend — Owner Dashboard Service
===========================================

What:  The signed-in owner's tag list, and deleting one of their pets.
Who:   /api/dashboard/* routes.

Delete order:
    1. reset every tag of the actor that links the pet
       (pet_id=NULL, activated=false, user_id=NULL) so the tag is reusable
    2. delete the pet row, scoped by the actor
    Both statements run in the request transaction.
"""

import logging
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from plakita.exceptions import NotFoundError, translate_store_error
from plakita.models.pet import Pet
from plakita.models.tag import Tag
from plakita.schemas.tag import TagListResponse
from plakita.services.auth_client import AuthenticatedUser
from plakita.services.tag_admin_service import require_confirmation, tag_with_pet_response

logger = logging.getLogger(__name__)


class DashboardService:

    async def list_tags(self, db: AsyncSession, actor: AuthenticatedUser) -> TagListResponse:
        """Tags owned by the actor that have a pet, newest first."""
        try:
            result = await db.execute(
                select(Tag, Pet)
                .join(Pet, Pet.id == Tag.pet_id)
                .where(Tag.user_id == actor.id)
                .order_by(Tag.created_at.desc())
            )
            rows = result.all()
        except SQLAlchemyError as e:
            raise translate_store_error(e, "loading your tags") from e
        return TagListResponse(
            tags=[tag_with_pet_response(tag, pet) for tag, pet in rows],
            total_count=len(rows),
        )

    async def delete_pet(
        self,
        db: AsyncSession,
        pet_id: UUID,
        actor: AuthenticatedUser,
        confirm: bool = False,
    ) -> int:
        """
        Deletes the actor's pet and frees its tag(s).

        Returns the number of tags that were reset.

        Raises:
            ValidationError: confirm is not set
            NotFoundError:   no such pet among the actor's pets
        """
        require_confirmation(confirm, "delete this pet")

        try:
            owned = await db.execute(
                select(Pet.id).where(Pet.id == pet_id, Pet.user_id == actor.id)
            )
            if owned.scalar_one_or_none() is None:
                raise NotFoundError(resource="pet", resource_id=str(pet_id))

            reset = await db.execute(
                update(Tag)
                .where(Tag.pet_id == pet_id, Tag.user_id == actor.id)
                .values(pet_id=None, activated=False, activated_at=None, user_id=None)
                .execution_options(synchronize_session=False)
            )
            await db.execute(
                delete(Pet)
                .where(Pet.id == pet_id, Pet.user_id == actor.id)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            raise translate_store_error(e, "deleting the pet") from e

        logger.info("Pet %s deleted by %s, %d tag(s) reset", pet_id, actor.id, reset.rowcount)
        return reset.rowcount


# ── Singleton Instance ────────────────────────────────────────────────────
dashboard_service = DashboardService()

"""
Plakita Backend — Tag Administration Service
==============================================

What:  Registers new tag codes, lists the inventory, and deletes unused tags.
Who:   /api/admin/tags endpoints (admin role required).

Delete guard:
    A tag may only be deleted while it is fully unclaimed:
        activated = false AND pet_id IS NULL AND user_id IS NULL
    The guard runs on the loaded row before any DELETE is issued, and the
    DELETE itself repeats the same conditions so a claim that lands in
    between cannot be wiped out.
"""

import logging
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from plakita.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
    translate_store_error,
)
from plakita.models.pet import Pet
from plakita.models.tag import Tag
from plakita.schemas.pet import PetResponse
from plakita.schemas.tag import (
    GeneratedCode,
    TagListResponse,
    TagResponse,
    TagWithPet,
)
from plakita.services.links import build_activation_url, build_public_profile_url
from plakita.services.validation import (
    generate_tag_code,
    normalize_tag_code,
    validate_tag_code,
)

logger = logging.getLogger(__name__)


def require_confirmation(confirm: bool, action: str) -> None:
    """Destructive actions must be confirmed explicitly before any call is issued."""
    if not confirm:
        raise ValidationError(
            message=f"Confirm that you want to {action} (pass confirm=true)",
            field="confirm",
        )


def tag_with_pet_response(tag: Tag, pet) -> TagWithPet:
    return TagWithPet(
        tag=TagResponse.model_validate(tag),
        pet=PetResponse.model_validate(pet) if pet is not None else None,
        activation_url=build_activation_url(tag.code),
        public_profile_url=build_public_profile_url(pet.id) if pet is not None else None,
    )


class TagAdminService:

    async def create_tag(self, db: AsyncSession, raw_code: str) -> TagResponse:
        """
        Registers an unclaimed tag.

        Raises:
            ValidationError: code fails the format rules
            ConflictError:   code already exists (checked first, and again by
                             the store's unique constraint at insert time)
        """
        problem = validate_tag_code(raw_code)
        if problem:
            raise ValidationError(message=problem, field="code")
        code = normalize_tag_code(raw_code)

        duplicate = ConflictError(
            message=f"Tag code '{code}' already exists. Generate a new code.",
            title="Duplicate code",
        )
        try:
            existing = await db.execute(select(Tag.id).where(Tag.code == code))
            if existing.scalar_one_or_none() is not None:
                raise duplicate
            tag = Tag(code=code, activated=False, has_nfc=False)
            db.add(tag)
            await db.flush()
        except SQLAlchemyError as e:
            raise translate_store_error(e, "creating the tag") from e

        logger.info("Tag %s created", code)
        return TagResponse.model_validate(tag)

    def suggest_code(self) -> GeneratedCode:
        code = generate_tag_code()
        return GeneratedCode(code=code, activation_url=build_activation_url(code))

    async def list_tags(self, db: AsyncSession) -> TagListResponse:
        try:
            result = await db.execute(
                select(Tag, Pet)
                .outerjoin(Pet, Pet.id == Tag.pet_id)
                .order_by(Tag.created_at.desc())
            )
            rows = result.all()
        except SQLAlchemyError as e:
            raise translate_store_error(e, "listing tags") from e
        return TagListResponse(
            tags=[tag_with_pet_response(tag, pet) for tag, pet in rows],
            total_count=len(rows),
        )

    async def delete_tag(self, db: AsyncSession, tag_id: UUID, confirm: bool = False) -> None:
        """
        Deletes an unclaimed tag.

        Raises:
            ValidationError: confirm is not set
            NotFoundError:   no such tag
            ConflictError:   tag is activated or linked to a pet/user
        """
        require_confirmation(confirm, "delete this tag")

        try:
            tag = await db.get(Tag, tag_id)
        except SQLAlchemyError as e:
            raise translate_store_error(e, "loading the tag") from e
        if tag is None:
            raise NotFoundError(resource="tag", resource_id=str(tag_id))

        if not tag.is_unclaimed:
            logger.warning("Refused to delete tag %s: still in use", tag.code)
            raise ConflictError(
                message=(
                    f"Tag {tag.code} is activated or linked to a pet or user. "
                    "Unlink it before deleting."
                ),
                title="Tag in use",
                context={
                    "activated": tag.activated,
                    "has_pet": tag.pet_id is not None,
                    "has_user": tag.user_id is not None,
                },
            )

        try:
            result = await db.execute(
                delete(Tag)
                .where(
                    Tag.id == tag_id,
                    Tag.activated.is_(False),
                    Tag.pet_id.is_(None),
                    Tag.user_id.is_(None),
                )
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            raise translate_store_error(e, "deleting the tag") from e

        if result.rowcount == 0:
            raise ConflictError(
                message=f"Tag {tag.code} was claimed while deleting. It was not deleted.",
                title="Tag in use",
            )
        logger.info("Tag %s deleted", tag.code)


# ── Singleton Instance ────────────────────────────────────────────────────
tag_admin_service = TagAdminService()

"""
Plakita Backend — Pet Profile Service
=======================================

What:  Owner view, owner edit, and the world-readable public profile of a pet.
Who:   /api/pets/{id} (owner) and /api/public/pets/{id} (anyone who scanned).

Public profile states:
    pet row missing                        → NotFoundError    ("not found")
    pet exists, no activated tag / flag    → NotActivatedError ("not yet activated")
    otherwise                              → PublicPetProfile
"""

import logging
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from plakita.exceptions import (
    NotActivatedError,
    NotFoundError,
    ValidationError,
    translate_store_error,
)
from plakita.models.pet import Pet
from plakita.models.tag import Tag
from plakita.schemas.pet import (
    LinkedTag,
    OwnerPetProfile,
    PetForm,
    PetResponse,
    PublicPetProfile,
)
from plakita.services.auth_client import AuthenticatedUser
from plakita.services.claim_service import pet_columns
from plakita.services.links import (
    build_activation_url,
    build_contact_links,
    build_public_profile_url,
    first_name,
)
from plakita.services.validation import sanitize_pet_form, validate_pet_form

logger = logging.getLogger(__name__)


class PetService:

    async def _owned_pet(self, db: AsyncSession, pet_id: UUID, actor: AuthenticatedUser) -> Pet:
        """
        The actor's pet, or NotFoundError.

        Someone else's pet id gets the same answer as a missing one, so ids of
        other owners' pets cannot be probed.
        """
        try:
            result = await db.execute(
                select(Pet).where(Pet.id == pet_id, Pet.user_id == actor.id)
            )
            pet = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise translate_store_error(e, "loading the pet") from e
        if pet is None:
            raise NotFoundError(resource="pet", resource_id=str(pet_id))
        return pet

    async def get_owner_profile(
        self, db: AsyncSession, pet_id: UUID, actor: AuthenticatedUser
    ) -> OwnerPetProfile:
        pet = await self._owned_pet(db, pet_id, actor)
        try:
            result = await db.execute(
                select(Tag)
                .where(Tag.pet_id == pet.id, Tag.user_id == actor.id)
                .order_by(Tag.activated.desc(), Tag.created_at.desc())
                .limit(1)
            )
            tag = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise translate_store_error(e, "loading the pet's tag") from e

        return OwnerPetProfile(
            pet=PetResponse.model_validate(pet),
            tag=LinkedTag.model_validate(tag) if tag is not None else None,
            activation_url=build_activation_url(tag.code) if tag is not None else None,
            public_profile_url=build_public_profile_url(pet.id),
        )

    async def update_pet(
        self, db: AsyncSession, pet_id: UUID, form: PetForm, actor: AuthenticatedUser
    ) -> PetResponse:
        """Dashboard edit: validated, and scoped to the actor's own pet."""
        form = sanitize_pet_form(form)
        errors = validate_pet_form(form)
        if errors:
            raise ValidationError(message="Some fields need attention", errors=errors)

        try:
            result = await db.execute(
                update(Pet)
                .where(Pet.id == pet_id, Pet.user_id == actor.id)
                .values(**pet_columns(form))
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            raise translate_store_error(e, "updating the pet") from e
        if result.rowcount == 0:
            raise NotFoundError(resource="pet", resource_id=str(pet_id))

        try:
            pet = await db.get(Pet, pet_id, populate_existing=True)
        except SQLAlchemyError as e:
            raise translate_store_error(e, "reloading the pet") from e
        logger.info("Pet %s updated by %s", pet_id, actor.id)
        return PetResponse.model_validate(pet)

    async def get_public_profile(self, db: AsyncSession, pet_id: UUID) -> PublicPetProfile:
        try:
            pet = await db.get(Pet, pet_id)
            if pet is None:
                raise NotFoundError(resource="pet", resource_id=str(pet_id))
            result = await db.execute(
                select(Tag.code)
                .where(Tag.pet_id == pet.id, Tag.activated.is_(True))
                .order_by(Tag.activated_at.desc())
                .limit(1)
            )
            tag_code = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise translate_store_error(e, "loading the public profile") from e

        if tag_code is None or not pet.qr_activated:
            raise NotActivatedError(
                message=f"{pet.name}'s tag has not been activated yet",
                context={"pet_id": str(pet.id)},
            )

        return PublicPetProfile(
            id=pet.id,
            name=pet.name,
            type=pet.type,
            breed=pet.breed,
            notes=pet.notes,
            owner_first_name=first_name(pet.owner_name),
            owner_contact=pet.owner_contact,
            owner_phone=pet.owner_phone,
            tag_code=tag_code,
            contact_links=build_contact_links(pet.name, pet.owner_contact, pet.owner_phone),
        )


# ── Singleton Instance ────────────────────────────────────────────────────
pet_service = PetService()

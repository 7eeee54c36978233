"""
Plakita Backend — Claim / Activation Service
==============================================

What:  Decides what happens after a tag is found, and commits a claim.
Why:   The same lookup leads to four different screens depending on the tag's
       state and who is looking; the commit links a pet and an owner to the tag.
Who:   GET /api/tags/lookup (resolve) and POST /api/tags/{id}/claim (commit).

State Machine (evaluated once per successful lookup):

    pet linked?
    ├── yes ── activated?
    │          ├── yes ── actor owns pet? ── yes ─▶ EDIT     (form = the pet)
    │          │                          └─ no ──▶ REDIRECT (public profile)
    │          └── no ──────────────────────────▶ CLAIM    (blank form, relink)
    └── no ─── tag.user_id is someone else (signed-in actor)? ─▶ REJECT
               actor anonymous? ─────────────────────────────▶ REQUIRE_REGISTRATION
               otherwise ────────────────────────────────────▶ CLAIM (prefill from profile)

Commit (two-step saga):
    1. Pet write:  INSERT (no id) or UPDATE ... WHERE id AND user_id = actor
    2. Tag write:  UPDATE tags ... WHERE id AND (user_id IS NULL OR user_id = actor)

    claim_atomic=True:  both steps in one transaction; a failed step 2 rolls
                        step 1 back with the request.
    claim_atomic=False: step 1 is committed on its own; a failed step 2 raises
                        PartialClaimError(pet_id) and is left for the user to
                        resubmit. Resubmission is idempotent: the pet is keyed by
                        id and the tag write is a single-row conditional update.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from plakita.config import settings
from plakita.exceptions import (
    AuthenticationRequiredError,
    ConflictError,
    NotFoundError,
    PartialClaimError,
    PermissionDeniedError,
    PlakitaError,
    ValidationError,
    translate_store_error,
)
from plakita.models.pet import Pet
from plakita.models.tag import Tag
from plakita.schemas.pet import PetForm, PetResponse
from plakita.schemas.tag import (
    ClaimDecisionResponse,
    ClaimOutcome,
    ClaimResultResponse,
    TagLookupResponse,
    TagResponse,
    TagSummary,
)
from plakita.services.auth_client import AuthenticatedUser
from plakita.services.links import (
    build_public_profile_url,
    public_profile_path,
    registration_redirect,
)
from plakita.services.tag_lookup import TagLookupService, tag_lookup_service
from plakita.services.validation import sanitize_pet_form, validate_pet_form

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Form Prefill
# ══════════════════════════════════════════════════════════════════════════

def form_from_pet(pet: Pet) -> PetForm:
    """Stored rows are not held to the input length caps, so no revalidation here."""
    return PetForm.model_construct(
        pet_id=pet.id,
        name=pet.name or "",
        type=pet.type or "",
        breed=pet.breed or "",
        owner_name=pet.owner_name or "",
        contact_info=pet.owner_contact or "",
        owner_phone=pet.owner_phone or "",
        notes=pet.notes or "",
    )


def form_for_actor(actor: Optional[AuthenticatedUser]) -> PetForm:
    """Blank pet fields; owner fields from the actor's profile when signed in."""
    if actor is None:
        return PetForm()
    return PetForm.model_construct(
        owner_name=actor.full_name or actor.email or "",
        contact_info=actor.email or "",
        owner_phone=actor.phone or "",
    )


def pet_columns(form: PetForm) -> Dict[str, Any]:
    """Maps a sanitized form onto pets columns (empty optional text → NULL)."""
    return {
        "name": form.name,
        "type": form.type,
        "breed": form.breed or None,
        "owner_name": form.owner_name,
        "owner_contact": form.contact_info or None,
        "owner_phone": form.owner_phone or None,
        "notes": form.notes or None,
    }


# ══════════════════════════════════════════════════════════════════════════
# State Machine
# ══════════════════════════════════════════════════════════════════════════

def decide_claim_state(
    tag: Tag,
    pet: Optional[Pet],
    actor: Optional[AuthenticatedUser],
) -> ClaimDecisionResponse:
    """
    Pure transition rule from (tag, resolved pet, actor) to a ClaimDecision.

    `pet` is the row tag.pet_id resolves to, or None when the tag has no pet
    or points at one that no longer exists.
    """
    if pet is not None:
        if tag.activated:
            if actor is not None and pet.user_id == actor.id:
                return ClaimDecisionResponse(
                    outcome=ClaimOutcome.EDIT,
                    title="Your tag",
                    message=f"This tag is linked to {pet.name}. You can update the details.",
                    form=form_from_pet(pet),
                )
            return ClaimDecisionResponse(
                outcome=ClaimOutcome.REDIRECT,
                title="Tag already active",
                message=f"This tag belongs to {pet.name}.",
                redirect_to=public_profile_path(pet.id),
            )
        return ClaimDecisionResponse(
            outcome=ClaimOutcome.CLAIM,
            title="Activate your tag",
            message="This tag has a stale pet link. Fill in the form to link it to your pet.",
            form=form_for_actor(actor),
            relink=True,
        )

    if tag.user_id is not None and actor is not None and tag.user_id != actor.id:
        return ClaimDecisionResponse(
            outcome=ClaimOutcome.REJECT,
            title="Tag already claimed",
            message="This tag is already claimed by another user.",
        )

    if actor is None:
        return ClaimDecisionResponse(
            outcome=ClaimOutcome.REQUIRE_REGISTRATION,
            title="Create an account",
            message="Sign up or sign in to activate this tag.",
            redirect_to=registration_redirect(tag.code),
        )

    return ClaimDecisionResponse(
        outcome=ClaimOutcome.CLAIM,
        title="Activate your tag",
        message="Tell us about your pet to activate this tag.",
        form=form_for_actor(actor),
        relink=tag.activated or tag.pet_id is not None,
    )


# ══════════════════════════════════════════════════════════════════════════
# Service
# ══════════════════════════════════════════════════════════════════════════

@dataclass
class _PetWrite:
    pet_id: UUID
    created: bool


class ClaimService:

    def __init__(self, lookup: Optional[TagLookupService] = None):
        self.lookup = lookup or tag_lookup_service

    async def resolve(
        self,
        db: AsyncSession,
        raw_code: Optional[str],
        actor: Optional[AuthenticatedUser],
    ) -> TagLookupResponse:
        """Lookup + state machine for the activation page."""
        result = await self.lookup.lookup(db, raw_code)
        decision = decide_claim_state(result.tag, result.pet, actor)
        logger.info(
            "Tag %s resolved to %s for %s",
            result.tag.code,
            decision.outcome.value,
            actor.id if actor else "anonymous",
        )
        return TagLookupResponse(
            normalized_code=result.code,
            matched_by=result.matched_by,
            tag=TagSummary.model_validate(result.tag),
            decision=decision,
        )

    async def commit(
        self,
        db: AsyncSession,
        tag_id: UUID,
        form: PetForm,
        actor: Optional[AuthenticatedUser],
        atomic: Optional[bool] = None,
    ) -> ClaimResultResponse:
        """
        Validates the form, writes the pet, then claims the tag.

        Raises:
            AuthenticationRequiredError: no signed-in actor
            ValidationError:       form errors (details.errors holds the field map)
            NotFoundError:         tag_id does not exist
            ConflictError:         tag belongs to another user
            PermissionDeniedError: form.pet_id is not the actor's pet
            PartialClaimError:     non-atomic mode, pet saved but tag write failed
        """
        if actor is None:
            raise AuthenticationRequiredError("Sign in to activate this tag")

        form = sanitize_pet_form(form)
        errors = validate_pet_form(form)
        if errors:
            raise ValidationError(message="Some fields need attention", errors=errors)

        if atomic is None:
            atomic = settings.claim_atomic

        try:
            tag = await db.get(Tag, tag_id)
        except SQLAlchemyError as e:
            raise translate_store_error(e, "loading the tag") from e
        if tag is None:
            raise NotFoundError(resource="tag", resource_id=str(tag_id))
        if tag.user_id is not None and tag.user_id != actor.id:
            raise ConflictError(
                message="This tag is already claimed by another user",
                title="Tag already claimed",
            )

        # ── Step 1: Pet write ─────────────────────────────────────────────
        written = await self._write_pet(db, tag, form, actor)
        if not atomic:
            try:
                await db.commit()
            except SQLAlchemyError as e:
                raise translate_store_error(e, "saving the pet") from e
            logger.info("Claim step 1 committed: pet %s for tag %s", written.pet_id, tag.code)

        # ── Step 2: Tag write ─────────────────────────────────────────────
        try:
            await self._activate_tag(db, tag.id, written.pet_id, actor)
        except SQLAlchemyError as e:
            await self._tag_write_failed(
                db, tag, written, translate_store_error(e, "activating the tag"), atomic
            )
        except PlakitaError as e:
            await self._tag_write_failed(db, tag, written, e, atomic)

        try:
            claimed_tag = await db.get(Tag, tag.id, populate_existing=True)
            pet = await db.get(Pet, written.pet_id, populate_existing=True)
        except SQLAlchemyError as e:
            raise translate_store_error(e, "reloading the claimed tag") from e

        logger.info(
            "Tag %s claimed by %s with pet %s (%s)",
            tag.code, actor.id, written.pet_id, "created" if written.created else "updated",
        )
        return ClaimResultResponse(
            tag=TagResponse.model_validate(claimed_tag),
            pet=PetResponse.model_validate(pet),
            pet_created=written.created,
            public_profile_url=build_public_profile_url(written.pet_id),
        )

    async def _write_pet(
        self, db: AsyncSession, tag: Tag, form: PetForm, actor: AuthenticatedUser
    ) -> _PetWrite:
        """Inserts or ownership-scoped-updates the pet; never trusts client ownership."""
        values = pet_columns(form)
        try:
            pet_id = form.pet_id
            if pet_id is None and tag.pet_id is not None:
                # Resubmission without the id: reuse the pet this tag already
                # links, as long as the actor owns it
                owned = await db.execute(
                    select(Pet.id).where(Pet.id == tag.pet_id, Pet.user_id == actor.id)
                )
                pet_id = owned.scalar_one_or_none()

            if pet_id is None:
                pet = Pet(**values, user_id=actor.id, qr_activated=True)
                db.add(pet)
                await db.flush()
                return _PetWrite(pet_id=pet.id, created=True)

            result = await db.execute(
                update(Pet)
                .where(Pet.id == pet_id, Pet.user_id == actor.id)
                .values(**values, qr_activated=True)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            raise translate_store_error(e, "saving the pet") from e

        if result.rowcount == 0:
            logger.warning("User %s tried to write pet %s they do not own", actor.id, pet_id)
            raise PermissionDeniedError(message="You can only edit your own pets")
        return _PetWrite(pet_id=pet_id, created=False)

    async def _tag_write_failed(
        self,
        db: AsyncSession,
        tag: Tag,
        written: _PetWrite,
        failure: PlakitaError,
        atomic: bool,
    ) -> None:
        """Raises the step-2 failure as-is (atomic) or as a PartialClaimError."""
        if atomic:
            raise failure
        # Read before rollback: rollback expires loaded rows
        code = tag.code
        await db.rollback()
        logger.error(
            "Partial claim: pet %s saved but tag %s not activated (%s)",
            written.pet_id, code, failure.message,
        )
        raise PartialClaimError(pet_id=str(written.pet_id), cause=failure.message) from failure

    async def _activate_tag(
        self, db: AsyncSession, tag_id: UUID, pet_id: UUID, actor: AuthenticatedUser
    ) -> None:
        """Single-row conditional update; zero rows means someone else owns the tag."""
        result = await db.execute(
            update(Tag)
            .where(
                Tag.id == tag_id,
                or_(Tag.user_id.is_(None), Tag.user_id == actor.id),
            )
            .values(
                pet_id=pet_id,
                activated=True,
                activated_at=datetime.now(timezone.utc),
                user_id=actor.id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConflictError(
                message="This tag was claimed by another user",
                title="Tag already claimed",
            )


# ── Singleton Instance ────────────────────────────────────────────────────
claim_service = ClaimService()

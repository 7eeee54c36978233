"""
Plakita Backend — Claim Service Unit Tests
============================================

What:  The claim state machine and the two-step claim commit.
How:   decide_claim_state is pure and tested on unsaved rows; resolve/commit
       run against in-memory SQLite.

What we test:
    ✅ Every row of the decision table
    ✅ Lookup scenarios: signed-in claim, anonymous registration, redirect
    ✅ Commit creates/updates the pet and activates the tag
    ✅ Resubmission is idempotent (one pet, one claimed tag)
    ✅ Validation, auth, ownership and conflict failures write nothing
    ✅ Atomic mode rolls the pet back; two-step mode reports a partial claim
"""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from plakita.exceptions import (
    AuthenticationRequiredError,
    ConflictError,
    NotFoundError,
    PartialClaimError,
    PermissionDeniedError,
    ValidationError,
)
from plakita.models import Pet, Tag
from plakita.schemas.pet import PetForm
from plakita.schemas.tag import ClaimOutcome
from plakita.services.claim_service import ClaimService, decide_claim_state


def pet_form(**overrides) -> PetForm:
    fields = {
        "name": "Rex",
        "type": "dog",
        "breed": "Mixed",
        "owner_name": "Maria Lopez",
        "contact_info": "maria@example.com",
        "owner_phone": "+54 11 5555-1234",
        "notes": "Friendly",
    }
    fields.update(overrides)
    return PetForm(**fields)


async def count_pets(db) -> int:
    return (await db.execute(select(func.count(Pet.id)))).scalar()


async def reload_tag(db, tag_id) -> Tag:
    return await db.get(Tag, tag_id, populate_existing=True)


# ══════════════════════════════════════════════════════════════════════════
# Decision Table
# ══════════════════════════════════════════════════════════════════════════

class TestDecideClaimState:

    def make_pet(self, owner_id):
        return Pet(id=uuid4(), name="Luna", type="cat", owner_name="Maria Lopez",
                   owner_contact="maria@example.com", user_id=owner_id, qr_activated=True)

    def test_activated_owner_gets_edit(self, owner):
        pet = self.make_pet(owner.id)
        tag = Tag(code="PLK-ABC123", activated=True, pet_id=pet.id, user_id=owner.id)

        decision = decide_claim_state(tag, pet, owner)

        assert decision.outcome == ClaimOutcome.EDIT
        assert decision.form.pet_id == pet.id
        assert decision.form.name == "Luna"
        assert decision.form.contact_info == "maria@example.com"

    def test_edit_prefill_keeps_long_stored_notes(self, owner):
        pet = self.make_pet(owner.id)
        pet.notes = "x" * 2500
        tag = Tag(code="PLK-ABC123", activated=True, pet_id=pet.id, user_id=owner.id)

        decision = decide_claim_state(tag, pet, owner)

        assert decision.outcome == ClaimOutcome.EDIT
        assert decision.form.notes == "x" * 2500
        assert decision.model_dump(mode="json")["form"]["notes"] == "x" * 2500

    def test_activated_other_user_gets_redirect(self, owner, stranger):
        pet = self.make_pet(owner.id)
        tag = Tag(code="PLK-ABC123", activated=True, pet_id=pet.id, user_id=owner.id)

        decision = decide_claim_state(tag, pet, stranger)

        assert decision.outcome == ClaimOutcome.REDIRECT
        assert decision.redirect_to == f"/public/pet/{pet.id}"
        assert decision.form is None

    def test_activated_anonymous_gets_redirect(self, owner):
        pet = self.make_pet(owner.id)
        tag = Tag(code="PLK-ABC123", activated=True, pet_id=pet.id, user_id=owner.id)

        assert decide_claim_state(tag, pet, None).outcome == ClaimOutcome.REDIRECT

    @pytest.mark.parametrize("actor_fixture", ["owner", "stranger"])
    def test_inactive_with_pet_is_relink_claim(self, request, actor_fixture, owner):
        actor = request.getfixturevalue(actor_fixture)
        pet = self.make_pet(owner.id)
        tag = Tag(code="PLK-ABC123", activated=False, pet_id=pet.id, user_id=None)

        decision = decide_claim_state(tag, pet, actor)

        assert decision.outcome == ClaimOutcome.CLAIM
        assert decision.relink is True
        assert decision.form.name == ""

    def test_claimed_by_someone_else_is_rejected(self, owner, stranger):
        tag = Tag(code="PLK-ABC123", activated=False, pet_id=None, user_id=owner.id)

        decision = decide_claim_state(tag, None, stranger)

        assert decision.outcome == ClaimOutcome.REJECT
        assert "another user" in decision.message
        assert decision.form is None

    def test_orphaned_activation_claimed_by_someone_else_is_rejected(self, owner, stranger):
        tag = Tag(code="PLK-ABC123", activated=True, pet_id=uuid4(), user_id=owner.id)

        assert decide_claim_state(tag, None, stranger).outcome == ClaimOutcome.REJECT

    def test_unclaimed_anonymous_requires_registration(self):
        tag = Tag(code="PLK-ABC123", activated=False, pet_id=None, user_id=None)

        decision = decide_claim_state(tag, None, None)

        assert decision.outcome == ClaimOutcome.REQUIRE_REGISTRATION
        assert decision.redirect_to == "/register?redirect=%2Factivate-tag%2FPLK-ABC123"

    def test_unclaimed_signed_in_prefills_from_profile(self, owner):
        tag = Tag(code="PLK-ABC123", activated=False, pet_id=None, user_id=None)

        decision = decide_claim_state(tag, None, owner)

        assert decision.outcome == ClaimOutcome.CLAIM
        assert decision.relink is False
        assert decision.form.pet_id is None
        assert decision.form.name == ""
        assert decision.form.owner_name == "Maria Lopez"
        assert decision.form.contact_info == "maria@example.com"
        assert decision.form.owner_phone == "+54 11 5555-1234"

    def test_own_tag_without_pet_is_claimable(self, owner):
        tag = Tag(code="PLK-ABC123", activated=False, pet_id=None, user_id=owner.id)

        assert decide_claim_state(tag, None, owner).outcome == ClaimOutcome.CLAIM


# ══════════════════════════════════════════════════════════════════════════
# Resolve (lookup + decision)
# ══════════════════════════════════════════════════════════════════════════

class TestResolve:

    def setup_method(self):
        self.service = ClaimService()

    @pytest.mark.asyncio
    async def test_signed_in_lookup_of_fresh_tag(self, db_session, make_tag, owner):
        await make_tag("PLK-ABC123")

        response = await self.service.resolve(db_session, "plk-abc123", owner)

        assert response.normalized_code == "PLK-ABC123"
        assert response.matched_by == "exact"
        assert response.tag.activated is False
        assert response.decision.outcome == ClaimOutcome.CLAIM
        assert response.decision.form.name == ""

    @pytest.mark.asyncio
    async def test_anonymous_lookup_of_fresh_tag(self, db_session, make_tag):
        await make_tag("PLK-ABC123")

        response = await self.service.resolve(db_session, "plk-abc123", None)

        assert response.decision.outcome == ClaimOutcome.REQUIRE_REGISTRATION
        assert "PLK-ABC123" in response.decision.redirect_to

    @pytest.mark.asyncio
    async def test_other_user_lookup_of_active_tag(self, db_session, make_tag, make_pet, owner, stranger):
        pet = await make_pet(owner.id)
        await make_tag("PLK-LUNA01", activated=True, pet_id=pet.id, user_id=owner.id)

        response = await self.service.resolve(db_session, "PLK-LUNA01", stranger)

        assert response.decision.outcome == ClaimOutcome.REDIRECT
        assert response.decision.redirect_to == f"/public/pet/{pet.id}"
        assert response.decision.form is None


# ══════════════════════════════════════════════════════════════════════════
# Commit
# ══════════════════════════════════════════════════════════════════════════

class TestCommitClaim:

    def setup_method(self):
        self.service = ClaimService()

    @pytest.mark.asyncio
    async def test_new_pet_claims_tag(self, db_session, make_tag, owner):
        tag = await make_tag("PLK-ABC123")

        result = await self.service.commit(db_session, tag.id, pet_form(), owner)

        assert result.pet_created is True
        assert result.pet.name == "Rex"
        assert result.pet.user_id == owner.id
        assert result.pet.qr_activated is True
        assert result.tag.activated is True
        assert result.tag.pet_id == result.pet.id
        assert result.tag.user_id == owner.id
        assert result.tag.activated_at is not None
        assert result.public_profile_url == f"https://plakita.test/public/pet/{result.pet.id}"

    @pytest.mark.asyncio
    async def test_resubmission_with_pet_id_is_idempotent(self, db_session, make_tag, owner):
        tag = await make_tag("PLK-ABC123")
        first = await self.service.commit(db_session, tag.id, pet_form(), owner)

        second = await self.service.commit(
            db_session, tag.id, pet_form(pet_id=first.pet.id), owner
        )

        assert second.pet_created is False
        assert second.pet.id == first.pet.id
        assert await count_pets(db_session) == 1
        claimed = (await db_session.execute(
            select(func.count(Tag.id)).where(Tag.activated.is_(True))
        )).scalar()
        assert claimed == 1

    @pytest.mark.asyncio
    async def test_resubmission_without_pet_id_reuses_linked_pet(self, db_session, make_tag, owner):
        tag = await make_tag("PLK-ABC123")
        first = await self.service.commit(db_session, tag.id, pet_form(), owner)

        second = await self.service.commit(db_session, tag.id, pet_form(name="Rexy"), owner)

        assert second.pet.id == first.pet.id
        assert second.pet.name == "Rexy"
        assert await count_pets(db_session) == 1

    @pytest.mark.asyncio
    async def test_relinks_orphaned_tag(self, db_session, make_tag, owner):
        tag = await make_tag("PLK-ABC123", activated=True, pet_id=uuid4(), user_id=owner.id)

        result = await self.service.commit(db_session, tag.id, pet_form(), owner)

        assert result.pet_created is True
        assert result.tag.pet_id == result.pet.id

    @pytest.mark.asyncio
    async def test_invalid_form_writes_nothing(self, db_session, make_tag, owner):
        tag = await make_tag("PLK-ABC123")

        with pytest.raises(ValidationError) as exc_info:
            await self.service.commit(
                db_session, tag.id, pet_form(name="A", contact_info="", owner_phone=""), owner
            )

        assert set(exc_info.value.errors) == {"name", "contact_info"}
        assert await count_pets(db_session) == 0
        assert (await reload_tag(db_session, tag.id)).activated is False

    @pytest.mark.asyncio
    async def test_anonymous_commit_is_rejected(self, mock_db_session):
        with pytest.raises(AuthenticationRequiredError):
            await self.service.commit(mock_db_session, uuid4(), pet_form(), None)
        mock_db_session.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_tag(self, db_session, owner):
        with pytest.raises(NotFoundError):
            await self.service.commit(db_session, uuid4(), pet_form(), owner)

    @pytest.mark.asyncio
    async def test_tag_of_another_user_conflicts(self, db_session, make_tag, owner, stranger):
        tag = await make_tag("PLK-ABC123", user_id=owner.id)

        with pytest.raises(ConflictError):
            await self.service.commit(db_session, tag.id, pet_form(), stranger)

        assert await count_pets(db_session) == 0

    @pytest.mark.asyncio
    async def test_foreign_pet_id_is_denied(self, db_session, make_tag, make_pet, owner, stranger):
        foreign = await make_pet(owner.id, name="Luna")
        tag = await make_tag("PLK-ABC123")

        with pytest.raises(PermissionDeniedError):
            await self.service.commit(
                db_session, tag.id, pet_form(pet_id=foreign.id), stranger
            )

        untouched = await db_session.get(Pet, foreign.id, populate_existing=True)
        assert untouched.name == "Luna"


class TestCommitTagWriteFailure:

    def setup_method(self):
        self.service = ClaimService()

    @pytest.mark.asyncio
    async def test_atomic_failure_rolls_back_with_the_request(self, db_session, make_tag, owner):
        tag = await make_tag("PLK-ABC123")
        tag_id = tag.id

        with patch.object(
            ClaimService, "_activate_tag",
            AsyncMock(side_effect=ConflictError(message="This tag was claimed by another user")),
        ):
            with pytest.raises(ConflictError):
                await self.service.commit(db_session, tag_id, pet_form(), owner, atomic=True)

        # What get_db_session does when the handler raises
        await db_session.rollback()
        assert await count_pets(db_session) == 0
        assert (await reload_tag(db_session, tag_id)).activated is False

    @pytest.mark.asyncio
    async def test_two_step_failure_reports_partial_claim(self, db_session, make_tag, owner):
        tag = await make_tag("PLK-ABC123")
        tag_id = tag.id

        with patch.object(
            ClaimService, "_activate_tag",
            AsyncMock(side_effect=OperationalError("UPDATE", {}, Exception("connection lost"))),
        ):
            with pytest.raises(PartialClaimError) as exc_info:
                await self.service.commit(db_session, tag_id, pet_form(), owner, atomic=False)

        error = exc_info.value
        assert error.status_code == 409
        assert "connection lost" in error.cause
        assert await count_pets(db_session) == 1
        assert (await reload_tag(db_session, tag_id)).activated is False

        # Resubmitting with the saved pet finishes the claim without a second pet
        result = await self.service.commit(
            db_session, tag_id, pet_form(pet_id=error.pet_id), owner, atomic=False
        )
        assert str(result.pet.id) == error.pet_id
        assert result.tag.activated is True
        assert await count_pets(db_session) == 1

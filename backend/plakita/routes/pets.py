"""
Plakita Backend — Pet Routes
==============================

    GET /api/pets/{pet_id}          owner view (own pets only)
    PUT /api/pets/{pet_id}          owner edit
    GET /api/public/pets/{pet_id}   what a finder sees after scanning
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from plakita.database import get_db_session
from plakita.schemas.common import ApiResponse, ok
from plakita.schemas.pet import OwnerPetProfile, PetForm, PetResponse, PublicPetProfile
from plakita.services.auth_client import AuthenticatedUser
from plakita.services.pet_service import pet_service
from plakita.services.session import require_actor

router = APIRouter(prefix="/api", tags=["Pets"])


@router.get("/pets/{pet_id}", response_model=ApiResponse[OwnerPetProfile])
async def get_pet(
    pet_id: UUID,
    db: AsyncSession = Depends(get_db_session),
    actor: AuthenticatedUser = Depends(require_actor),
):
    return ok(await pet_service.get_owner_profile(db, pet_id, actor))


@router.put("/pets/{pet_id}", response_model=ApiResponse[PetResponse])
async def update_pet(
    pet_id: UUID,
    form: PetForm,
    db: AsyncSession = Depends(get_db_session),
    actor: AuthenticatedUser = Depends(require_actor),
):
    return ok(await pet_service.update_pet(db, pet_id, form, actor))


@router.get(
    "/public/pets/{pet_id}",
    response_model=ApiResponse[PublicPetProfile],
    summary="Public profile shown to whoever scanned the tag",
)
async def get_public_pet(pet_id: UUID, db: AsyncSession = Depends(get_db_session)):
    return ok(await pet_service.get_public_profile(db, pet_id))

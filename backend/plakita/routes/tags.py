"""
Plakita Backend — Tag Routes
==============================

What:  The activation page's two calls.
    GET  /api/tags/lookup?code=   find the tag and decide what to show
    POST /api/tags/{tag_id}/claim save the pet and activate the tag

Lookup is open to anonymous visitors (the finder of a lost pet, or an owner
who is not signed in yet); claiming needs a signed-in owner.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from plakita.database import get_db_session
from plakita.schemas.common import ApiResponse, ok
from plakita.schemas.pet import PetForm
from plakita.schemas.tag import ClaimResultResponse, TagLookupResponse
from plakita.services.auth_client import AuthenticatedUser
from plakita.services.claim_service import claim_service
from plakita.services.session import get_current_actor, require_actor

router = APIRouter(prefix="/api/tags", tags=["Tags"])


@router.get(
    "/lookup",
    response_model=ApiResponse[TagLookupResponse],
    summary="Find a tag by code (or scanned URL) and get the claim decision",
)
async def lookup_tag(
    code: str = Query(default="", max_length=500, description="Tag code or activation URL"),
    db: AsyncSession = Depends(get_db_session),
    actor: Optional[AuthenticatedUser] = Depends(get_current_actor),
):
    return ok(await claim_service.resolve(db, code, actor))


@router.post(
    "/{tag_id}/claim",
    response_model=ApiResponse[ClaimResultResponse],
    summary="Save the pet form and activate the tag",
)
async def claim_tag(
    tag_id: UUID,
    form: PetForm,
    db: AsyncSession = Depends(get_db_session),
    actor: AuthenticatedUser = Depends(require_actor),
):
    return ok(await claim_service.commit(db, tag_id, form, actor))

"""
Plakita Backend — Owner Dashboard Routes
==========================================
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from plakita.database import get_db_session
from plakita.schemas.common import ApiResponse, ok
from plakita.schemas.tag import TagListResponse
from plakita.services.auth_client import AuthenticatedUser
from plakita.services.dashboard_service import dashboard_service
from plakita.services.session import require_actor

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])


@router.get("/tags", response_model=ApiResponse[TagListResponse], summary="My tags and pets")
async def my_tags(
    db: AsyncSession = Depends(get_db_session),
    actor: AuthenticatedUser = Depends(require_actor),
):
    return ok(await dashboard_service.list_tags(db, actor))


@router.delete(
    "/pets/{pet_id}",
    response_model=ApiResponse[dict],
    summary="Delete a pet and free its tag (requires confirm=true)",
)
async def delete_pet(
    pet_id: UUID,
    confirm: bool = Query(default=False),
    db: AsyncSession = Depends(get_db_session),
    actor: AuthenticatedUser = Depends(require_actor),
):
    tags_reset = await dashboard_service.delete_pet(db, pet_id, actor, confirm=confirm)
    return ok({"pet_id": str(pet_id), "tags_reset": tags_reset})

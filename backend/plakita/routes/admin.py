"""
Plakita Backend — Admin Routes
================================

What:  Tag inventory, account lookup, NFC bookkeeping, integrity tooling and
       diagnostics.
Who:   Accounts whose server-controlled role is the admin role. The check is
       a router-level dependency, so no handler here can forget it.
"""

from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from plakita.database import get_db_session
from plakita.schemas.admin import (
    DiagnosticsResponse,
    IntegrityScanResponse,
    NfcMarkResponse,
    RepairReportResponse,
    StatisticsResponse,
    UserListResponse,
    UserVerificationResponse,
)
from plakita.schemas.common import ApiResponse, ok
from plakita.schemas.tag import GeneratedCode, TagCreateRequest, TagListResponse, TagResponse
from plakita.services.admin_service import admin_service
from plakita.services.integrity_service import integrity_service
from plakita.services.session import require_admin
from plakita.services.tag_admin_service import tag_admin_service

router = APIRouter(
    prefix="/api/admin",
    tags=["Admin"],
    dependencies=[Depends(require_admin)],
)


# ── Overview ──────────────────────────────────────────────────────────────

@router.get("/stats", response_model=ApiResponse[StatisticsResponse])
async def statistics(db: AsyncSession = Depends(get_db_session)):
    return ok(await admin_service.statistics(db))


@router.get("/diagnostics", response_model=ApiResponse[DiagnosticsResponse])
async def diagnostics(db: AsyncSession = Depends(get_db_session)):
    return ok(await admin_service.diagnostics(db))


# ── Tags ──────────────────────────────────────────────────────────────────

@router.get("/tags", response_model=ApiResponse[TagListResponse])
async def list_tags(db: AsyncSession = Depends(get_db_session)):
    return ok(await tag_admin_service.list_tags(db))


@router.post("/tags", response_model=ApiResponse[TagResponse], status_code=201)
async def create_tag(body: TagCreateRequest, db: AsyncSession = Depends(get_db_session)):
    return ok(await tag_admin_service.create_tag(db, body.code))


@router.get("/tags/generate-code", response_model=ApiResponse[GeneratedCode])
async def generate_code():
    return ok(tag_admin_service.suggest_code())


@router.delete(
    "/tags/{tag_id}",
    response_model=ApiResponse[dict],
    summary="Delete an unclaimed tag (requires confirm=true)",
)
async def delete_tag(
    tag_id: UUID,
    confirm: bool = Query(default=False),
    db: AsyncSession = Depends(get_db_session),
):
    await tag_admin_service.delete_tag(db, tag_id, confirm=confirm)
    return ok({"tag_id": str(tag_id), "deleted": True})


# ── Users ─────────────────────────────────────────────────────────────────

@router.get("/users", response_model=ApiResponse[UserListResponse])
async def list_users(db: AsyncSession = Depends(get_db_session)):
    return ok(await admin_service.list_users(db))


@router.get("/users/verify", response_model=ApiResponse[UserVerificationResponse])
async def verify_user(
    email: str = Query(..., max_length=255),
    db: AsyncSession = Depends(get_db_session),
):
    return ok(await admin_service.verify_user(db, email))


# ── Integrity ─────────────────────────────────────────────────────────────

@router.get("/integrity", response_model=ApiResponse[IntegrityScanResponse])
async def integrity_scan(db: AsyncSession = Depends(get_db_session)):
    return ok(await integrity_service.scan_report(db))


@router.post("/integrity/repair", response_model=ApiResponse[RepairReportResponse])
async def integrity_repair(db: AsyncSession = Depends(get_db_session)):
    return ok(await integrity_service.repair(db))


# ── NFC ───────────────────────────────────────────────────────────────────

@router.post("/tags/{code}/nfc", response_model=ApiResponse[NfcMarkResponse])
async def mark_nfc(code: str, db: AsyncSession = Depends(get_db_session)):
    return ok(await admin_service.mark_nfc(db, code))


@router.get("/nfc/stats", response_model=ApiResponse[Dict[str, Any]])
async def nfc_statistics(db: AsyncSession = Depends(get_db_session)):
    return ok(await admin_service.nfc_statistics(db))

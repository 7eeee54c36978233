"""
Plakita Backend — Admin Service
=================================

What:  Statistics, user listing/verification, NFC bookkeeping and diagnostics
       for the admin dashboard.
How:   Tag/pet counts are plain queries; anything touching accounts goes
       through the remote procedures (services/procedures.py).
Who:   /api/admin/* routes, behind the admin role check.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from plakita.exceptions import (
    NotFoundError,
    PlakitaError,
    ValidationError,
    translate_store_error,
)
from plakita.models.pet import Pet
from plakita.models.tag import Tag
from plakita.models.user import User
from plakita.schemas.admin import (
    DiagnosticsResponse,
    NfcMarkResponse,
    StatisticsResponse,
    UserListResponse,
    UserVerificationResponse,
)
from plakita.services.procedures import ProcedureGateway, as_mapping, procedure_gateway
from plakita.services.tag_lookup import escape_like
from plakita.services.validation import EMAIL_PATTERN, normalize_tag_code

logger = logging.getLogger(__name__)

DIAGNOSTIC_TABLES = {"tags": Tag, "pets": Pet, "users": User}
EMAIL_SUGGESTION_LIMIT = 5


class AdminService:

    def __init__(self, gateway: Optional[ProcedureGateway] = None):
        self.gateway = gateway or procedure_gateway

    # ── Statistics ────────────────────────────────────────────────────────

    async def statistics(self, db: AsyncSession) -> StatisticsResponse:
        """
        Dashboard counters.

        total_users comes from get_user_statistics; when the procedure fails
        the users-table count is reported instead and the failure is logged.
        """
        try:
            total_tags = await self._count(db, select(func.count(Tag.id)))
            activated = await self._count(
                db, select(func.count(Tag.id)).where(Tag.activated.is_(True))
            )
            nfc_tags = await self._count(
                db, select(func.count(Tag.id)).where(Tag.has_nfc.is_(True))
            )
            total_pets = await self._count(db, select(func.count(Pet.id)))
        except SQLAlchemyError as e:
            raise translate_store_error(e, "loading statistics") from e

        try:
            user_stats = as_mapping(await self.gateway.fetch_one(db, "get_user_statistics"))
            total_users = int(user_stats.get("total_users") or 0)
        except PlakitaError as e:
            logger.warning("get_user_statistics failed, counting users table: %s", e.message)
            try:
                total_users = await self._count(db, select(func.count(User.id)))
            except SQLAlchemyError as count_error:
                raise translate_store_error(count_error, "counting users") from count_error

        return StatisticsResponse(
            total_tags=total_tags,
            activated_tags=activated,
            pending_tags=total_tags - activated,
            total_pets=total_pets,
            nfc_tags=nfc_tags,
            total_users=total_users,
        )

    @staticmethod
    async def _count(db: AsyncSession, stmt) -> int:
        return int((await db.execute(stmt)).scalar() or 0)

    # ── Users ─────────────────────────────────────────────────────────────

    async def list_users(self, db: AsyncSession) -> UserListResponse:
        users = await self.gateway.fetch_rows(db, "list_users_for_admin")
        return UserListResponse(users=users, total_count=len(users))

    async def verify_user(self, db: AsyncSession, email: str) -> UserVerificationResponse:
        """
        Full picture of one account (profile, tags, pets, counters).

        Raises NotFoundError with similar emails as suggestions when the
        procedure finds no user.
        """
        email = (email or "").strip().lower()
        if not EMAIL_PATTERN.match(email):
            raise ValidationError(message="Enter a valid email address", field="email")

        data = as_mapping(
            await self.gateway.fetch_one(db, "verify_user_for_admin", user_email=email)
        )
        if not data.get("user_data"):
            raise NotFoundError(
                resource="user",
                resource_id=email,
                suggestions=await self._similar_emails(db, email),
            )
        return UserVerificationResponse(
            user_data=data["user_data"],
            tags_data=data.get("tags_data") or [],
            pets_data=data.get("pets_data") or [],
            stats=data.get("stats") or {},
        )

    async def _similar_emails(self, db: AsyncSession, email: str) -> List[str]:
        local_part = email.split("@", 1)[0]
        if not local_part:
            return []
        try:
            result = await db.execute(
                select(User.email)
                .where(User.email.ilike(f"%{escape_like(local_part)}%", escape="\\"))
                .order_by(User.email)
                .limit(EMAIL_SUGGESTION_LIMIT)
            )
        except SQLAlchemyError as e:
            raise translate_store_error(e, "searching similar emails") from e
        return list(result.scalars().all())

    # ── NFC ───────────────────────────────────────────────────────────────

    async def mark_nfc(self, db: AsyncSession, raw_code: str) -> NfcMarkResponse:
        code = normalize_tag_code(raw_code)
        if not code:
            raise ValidationError(message="Tag code is required", field="code")
        result = await self.gateway.fetch_one(db, "mark_tag_as_nfc", p_tag_code=code)
        logger.info("Tag %s marked as NFC", code)
        return NfcMarkResponse(code=code, result=result)

    async def nfc_statistics(self, db: AsyncSession) -> Dict:
        return as_mapping(await self.gateway.fetch_one(db, "get_nfc_statistics"))

    # ── Diagnostics ───────────────────────────────────────────────────────

    async def diagnostics(self, db: AsyncSession) -> DiagnosticsResponse:
        """
        Connection check plus a cheap read on each table.

        Each probe runs in its own savepoint so one unreadable table (e.g. an
        access policy rejecting the read) does not hide the others.
        """
        try:
            await db.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error("Diagnostics: store unreachable: %s", str(e))
            return DiagnosticsResponse(
                database="disconnected",
                tables={name: "not checked" for name in DIAGNOSTIC_TABLES},
                healthy=False,
            )

        tables: Dict[str, str] = {}
        for name, model in DIAGNOSTIC_TABLES.items():
            try:
                async with db.begin_nested():
                    await db.execute(select(model.id).limit(1))
                tables[name] = "ok"
            except SQLAlchemyError as e:
                logger.warning("Diagnostics: table %s unreadable: %s", name, str(e))
                tables[name] = translate_store_error(e, f"reading {name}").message

        return DiagnosticsResponse(
            database="connected",
            tables=tables,
            healthy=all(status == "ok" for status in tables.values()),
        )


# ── Singleton Instance ────────────────────────────────────────────────────
admin_service = AdminService()

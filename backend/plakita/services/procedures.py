"""
Plakita Backend — Remote Procedure Gateway
============================================

What:  Calls the named stored procedures provisioned in the hosted store.
Why:   User listing, user verification, user statistics and NFC bookkeeping
       read the auth schema, which only SECURITY DEFINER functions can see.
How:   `SELECT * FROM <name>(:arg, ...)` through SQLAlchemy text(), restricted
       to an allowlist of procedure names and argument names. Each call runs
       in a SAVEPOINT so a failing procedure leaves the request transaction
       usable for whatever the caller does next.

Procedures:
    get_user_statistics()                → row with total_users (and friends)
    list_users_for_admin()               → one row per user
    verify_user_for_admin(user_email)    → json {user_data, tags_data, pets_data, stats}
    mark_tag_as_nfc(p_tag_code)          → json result of the marking
    get_nfc_statistics()                 → row/json with NFC counters
"""

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from plakita.exceptions import translate_store_error

logger = logging.getLogger(__name__)

PROCEDURES: Dict[str, Tuple[str, ...]] = {
    "get_user_statistics": (),
    "list_users_for_admin": (),
    "verify_user_for_admin": ("user_email",),
    "mark_tag_as_nfc": ("p_tag_code",),
    "get_nfc_statistics": (),
}


def _decode(value: Any) -> Any:
    """asyncpg hands json/jsonb back as text unless a codec is registered."""
    if isinstance(value, (str, bytes)):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def as_mapping(value: Any) -> Dict[str, Any]:
    """Coerces a procedure result (row dict or decoded json) into a dict."""
    if isinstance(value, Mapping):
        return dict(value)
    return {}


class ProcedureGateway:

    def _statement(self, name: str, params: Dict[str, Any]):
        if name not in PROCEDURES:
            raise ValueError(f"Unknown remote procedure '{name}'")
        expected = PROCEDURES[name]
        if set(params) != set(expected):
            raise ValueError(
                f"Procedure '{name}' expects arguments {expected}, got {tuple(params)}"
            )
        args = ", ".join(f":{arg}" for arg in expected)
        return text(f"SELECT * FROM {name}({args})")

    async def fetch_rows(self, db: AsyncSession, name: str, **params: Any) -> List[Dict[str, Any]]:
        """Calls a set-returning procedure and returns its rows as dicts."""
        stmt = self._statement(name, params)
        try:
            async with db.begin_nested():
                result = await db.execute(stmt, params)
                rows = [
                    {key: _decode(value) for key, value in row.items()}
                    for row in result.mappings().all()
                ]
        except SQLAlchemyError as e:
            raise translate_store_error(e, f"remote procedure {name}") from e
        logger.debug("Procedure %s returned %d rows", name, len(rows))
        return rows

    async def fetch_one(self, db: AsyncSession, name: str, **params: Any) -> Optional[Any]:
        """
        Calls a procedure expected to return one value.

        A single-column row (scalar or json function) yields that value;
        a wider row yields the row dict; no row yields None.
        """
        rows = await self.fetch_rows(db, name, **params)
        if not rows:
            return None
        row = rows[0]
        if len(row) == 1:
            return next(iter(row.values()))
        return row


# ── Singleton Instance ────────────────────────────────────────────────────
procedure_gateway = ProcedureGateway()

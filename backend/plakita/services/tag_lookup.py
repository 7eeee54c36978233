"""
Plakita Backend — Tag Lookup Strategy Chain
=============================================

What:  Resolves a user-typed (or scanned) code to a Tag and its linked Pet.
Why:   Codes arrive with stray whitespace, lowercase letters, or as the full
       activation URL read from a QR code / NFC chip. Stored data may also have
       drifted from the uppercase convention.
How:   A short-circuiting chain of strategies tried in order; the first one
       that returns rows wins:

           raw input ─▶ extract code from URL ─▶ trim + uppercase
                │
                ├─▶ ExactMatchStrategy        code = :code
                ├─▶ CaseInsensitiveStrategy   code ILIKE :code
                └─▶ (miss) diagnostics        code ILIKE %:code% LIMIT n
                                              → TagNotFoundError(suggestions)

       The partial-match step only feeds suggestions to the caller; it never
       selects a tag.

Failure semantics:
    Blank input fails before any query. A store error aborts the chain and is
    surfaced once (no retries). Two rows for one code are a data defect and
    raise DataIntegrityError instead of picking one.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from plakita.config import settings
from plakita.exceptions import (
    DataIntegrityError,
    TagNotFoundError,
    ValidationError,
    translate_store_error,
)
from plakita.models.pet import Pet
from plakita.models.tag import Tag
from plakita.services.links import extract_tag_code_from_url
from plakita.services.validation import normalize_tag_code

logger = logging.getLogger(__name__)

TagRow = Tuple[Tag, Optional[Pet]]


def escape_like(value: str) -> str:
    """Escapes LIKE wildcards so user input only matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def tag_with_pet() -> Select:
    """SELECT tag, pet with the weak pet_id reference resolved (pet may be NULL)."""
    return select(Tag, Pet).outerjoin(Pet, Pet.id == Tag.pet_id)


@dataclass
class TagLookupResult:
    code: str
    tag: Tag
    pet: Optional[Pet]
    matched_by: str


# ══════════════════════════════════════════════════════════════════════════
# Strategies
# ══════════════════════════════════════════════════════════════════════════

class LookupStrategy:
    """One step of the chain. Returns matching rows; empty means "try the next"."""

    name = "base"

    async def find(self, db: AsyncSession, code: str) -> Sequence[TagRow]:
        raise NotImplementedError


class ExactMatchStrategy(LookupStrategy):
    name = "exact"

    async def find(self, db: AsyncSession, code: str) -> Sequence[TagRow]:
        # LIMIT 2: enough to notice a duplicate without reading more
        result = await db.execute(tag_with_pet().where(Tag.code == code).limit(2))
        return [(row[0], row[1]) for row in result.all()]


class CaseInsensitiveStrategy(LookupStrategy):
    """Catches rows stored before codes were normalized to uppercase."""

    name = "case_insensitive"

    async def find(self, db: AsyncSession, code: str) -> Sequence[TagRow]:
        result = await db.execute(
            tag_with_pet().where(Tag.code.ilike(escape_like(code), escape="\\")).limit(2)
        )
        return [(row[0], row[1]) for row in result.all()]


DEFAULT_STRATEGIES: Tuple[LookupStrategy, ...] = (
    ExactMatchStrategy(),
    CaseInsensitiveStrategy(),
)


# ══════════════════════════════════════════════════════════════════════════
# Service
# ══════════════════════════════════════════════════════════════════════════

class TagLookupService:
    """
    Runs the strategy chain and, on a miss, the diagnostic queries.

    Stateless apart from its strategy list; a custom chain can be injected.
    """

    def __init__(self, strategies: Optional[Sequence[LookupStrategy]] = None):
        self.strategies: List[LookupStrategy] = list(strategies or DEFAULT_STRATEGIES)

    @staticmethod
    def parse_code(raw: Optional[str]) -> str:
        """
        Turns raw input into a normalized code.

        Accepts a bare code or an activation URL/path. Raises ValidationError
        for blank input so no query is ever issued for it.
        """
        text = (raw or "").strip()
        if text and "/" in text:
            text = extract_tag_code_from_url(text) or text
        code = normalize_tag_code(text)
        if not code:
            raise ValidationError(message="Enter the code printed on your tag", field="code")
        return code

    async def lookup(self, db: AsyncSession, raw: Optional[str]) -> TagLookupResult:
        """
        Resolves `raw` to a tag.

        Raises:
            ValidationError:    blank input
            TagNotFoundError:   no strategy matched (carries suggestions)
            DataIntegrityError: a strategy matched more than one row
            PermissionDeniedError / TransportError: store failure
        """
        code = self.parse_code(raw)

        try:
            for strategy in self.strategies:
                rows = await strategy.find(db, code)
                if len(rows) > 1:
                    logger.error(
                        "Lookup '%s' matched %d rows via %s strategy", code, len(rows), strategy.name
                    )
                    raise DataIntegrityError(
                        message=f"More than one tag is registered as '{code}'. Contact the administrator.",
                        context={"code": code, "strategy": strategy.name},
                    )
                if rows:
                    tag, pet = rows[0]
                    logger.info("Tag %s found via %s strategy", tag.code, strategy.name)
                    return TagLookupResult(code=code, tag=tag, pet=pet, matched_by=strategy.name)

            suggestions, store_empty, available = await self._diagnose(db, code)
        except SQLAlchemyError as e:
            raise translate_store_error(e, "tag lookup") from e

        logger.info(
            "Tag '%s' not found (store_empty=%s, %d suggestions)", code, store_empty, len(suggestions)
        )
        raise TagNotFoundError(
            code=code,
            suggestions=suggestions,
            store_empty=store_empty,
            available_codes=available,
        )

    async def _diagnose(self, db: AsyncSession, code: str) -> Tuple[List[str], bool, List[str]]:
        """Near-miss candidates, whether the store is empty, and a sample of existing codes."""
        total = (await db.execute(select(func.count(Tag.id)))).scalar() or 0
        if total == 0:
            return [], True, []

        partial = await db.execute(
            select(Tag.code)
            .where(Tag.code.ilike(f"%{escape_like(code)}%", escape="\\"))
            .order_by(Tag.code)
            .limit(settings.lookup_candidate_limit)
        )
        suggestions = list(partial.scalars().all())

        available: List[str] = []
        if settings.lookup_listing_limit:
            listing = await db.execute(
                select(Tag.code).order_by(Tag.created_at.desc()).limit(settings.lookup_listing_limit)
            )
            available = list(listing.scalars().all())

        return suggestions, False, available


# ── Singleton Instance ────────────────────────────────────────────────────
tag_lookup_service = TagLookupService()

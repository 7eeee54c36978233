"""
Plakita Backend — User Profile Service
========================================

What:  Keeps the application-visible `users` row in step with the auth account.
Why:   Admin procedures, email suggestions and the claim form prefill read
       names/emails/phones from `users`, not from the auth service.
When:  On SIGNED_IN and TOKEN_REFRESHED session events.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from plakita.exceptions import translate_store_error
from plakita.models.user import User
from plakita.services.auth_client import AuthenticatedUser

logger = logging.getLogger(__name__)


class UserService:

    async def sync_profile(self, db: AsyncSession, user: AuthenticatedUser) -> User:
        """
        Upserts the profile row for `user`.

        full_name falls back to the email so the admin listing never shows a
        blank name. The write runs in a savepoint: a failure here must not
        poison the surrounding request transaction.
        """
        email = user.email or ""
        profile = User(
            id=user.id,
            email=email,
            full_name=user.full_name or email,
            phone=user.phone,
            avatar_url=user.avatar_url,
            updated_at=datetime.now(timezone.utc),
        )
        try:
            async with db.begin_nested():
                merged = await db.merge(profile)
            logger.debug("Synced profile row for user %s", user.id)
            return merged
        except SQLAlchemyError as e:
            raise translate_store_error(e, "syncing the user profile") from e


user_service = UserService()

"""
Plakita Backend — ORM Models Package
======================================

What:  SQLAlchemy mappings of the hosted store's tables.
Why:   Services query and mutate rows through typed models instead of raw SQL.

Tables:
    - tags:  tag.py   (physical QR/NFC marker registrations)
    - pets:  pet.py   (pet profiles, owned by a user)
    - users: user.py  (application-visible mirror of auth accounts)

References between the tables are weak (plain uuid columns, no foreign keys),
matching the hosted schema: a tag can point at a pet that no longer exists,
which is exactly what the integrity scan looks for.
"""

from plakita.models.pet import Pet
from plakita.models.tag import Tag
from plakita.models.user import User

__all__ = ["Pet", "Tag", "User"]

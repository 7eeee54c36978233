"""
Plakita Backend — Application Package
=======================================

Pet identification tags: every physical tag carries a QR code (and sometimes
an NFC chip) pointing at /activate-tag/<CODE>. This package looks the code up,
lets an owner claim it for a pet, shows finders a public profile, and gives
administrators the inventory and integrity tooling.

    ┌─────────────────────────────────────┐
    │      Routes (routes/*.py)           │  ← HTTP, envelope, auth dependencies
    ├─────────────────────────────────────┤
    │      Services (services/*.py)       │  ← lookup, claim, integrity, admin
    ├─────────────────────────────────────┤
    │      Models & Schemas               │  ← SQLAlchemy rows + Pydantic contracts
    ├─────────────────────────────────────┤
    │      Database (database.py)         │  ← async sessions
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"

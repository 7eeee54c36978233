"""
Plakita Backend — Pet Schemas
===============================

What:  The pet/contact form and the pet views returned by the API.
Why:   The form is deliberately permissive (plain strings, empty defaults):
       business validation happens in services/validation.py so it can report
       every field problem at once as a field → message map instead of
       failing on the first one.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class PetForm(BaseModel):
    """
    What:  The activation / edit form.
    Who:   Posted to POST /api/tags/{tag_id}/claim and PUT /api/pets/{id};
           also returned prefilled inside a claim decision.

    pet_id is None for a new pet; set when editing or resubmitting a claim.
    """
    pet_id: Optional[uuid.UUID] = Field(default=None, description="Existing pet id, if any")
    name: str = Field(default="", max_length=100)
    type: str = Field(default="", max_length=20, description="dog, cat, bird, rabbit or other")
    breed: str = Field(default="", max_length=100)
    owner_name: str = Field(default="", max_length=100)
    contact_info: str = Field(default="", max_length=255, description="Email or phone")
    owner_phone: str = Field(default="", max_length=30)
    notes: str = Field(default="", max_length=2000)


class PetResponse(BaseModel):
    """Full pet row as seen by its owner."""
    id: uuid.UUID
    name: str
    type: str
    breed: Optional[str] = None
    owner_name: str
    owner_contact: Optional[str] = None
    owner_phone: Optional[str] = None
    notes: Optional[str] = None
    qr_activated: bool
    user_id: uuid.UUID
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class LinkedTag(BaseModel):
    id: uuid.UUID
    code: str
    activated: bool
    activated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OwnerPetProfile(BaseModel):
    """
    What:  Owner view of a pet: the row, its tag, and the URLs to print.
    Who:   Returned by GET /api/pets/{id}.

    activation_url is what goes on the QR code / NFC chip;
    public_profile_url is where a finder lands after scanning.
    """
    pet: PetResponse
    tag: Optional[LinkedTag] = None
    activation_url: Optional[str] = None
    public_profile_url: str


class ContactLink(BaseModel):
    """One way for a finder to reach the owner (tel:, mailto:, WhatsApp)."""
    kind: str = Field(description="phone, whatsapp or email")
    label: str
    href: str


class PublicPetProfile(BaseModel):
    """
    What:  World-readable profile shown after scanning an activated tag.
    Why:   Exposes only what a finder needs; the owner's full name, user id
           and tag ownership stay private.
    """
    id: uuid.UUID
    name: str
    type: str
    breed: Optional[str] = None
    notes: Optional[str] = None
    owner_first_name: str
    owner_contact: Optional[str] = None
    owner_phone: Optional[str] = None
    tag_code: Optional[str] = None
    contact_links: List[ContactLink] = Field(default_factory=list)

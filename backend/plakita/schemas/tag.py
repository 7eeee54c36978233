"""
Plakita Backend — Tag and Claim Schemas
=========================================

What:  API contracts for tag lookup, claim decisions and claim commits.
Who:   Returned by /api/tags/*, /api/dashboard/* and /api/admin/tags.
"""

import enum
import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from plakita.schemas.pet import PetForm, PetResponse


class ClaimOutcome(str, enum.Enum):
    """What the UI should do after a successful lookup."""
    EDIT = "edit"
    REDIRECT = "redirect"
    CLAIM = "claim"
    REJECT = "reject"
    REQUIRE_REGISTRATION = "require_registration"


class TagResponse(BaseModel):
    """Full tag row (owner and admin views)."""
    id: uuid.UUID
    code: str
    activated: bool
    activated_at: Optional[datetime] = None
    pet_id: Optional[uuid.UUID] = None
    user_id: Optional[uuid.UUID] = None
    has_nfc: bool = False
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TagSummary(BaseModel):
    """Tag fields that are safe to show to anyone holding the physical tag."""
    id: uuid.UUID
    code: str
    activated: bool
    has_nfc: bool = False

    model_config = {"from_attributes": True}


class ClaimDecisionResponse(BaseModel):
    """
    What:  Result of the claim state machine for one lookup.

    form is only present for EDIT and CLAIM; redirect_to only for REDIRECT
    and REQUIRE_REGISTRATION. relink marks a CLAIM that replaces a stale
    pet link on the tag.
    """
    outcome: ClaimOutcome
    title: str
    message: str
    form: Optional[PetForm] = None
    relink: bool = False
    redirect_to: Optional[str] = None


class TagLookupResponse(BaseModel):
    """Returned by GET /api/tags/lookup."""
    normalized_code: str = Field(description="Code after trimming and uppercasing")
    matched_by: str = Field(description="Name of the lookup strategy that found the tag")
    tag: TagSummary
    decision: ClaimDecisionResponse


class ClaimResultResponse(BaseModel):
    """Returned by POST /api/tags/{tag_id}/claim once both writes succeed."""
    tag: TagResponse
    pet: PetResponse
    pet_created: bool = Field(description="False when an existing pet was updated")
    public_profile_url: str


class TagWithPet(BaseModel):
    """A tag and its linked pet (dashboard and admin listings)."""
    tag: TagResponse
    pet: Optional[PetResponse] = None
    activation_url: str
    public_profile_url: Optional[str] = None


class TagCreateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=100, description="Code to register (normalized server-side)")


class GeneratedCode(BaseModel):
    code: str
    activation_url: str


class TagListResponse(BaseModel):
    tags: List[TagWithPet]
    total_count: int

"""
Plakita Backend — Admin Schemas
=================================

What:  API contracts for statistics, user verification, integrity
       reconciliation, NFC procedures and diagnostics.
Who:   Returned by /api/admin/* (admin role required).
"""

import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class StatisticsResponse(BaseModel):
    total_tags: int
    activated_tags: int
    pending_tags: int
    total_pets: int
    nfc_tags: int
    total_users: int


class IntegrityIssueResponse(BaseModel):
    """One tag whose activation contradicts its linked rows."""
    tag_id: uuid.UUID
    code: str
    category: str = Field(description="orphaned_activation, ownerless_activation or owner_mismatch")
    pet_id: Optional[uuid.UUID] = None
    user_id: Optional[uuid.UUID] = None
    description: str


class IntegrityScanResponse(BaseModel):
    issues: List[IntegrityIssueResponse]
    total_count: int


class RepairOutcomeResponse(BaseModel):
    tag_id: uuid.UUID
    code: str
    category: str
    success: bool
    action: str = Field(description="deactivated, manual_review or none")
    error: Optional[str] = None


class RepairReportResponse(BaseModel):
    outcomes: List[RepairOutcomeResponse]
    repaired: int
    failed: int
    skipped: int


class UserVerificationResponse(BaseModel):
    """Shape returned by the verify_user_for_admin procedure."""
    user_data: Dict[str, Any]
    tags_data: List[Dict[str, Any]] = Field(default_factory=list)
    pets_data: List[Dict[str, Any]] = Field(default_factory=list)
    stats: Dict[str, Any] = Field(default_factory=dict)


class UserListResponse(BaseModel):
    users: List[Dict[str, Any]]
    total_count: int


class NfcMarkResponse(BaseModel):
    code: str
    result: Any = None


class DiagnosticsResponse(BaseModel):
    database: str = Field(description="connected or disconnected")
    tables: Dict[str, str] = Field(description="table name → ok or the error message")
    healthy: bool

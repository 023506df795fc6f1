from enum import Enum
from typing import Any, Dict, Optional
from datetime import datetime
from uuid import UUID
from sqlmodel import SQLModel


class Verdict(str, Enum):
    VALID = "VALID"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"
    TAMPERED = "TAMPERED"
    NOT_FOUND = "NOT_FOUND"

    # Upload variant, no revocation registry to consult
    VALID_OFFLINE = "VALID_OFFLINE"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    INVALID_SCHEMA = "INVALID_SCHEMA"


class VerificationChecks(SQLModel):
    signature: bool = False
    expiry: bool = False
    revocation: bool = False


class CredentialSummary(SQLModel):
    """
    Human-facing projection of the credential subject.
    """
    issuer: Optional[str] = None
    batch_id: Optional[str] = None
    credential_id: Optional[str] = None
    product_name: Optional[str] = None
    quantity: Optional[str] = None
    route: Optional[str] = None
    inspection: Optional[Dict[str, Any]] = None
    issued_at: Optional[str] = None
    expires_at: Optional[str] = None


class Evaluation(SQLModel):
    verdict: Verdict
    checks: VerificationChecks = VerificationChecks()
    summary: Optional[CredentialSummary] = None
    credential: Optional[Dict[str, Any]] = None


class VerificationActivityRead(SQLModel):
    id: UUID
    credential_id: Optional[str] = None
    verdict: str
    actor: str
    product: Optional[str] = None
    route: Optional[str] = None
    checked_at: datetime


class AuditLogRead(SQLModel):
    id: UUID
    action: str
    actor_id: Optional[UUID] = None
    role: str
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    details: Dict[str, Any]
    created_at: datetime

from typing import Any, Dict, Optional
from datetime import datetime
from uuid import UUID
from sqlmodel import SQLModel, Field

from app.db.schema import CredentialStatus, ProofMode


class CredentialRevoke(SQLModel):
    reason: Optional[str] = Field(default=None, min_length=3, max_length=500)


class CredentialRead(SQLModel):
    id: UUID
    batch_id: UUID
    issuer: str
    issued_by: UUID
    issued_at: datetime
    expires_at: datetime
    status: CredentialStatus
    proof_mode: ProofMode
    verification_url: str
    portal_url: str
    qr_image: Optional[str] = None
    credential_json: Dict[str, Any]
    revoked_at: Optional[datetime] = None
    revoked_by: Optional[UUID] = None
    revocation_reason: Optional[str] = None
    wallet_shared: bool = False
    wallet_shared_at: Optional[datetime] = None

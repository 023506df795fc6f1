from typing import Optional, List, Dict, Any
from datetime import datetime, date
import uuid
from sqlalchemy import Index, text
from sqlmodel import SQLModel, Field, Relationship, JSON
from enum import Enum


class UserRole(str, Enum):
    EXPORTER = "EXPORTER"
    QA = "QA"
    CUSTOMS = "CUSTOMS"
    IMPORTER = "IMPORTER"
    ADMIN = "ADMIN"


class BatchStatus(str, Enum):
    SUBMITTED = "SUBMITTED"                        # Created by exporter
    QA_ASSIGNED = "QA_ASSIGNED"                    # Optional, set by assignment
    INSPECTION_SCHEDULED = "INSPECTION_SCHEDULED"  # Optional, set by QA agency
    INSPECTED = "INSPECTED"                        # Latest inspection PASS
    REJECTED = "REJECTED"                          # Latest inspection FAIL, terminal for certification
    CERTIFIED = "CERTIFIED"                        # Credential issued


class OrganicStatus(str, Enum):
    ORGANIC = "ORGANIC"
    NON_ORGANIC = "NON_ORGANIC"


class InspectionResult(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"


class InspectionType(str, Enum):
    PHYSICAL = "PHYSICAL"
    VIRTUAL = "VIRTUAL"


class DocumentCategory(str, Enum):
    PRODUCT_DOCUMENTS = "PRODUCT_DOCUMENTS"
    LAB_REPORTS = "LAB_REPORTS"
    CERTIFICATIONS = "CERTIFICATIONS"
    COMPLIANCE_DOCS = "COMPLIANCE_DOCS"
    PACKAGING_PHOTOS = "PACKAGING_PHOTOS"
    GENERAL = "GENERAL"  # Unclassified uploads


class CredentialStatus(str, Enum):
    ACTIVE = "ACTIVE"
    REVOKED = "REVOKED"


class ProofMode(str, Enum):
    DELEGATED = "DELEGATED"  # Signed by the external trust authority
    LOCAL = "LOCAL"          # Placeholder signature computed locally


class TimestampMixin(SQLModel):
    """
    Standard audit timestamps shared by every mutable record.
    """
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="UTC timestamp when this record was first persisted. Example: '2025-10-27 14:30:00'"
    )
    updated_at: datetime = Field(
        default_factory=datetime.utcnow,
        sa_column_kwargs={"onupdate": datetime.utcnow},
        description="UTC timestamp of the last modification. Updates automatically."
    )


class User(TimestampMixin, SQLModel, table=True):
    """
    An authenticated actor. Registration and password management live in the
    identity provider; this table only holds what the core needs to decide
    visibility and attribution.
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        description="The unique identifier for the user."
    )
    email: str = Field(
        unique=True,
        index=True,
        description="Login email, also used as the wallet recipient. Example: 'exporter@farmco.test'"
    )
    role: UserRole = Field(
        index=True,
        description="The single role this actor plays. Example: 'QA'"
    )
    organization: Optional[str] = Field(
        default=None,
        description="Organization name used for issuer DIDs and history messages. Example: 'Kerala Spice Labs'"
    )
    is_active: bool = Field(
        default=True,
        description="Soft delete flag. Inactive users cannot authenticate."
    )


class Batch(TimestampMixin, SQLModel, table=True):
    """
    One exporter's shipment lot undergoing certification.
    Batches are never deleted; every status change is mirrored in BatchHistory.
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        description="Opaque batch identifier."
    )
    exporter_id: uuid.UUID = Field(
        foreign_key="user.id",
        index=True,
        description="The exporter who submitted the batch."
    )
    qa_agency_id: Optional[uuid.UUID] = Field(
        default=None,
        foreign_key="user.id",
        index=True,
        description="The QA agency user assigned to inspect this batch, if any."
    )

    # Product
    product_type: str = Field(description="Example: 'Cardamom'")
    grade: Optional[str] = Field(default=None, description="Example: 'AGEB 8mm'")
    variety: Optional[str] = Field(default=None, description="Example: 'Green Bold'")
    batch_number: str = Field(description="Exporter's own lot reference. Example: 'CARD-2025-014'")
    quantity: float = Field(description="Example: 1200")
    unit: str = Field(description="Example: 'kg'")
    weight: Optional[float] = Field(default=None)
    weight_unit: Optional[str] = Field(default=None)

    # Provenance
    farm_address: Optional[str] = Field(default=None)
    farmer_details: Optional[str] = Field(default=None)
    harvest_date: date = Field(description="Example: '2025-09-14'")
    organic_status: OrganicStatus = Field(default=OrganicStatus.NON_ORGANIC)

    # Logistics
    container_details: Optional[str] = Field(default=None)
    origin_country: str = Field(description="Example: 'India'")
    destination_country: str = Field(description="Example: 'Netherlands'")

    notes: Optional[str] = Field(default=None)

    status: BatchStatus = Field(
        default=BatchStatus.SUBMITTED,
        index=True,
        description="Current lifecycle state."
    )

    # Scheduling
    inspection_scheduled_at: Optional[datetime] = Field(default=None)
    inspection_type: Optional[InspectionType] = Field(default=None)
    inspection_location: Optional[str] = Field(default=None)

    history: List["BatchHistory"] = Relationship(
        back_populates="batch",
        sa_relationship_kwargs={"order_by": "BatchHistory.created_at"}
    )
    inspections: List["Inspection"] = Relationship(
        back_populates="batch",
        sa_relationship_kwargs={"order_by": "Inspection.recorded_at"}
    )
    documents: List["BatchDocument"] = Relationship(back_populates="batch")
    credentials: List["Credential"] = Relationship(back_populates="batch")

    @property
    def latest_inspection(self) -> Optional["Inspection"]:
        return self.inspections[-1] if self.inspections else None


class BatchHistory(SQLModel, table=True):
    """
    Append-only log of lifecycle transitions, displayed as the batch timeline.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    batch_id: uuid.UUID = Field(foreign_key="batch.id", index=True)
    status: BatchStatus = Field(description="The batch status after the event.")
    message: str = Field(description="Example: 'Inspection recorded (PASS)'")
    created_at: datetime = Field(default_factory=datetime.utcnow)

    batch: Batch = Relationship(back_populates="history")


class Inspection(SQLModel, table=True):
    """
    A QA actor's recorded findings. Immutable; a re-inspection is a new row and
    the latest row is authoritative.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    batch_id: uuid.UUID = Field(foreign_key="batch.id", index=True)
    inspector_id: uuid.UUID = Field(foreign_key="user.id")
    inspector_org: Optional[str] = Field(default=None)

    moisture_percent: float = Field(description="0 to 100. Example: 11.3")
    pesticide_ppm: float = Field(description="0 to 10. Example: 0.05")
    organic_status: str = Field(description="Example: 'India Organic Certified'")
    iso_code: str = Field(description="Example: 'ISO 22000'")
    result: InspectionResult
    notes: Optional[str] = Field(default=None)
    recorded_at: datetime = Field(default_factory=datetime.utcnow)

    batch: Batch = Relationship(back_populates="inspections")


class BatchDocument(SQLModel, table=True):
    """
    Metadata for a supporting file. The file itself lives in static storage.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    batch_id: uuid.UUID = Field(foreign_key="batch.id", index=True)
    original_name: str
    mime_type: Optional[str] = Field(default=None)
    size: Optional[int] = Field(default=None)
    url: str
    category: DocumentCategory = Field(default=DocumentCategory.GENERAL)
    uploaded_at: datetime = Field(default_factory=datetime.utcnow)

    batch: Batch = Relationship(back_populates="documents")


class Credential(TimestampMixin, SQLModel, table=True):
    """
    An issued Digital Product Passport.
    At most one ACTIVE credential may exist per batch; the partial unique
    index below is the last line of defence against concurrent issuance.
    """
    __table_args__ = (
        Index(
            "uq_credential_active_batch",
            "batch_id",
            unique=True,
            sqlite_where=text("status = 'ACTIVE'"),
            postgresql_where=text("status = 'ACTIVE'"),
        ),
    )

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        description="Credential identifier, embedded in the verification URL."
    )
    batch_id: uuid.UUID = Field(foreign_key="batch.id", index=True)
    issuer: str = Field(description="Issuer DID. Example: 'did:example:kerala-spice-labs'")
    issued_by: uuid.UUID = Field(foreign_key="user.id")
    issued_at: datetime
    expires_at: datetime
    status: CredentialStatus = Field(default=CredentialStatus.ACTIVE)
    proof_mode: ProofMode = Field(default=ProofMode.LOCAL)

    credential_json: Dict[str, Any] = Field(
        default_factory=dict,
        sa_type=JSON,
        description="The full credential document as issued. Never mutated."
    )

    verification_url: str = Field(description="Example: 'https://api.agriqcert.test/verify/<id>'")
    portal_url: str = Field(description="Deep link into the verification portal.")
    qr_image: Optional[str] = Field(default=None, description="PNG data URI of the verification QR code.")

    revoked_at: Optional[datetime] = Field(default=None)
    revoked_by: Optional[uuid.UUID] = Field(default=None, foreign_key="user.id")
    revocation_reason: Optional[str] = Field(default=None)

    wallet_shared: bool = Field(default=False)
    wallet_shared_at: Optional[datetime] = Field(default=None)

    batch: Batch = Relationship(back_populates="credentials")


class CredentialTemplate(TimestampMixin, SQLModel, table=True):
    """
    Describes a credential layout offered to QA agencies: which schema it
    follows and which subject fields it surfaces. The default 'dpp-v1'
    template is seeded on first use.
    """
    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        primary_key=True,
        description="Template identifier. Example: 'dpp-v1'"
    )
    name: str = Field(
        unique=True,
        index=True,
        description="Display name. Example: 'Digital Product Passport'"
    )
    description: Optional[str] = Field(default=None)
    schema_url: Optional[str] = Field(
        default=None,
        description="Example: 'https://mosip.io/dpp/schema/v1'"
    )
    fields: List[str] = Field(
        default_factory=list,
        sa_type=JSON,
        description="Dotted paths into credentialSubject. Example: ['product.name', 'inspection.moisturePercent']"
    )
    created_by: Optional[uuid.UUID] = Field(
        default=None,
        foreign_key="user.id",
        description="Admin who defined the template. Empty for the seeded default."
    )


class VerificationActivity(SQLModel, table=True):
    """
    Write-once log of verification attempts. Observability only.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    credential_id: Optional[str] = Field(
        default=None,
        index=True,
        description="The credential ID as presented by the verifier, even if unknown."
    )
    verdict: str
    actor: str = Field(default="ANON", description="Role of the verifier or 'ANON'.")
    product: Optional[str] = Field(default=None)
    route: Optional[str] = Field(default=None)
    checked_at: datetime = Field(default_factory=datetime.utcnow, index=True)


class AuditLog(SQLModel, table=True):
    """
    Best-effort audit trail. Written in its own session, outside the
    transaction of the operation it describes.
    """
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    action: str = Field(index=True, description="Example: 'credential.issued'")
    actor_id: Optional[uuid.UUID] = Field(default=None)
    role: str = Field(default="SYSTEM")
    entity_type: Optional[str] = Field(default=None)
    entity_id: Optional[str] = Field(default=None)
    details: Dict[str, Any] = Field(default_factory=dict, sa_type=JSON)
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)

from typing import List, Optional
from datetime import date, datetime
from uuid import UUID
from sqlmodel import SQLModel, Field

from app.db.schema import (
    BatchStatus, OrganicStatus, InspectionResult, InspectionType, DocumentCategory
)


class BatchCreate(SQLModel):
    """
    Payload submitted by an exporter.
    """
    # Product
    product_type: str = Field(min_length=1, max_length=150)
    grade: Optional[str] = Field(default=None, max_length=100)
    variety: Optional[str] = Field(default=None, max_length=100)
    batch_number: str = Field(min_length=1, max_length=100)
    quantity: float = Field(gt=0)
    unit: str = Field(min_length=1, max_length=20)
    weight: Optional[float] = Field(default=None, gt=0)
    weight_unit: Optional[str] = Field(default=None, max_length=20)

    # Harvest / farm
    farm_address: Optional[str] = None
    farmer_details: Optional[str] = None
    harvest_date: date
    organic_status: OrganicStatus = OrganicStatus.NON_ORGANIC

    # Packaging / logistics
    container_details: Optional[str] = None
    origin_country: str = Field(min_length=1, max_length=100)
    destination_country: str = Field(min_length=1, max_length=100)

    notes: Optional[str] = None


class InspectionCreate(SQLModel):
    """
    Findings recorded by a QA agency.
    Out-of-range measurements are rejected here, never clamped.
    """
    moisture_percent: float = Field(ge=0, le=100)
    pesticide_ppm: float = Field(ge=0, le=10)
    organic_status: str = Field(min_length=2, max_length=100)
    iso_code: str = Field(min_length=2, max_length=50)
    result: InspectionResult
    notes: Optional[str] = None


class InspectionSchedule(SQLModel):
    scheduled_at: datetime
    type: InspectionType = InspectionType.PHYSICAL
    location: Optional[str] = None
    notes: Optional[str] = None


class QAAssignment(SQLModel):
    agency_id: UUID


class InspectionRead(SQLModel):
    id: UUID
    moisture_percent: float
    pesticide_ppm: float
    organic_status: str
    iso_code: str
    result: InspectionResult
    notes: Optional[str] = None
    inspector_id: UUID
    inspector_org: Optional[str] = None
    recorded_at: datetime


class BatchHistoryRead(SQLModel):
    id: UUID
    status: BatchStatus
    message: str
    created_at: datetime


class BatchDocumentRead(SQLModel):
    id: UUID
    original_name: str
    mime_type: Optional[str] = None
    size: Optional[int] = None
    url: str
    category: DocumentCategory
    uploaded_at: datetime


class BatchRead(BatchCreate):
    """List view"""
    id: UUID
    exporter_id: UUID
    qa_agency_id: Optional[UUID] = None
    status: BatchStatus
    inspection_scheduled_at: Optional[datetime] = None
    inspection_type: Optional[InspectionType] = None
    inspection_location: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class BatchFullRead(BatchRead):
    """
    Detail view with the latest inspection, the timeline and documents.
    """
    inspection: Optional[InspectionRead] = None
    history: List[BatchHistoryRead] = []
    documents: List[BatchDocumentRead] = []

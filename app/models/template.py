from typing import List, Optional
from uuid import UUID
from datetime import datetime
from sqlmodel import SQLModel, Field


class TemplateCreate(SQLModel):
    """
    Payload for defining a new credential template. Admin only.
    """
    name: str = Field(
        min_length=2,
        max_length=150,
        schema_extra={"examples": ["Spice Export Passport"]},
        description="Display name. Must be unique."
    )
    description: Optional[str] = Field(default=None, max_length=500)
    schema_url: Optional[str] = Field(
        default=None,
        max_length=300,
        schema_extra={"examples": ["https://mosip.io/dpp/schema/v1"]},
        description="JSON schema the credentials of this template follow."
    )
    fields: List[str] = Field(
        default_factory=list,
        schema_extra={"examples": [["product.name", "inspection.pesticidePPM"]]},
        description="Dotted paths into credentialSubject surfaced by this template."
    )


class TemplateRead(SQLModel):
    id: str
    name: str
    description: Optional[str] = None
    schema_url: Optional[str] = None
    fields: List[str] = []
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

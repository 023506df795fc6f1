from typing import Optional
from uuid import UUID
from sqlmodel import SQLModel, Field
from app.db.schema import UserRole


class UserRead(SQLModel):
    id: UUID
    email: str
    role: UserRole
    organization: Optional[str] = None
    is_active: bool


class UserCreate(SQLModel):
    """
    Actor record provisioned from the identity provider.
    """
    email: str = Field(
        min_length=3,
        max_length=255,
        description="Login email address, lower-cased on save."
    )
    role: UserRole
    organization: Optional[str] = Field(
        default=None,
        max_length=150,
        description="Organization the actor acts for. Example: 'Kerala Spice Labs'"
    )

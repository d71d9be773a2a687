"""Case, Attachment and LocationPoint models."""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class Case(SQLModel, table=True):
    __tablename__ = "cases"

    # Client-supplied for cases created offline
    id: str = Field(primary_key=True)
    client_id: Optional[str] = Field(default=None, foreign_key="clients.id")
    assigned_to_id: Optional[str] = Field(default=None, foreign_key="users.id", index=True)
    title: str
    description: str = ""
    customer_name: str = ""
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    address_street: str = ""
    address_city: str = ""
    address_state: str = ""
    address_pincode: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    status: str = Field(default="ASSIGNED")  # 'ASSIGNED' | 'IN_PROGRESS' | 'COMPLETED' | ...
    priority: int = Field(default=1)
    notes: Optional[str] = None
    verification_type: Optional[str] = None
    verification_outcome: Optional[str] = None
    verification_data: Optional[str] = None  # JSON
    assigned_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
    completed_at: Optional[datetime] = None


class Attachment(SQLModel, table=True):
    __tablename__ = "attachments"

    id: str = Field(primary_key=True)
    case_id: str = Field(foreign_key="cases.id", index=True)
    filename: str
    original_name: str = ""
    mime_type: str = "application/octet-stream"
    size: int = 0
    url: str = ""
    thumbnail_url: Optional[str] = None
    uploaded_by_id: Optional[str] = Field(default=None, foreign_key="users.id")
    uploaded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    geo_location: Optional[str] = None  # JSON


class LocationPoint(SQLModel, table=True):
    __tablename__ = "locations"

    id: str = Field(primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    case_id: Optional[str] = Field(default=None, foreign_key="cases.id", index=True)
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    source: str = Field(default="GPS")  # 'GPS' | 'NETWORK' | 'PASSIVE'
    activity_type: Optional[str] = None
    timestamp: datetime

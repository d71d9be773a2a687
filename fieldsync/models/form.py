"""Auto-save draft and verification report models."""

import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class AutoSave(SQLModel, table=True):
    __tablename__ = "auto_saves"
    __table_args__ = (UniqueConstraint("case_id", "form_type"),)

    id: str = Field(default_factory=lambda: f"aus_{secrets.token_hex(4)}", primary_key=True)
    case_id: str = Field(foreign_key="cases.id", index=True)
    form_type: str  # 'RESIDENCE' | 'OFFICE'
    form_data: str = "{}"  # JSON
    timestamp: datetime  # client clock
    version: int = Field(default=1)


class VerificationReport(SQLModel, table=True):
    __tablename__ = "verification_reports"

    id: str = Field(default_factory=lambda: f"vrp_{secrets.token_hex(4)}", primary_key=True)
    case_id: str = Field(foreign_key="cases.id", index=True)
    form_type: str
    submitted_by_id: str = Field(foreign_key="users.id")
    outcome: str = "VERIFIED"
    form_data: str = "{}"  # JSON
    photo_count: int = 0
    geo_location: Optional[str] = None  # JSON
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

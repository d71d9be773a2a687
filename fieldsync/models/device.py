"""Device and RefreshToken models."""

import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class Device(SQLModel, table=True):
    __tablename__ = "devices"
    __table_args__ = (UniqueConstraint("user_id", "device_id"),)

    id: str = Field(default_factory=lambda: f"dev_{secrets.token_hex(4)}", primary_key=True)
    device_id: str = Field(index=True)  # client-generated install identifier
    user_id: str = Field(foreign_key="users.id", index=True)
    platform: str = Field(default="UNKNOWN")  # 'IOS' | 'ANDROID' | 'UNKNOWN'
    model: str = Field(default="Unknown")
    os_version: str = Field(default="Unknown")
    app_version: str = Field(default="Unknown")
    push_token: Optional[str] = None
    notifications_enabled: bool = Field(default=True)
    notification_preferences: Optional[str] = None  # JSON

    is_approved: bool = Field(default=False)
    auth_code: Optional[str] = None
    auth_code_expires_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None

    is_active: bool = Field(default=True)
    last_active_at: Optional[datetime] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RefreshToken(SQLModel, table=True):
    __tablename__ = "refresh_tokens"

    id: str = Field(default_factory=lambda: f"rtk_{secrets.token_hex(6)}", primary_key=True)
    token_hash: str = Field(unique=True, index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    device_id: str = Field(index=True)
    expires_at: datetime
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

"""User and Client models."""

import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(default_factory=lambda: f"usr_{secrets.token_hex(4)}", primary_key=True)
    username: str = Field(unique=True, index=True)
    name: str
    email: Optional[str] = None
    password_hash: str
    role: str = Field(default="FIELD")  # 'FIELD' | 'BACKEND' | 'ADMIN' | 'SUPER_ADMIN'
    employee_id: Optional[str] = None
    designation: Optional[str] = None
    department: Optional[str] = None
    profile_photo_url: Optional[str] = None
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Client(SQLModel, table=True):
    __tablename__ = "clients"

    id: str = Field(default_factory=lambda: f"cli_{secrets.token_hex(4)}", primary_key=True)
    name: str
    code: str = Field(index=True)

"""Offline sync schemas: change items, typed case patches, download projection."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import ConfigDict, Field

from fieldsync.schemas.auth import DeviceInfo
from fieldsync.schemas.common import CamelModel


class CaseStatus(str, Enum):
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class CaseAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ConflictType(str, Enum):
    VERSION_CONFLICT = "VERSION_CONFLICT"
    DATA_CONFLICT = "DATA_CONFLICT"  # reserved for field-level merge, never produced


class GeoPoint(CamelModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None
    timestamp: Optional[str] = None

    @property
    def is_tagged(self) -> bool:
        return self.latitude is not None and self.longitude is not None


# --- Typed case payloads (allow-listed fields only) ---

class CasePatch(CamelModel):
    """Fields a device may change on an existing case; anything else is rejected."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    address_street: Optional[str] = None
    address_city: Optional[str] = None
    address_state: Optional[str] = None
    address_pincode: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    status: Optional[CaseStatus] = None
    priority: Optional[int] = None
    notes: Optional[str] = None
    verification_type: Optional[str] = None
    verification_outcome: Optional[str] = None
    form_data: Optional[dict[str, Any]] = None


class CaseCreate(CasePatch):
    title: str
    client_id: Optional[str] = None
    assigned_to_id: Optional[str] = None


# --- Change items ---

class CaseChange(CamelModel):
    id: str = Field(min_length=1)
    action: str
    data: dict[str, Any] = {}
    timestamp: datetime


class AttachmentData(CamelModel):
    case_id: str
    filename: str
    original_name: str = ""
    mime_type: str = "application/octet-stream"
    size: int = 0
    url: str = ""
    thumbnail_url: Optional[str] = None
    geo_location: Optional[GeoPoint] = None


class AttachmentChange(CamelModel):
    id: str = Field(min_length=1)
    action: str
    data: dict[str, Any] = {}
    timestamp: datetime


class LocationSource(str, Enum):
    GPS = "GPS"
    NETWORK = "NETWORK"
    PASSIVE = "PASSIVE"


class LocationData(CamelModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: Optional[float] = None
    source: LocationSource = LocationSource.GPS
    case_id: Optional[str] = None
    activity_type: Optional[str] = None  # 'CASE_START' | 'CASE_PROGRESS' | 'CASE_COMPLETE' | 'TRAVEL'


class LocationChange(CamelModel):
    id: str = Field(min_length=1)
    data: LocationData
    timestamp: datetime


class LocalChanges(CamelModel):
    # Items stay untyped here so one malformed item cannot fail the whole batch
    cases: list[Any] = []
    attachments: list[Any] = []
    locations: list[Any] = []

    @property
    def total(self) -> int:
        return len(self.cases) + len(self.attachments) + len(self.locations)


class SyncUploadRequest(CamelModel):
    local_changes: Optional[LocalChanges] = None
    device_info: Optional[DeviceInfo] = None
    last_sync_timestamp: Optional[str] = None


# --- Download projection ---

class MobileClient(CamelModel):
    id: str
    name: str
    code: str


class MobileAttachment(CamelModel):
    id: str
    filename: str
    original_name: str
    mime_type: str
    size: int
    url: str
    thumbnail_url: Optional[str] = None
    uploaded_at: str
    geo_location: Optional[dict[str, Any]] = None


class MobileCase(CamelModel):
    id: str
    title: str
    description: str
    customer_name: str
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    address_street: str
    address_city: str
    address_state: str
    address_pincode: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    status: str
    priority: int
    assigned_at: str
    updated_at: str
    completed_at: Optional[str] = None
    notes: Optional[str] = None
    verification_type: Optional[str] = None
    verification_outcome: Optional[str] = None
    client: Optional[MobileClient] = None
    attachments: list[MobileAttachment] = []
    form_data: Optional[dict[str, Any]] = None
    sync_status: str = "SYNCED"


# --- Results ---

class SyncConflict(CamelModel):
    case_id: str
    local_version: dict[str, Any]
    server_version: MobileCase
    conflict_type: ConflictType


class SyncItemError(CamelModel):
    type: str  # 'CASE' | 'ATTACHMENT' | 'LOCATION'
    id: Optional[str] = None
    error: str
    code: str


class SyncResults(CamelModel):
    processed_cases: int = 0
    processed_attachments: int = 0
    processed_locations: int = 0
    conflicts: list[SyncConflict] = []
    errors: list[SyncItemError] = []


class SyncUploadData(CamelModel):
    sync_timestamp: str
    results: SyncResults


class SyncDownloadData(CamelModel):
    cases: list[MobileCase]
    deleted_case_ids: list[str] = []
    conflicts: list[SyncConflict] = []
    sync_timestamp: str
    has_more: bool
    resume_timestamp: Optional[str] = None
    resume_id: Optional[str] = None


class SyncStatusData(CamelModel):
    device_id: str
    last_sync_at: Optional[str] = None
    is_online: bool = True
    pending_changes: int = 0

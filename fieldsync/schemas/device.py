"""Device administration schemas."""

from typing import Optional

from fieldsync.schemas.common import CamelModel


class DeviceOwner(CamelModel):
    id: str
    name: str
    username: str
    role: str


class DeviceResponse(CamelModel):
    id: str
    device_id: str
    user_id: str
    state: str  # 'PENDING_APPROVAL' | 'APPROVED' | 'REJECTED' | 'DEACTIVATED'
    platform: str
    model: str
    os_version: str
    app_version: str
    is_approved: bool
    is_active: bool
    auth_code: Optional[str] = None
    auth_code_expires_at: Optional[str] = None
    approved_at: Optional[str] = None
    approved_by: Optional[str] = None
    rejected_at: Optional[str] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    last_active_at: Optional[str] = None
    created_at: Optional[str] = None
    user: Optional[DeviceOwner] = None


class DeviceRejectRequest(CamelModel):
    reason: str = ""

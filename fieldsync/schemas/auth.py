"""Mobile auth request/response schemas."""

from typing import Any, Optional

from fieldsync.schemas.common import CamelModel


class DeviceInfo(CamelModel):
    device_id: Optional[str] = None
    platform: Optional[str] = None  # 'IOS' | 'ANDROID'
    model: Optional[str] = None
    os_version: Optional[str] = None
    app_version: Optional[str] = None
    push_token: Optional[str] = None


# --- Login ---

class LoginRequest(CamelModel):
    username: str
    password: str
    device_id: str
    device_info: Optional[DeviceInfo] = None


class UserProfile(CamelModel):
    id: str
    name: str
    username: str
    email: Optional[str]
    role: str
    employee_id: Optional[str]
    designation: Optional[str]
    department: Optional[str]
    profile_photo_url: Optional[str]


class DeviceAuthentication(CamelModel):
    is_approved: bool
    needs_approval: bool
    auth_code: Optional[str] = None
    auth_code_expires_at: Optional[str] = None


class LoginData(CamelModel):
    user: UserProfile
    access_token: str
    refresh_token: str
    device_registered: bool
    force_update: bool
    update_available: bool
    min_supported_version: str
    device_authentication: DeviceAuthentication


# --- Tokens ---

class RefreshRequest(CamelModel):
    refresh_token: str


class RefreshData(CamelModel):
    access_token: str


class LogoutRequest(CamelModel):
    device_id: Optional[str] = None


# --- Versions & config ---

class VersionCheckRequest(CamelModel):
    current_version: str
    platform: Optional[str] = None


class VersionCheckData(CamelModel):
    update_required: bool
    force_update: bool
    latest_version: str
    download_url: str
    release_notes: Optional[str] = None
    features: list[str] = []


class AppFeatures(CamelModel):
    offline_mode: bool
    background_sync: bool
    biometric_auth: bool


class AppLimits(CamelModel):
    max_file_size: int
    max_files_per_case: int
    location_accuracy_threshold: int
    sync_batch_size: int
    required_photos: int


class AppConfigData(CamelModel):
    api_version: str
    min_supported_version: str
    force_update_version: str
    features: AppFeatures
    limits: AppLimits
    api_base_url: str


class NotificationRegistrationRequest(CamelModel):
    device_id: Optional[str] = None
    push_token: str
    platform: Optional[str] = None
    enabled: bool = True
    preferences: Optional[dict[str, Any]] = None

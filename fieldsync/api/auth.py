"""Mobile authentication, version gating and app configuration endpoints."""

from fastapi import APIRouter, Depends, Request

from fieldsync.api.deps import get_audit, get_caller, get_repositories
from fieldsync.config import settings
from fieldsync.errors import failure_code
from fieldsync.repositories import Repositories
from fieldsync.schemas.auth import (
    AppConfigData,
    AppFeatures,
    AppLimits,
    DeviceAuthentication,
    LoginData,
    LoginRequest,
    LogoutRequest,
    NotificationRegistrationRequest,
    RefreshData,
    RefreshRequest,
    UserProfile,
    VersionCheckData,
    VersionCheckRequest,
)
from fieldsync.schemas.common import ApiResponse
from fieldsync.services.audit import AuditNotifier
from fieldsync.services.auth_service import login, logout_device, refresh_access_token
from fieldsync.services.device_registry import DeviceRegistry
from fieldsync.services.identity import CallerIdentity
from fieldsync.utils.timeutil import format_ts
from fieldsync.utils.versioning import download_url, should_force_update, should_update

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=ApiResponse[LoginData])
def mobile_login(
    request: LoginRequest,
    repos: Repositories = Depends(get_repositories),
    audit: AuditNotifier = Depends(get_audit),
):
    """Verify credentials, register the device and return a token pair."""
    with failure_code("LOGIN_FAILED"):
        result = login(
            username=request.username,
            password=request.password,
            device_id=request.device_id,
            device_info=request.device_info,
            repos=repos,
            audit=audit,
        )

    user, device = result.user, result.device
    return ApiResponse(
        message="Login successful",
        data=LoginData(
            user=UserProfile(
                id=user.id,
                name=user.name,
                username=user.username,
                email=user.email,
                role=user.role,
                employee_id=user.employee_id,
                designation=user.designation,
                department=user.department,
                profile_photo_url=user.profile_photo_url,
            ),
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            device_registered=result.device_registered,
            force_update=result.force_update,
            update_available=result.update_available,
            min_supported_version=settings.min_supported_version,
            device_authentication=DeviceAuthentication(
                is_approved=device.is_approved,
                needs_approval=result.needs_approval,
                auth_code=device.auth_code if result.needs_approval else None,
                auth_code_expires_at=format_ts(device.auth_code_expires_at)
                if result.needs_approval else None,
            ),
        ),
    )


@router.post("/refresh", response_model=ApiResponse[RefreshData])
def refresh_token(
    request: RefreshRequest,
    repos: Repositories = Depends(get_repositories),
    audit: AuditNotifier = Depends(get_audit),
):
    """Exchange a stored refresh token for a new access token."""
    with failure_code("TOKEN_REFRESH_FAILED"):
        access_token = refresh_access_token(request.refresh_token, repos, audit)
    return ApiResponse(message="Token refreshed successfully", data=RefreshData(access_token=access_token))


@router.post("/logout", response_model=ApiResponse[None])
def logout(
    request: LogoutRequest | None = None,
    caller: CallerIdentity = Depends(get_caller),
    repos: Repositories = Depends(get_repositories),
    audit: AuditNotifier = Depends(get_audit),
):
    """Revoke the device's refresh tokens. Defaults to the token's own device."""
    device_id = (request.device_id if request else None) or caller.device_id
    with failure_code("LOGOUT_FAILED"):
        logout_device(caller.user_id, device_id, repos, audit)
    return ApiResponse(message="Logout successful")


@router.post("/version-check", response_model=ApiResponse[VersionCheckData])
def version_check(request: VersionCheckRequest):
    with failure_code("VERSION_CHECK_FAILED"):
        data = VersionCheckData(
            update_required=should_update(request.current_version),
            force_update=should_force_update(request.current_version),
            latest_version=settings.api_version,
            download_url=download_url(request.platform),
            release_notes="Bug fixes and performance improvements",
            features=["Improved offline sync"],
        )
    return ApiResponse(data=data)


@router.get("/config", response_model=ApiResponse[AppConfigData])
def app_config(request: Request):
    """Versions, feature flags and limits the app needs before login."""
    with failure_code("CONFIG_FETCH_FAILED"):
        data = AppConfigData(
            api_version=settings.api_version,
            min_supported_version=settings.min_supported_version,
            force_update_version=settings.force_update_version,
            features=AppFeatures(
                offline_mode=settings.enable_offline_mode,
                background_sync=settings.enable_background_sync,
                biometric_auth=settings.enable_biometric_auth,
            ),
            limits=AppLimits(
                max_file_size=settings.max_file_size,
                max_files_per_case=settings.max_files_per_case,
                location_accuracy_threshold=settings.location_accuracy_threshold,
                sync_batch_size=settings.sync_batch_size,
                required_photos=settings.required_photos,
            ),
            api_base_url=str(request.base_url).rstrip("/") + "/api/mobile",
        )
    return ApiResponse(data=data)


@router.post("/notifications/register", response_model=ApiResponse[None])
def register_notifications(
    request: NotificationRegistrationRequest,
    caller: CallerIdentity = Depends(get_caller),
    repos: Repositories = Depends(get_repositories),
    audit: AuditNotifier = Depends(get_audit),
):
    with failure_code("NOTIFICATION_REGISTRATION_FAILED"):
        DeviceRegistry(repos, audit).register_notifications(
            caller.user_id,
            request.device_id or caller.device_id,
            request.push_token,
            request.enabled,
            request.preferences,
        )
    return ApiResponse(message="Notifications registered successfully")

"""Device administration endpoints: approval queue, approve, reject, per-user listing."""

from fastapi import APIRouter, Depends, Query

from fieldsync.api.deps import get_audit, get_caller, get_repositories, require_admin
from fieldsync.errors import AuthorizationError, failure_code
from fieldsync.models import Device, User
from fieldsync.repositories import Repositories
from fieldsync.schemas.common import ApiResponse
from fieldsync.schemas.device import DeviceOwner, DeviceRejectRequest, DeviceResponse
from fieldsync.services.audit import AuditNotifier
from fieldsync.services.device_registry import DeviceRegistry, device_state
from fieldsync.services.identity import CallerIdentity
from fieldsync.utils.timeutil import format_ts

router = APIRouter(prefix="/devices", tags=["devices"])


def _device_response(device: Device, owner: User | None = None) -> DeviceResponse:
    return DeviceResponse(
        id=device.id,
        device_id=device.device_id,
        user_id=device.user_id,
        state=device_state(device),
        platform=device.platform,
        model=device.model,
        os_version=device.os_version,
        app_version=device.app_version,
        is_approved=device.is_approved,
        is_active=device.is_active,
        auth_code=device.auth_code,
        auth_code_expires_at=format_ts(device.auth_code_expires_at),
        approved_at=format_ts(device.approved_at),
        approved_by=device.approved_by,
        rejected_at=format_ts(device.rejected_at),
        rejected_by=device.rejected_by,
        rejection_reason=device.rejection_reason,
        last_active_at=format_ts(device.last_active_at),
        created_at=format_ts(device.created_at),
        user=DeviceOwner(id=owner.id, name=owner.name, username=owner.username, role=owner.role)
        if owner else None,
    )


@router.get("/pending", response_model=ApiResponse[list[DeviceResponse]])
def list_pending_devices(
    admin: CallerIdentity = Depends(require_admin),
    repos: Repositories = Depends(get_repositories),
    audit: AuditNotifier = Depends(get_audit),
):
    """Devices waiting for approval, newest first, with their owners."""
    with failure_code("PENDING_DEVICES_FETCH_FAILED"):
        pending = DeviceRegistry(repos, audit).list_pending()
    return ApiResponse(data=[_device_response(d, owner) for d, owner in pending])


@router.post("/{device_id}/approve", response_model=ApiResponse[DeviceResponse])
def approve_device(
    device_id: str,
    user_id: str | None = Query(default=None, alias="userId"),
    admin: CallerIdentity = Depends(require_admin),
    repos: Repositories = Depends(get_repositories),
    audit: AuditNotifier = Depends(get_audit),
):
    with failure_code("DEVICE_APPROVAL_FAILED"):
        device = DeviceRegistry(repos, audit).approve(device_id, admin.user_id, user_id)
        owner = repos.users.get(device.user_id)
    return ApiResponse(message="Device approved successfully", data=_device_response(device, owner))


@router.post("/{device_id}/reject", response_model=ApiResponse[DeviceResponse])
def reject_device(
    device_id: str,
    request: DeviceRejectRequest | None = None,
    user_id: str | None = Query(default=None, alias="userId"),
    admin: CallerIdentity = Depends(require_admin),
    repos: Repositories = Depends(get_repositories),
    audit: AuditNotifier = Depends(get_audit),
):
    reason = request.reason if request else ""
    with failure_code("DEVICE_REJECTION_FAILED"):
        device = DeviceRegistry(repos, audit).reject(device_id, admin.user_id, reason, user_id)
        owner = repos.users.get(device.user_id)
    return ApiResponse(message="Device rejected successfully", data=_device_response(device, owner))


@router.get("/user/{user_id}", response_model=ApiResponse[list[DeviceResponse]])
def list_user_devices(
    user_id: str,
    caller: CallerIdentity = Depends(get_caller),
    repos: Repositories = Depends(get_repositories),
    audit: AuditNotifier = Depends(get_audit),
):
    """A user's devices. Admins may look at anyone, others only at themselves."""
    if not caller.is_admin and caller.user_id != user_id:
        raise AuthorizationError("Admin access required", code="ADMIN_REQUIRED")
    with failure_code("USER_DEVICES_FETCH_FAILED"):
        devices = DeviceRegistry(repos, audit).list_for_user(user_id)
        owner = repos.users.get(user_id)
    return ApiResponse(data=[_device_response(d, owner) for d in devices])

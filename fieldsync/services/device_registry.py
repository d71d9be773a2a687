"""Device registration, approval and quota management.

A device row is created the first time a user logs in from an unseen device
identifier. Roles listed in ``approval_required_roles`` start out pending
with a short auth code that an administrator uses to approve the device out
of band; every other role is approved on the spot. Rows are never deleted,
only deactivated.
"""

import json
import logging
from datetime import timedelta

from fieldsync.config import settings
from fieldsync.errors import ApiError, AuthorizationError, NotFoundError
from fieldsync.models import Device, User
from fieldsync.repositories.base import Repositories
from fieldsync.schemas.auth import DeviceInfo
from fieldsync.services.audit import AuditEvent, AuditNotifier
from fieldsync.services.identity import CallerIdentity
from fieldsync.utils.security import generate_auth_code
from fieldsync.utils.timeutil import ensure_utc, utcnow

logger = logging.getLogger(__name__)

PLATFORMS = ("IOS", "ANDROID")


def normalize_platform(platform: str | None) -> str | None:
    if not platform:
        return None
    platform = platform.strip().upper()
    return platform if platform in PLATFORMS else "UNKNOWN"


def device_state(device: Device) -> str:
    if device.rejected_at is not None:
        return "REJECTED"
    if not device.is_approved:
        return "PENDING_APPROVAL"
    if not device.is_active:
        return "DEACTIVATED"
    return "APPROVED"


class DeviceRegistry:
    def __init__(self, repos: Repositories, audit: AuditNotifier):
        self.repos = repos
        self.audit = audit

    # --- Registration ---

    def register_or_update(
        self,
        user: User,
        device_id: str,
        info: DeviceInfo | None,
        requester_role: str,
    ) -> tuple[Device, bool]:
        """Create or refresh the device row for ``(user, device_id)``.

        Returns the row and whether it was created by this call. Raises
        ``AuthorizationError`` for a device an administrator rejected.
        """
        info = info or DeviceInfo()
        now = utcnow()
        device = self.repos.devices.get(user.id, device_id)

        if device is None:
            needs_approval = settings.requires_device_approval(requester_role)
            device = Device(
                device_id=device_id,
                user_id=user.id,
                platform=normalize_platform(info.platform) or "UNKNOWN",
                model=info.model or "Unknown",
                os_version=info.os_version or "Unknown",
                app_version=info.app_version or "Unknown",
                push_token=info.push_token or None,
                is_approved=not needs_approval,
                approved_at=None if needs_approval else now,
                is_active=True,
                last_active_at=now,
            )
            if needs_approval:
                self._issue_auth_code(device)
            device = self.repos.devices.add(device)
            self.audit.notify(AuditEvent(
                action="DEVICE_REGISTERED",
                entity_type="DEVICE",
                entity_id=device_id,
                user_id=user.id,
                details={
                    "platform": device.platform,
                    "model": device.model,
                    "needsApproval": needs_approval,
                },
            ))
            return device, True

        if device.rejected_at is not None:
            raise AuthorizationError("Device has been rejected", code="DEVICE_REJECTED")

        # Only overwrite metadata with non-empty values
        platform = normalize_platform(info.platform)
        if platform:
            device.platform = platform
        if info.model:
            device.model = info.model
        if info.os_version:
            device.os_version = info.os_version
        if info.app_version:
            device.app_version = info.app_version
        if info.push_token:
            device.push_token = info.push_token

        if not device.is_approved and self._auth_code_expired(device, now):
            self._issue_auth_code(device)

        device.is_active = True
        device.last_active_at = now
        return self.repos.devices.save(device), False

    def enforce_quota(self, user_id: str, current_device_id: str) -> Device | None:
        """Deactivate the least recently active device when over quota.

        Best effort: returns the evicted device, or None when nothing had to go.
        """
        if self.repos.devices.count_active(user_id) <= settings.max_devices_per_user:
            return None

        oldest = self.repos.devices.least_recently_active(user_id, current_device_id)
        if oldest is None:
            return None

        oldest.is_active = False
        self.repos.devices.save(oldest)
        self.repos.refresh_tokens.delete_for_device(user_id, oldest.device_id)
        logger.info("Device quota exceeded for %s, deactivated %s", user_id, oldest.device_id)
        self.audit.notify(AuditEvent(
            action="DEVICE_DEACTIVATED",
            entity_type="DEVICE",
            entity_id=oldest.device_id,
            user_id=user_id,
            details={"reason": "DEVICE_QUOTA", "maxDevices": settings.max_devices_per_user},
        ))
        return oldest

    # --- Administration ---

    def resolve(self, device_id: str, user_id: str | None = None) -> Device:
        if user_id:
            device = self.repos.devices.get(user_id, device_id)
        else:
            matches = self.repos.devices.find_by_device_id(device_id)
            device = matches[0] if matches else None
        if device is None:
            raise NotFoundError("Device not found", code="DEVICE_NOT_FOUND")
        return device

    def approve(self, device_id: str, admin_id: str, user_id: str | None = None) -> Device:
        device = self.resolve(device_id, user_id)
        if device.rejected_at is not None:
            raise ApiError(
                "Rejected devices cannot be approved",
                code="DEVICE_REJECTED",
                status_code=409,
            )

        device.is_approved = True
        device.approved_at = utcnow()
        device.approved_by = admin_id
        device.auth_code = None
        device.auth_code_expires_at = None
        device = self.repos.devices.save(device)

        self.audit.notify(AuditEvent(
            action="DEVICE_APPROVED",
            entity_type="DEVICE",
            entity_id=device.device_id,
            user_id=admin_id,
            details={"deviceId": device.device_id, "ownerId": device.user_id},
        ))
        return device

    def reject(
        self, device_id: str, admin_id: str, reason: str, user_id: str | None = None
    ) -> Device:
        device = self.resolve(device_id, user_id)

        device.is_approved = False
        device.is_active = False
        device.rejected_at = utcnow()
        device.rejected_by = admin_id
        device.rejection_reason = reason or None
        device.auth_code = None
        device.auth_code_expires_at = None
        device = self.repos.devices.save(device)
        self.repos.refresh_tokens.delete_for_device(device.user_id, device.device_id)

        self.audit.notify(AuditEvent(
            action="DEVICE_REJECTED",
            entity_type="DEVICE",
            entity_id=device.device_id,
            user_id=admin_id,
            details={
                "deviceId": device.device_id,
                "ownerId": device.user_id,
                "platform": device.platform,
                "model": device.model,
                "reason": reason,
            },
        ))
        return device

    def list_pending(self) -> list[tuple[Device, User | None]]:
        devices = self.repos.devices.list_pending()
        owners = self.repos.users.get_many(d.user_id for d in devices)
        return [(d, owners.get(d.user_id)) for d in devices]

    def list_for_user(self, user_id: str) -> list[Device]:
        return self.repos.devices.list_for_user(user_id)

    # --- Session hooks ---

    def touch(self, user_id: str, device_id: str) -> Device | None:
        device = self.repos.devices.get(user_id, device_id)
        if device is None:
            return None
        device.last_active_at = utcnow()
        return self.repos.devices.save(device)

    def deactivate(self, user_id: str, device_id: str) -> Device | None:
        device = self.repos.devices.get(user_id, device_id)
        if device is None:
            return None
        device.is_active = False
        return self.repos.devices.save(device)

    def register_notifications(
        self,
        user_id: str,
        device_id: str,
        push_token: str,
        enabled: bool,
        preferences: dict | None,
    ) -> Device:
        device = self.repos.devices.get(user_id, device_id)
        if device is None:
            raise NotFoundError("Device not found", code="DEVICE_NOT_FOUND")
        device.push_token = push_token
        device.notifications_enabled = enabled
        device.notification_preferences = json.dumps(preferences) if preferences else None
        return self.repos.devices.save(device)

    def require_usable(self, caller: CallerIdentity) -> Device:
        """The caller's device must be registered, approved and active."""
        device = self.repos.devices.get(caller.user_id, caller.device_id)
        if device is None:
            raise AuthorizationError("Device not registered", code="DEVICE_NOT_APPROVED")
        if device.rejected_at is not None:
            raise AuthorizationError("Device has been rejected", code="DEVICE_REJECTED")
        if not device.is_approved:
            raise AuthorizationError("Device is awaiting approval", code="DEVICE_NOT_APPROVED")
        if not device.is_active:
            raise AuthorizationError("Device is no longer active", code="DEVICE_INACTIVE")
        return device

    # --- Helpers ---

    @staticmethod
    def _issue_auth_code(device: Device) -> None:
        device.auth_code = generate_auth_code()
        device.auth_code_expires_at = utcnow() + timedelta(hours=settings.auth_code_expire_hours)

    @staticmethod
    def _auth_code_expired(device: Device, now) -> bool:
        if device.auth_code is None or device.auth_code_expires_at is None:
            return True
        return ensure_utc(device.auth_code_expires_at) <= now

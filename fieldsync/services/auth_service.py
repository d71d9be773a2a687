"""Mobile login, token refresh and logout.

Access tokens are stateless JWTs. Refresh tokens are JWTs too, but are only
honoured while a fingerprint of them is stored for the same user and device,
so logout (or device rejection) revokes them immediately.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

import jwt

from fieldsync.config import settings
from fieldsync.errors import AuthenticationError, AuthorizationError
from fieldsync.models import Device, RefreshToken, User
from fieldsync.repositories.base import Repositories
from fieldsync.schemas.auth import DeviceInfo
from fieldsync.services.audit import AuditEvent, AuditNotifier
from fieldsync.services.device_registry import DeviceRegistry
from fieldsync.utils.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_token,
    verify_password,
)
from fieldsync.utils.timeutil import utcnow
from fieldsync.utils.versioning import should_force_update, should_update

logger = logging.getLogger(__name__)


@dataclass
class LoginResult:
    user: User
    device: Device
    access_token: str
    refresh_token: str
    device_registered: bool
    force_update: bool
    update_available: bool

    @property
    def needs_approval(self) -> bool:
        return settings.requires_device_approval(self.user.role) and not self.device.is_approved


def _invalid_credentials() -> AuthenticationError:
    return AuthenticationError("Invalid credentials", code="INVALID_CREDENTIALS")


def _invalid_refresh_token() -> AuthenticationError:
    return AuthenticationError("Invalid or expired refresh token", code="INVALID_REFRESH_TOKEN")


def login(
    username: str,
    password: str,
    device_id: str,
    device_info: DeviceInfo | None,
    repos: Repositories,
    audit: AuditNotifier,
) -> LoginResult:
    """Verify credentials, register the device and issue a token pair."""
    user = repos.users.get_by_username(username)
    password_ok = verify_password(password, user.password_hash if user else None)

    if not user or not password_ok or not user.is_active:
        # Same event and error whether the user is unknown or the password is wrong
        audit.notify(AuditEvent(
            action="MOBILE_LOGIN_FAILED",
            entity_type="USER",
            entity_id=username,
            details={"reason": "INVALID_CREDENTIALS", "deviceId": device_id},
        ))
        raise _invalid_credentials()

    registry = DeviceRegistry(repos, audit)
    try:
        device, created = registry.register_or_update(user, device_id, device_info, user.role)
    except AuthorizationError:
        audit.notify(AuditEvent(
            action="MOBILE_LOGIN_DEVICE_REJECTED",
            entity_type="USER",
            entity_id=user.id,
            user_id=user.id,
            details={"deviceId": device_id},
        ))
        raise
    registry.enforce_quota(user.id, device_id)

    access_token = create_access_token(user.id, user.username, user.role, device_id)
    refresh_token = create_refresh_token(user.id, device_id)
    repos.refresh_tokens.add(RefreshToken(
        token_hash=hash_token(refresh_token),
        user_id=user.id,
        device_id=device_id,
        expires_at=utcnow() + timedelta(days=settings.refresh_token_expire_days),
    ))

    app_version = device_info.app_version if device_info else None
    force_update = bool(app_version) and should_force_update(app_version)
    update_available = bool(app_version) and should_update(app_version)

    audit.notify(AuditEvent(
        action="MOBILE_LOGIN_SUCCESS",
        entity_type="USER",
        entity_id=user.id,
        user_id=user.id,
        details={
            "deviceId": device_id,
            "platform": device.platform,
            "appVersion": app_version,
            "deviceRegistered": not created,
        },
    ))
    logger.info("Mobile login for %s on device %s", user.username, device_id)

    return LoginResult(
        user=user,
        device=device,
        access_token=access_token,
        refresh_token=refresh_token,
        device_registered=not created,
        force_update=force_update,
        update_available=update_available,
    )


def refresh_access_token(refresh_token_str: str, repos: Repositories, audit: AuditNotifier) -> str:
    """Validate refresh token and issue new access token.

    Every failure (bad signature, expiry, revoked or unknown token) surfaces
    as the same error.
    """
    try:
        payload = decode_token(refresh_token_str)
    except jwt.PyJWTError:
        payload = None

    user = None
    if payload and payload.get("type") == "refresh":
        stored = repos.refresh_tokens.find_valid(
            hash_token(refresh_token_str),
            payload.get("sub", ""),
            payload.get("dev", ""),
            utcnow(),
        )
        if stored is not None:
            user = repos.users.get(stored.user_id)

    if user is None or not user.is_active:
        audit.notify(AuditEvent(
            action="TOKEN_REFRESH_FAILED",
            entity_type="SESSION",
            entity_id=(payload or {}).get("dev", ""),
            user_id=(payload or {}).get("sub"),
        ))
        raise _invalid_refresh_token()

    return create_access_token(user.id, user.username, user.role, payload["dev"])


def logout_device(user_id: str, device_id: str, repos: Repositories, audit: AuditNotifier) -> None:
    """Revoke the device's refresh tokens and mark it inactive. Idempotent."""
    removed = repos.refresh_tokens.delete_for_device(user_id, device_id)
    DeviceRegistry(repos, audit).deactivate(user_id, device_id)
    audit.notify(AuditEvent(
        action="MOBILE_LOGOUT",
        entity_type="USER",
        entity_id=user_id,
        user_id=user_id,
        details={"deviceId": device_id, "revokedTokens": removed},
    ))

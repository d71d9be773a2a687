"""Common API dependencies: repositories, caller identity, role and device checks."""

import jwt
from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from fieldsync.database import get_session
from fieldsync.errors import AuthenticationError, AuthorizationError, UpgradeRequired
from fieldsync.repositories import Repositories, sql_repositories
from fieldsync.services.audit import AuditNotifier, RequestContext
from fieldsync.services.device_registry import DeviceRegistry
from fieldsync.services.identity import CallerIdentity
from fieldsync.utils.security import decode_token
from fieldsync.utils.versioning import download_url, should_force_update

# auto_error=False so a missing header is reported through our own envelope
bearer_scheme = HTTPBearer(auto_error=False)


def get_repositories(session: Session = Depends(get_session)) -> Repositories:
    return sql_repositories(session)


def get_request_context(request: Request) -> RequestContext:
    return RequestContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def get_audit(
    repos: Repositories = Depends(get_repositories),
    context: RequestContext = Depends(get_request_context),
) -> AuditNotifier:
    return AuditNotifier(repos.audit_logs, context)


def get_caller(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    repos: Repositories = Depends(get_repositories),
) -> CallerIdentity:
    """Extract and validate the caller from a JWT access token."""
    if credentials is None:
        raise AuthenticationError("Access token required", code="INVALID_TOKEN")
    try:
        payload = decode_token(credentials.credentials)
    except jwt.PyJWTError:
        raise AuthenticationError("Invalid or expired token", code="INVALID_TOKEN")

    if payload.get("type") != "access" or not payload.get("dev"):
        raise AuthenticationError("Invalid or expired token", code="INVALID_TOKEN")

    user = repos.users.get(payload.get("sub", ""))
    if not user or not user.is_active:
        raise AuthenticationError("Invalid or expired token", code="INVALID_TOKEN")

    return CallerIdentity(
        user_id=user.id,
        username=user.username,
        role=user.role,
        device_id=payload["dev"],
    )


def require_admin(caller: CallerIdentity = Depends(get_caller)) -> CallerIdentity:
    """Require the caller to hold an admin role."""
    if not caller.is_admin:
        raise AuthorizationError("Admin access required", code="ADMIN_REQUIRED")
    return caller


def require_active_device(
    caller: CallerIdentity = Depends(get_caller),
    repos: Repositories = Depends(get_repositories),
    audit: AuditNotifier = Depends(get_audit),
) -> CallerIdentity:
    """Require the token's device to be registered, approved and active."""
    DeviceRegistry(repos, audit).require_usable(caller)
    return caller


def check_app_version(
    x_app_version: str | None = Header(default=None),
    x_platform: str | None = Header(default=None),
) -> None:
    """Refuse app builds below the force-update floor. A missing header passes."""
    if x_app_version and should_force_update(x_app_version):
        raise UpgradeRequired(
            "App update required",
            details={"currentVersion": x_app_version, "downloadUrl": download_url(x_platform)},
        )

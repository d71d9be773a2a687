"""Offline sync endpoints: upload local changes, download server changes, status."""

from fastapi import APIRouter, Depends, Header, Query

from fieldsync.api.deps import check_app_version, get_audit, get_repositories, require_active_device
from fieldsync.errors import failure_code
from fieldsync.repositories import Repositories
from fieldsync.schemas.common import ApiResponse
from fieldsync.schemas.sync import (
    SyncDownloadData,
    SyncStatusData,
    SyncUploadData,
    SyncUploadRequest,
)
from fieldsync.services.audit import AuditNotifier
from fieldsync.services.identity import CallerIdentity
from fieldsync.services.sync_service import SyncService

router = APIRouter(prefix="/sync", tags=["sync"], dependencies=[Depends(check_app_version)])


@router.post("/upload", response_model=ApiResponse[SyncUploadData])
def upload_sync(
    request: SyncUploadRequest,
    caller: CallerIdentity = Depends(require_active_device),
    repos: Repositories = Depends(get_repositories),
    audit: AuditNotifier = Depends(get_audit),
):
    """Apply a batch of offline changes. Per-item failures come back as data."""
    with failure_code("SYNC_UPLOAD_FAILED"):
        data = SyncService(repos, audit).upload(
            caller,
            request.local_changes,
            device_info=request.device_info,
            last_sync_timestamp=request.last_sync_timestamp,
        )
    return ApiResponse(message="Sync upload completed", data=data)


@router.get("/download", response_model=ApiResponse[SyncDownloadData])
def download_sync(
    last_sync_timestamp: str | None = Query(default=None, alias="lastSyncTimestamp"),
    limit: int | None = Query(default=None),
    assigned_to: str | None = Query(default=None, alias="assignedTo"),
    resume_id: str | None = Query(default=None, alias="resumeId"),
    caller: CallerIdentity = Depends(require_active_device),
    repos: Repositories = Depends(get_repositories),
    audit: AuditNotifier = Depends(get_audit),
):
    """Cases changed since the watermark, oldest first."""
    with failure_code("SYNC_DOWNLOAD_FAILED"):
        data = SyncService(repos, audit).download(
            caller, last_sync_timestamp, limit, assigned_to, resume_id
        )
    return ApiResponse(message="Sync download completed", data=data)


@router.get("/status", response_model=ApiResponse[SyncStatusData])
def sync_status(
    x_device_id: str | None = Header(default=None),
    caller: CallerIdentity = Depends(require_active_device),
    repos: Repositories = Depends(get_repositories),
    audit: AuditNotifier = Depends(get_audit),
):
    with failure_code("SYNC_STATUS_FAILED"):
        data = SyncService(repos, audit).status(caller, x_device_id)
    return ApiResponse(data=data)

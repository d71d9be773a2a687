"""Offline sync orchestration: upload of device changes, download of server changes.

Upload batches are processed item by item, in submission order, cases first,
then attachments, then locations. Each item is isolated: whatever goes wrong
with one is recorded in ``errors`` and the loop moves on. There is no
batch-level transaction, so a resubmitted batch must be harmless: creates with
an already-used id are no-ops and replayed updates fall foul of the staleness
check.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from fieldsync.config import settings
from fieldsync.errors import ApiError, NotFoundError, ValidationFailed
from fieldsync.models import Attachment, Case, Client, LocationPoint
from fieldsync.repositories.base import Repositories
from fieldsync.schemas.auth import DeviceInfo
from fieldsync.schemas.sync import (
    AttachmentChange,
    AttachmentData,
    CaseAction,
    CaseChange,
    LocalChanges,
    LocationChange,
    MobileAttachment,
    MobileCase,
    MobileClient,
    SyncConflict,
    SyncDownloadData,
    SyncItemError,
    SyncResults,
    SyncStatusData,
    SyncUploadData,
)
from fieldsync.services.audit import AuditEvent, AuditNotifier
from fieldsync.services.changelog import ChangeLogReader
from fieldsync.services.conflicts import Applied, Conflict, ConflictDetector
from fieldsync.services.device_registry import DeviceRegistry
from fieldsync.services.identity import CallerIdentity
from fieldsync.utils.timeutil import ensure_utc, format_ts, utcnow

logger = logging.getLogger(__name__)


# --- Mobile projection ---

def _load_json(raw: str | None) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def to_mobile_attachment(att: Attachment) -> MobileAttachment:
    return MobileAttachment(
        id=att.id,
        filename=att.filename,
        original_name=att.original_name,
        mime_type=att.mime_type,
        size=att.size,
        url=att.url,
        thumbnail_url=att.thumbnail_url,
        uploaded_at=format_ts(att.uploaded_at),
        geo_location=_load_json(att.geo_location),
    )


def to_mobile_case(
    case: Case, client: Client | None = None, attachments: list[Attachment] | None = None
) -> MobileCase:
    return MobileCase(
        id=case.id,
        title=case.title,
        description=case.description,
        customer_name=case.customer_name,
        customer_phone=case.customer_phone,
        customer_email=case.customer_email,
        address_street=case.address_street,
        address_city=case.address_city,
        address_state=case.address_state,
        address_pincode=case.address_pincode,
        latitude=case.latitude,
        longitude=case.longitude,
        status=case.status,
        priority=case.priority,
        assigned_at=format_ts(case.assigned_at),
        updated_at=format_ts(case.updated_at),
        completed_at=format_ts(case.completed_at),
        notes=case.notes,
        verification_type=case.verification_type,
        verification_outcome=case.verification_outcome,
        client=MobileClient(id=client.id, name=client.name, code=client.code) if client else None,
        attachments=[to_mobile_attachment(a) for a in attachments or []],
        form_data=_load_json(case.verification_data),
    )


def parse_timestamp(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(raw.replace("Z", "+00:00")))
    except ValueError:
        raise ValidationFailed(
            "Invalid sync timestamp",
            code="INVALID_TIMESTAMP",
            details={"value": raw},
        )


def _item_id(raw: Any) -> str | None:
    if isinstance(raw, dict) and raw.get("id") is not None:
        return str(raw["id"])
    return None


def _parse_item(model: type[BaseModel], raw: Any):
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise ValidationFailed(
            "Malformed change item",
            code="INVALID_CHANGE",
            details={"errors": e.errors(include_url=False, include_context=False)},
        )


class SyncService:
    def __init__(
        self,
        repos: Repositories,
        audit: AuditNotifier,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repos = repos
        self.audit = audit
        self.clock = clock
        self.detector = ConflictDetector(repos.cases, clock=clock)
        self.reader = ChangeLogReader(repos.cases, clock=clock)
        self.registry = DeviceRegistry(repos, audit)

    # --- Upload ---

    def upload(
        self,
        caller: CallerIdentity,
        local_changes: LocalChanges | None,
        device_info: DeviceInfo | None = None,
        last_sync_timestamp: str | None = None,
    ) -> SyncUploadData:
        if local_changes is None:
            raise ValidationFailed("Local changes are required", code="MISSING_LOCAL_CHANGES")
        if local_changes.total > settings.sync_max_upload_items:
            raise ValidationFailed(
                "Too many changes in one batch",
                code="BATCH_TOO_LARGE",
                details={"max": settings.sync_max_upload_items, "provided": local_changes.total},
            )

        results = SyncResults()
        streams = (
            ("CASE", local_changes.cases, self._process_case_change),
            ("ATTACHMENT", local_changes.attachments, self._process_attachment_change),
            ("LOCATION", local_changes.locations, self._process_location_change),
        )
        for item_type, items, handler in streams:
            for raw in items:
                try:
                    handler(raw, caller, results)
                except ApiError as e:
                    logger.warning("Sync %s change %s rejected: %s", item_type, _item_id(raw), e.message)
                    results.errors.append(SyncItemError(
                        type=item_type, id=_item_id(raw), error=e.message, code=e.code,
                    ))
                except Exception:
                    logger.exception("Sync %s change %s failed", item_type, _item_id(raw))
                    results.errors.append(SyncItemError(
                        type=item_type,
                        id=_item_id(raw),
                        error="Failed to apply change",
                        code="ITEM_FAILED",
                    ))

        device_id = caller.device_id or (device_info.device_id if device_info else None)
        if device_id:
            self.registry.touch(caller.user_id, device_id)

        self.audit.notify(AuditEvent(
            action="MOBILE_SYNC_UPLOAD",
            entity_type="SYNC",
            entity_id=device_id or "",
            user_id=caller.user_id,
            details={
                "deviceId": device_id,
                "lastSyncTimestamp": last_sync_timestamp,
                "processedCases": results.processed_cases,
                "processedAttachments": results.processed_attachments,
                "processedLocations": results.processed_locations,
                "conflicts": len(results.conflicts),
                "errors": len(results.errors),
            },
        ))

        return SyncUploadData(sync_timestamp=format_ts(self.clock()), results=results)

    def _process_case_change(self, raw: Any, caller: CallerIdentity, results: SyncResults) -> None:
        change: CaseChange = _parse_item(CaseChange, raw)
        action = change.action.upper()

        if action == CaseAction.UPDATE.value:
            outcome = self.detector.try_apply_case_update(
                change.id, change.data, change.timestamp, caller
            )
        elif action == CaseAction.CREATE.value:
            outcome = self.detector.try_apply_case_create(
                change.id, change.data, change.timestamp, caller
            )
        else:
            raise ValidationFailed(f"Unsupported case action: {change.action}", code="UNSUPPORTED_ACTION")

        if isinstance(outcome, Conflict):
            results.conflicts.append(SyncConflict(
                case_id=outcome.case_id,
                local_version=outcome.local_version,
                server_version=self.project_cases([outcome.server_case])[0],
                conflict_type=outcome.conflict_type,
            ))
            self.audit.notify(AuditEvent(
                action="SYNC_CONFLICT",
                entity_type="CASE",
                entity_id=outcome.case_id,
                user_id=caller.user_id,
                details={"conflictType": outcome.conflict_type.value, "localTimestamp": change.timestamp},
            ))
            return

        results.processed_cases += 1
        if isinstance(outcome, Applied) and not outcome.replayed:
            self.audit.notify(AuditEvent(
                action="CASE_CREATED_VIA_SYNC" if outcome.created else "CASE_UPDATED_VIA_SYNC",
                entity_type="CASE",
                entity_id=change.id,
                user_id=caller.user_id,
                details={"fields": sorted(change.data.keys())},
            ))

    def _require_case(self, case_id: str | None, caller: CallerIdentity) -> Case:
        case = self.repos.cases.get_scoped(case_id, caller.case_scope()) if case_id else None
        if case is None:
            raise NotFoundError("Case not found or access denied", code="CASE_NOT_FOUND")
        return case

    def _process_attachment_change(self, raw: Any, caller: CallerIdentity, results: SyncResults) -> None:
        change: AttachmentChange = _parse_item(AttachmentChange, raw)
        action = change.action.upper()

        if action == "CREATE":
            data: AttachmentData = _parse_item(AttachmentData, change.data)
            self._require_case(data.case_id, caller)
            if self.repos.attachments.get(change.id) is None:
                # The binary was uploaded separately; only metadata is registered here
                self.repos.attachments.add(Attachment(
                    id=change.id,
                    case_id=data.case_id,
                    filename=data.filename,
                    original_name=data.original_name or data.filename,
                    mime_type=data.mime_type,
                    size=data.size,
                    url=data.url,
                    thumbnail_url=data.thumbnail_url,
                    uploaded_by_id=caller.user_id,
                    uploaded_at=ensure_utc(change.timestamp),
                    geo_location=data.geo_location.model_dump_json() if data.geo_location else None,
                ))
        elif action == "DELETE":
            attachment = self.repos.attachments.get(change.id)
            if attachment is None:
                raise NotFoundError("Attachment not found", code="ATTACHMENT_NOT_FOUND")
            self._require_case(attachment.case_id, caller)
            self.repos.attachments.delete(change.id)
        else:
            raise ValidationFailed(
                f"Unsupported attachment action: {change.action}", code="UNSUPPORTED_ACTION"
            )

        results.processed_attachments += 1

    def _process_location_change(self, raw: Any, caller: CallerIdentity, results: SyncResults) -> None:
        change: LocationChange = _parse_item(LocationChange, raw)
        data = change.data
        if data.case_id:
            self._require_case(data.case_id, caller)

        if self.repos.locations.get(change.id) is None:
            self.repos.locations.add(LocationPoint(
                id=change.id,
                user_id=caller.user_id,
                case_id=data.case_id,
                latitude=data.latitude,
                longitude=data.longitude,
                accuracy=data.accuracy,
                source=data.source.value,
                activity_type=data.activity_type,
                timestamp=ensure_utc(change.timestamp),
            ))
        results.processed_locations += 1

    # --- Download ---

    def project_cases(self, cases: list[Case]) -> list[MobileCase]:
        attachments = self.repos.attachments.list_for_cases(c.id for c in cases)
        clients = self.repos.clients.get_many(c.client_id for c in cases if c.client_id)
        return [
            to_mobile_case(c, clients.get(c.client_id or ""), attachments.get(c.id, []))
            for c in cases
        ]

    def download(
        self,
        caller: CallerIdentity,
        last_sync_timestamp: str | None = None,
        limit: int | None = None,
        assigned_to: str | None = None,
        resume_id: str | None = None,
    ) -> SyncDownloadData:
        """One page of the change feed.

        Follow-up pages pass the previous page's ``resumeTimestamp`` as
        ``lastSyncTimestamp`` together with its ``resumeId``.
        """
        watermark = parse_timestamp(last_sync_timestamp)
        if watermark is None and resume_id is not None:
            raise ValidationFailed("resumeId requires lastSyncTimestamp", code="INVALID_RESUME_CURSOR")
        if watermark is None:
            watermark = self.clock() - timedelta(days=settings.sync_default_lookback_days)

        page = self.reader.changes_since(watermark, caller.case_scope(assigned_to), limit, resume_id)
        cases = self.project_cases(page.changes)

        self.audit.notify(AuditEvent(
            action="MOBILE_SYNC_DOWNLOAD",
            entity_type="SYNC",
            entity_id=caller.device_id,
            user_id=caller.user_id,
            details={
                "lastSyncTimestamp": last_sync_timestamp,
                "resumeId": resume_id,
                "casesCount": len(cases),
                "deletedCasesCount": len(page.deleted_ids),
                "hasMore": page.has_more,
            },
        ))

        return SyncDownloadData(
            cases=cases,
            deleted_case_ids=page.deleted_ids,
            conflicts=[],
            sync_timestamp=format_ts(page.new_watermark),
            has_more=page.has_more,
            resume_timestamp=format_ts(page.resume_from),
            resume_id=page.resume_id,
        )

    # --- Status ---

    def status(self, caller: CallerIdentity, device_id: str | None) -> SyncStatusData:
        device_id = device_id or caller.device_id
        device = self.repos.devices.get(caller.user_id, device_id)
        if device is None:
            raise NotFoundError("Device not found", code="DEVICE_NOT_FOUND")
        # Pending changes are tracked on the device, not here
        return SyncStatusData(
            device_id=device.device_id,
            last_sync_at=format_ts(device.last_active_at),
            is_online=True,
            pending_changes=0,
        )

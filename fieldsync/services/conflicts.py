"""Timestamp-based conflict detection for case changes uploaded by devices.

Entity-level last-write-wins with a late-write veto: an update whose local
timestamp predates the server's ``updated_at`` was made against stale data
and is handed back as a conflict instead of being applied. Field-level merge
(``DATA_CONFLICT``) is declared but never produced.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from pydantic import ValidationError

from fieldsync.errors import AuthorizationError, NotFoundError, ValidationFailed
from fieldsync.models import Case
from fieldsync.repositories.base import CaseRepository
from fieldsync.schemas.sync import CaseCreate, CasePatch, CaseStatus, ConflictType
from fieldsync.services.identity import CallerIdentity
from fieldsync.utils.timeutil import ensure_utc, utcnow

logger = logging.getLogger(__name__)

# Columns that cannot be cleared by sending null
_REQUIRED_COLUMNS = {
    "title", "description", "customer_name", "address_street", "address_city",
    "address_state", "address_pincode", "status", "priority",
}


def is_stale(server_updated_at: datetime, local_timestamp: datetime) -> bool:
    """True when the server copy changed after the device's edit was made."""
    return ensure_utc(server_updated_at) > ensure_utc(local_timestamp)


@dataclass
class Applied:
    case: Case
    created: bool = False
    replayed: bool = False


@dataclass
class Conflict:
    case_id: str
    local_version: dict[str, Any]
    server_case: Case
    conflict_type: ConflictType = ConflictType.VERSION_CONFLICT


def _parse(model, payload: dict[str, Any]):
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise ValidationFailed(
            "Invalid case payload",
            code="INVALID_CHANGE",
            details={"errors": e.errors(include_url=False, include_context=False)},
        )


def _apply_fields(case: Case, values: dict[str, Any]) -> None:
    for name, value in values.items():
        if value is None and name in _REQUIRED_COLUMNS:
            continue
        if name == "form_data":
            case.verification_data = json.dumps(value) if value is not None else None
        elif name == "status":
            case.status = CaseStatus(value).value
        else:
            setattr(case, name, value)


class ConflictDetector:
    def __init__(
        self,
        cases: CaseRepository,
        staleness: Callable[[datetime, datetime], bool] = is_stale,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.cases = cases
        self.staleness = staleness
        self.clock = clock

    def try_apply_case_update(
        self,
        case_id: str,
        local_payload: dict[str, Any],
        local_timestamp: datetime,
        caller: CallerIdentity,
    ) -> Applied | Conflict:
        case = self.cases.get_scoped(case_id, caller.case_scope())
        if case is None:
            raise NotFoundError("Case not found or access denied", code="CASE_NOT_FOUND")

        patch = _parse(CasePatch, local_payload)
        values = patch.model_dump(exclude_unset=True)
        if caller.is_field and "priority" in values:
            raise AuthorizationError(
                "Insufficient permissions to update priority",
                code="PRIORITY_UPDATE_FORBIDDEN",
            )
        if caller.is_field and values.get("status") == CaseStatus.COMPLETED:
            raise AuthorizationError(
                "Cases are completed through verification submission",
                code="STATUS_UPDATE_FORBIDDEN",
            )

        if self.staleness(case.updated_at, local_timestamp):
            logger.info("Version conflict on case %s from %s", case_id, caller.user_id)
            return Conflict(case_id=case_id, local_version=local_payload, server_case=case)

        now = self.clock()
        _apply_fields(case, values)
        if values.get("status") == CaseStatus.COMPLETED and case.completed_at is None:
            case.completed_at = now
        case.updated_at = now
        return Applied(case=self.cases.save(case))

    def try_apply_case_create(
        self,
        case_id: str,
        payload: dict[str, Any],
        local_timestamp: datetime,
        caller: CallerIdentity,
    ) -> Applied:
        if caller.is_field:
            raise AuthorizationError("Field users cannot create cases", code="CASE_CREATE_FORBIDDEN")

        existing = self.cases.get(case_id)
        if existing is not None:
            # Resubmitted batch: the client id was already used
            return Applied(case=existing, replayed=True)

        create = _parse(CaseCreate, payload)
        values = create.model_dump(exclude_unset=True)
        now = self.clock()
        case = Case(
            id=case_id,
            title=create.title,
            created_at=ensure_utc(local_timestamp),
            assigned_at=now,
            updated_at=now,
        )
        _apply_fields(case, values)
        if case.status == CaseStatus.COMPLETED.value and case.completed_at is None:
            case.completed_at = now
        return Applied(case=self.cases.add(case), created=True)

"""Dict-backed repositories.

Used by the test-suite and handy for local experiments; rows are the same
SQLModel classes the SQL repositories persist, held in plain dictionaries.
"""

from datetime import datetime, timezone
from typing import Iterable

from fieldsync.models import (
    Attachment,
    AuditLog,
    AutoSave,
    Case,
    Client,
    Device,
    LocationPoint,
    RefreshToken,
    User,
    VerificationReport,
)
from fieldsync.repositories.base import (
    AttachmentRepository,
    AuditLogRepository,
    AutoSaveRepository,
    CaseRepository,
    ClientRepository,
    DeviceRepository,
    LocationRepository,
    RefreshTokenRepository,
    Repositories,
    UserRepository,
    VerificationReportRepository,
)
from fieldsync.utils.timeutil import ensure_utc

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _ts(value: datetime | None) -> datetime:
    return ensure_utc(value) or _EPOCH


def _insert(table: dict, key, row):
    if key in table:
        raise ValueError(f"Duplicate key: {key}")
    table[key] = row
    return row


class MemoryUserRepository(UserRepository):
    def __init__(self):
        self._rows: dict[str, User] = {}

    def get(self, user_id):
        return self._rows.get(user_id)

    def get_by_username(self, username):
        return next((u for u in self._rows.values() if u.username == username), None)

    def get_many(self, user_ids):
        return {uid: self._rows[uid] for uid in set(user_ids) if uid in self._rows}

    def add(self, user):
        return _insert(self._rows, user.id, user)


class MemoryClientRepository(ClientRepository):
    def __init__(self):
        self._rows: dict[str, Client] = {}

    def get_many(self, client_ids):
        return {cid: self._rows[cid] for cid in set(client_ids) if cid in self._rows}

    def add(self, client):
        return _insert(self._rows, client.id, client)


class MemoryDeviceRepository(DeviceRepository):
    def __init__(self):
        self._rows: dict[tuple[str, str], Device] = {}

    def get(self, user_id, device_id):
        return self._rows.get((user_id, device_id))

    def find_by_device_id(self, device_id):
        rows = [d for d in self._rows.values() if d.device_id == device_id]
        return sorted(rows, key=lambda d: _ts(d.last_active_at), reverse=True)

    def list_for_user(self, user_id):
        rows = [d for d in self._rows.values() if d.user_id == user_id]
        return sorted(rows, key=lambda d: _ts(d.created_at))

    def list_pending(self):
        rows = [d for d in self._rows.values() if not d.is_approved and d.auth_code is not None]
        return sorted(rows, key=lambda d: _ts(d.created_at), reverse=True)

    def count_active(self, user_id):
        return sum(1 for d in self._rows.values() if d.user_id == user_id and d.is_active)

    def least_recently_active(self, user_id, exclude_device_id):
        candidates = [
            d for d in self._rows.values()
            if d.user_id == user_id and d.is_active and d.device_id != exclude_device_id
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda d: _ts(d.last_active_at))

    def add(self, device):
        return _insert(self._rows, (device.user_id, device.device_id), device)

    def save(self, device):
        self._rows[(device.user_id, device.device_id)] = device
        return device


class MemoryRefreshTokenRepository(RefreshTokenRepository):
    def __init__(self):
        self._rows: dict[str, RefreshToken] = {}

    def add(self, token):
        return _insert(self._rows, token.token_hash, token)

    def find_valid(self, token_hash, user_id, device_id, now):
        row = self._rows.get(token_hash)
        if row is None or row.user_id != user_id or row.device_id != device_id:
            return None
        if _ts(row.expires_at) <= ensure_utc(now):
            return None
        return row

    def delete_for_device(self, user_id, device_id):
        doomed = [
            h for h, t in self._rows.items() if t.user_id == user_id and t.device_id == device_id
        ]
        for h in doomed:
            del self._rows[h]
        return len(doomed)


class MemoryCaseRepository(CaseRepository):
    def __init__(self):
        self._rows: dict[str, Case] = {}

    def get(self, case_id):
        return self._rows.get(case_id)

    def changed_since(self, since, assignee_id, limit, after_id=None):
        since = ensure_utc(since)

        def after_cursor(case):
            ts = _ts(case.updated_at)
            return ts > since or (after_id is not None and ts == since and case.id > after_id)

        rows = [
            c for c in self._rows.values()
            if after_cursor(c) and (assignee_id is None or c.assigned_to_id == assignee_id)
        ]
        rows.sort(key=lambda c: (_ts(c.updated_at), c.id))
        return rows[:limit]

    def add(self, case):
        return _insert(self._rows, case.id, case)

    def save(self, case):
        self._rows[case.id] = case
        return case


class MemoryAttachmentRepository(AttachmentRepository):
    def __init__(self):
        self._rows: dict[str, Attachment] = {}

    def get(self, attachment_id):
        return self._rows.get(attachment_id)

    def list_for_cases(self, case_ids):
        wanted = set(case_ids)
        grouped: dict[str, list[Attachment]] = {cid: [] for cid in wanted}
        for att in sorted(self._rows.values(), key=lambda a: _ts(a.uploaded_at)):
            if att.case_id in wanted:
                grouped[att.case_id].append(att)
        return grouped

    def add(self, attachment):
        return _insert(self._rows, attachment.id, attachment)

    def save(self, attachment):
        self._rows[attachment.id] = attachment
        return attachment

    def delete(self, attachment_id):
        return self._rows.pop(attachment_id, None) is not None


class MemoryLocationRepository(LocationRepository):
    def __init__(self):
        self._rows: dict[str, LocationPoint] = {}

    def get(self, location_id):
        return self._rows.get(location_id)

    def add(self, location):
        return _insert(self._rows, location.id, location)

    def list_for_case(self, case_id):
        rows = [loc for loc in self._rows.values() if loc.case_id == case_id]
        return sorted(rows, key=lambda loc: _ts(loc.timestamp))


class MemoryAutoSaveRepository(AutoSaveRepository):
    def __init__(self):
        self._rows: dict[tuple[str, str], AutoSave] = {}

    def get(self, case_id, form_type):
        return self._rows.get((case_id, form_type))

    def upsert(self, draft):
        self._rows[(draft.case_id, draft.form_type)] = draft
        return draft

    def delete(self, case_id, form_type):
        return self._rows.pop((case_id, form_type), None) is not None


class MemoryVerificationReportRepository(VerificationReportRepository):
    def __init__(self):
        self._rows: list[VerificationReport] = []

    def add(self, report):
        self._rows.append(report)
        return report

    def list_for_case(self, case_id):
        return [r for r in self._rows if r.case_id == case_id]


class MemoryAuditLogRepository(AuditLogRepository):
    def __init__(self):
        self._rows: list[AuditLog] = []

    def add(self, entry):
        entry.id = len(self._rows) + 1
        self._rows.append(entry)
        return entry

    def find(self, action=None):
        return [e for e in self._rows if action is None or e.action == action]


def memory_repositories() -> Repositories:
    """A fresh, empty set of in-memory repositories."""
    return Repositories(
        users=MemoryUserRepository(),
        clients=MemoryClientRepository(),
        devices=MemoryDeviceRepository(),
        refresh_tokens=MemoryRefreshTokenRepository(),
        cases=MemoryCaseRepository(),
        attachments=MemoryAttachmentRepository(),
        locations=MemoryLocationRepository(),
        auto_saves=MemoryAutoSaveRepository(),
        reports=MemoryVerificationReportRepository(),
        audit_logs=MemoryAuditLogRepository(),
    )

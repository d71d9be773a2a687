"""Repository interfaces the sync, auth and form services depend on.

Every service talks to storage through these classes only, so the same logic
runs against :mod:`fieldsync.repositories.memory` (tests) and
:mod:`fieldsync.repositories.sql` (production).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
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


class UserRepository(ABC):
    @abstractmethod
    def get(self, user_id: str) -> User | None: ...

    @abstractmethod
    def get_by_username(self, username: str) -> User | None: ...

    @abstractmethod
    def get_many(self, user_ids: Iterable[str]) -> dict[str, User]: ...

    @abstractmethod
    def add(self, user: User) -> User: ...


class ClientRepository(ABC):
    @abstractmethod
    def get_many(self, client_ids: Iterable[str]) -> dict[str, Client]: ...

    @abstractmethod
    def add(self, client: Client) -> Client: ...


class DeviceRepository(ABC):
    @abstractmethod
    def get(self, user_id: str, device_id: str) -> Device | None: ...

    @abstractmethod
    def find_by_device_id(self, device_id: str) -> list[Device]:
        """All rows registered under a device identifier, most recently active first."""

    @abstractmethod
    def list_for_user(self, user_id: str) -> list[Device]: ...

    @abstractmethod
    def list_pending(self) -> list[Device]:
        """Unapproved devices holding an auth code, newest first."""

    @abstractmethod
    def count_active(self, user_id: str) -> int: ...

    @abstractmethod
    def least_recently_active(self, user_id: str, exclude_device_id: str) -> Device | None: ...

    @abstractmethod
    def add(self, device: Device) -> Device: ...

    @abstractmethod
    def save(self, device: Device) -> Device: ...


class RefreshTokenRepository(ABC):
    @abstractmethod
    def add(self, token: RefreshToken) -> RefreshToken: ...

    @abstractmethod
    def find_valid(
        self, token_hash: str, user_id: str, device_id: str, now: datetime
    ) -> RefreshToken | None: ...

    @abstractmethod
    def delete_for_device(self, user_id: str, device_id: str) -> int: ...


class CaseRepository(ABC):
    @abstractmethod
    def get(self, case_id: str) -> Case | None: ...

    def get_scoped(self, case_id: str, assignee_id: str | None) -> Case | None:
        """Load a case, hiding it when ``assignee_id`` is set and does not match."""
        case = self.get(case_id)
        if case is None:
            return None
        if assignee_id is not None and case.assigned_to_id != assignee_id:
            return None
        return case

    @abstractmethod
    def changed_since(
        self, since: datetime, assignee_id: str | None, limit: int, after_id: str | None = None
    ) -> list[Case]:
        """Cases ordered by ``(updated_at, id)`` that sort after the cursor.

        Without ``after_id`` the cursor is ``updated_at > since``; with it, rows
        sharing ``since`` exactly are included when their id sorts after
        ``after_id``. At most ``limit`` rows.
        """

    @abstractmethod
    def add(self, case: Case) -> Case: ...

    @abstractmethod
    def save(self, case: Case) -> Case: ...


class AttachmentRepository(ABC):
    @abstractmethod
    def get(self, attachment_id: str) -> Attachment | None: ...

    @abstractmethod
    def list_for_cases(self, case_ids: Iterable[str]) -> dict[str, list[Attachment]]: ...

    @abstractmethod
    def add(self, attachment: Attachment) -> Attachment: ...

    @abstractmethod
    def save(self, attachment: Attachment) -> Attachment: ...

    @abstractmethod
    def delete(self, attachment_id: str) -> bool: ...


class LocationRepository(ABC):
    @abstractmethod
    def get(self, location_id: str) -> LocationPoint | None: ...

    @abstractmethod
    def add(self, location: LocationPoint) -> LocationPoint: ...

    @abstractmethod
    def list_for_case(self, case_id: str) -> list[LocationPoint]:
        """Track points recorded against a case, for inspection and tests; no
        request path reads locations back."""


class AutoSaveRepository(ABC):
    @abstractmethod
    def get(self, case_id: str, form_type: str) -> AutoSave | None: ...

    @abstractmethod
    def upsert(self, draft: AutoSave) -> AutoSave:
        """Insert or replace the draft for ``(case_id, form_type)``."""

    @abstractmethod
    def delete(self, case_id: str, form_type: str) -> bool: ...


class VerificationReportRepository(ABC):
    @abstractmethod
    def add(self, report: VerificationReport) -> VerificationReport: ...

    @abstractmethod
    def list_for_case(self, case_id: str) -> list[VerificationReport]:
        """Reports filed for a case, for inspection and tests."""


class AuditLogRepository(ABC):
    @abstractmethod
    def add(self, entry: AuditLog) -> AuditLog: ...

    @abstractmethod
    def find(self, action: str | None = None) -> list[AuditLog]:
        """Audit rows, optionally filtered by action. Write-only from the API;
        this read exists for inspection and tests."""


@dataclass
class Repositories:
    users: UserRepository
    clients: ClientRepository
    devices: DeviceRepository
    refresh_tokens: RefreshTokenRepository
    cases: CaseRepository
    attachments: AttachmentRepository
    locations: LocationRepository
    auto_saves: AutoSaveRepository
    reports: VerificationReportRepository
    audit_logs: AuditLogRepository

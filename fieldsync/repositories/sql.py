"""SQLModel-backed repositories sharing one request-scoped ``Session``."""

from sqlalchemy import and_, func, or_
from sqlmodel import Session, col, select

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


class _SqlRepository:
    def __init__(self, session: Session):
        self.session = session

    def _commit(self) -> None:
        # A failed write must not poison the session for the next batch item
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def _persist(self, row):
        self.session.add(row)
        self._commit()
        self.session.refresh(row)
        return row


class SqlUserRepository(_SqlRepository, UserRepository):
    def get(self, user_id):
        return self.session.get(User, user_id)

    def get_by_username(self, username):
        return self.session.exec(select(User).where(User.username == username)).first()

    def get_many(self, user_ids):
        ids = list(set(user_ids))
        if not ids:
            return {}
        rows = self.session.exec(select(User).where(col(User.id).in_(ids))).all()
        return {u.id: u for u in rows}

    def add(self, user):
        return self._persist(user)


class SqlClientRepository(_SqlRepository, ClientRepository):
    def get_many(self, client_ids):
        ids = list(set(client_ids))
        if not ids:
            return {}
        rows = self.session.exec(select(Client).where(col(Client.id).in_(ids))).all()
        return {c.id: c for c in rows}

    def add(self, client):
        return self._persist(client)


class SqlDeviceRepository(_SqlRepository, DeviceRepository):
    def get(self, user_id, device_id):
        return self.session.exec(
            select(Device).where(Device.user_id == user_id, Device.device_id == device_id)
        ).first()

    def find_by_device_id(self, device_id):
        return list(self.session.exec(
            select(Device)
            .where(Device.device_id == device_id)
            .order_by(col(Device.last_active_at).desc())
        ).all())

    def list_for_user(self, user_id):
        return list(self.session.exec(
            select(Device).where(Device.user_id == user_id).order_by(col(Device.created_at))
        ).all())

    def list_pending(self):
        return list(self.session.exec(
            select(Device)
            .where(Device.is_approved == False, col(Device.auth_code).is_not(None))  # noqa: E712
            .order_by(col(Device.created_at).desc())
        ).all())

    def count_active(self, user_id):
        return self.session.exec(
            select(func.count()).select_from(Device).where(
                Device.user_id == user_id, Device.is_active == True  # noqa: E712
            )
        ).one()

    def least_recently_active(self, user_id, exclude_device_id):
        return self.session.exec(
            select(Device)
            .where(
                Device.user_id == user_id,
                Device.is_active == True,  # noqa: E712
                Device.device_id != exclude_device_id,
            )
            .order_by(col(Device.last_active_at).asc())
        ).first()

    def add(self, device):
        return self._persist(device)

    def save(self, device):
        return self._persist(device)


class SqlRefreshTokenRepository(_SqlRepository, RefreshTokenRepository):
    def add(self, token):
        return self._persist(token)

    def find_valid(self, token_hash, user_id, device_id, now):
        return self.session.exec(
            select(RefreshToken).where(
                RefreshToken.token_hash == token_hash,
                RefreshToken.user_id == user_id,
                RefreshToken.device_id == device_id,
                RefreshToken.expires_at > now,
            )
        ).first()

    def delete_for_device(self, user_id, device_id):
        rows = self.session.exec(
            select(RefreshToken).where(
                RefreshToken.user_id == user_id, RefreshToken.device_id == device_id
            )
        ).all()
        for row in rows:
            self.session.delete(row)
        self._commit()
        return len(rows)


class SqlCaseRepository(_SqlRepository, CaseRepository):
    def get(self, case_id):
        return self.session.get(Case, case_id)

    def changed_since(self, since, assignee_id, limit, after_id=None):
        if after_id is None:
            query = select(Case).where(Case.updated_at > since)
        else:
            query = select(Case).where(
                or_(Case.updated_at > since, and_(Case.updated_at == since, col(Case.id) > after_id))
            )
        if assignee_id is not None:
            query = query.where(Case.assigned_to_id == assignee_id)
        query = query.order_by(col(Case.updated_at).asc(), col(Case.id).asc()).limit(limit)
        return list(self.session.exec(query).all())

    def add(self, case):
        return self._persist(case)

    def save(self, case):
        return self._persist(case)


class SqlAttachmentRepository(_SqlRepository, AttachmentRepository):
    def get(self, attachment_id):
        return self.session.get(Attachment, attachment_id)

    def list_for_cases(self, case_ids):
        ids = list(set(case_ids))
        grouped: dict[str, list[Attachment]] = {cid: [] for cid in ids}
        if not ids:
            return grouped
        rows = self.session.exec(
            select(Attachment)
            .where(col(Attachment.case_id).in_(ids))
            .order_by(col(Attachment.uploaded_at))
        ).all()
        for att in rows:
            grouped[att.case_id].append(att)
        return grouped

    def add(self, attachment):
        return self._persist(attachment)

    def save(self, attachment):
        return self._persist(attachment)

    def delete(self, attachment_id):
        row = self.session.get(Attachment, attachment_id)
        if row is None:
            return False
        self.session.delete(row)
        self._commit()
        return True


class SqlLocationRepository(_SqlRepository, LocationRepository):
    def get(self, location_id):
        return self.session.get(LocationPoint, location_id)

    def add(self, location):
        return self._persist(location)

    def list_for_case(self, case_id):
        return list(self.session.exec(
            select(LocationPoint)
            .where(LocationPoint.case_id == case_id)
            .order_by(col(LocationPoint.timestamp))
        ).all())


class SqlAutoSaveRepository(_SqlRepository, AutoSaveRepository):
    def get(self, case_id, form_type):
        return self.session.exec(
            select(AutoSave).where(AutoSave.case_id == case_id, AutoSave.form_type == form_type)
        ).first()

    def upsert(self, draft):
        existing = self.get(draft.case_id, draft.form_type)
        if existing is not None and existing is not draft:
            existing.form_data = draft.form_data
            existing.timestamp = draft.timestamp
            existing.version = draft.version
            draft = existing
        return self._persist(draft)

    def delete(self, case_id, form_type):
        row = self.get(case_id, form_type)
        if row is None:
            return False
        self.session.delete(row)
        self._commit()
        return True


class SqlVerificationReportRepository(_SqlRepository, VerificationReportRepository):
    def add(self, report):
        return self._persist(report)

    def list_for_case(self, case_id):
        return list(self.session.exec(
            select(VerificationReport).where(VerificationReport.case_id == case_id)
        ).all())


class SqlAuditLogRepository(_SqlRepository, AuditLogRepository):
    def add(self, entry):
        return self._persist(entry)

    def find(self, action=None):
        query = select(AuditLog).order_by(col(AuditLog.id))
        if action is not None:
            query = query.where(AuditLog.action == action)
        return list(self.session.exec(query).all())


def sql_repositories(session: Session) -> Repositories:
    return Repositories(
        users=SqlUserRepository(session),
        clients=SqlClientRepository(session),
        devices=SqlDeviceRepository(session),
        refresh_tokens=SqlRefreshTokenRepository(session),
        cases=SqlCaseRepository(session),
        attachments=SqlAttachmentRepository(session),
        locations=SqlLocationRepository(session),
        auto_saves=SqlAutoSaveRepository(session),
        reports=SqlVerificationReportRepository(session),
        audit_logs=SqlAuditLogRepository(session),
    )

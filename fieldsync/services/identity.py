"""Caller identity derived from a verified access token."""

from dataclasses import dataclass

from fieldsync.config import settings


@dataclass(frozen=True)
class CallerIdentity:
    user_id: str
    username: str
    role: str
    device_id: str

    @property
    def is_field(self) -> bool:
        return settings.is_field_role(self.role)

    @property
    def is_admin(self) -> bool:
        return settings.is_admin_role(self.role)

    def case_scope(self, assigned_to: str | None = None) -> str | None:
        """Assignee filter for case queries.

        Field callers only ever see their own cases; elevated callers see
        everything unless they ask for one assignee explicitly.
        """
        if self.is_field:
            return self.user_id
        return assigned_to or None

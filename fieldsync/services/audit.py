"""Fire-and-forget audit trail.

``notify`` never raises and returns nothing: a failing audit write is logged
locally and the primary operation carries on.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from fieldsync.models import AuditLog
from fieldsync.repositories.base import AuditLogRepository

logger = logging.getLogger(__name__)


@dataclass
class RequestContext:
    """Client network details copied onto every audit row of a request."""

    ip_address: str | None = None
    user_agent: str | None = None


@dataclass
class AuditEvent:
    action: str
    entity_type: str
    entity_id: str
    user_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


class AuditNotifier:
    def __init__(self, repo: AuditLogRepository, context: RequestContext | None = None):
        self._repo = repo
        self._context = context or RequestContext()

    def notify(self, event: AuditEvent) -> None:
        try:
            self._repo.add(AuditLog(
                action=event.action,
                entity_type=event.entity_type,
                entity_id=event.entity_id or "",
                user_id=event.user_id,
                details=json.dumps(event.details, default=str) if event.details else None,
                ip_address=self._context.ip_address,
                user_agent=self._context.user_agent,
            ))
        except Exception as e:
            logger.error("Failed to write audit log %s for %s: %s", event.action, event.entity_id, e)

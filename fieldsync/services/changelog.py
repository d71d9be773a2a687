"""Server-side change feed for device downloads."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from fieldsync.config import settings
from fieldsync.models import Case
from fieldsync.repositories.base import CaseRepository
from fieldsync.utils.timeutil import ensure_utc, utcnow


@dataclass
class ChangePage:
    changes: list[Case]
    has_more: bool
    new_watermark: datetime
    resume_from: datetime | None = None
    resume_id: str | None = None
    # No tombstone source exists yet, so this always stays empty
    deleted_ids: list[str] = field(default_factory=list)


def clamp_limit(limit: int | None) -> int:
    if not limit or limit < 1:
        return settings.sync_batch_size
    return min(limit, settings.sync_max_limit)


class ChangeLogReader:
    def __init__(self, cases: CaseRepository, clock: Callable[[], datetime] = utcnow):
        self.cases = cases
        self.clock = clock

    def changes_since(
        self,
        watermark: datetime,
        assignee_id: str | None,
        limit: int | None,
        resume_id: str | None = None,
    ) -> ChangePage:
        """Cases updated after ``watermark`` in the caller's scope, oldest first.

        The new watermark is the server clock read before the query runs, not
        the newest ``updated_at`` on the page, so rows committed while the
        response is being built are picked up by the next pull. A full page
        means more rows may exist; ``resume_from`` and ``resume_id`` then name
        the last row returned. Passing both back continues strictly after that
        row, so rows sharing one ``updated_at`` across a page boundary are
        neither skipped nor repeated.
        """
        limit = clamp_limit(limit)
        now = self.clock()
        rows = self.cases.changed_since(ensure_utc(watermark), assignee_id, limit, after_id=resume_id)
        has_more = len(rows) == limit
        last = rows[-1] if has_more else None
        return ChangePage(
            changes=rows,
            has_more=has_more,
            new_watermark=now,
            resume_from=ensure_utc(last.updated_at) if last else None,
            resume_id=last.id if last else None,
        )

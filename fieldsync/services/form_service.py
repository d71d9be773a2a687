"""Form drafts (auto-save) and verification submission."""

import json
import logging
from datetime import datetime
from typing import Callable

from fieldsync.config import settings
from fieldsync.errors import NotFoundError, ValidationFailed
from fieldsync.models import AutoSave, Case, VerificationReport
from fieldsync.repositories.base import Repositories
from fieldsync.schemas.form import (
    AutoSaveData,
    AutoSavedForm,
    FormField,
    FormTemplate,
    FormType,
    VerificationResult,
    VerificationSubmission,
)
from fieldsync.schemas.sync import CaseStatus
from fieldsync.services.audit import AuditEvent, AuditNotifier
from fieldsync.services.identity import CallerIdentity
from fieldsync.utils.timeutil import ensure_utc, format_ts, utcnow

logger = logging.getLogger(__name__)

_OUTCOME_OPTIONS = ["VERIFIED", "NOT_VERIFIED", "PARTIAL"]

FORM_TEMPLATES = {
    FormType.RESIDENCE: {
        "fields": [
            FormField(name="applicantName", type="text", required=True, label="Applicant Name"),
            FormField(name="addressConfirmed", type="boolean", required=True, label="Address Confirmed"),
            FormField(name="residenceType", type="select", required=True, label="Residence Type",
                      options=["OWNED", "RENTED", "FAMILY"]),
            FormField(name="familyMembers", type="number", required=False, label="Family Members"),
            FormField(name="neighborVerification", type="boolean", required=True,
                      label="Neighbor Verification"),
            FormField(name="remarks", type="textarea", required=False, label="Remarks"),
            FormField(name="outcome", type="select", required=True, label="Verification Outcome",
                      options=_OUTCOME_OPTIONS),
        ],
        "photo_types": ["BUILDING_EXTERIOR", "BUILDING_INTERIOR", "NAMEPLATE", "SURROUNDINGS", "APPLICANT"],
    },
    FormType.OFFICE: {
        "fields": [
            FormField(name="companyName", type="text", required=True, label="Company Name"),
            FormField(name="designation", type="text", required=True, label="Designation"),
            FormField(name="employeeId", type="text", required=False, label="Employee ID"),
            FormField(name="workingHours", type="text", required=True, label="Working Hours"),
            FormField(name="hrVerification", type="boolean", required=True, label="HR Verification"),
            FormField(name="salaryConfirmed", type="boolean", required=False, label="Salary Confirmed"),
            FormField(name="remarks", type="textarea", required=False, label="Remarks"),
            FormField(name="outcome", type="select", required=True, label="Verification Outcome",
                      options=_OUTCOME_OPTIONS),
        ],
        "photo_types": ["OFFICE_EXTERIOR", "OFFICE_INTERIOR", "RECEPTION", "EMPLOYEE_DESK", "ID_CARD"],
    },
}


def parse_form_type(raw: str) -> FormType:
    try:
        return FormType((raw or "").strip().upper())
    except ValueError:
        raise ValidationFailed("Invalid form type", code="INVALID_FORM_TYPE", details={"formType": raw})


def get_form_template(raw_form_type: str) -> FormTemplate:
    form_type = parse_form_type(raw_form_type)
    template = FORM_TEMPLATES[form_type]
    return FormTemplate(
        form_type=form_type.value,
        fields=template["fields"],
        required_photos=settings.required_photos,
        photo_types=template["photo_types"],
    )


class AutoSaveStore:
    """One draft per ``(case, form type)``; every save replaces the previous one."""

    def __init__(self, repos: Repositories, clock: Callable[[], datetime] = utcnow):
        self.repos = repos
        self.clock = clock

    def save(self, case_id: str, form_type: FormType, form_data: dict, timestamp: datetime) -> AutoSave:
        draft = self.repos.auto_saves.get(case_id, form_type.value)
        if draft is None:
            draft = AutoSave(case_id=case_id, form_type=form_type.value, version=1)
        else:
            draft.version += 1
        draft.form_data = json.dumps(form_data)
        draft.timestamp = ensure_utc(timestamp)
        return self.repos.auto_saves.upsert(draft)

    def load(self, case_id: str, form_type: FormType) -> AutoSave:
        draft = self.repos.auto_saves.get(case_id, form_type.value)
        if draft is None:
            raise NotFoundError("No auto-saved form found", code="AUTO_SAVE_NOT_FOUND")
        return draft

    def clear(self, case_id: str, form_type: FormType) -> bool:
        return self.repos.auto_saves.delete(case_id, form_type.value)


class FormService:
    def __init__(
        self,
        repos: Repositories,
        audit: AuditNotifier,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repos = repos
        self.audit = audit
        self.clock = clock
        self.drafts = AutoSaveStore(repos, clock)

    def _require_case(self, case_id: str, caller: CallerIdentity) -> Case:
        case = self.repos.cases.get_scoped(case_id, caller.case_scope())
        if case is None:
            raise NotFoundError("Case not found or access denied", code="CASE_NOT_FOUND")
        return case

    # --- Drafts ---

    def auto_save(
        self,
        caller: CallerIdentity,
        case_id: str,
        raw_form_type: str,
        form_data: dict,
        timestamp: datetime,
    ) -> AutoSaveData:
        self._require_case(case_id, caller)
        form_type = parse_form_type(raw_form_type)
        draft = self.drafts.save(case_id, form_type, form_data, timestamp)
        logger.debug("Auto-saved %s form for case %s (v%d)", form_type.value, case_id, draft.version)
        return AutoSaveData(saved_at=format_ts(draft.timestamp), version=draft.version)

    def get_auto_saved(self, caller: CallerIdentity, case_id: str, raw_form_type: str) -> AutoSavedForm:
        self._require_case(case_id, caller)
        form_type = parse_form_type(raw_form_type)
        draft = self.drafts.load(case_id, form_type)
        return AutoSavedForm(
            form_type=draft.form_type,
            form_data=json.loads(draft.form_data or "{}"),
            saved_at=format_ts(draft.timestamp),
            version=draft.version,
        )

    # --- Submission ---

    def submit_verification(
        self,
        caller: CallerIdentity,
        case_id: str,
        form_type: FormType,
        submission: VerificationSubmission,
    ) -> VerificationResult:
        """Complete a case with a verification report.

        Gates, in order: case access, photo count, geo-tag on every photo,
        attachment ownership. Nothing is written until all of them pass.
        """
        case = self._require_case(case_id, caller)

        photos = submission.photos
        # Several entries pointing at one attachment count as a single photo
        distinct_photos = len({p.attachment_id for p in photos})
        required = settings.required_photos
        if distinct_photos < required:
            raise ValidationFailed(
                f"Minimum {required} geo-tagged photos required for "
                f"{form_type.value.lower()} verification",
                code="INSUFFICIENT_PHOTOS",
                details={"required": required, "provided": distinct_photos},
            )

        # 0.0 is a valid coordinate; only missing values count
        untagged = [p for p in photos if p.geo_location is None or not p.geo_location.is_tagged]
        if untagged:
            raise ValidationFailed(
                "All photos must have geo-location data",
                code="MISSING_GEO_LOCATION",
                details={"photosWithoutGeo": len(untagged)},
            )

        referenced = list(dict.fromkeys(
            submission.attachment_ids + [p.attachment_id for p in photos]
        ))
        found = self.repos.attachments.list_for_cases([case_id]).get(case_id, [])
        known = {a.id: a for a in found}
        missing = [aid for aid in referenced if aid not in known]
        if missing:
            raise ValidationFailed(
                "Some attachments not found or do not belong to this case",
                code="INVALID_ATTACHMENTS",
                details={"attachmentIds": missing},
            )

        now = self.clock()
        outcome = str(submission.form_data.get("outcome") or "VERIFIED")
        geo = submission.geo_location.model_dump(by_alias=True) if submission.geo_location else None
        verification_data = {
            "formType": form_type.value,
            "submittedAt": format_ts(now),
            "submittedBy": caller.user_id,
            "geoLocation": geo,
            "formData": submission.form_data,
            "attachments": submission.attachment_ids,
            "photos": [p.model_dump(by_alias=True) for p in photos],
        }

        case.status = CaseStatus.COMPLETED.value
        case.completed_at = now
        case.updated_at = now
        case.verification_type = form_type.value
        case.verification_outcome = outcome
        case.verification_data = json.dumps(verification_data)
        case = self.repos.cases.save(case)

        for photo in photos:
            attachment = known[photo.attachment_id]
            attachment.geo_location = photo.geo_location.model_dump_json(by_alias=True)
            self.repos.attachments.save(attachment)

        report = self.repos.reports.add(VerificationReport(
            case_id=case_id,
            form_type=form_type.value,
            submitted_by_id=caller.user_id,
            outcome=outcome,
            form_data=json.dumps(submission.form_data),
            photo_count=distinct_photos,
            geo_location=json.dumps(geo) if geo else None,
            created_at=now,
        ))

        self.drafts.clear(case_id, form_type)

        self.audit.notify(AuditEvent(
            action=f"{form_type.value}_VERIFICATION_SUBMITTED",
            entity_type="CASE",
            entity_id=case_id,
            user_id=caller.user_id,
            details={
                "formType": form_type.value,
                "photoCount": distinct_photos,
                "attachmentCount": len(submission.attachment_ids),
                "outcome": outcome,
                "hasGeoLocation": geo is not None,
            },
        ))
        logger.info("%s verification submitted for case %s", form_type.value, case_id)

        return VerificationResult(
            case_id=case.id,
            status=case.status,
            completed_at=format_ts(case.completed_at),
            report_id=report.id,
        )

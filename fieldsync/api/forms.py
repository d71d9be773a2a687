"""Form endpoints: auto-save drafts, verification submission, templates."""

from fastapi import APIRouter, Depends

from fieldsync.api.deps import check_app_version, get_audit, get_repositories, require_active_device
from fieldsync.errors import failure_code
from fieldsync.repositories import Repositories
from fieldsync.schemas.common import ApiResponse
from fieldsync.schemas.form import (
    AutoSaveData,
    AutoSavedForm,
    AutoSaveRequest,
    FormTemplate,
    FormType,
    VerificationResult,
    VerificationSubmission,
)
from fieldsync.services.audit import AuditNotifier
from fieldsync.services.form_service import FormService, get_form_template
from fieldsync.services.identity import CallerIdentity

router = APIRouter(tags=["forms"], dependencies=[Depends(check_app_version)])


@router.post("/cases/{case_id}/auto-save", response_model=ApiResponse[AutoSaveData])
def auto_save_form(
    case_id: str,
    request: AutoSaveRequest,
    caller: CallerIdentity = Depends(require_active_device),
    repos: Repositories = Depends(get_repositories),
    audit: AuditNotifier = Depends(get_audit),
):
    with failure_code("AUTO_SAVE_FAILED"):
        data = FormService(repos, audit).auto_save(
            caller, case_id, request.form_type, request.form_data, request.timestamp
        )
    return ApiResponse(message="Form auto-saved successfully", data=data)


@router.get("/cases/{case_id}/auto-save/{form_type}", response_model=ApiResponse[AutoSavedForm])
def get_auto_saved_form(
    case_id: str,
    form_type: str,
    caller: CallerIdentity = Depends(require_active_device),
    repos: Repositories = Depends(get_repositories),
    audit: AuditNotifier = Depends(get_audit),
):
    with failure_code("AUTO_SAVE_FETCH_FAILED"):
        data = FormService(repos, audit).get_auto_saved(caller, case_id, form_type)
    return ApiResponse(data=data)


def _submit(
    form_type: FormType,
    case_id: str,
    request: VerificationSubmission,
    caller: CallerIdentity,
    repos: Repositories,
    audit: AuditNotifier,
) -> ApiResponse[VerificationResult]:
    with failure_code("VERIFICATION_SUBMISSION_FAILED"):
        data = FormService(repos, audit).submit_verification(caller, case_id, form_type, request)
    label = form_type.value.capitalize()
    return ApiResponse(message=f"{label} verification submitted successfully", data=data)


@router.post("/cases/{case_id}/verification/residence", response_model=ApiResponse[VerificationResult])
def submit_residence_verification(
    case_id: str,
    request: VerificationSubmission,
    caller: CallerIdentity = Depends(require_active_device),
    repos: Repositories = Depends(get_repositories),
    audit: AuditNotifier = Depends(get_audit),
):
    return _submit(FormType.RESIDENCE, case_id, request, caller, repos, audit)


@router.post("/cases/{case_id}/verification/office", response_model=ApiResponse[VerificationResult])
def submit_office_verification(
    case_id: str,
    request: VerificationSubmission,
    caller: CallerIdentity = Depends(require_active_device),
    repos: Repositories = Depends(get_repositories),
    audit: AuditNotifier = Depends(get_audit),
):
    return _submit(FormType.OFFICE, case_id, request, caller, repos, audit)


@router.get("/forms/{form_type}/template", response_model=ApiResponse[FormTemplate])
def form_template(
    form_type: str,
    caller: CallerIdentity = Depends(require_active_device),
):
    with failure_code("TEMPLATE_FETCH_FAILED"):
        data = get_form_template(form_type)
    return ApiResponse(message="Form template retrieved successfully", data=data)

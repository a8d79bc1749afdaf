"""
Doctor registration wizard endpoints.

Each wizard is an in-process RegistrationFlowMachine behind an opaque
session id. Clients patch form fields, attach documents, move between steps
and finally submit from the last step.
"""

from typing import Any, Dict, Optional

import pydantic
import structlog
from fastapi import APIRouter, Body, Depends, File, Request, Response, UploadFile, status
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from doctor_onboarding.api.dependencies import (
    get_document_store,
    get_identity_service,
    get_record_store,
    get_registration,
    get_session_store,
)
from doctor_onboarding.core.config import settings
from doctor_onboarding.core.exceptions import InvalidDocumentError, ValidationError
from doctor_onboarding.domain.ports import DocumentStore, IdentityService, RecordStore
from doctor_onboarding.domain.schemas import (
    DEGREE_CERTIFICATES_FIELD,
    DOCUMENT_FIELDS,
    DocumentFile,
    DocumentType,
    FormState,
    PrefillData,
    RegistrationCreate,
    StepTransitionResponse,
    SubmissionStatus,
    UploadProgressResponse,
    WizardView,
    url_field,
)
from doctor_onboarding.services.registration.session_store import RegistrationSessionStore
from doctor_onboarding.services.registration.submission import SubmissionOrchestrator
from doctor_onboarding.services.registration.upload_coordinator import UploadCoordinator
from doctor_onboarding.state_machines.registration_flow import RegistrationFlowMachine
from doctor_onboarding.state_machines.registry import get_flow_machine
from doctor_onboarding.utils.field_validation import validate_document

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_requests}/minute"],
)

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/registrations", tags=["Registrations"])

# Fields that only change through the document endpoint or an upload
DOCUMENT_ONLY_FIELDS = frozenset(
    list(DOCUMENT_FIELDS)
    + [url_field(field) for field in DOCUMENT_FIELDS]
    + [DEGREE_CERTIFICATES_FIELD, "degree_certificate_urls"]
)

SUBMISSION_STATUS_CODES = {
    SubmissionStatus.COMPLETED: status.HTTP_200_OK,
    SubmissionStatus.INVALID: status.HTTP_422_UNPROCESSABLE_ENTITY,
    SubmissionStatus.FAILED: status.HTTP_502_BAD_GATEWAY,
}


def _upload_view(wizard: RegistrationFlowMachine) -> UploadProgressResponse:
    snapshot = wizard.uploads.snapshot()
    return UploadProgressResponse(remaining=snapshot.remaining, tasks=list(snapshot.tasks))


def _wizard_view(wizard: RegistrationFlowMachine) -> WizardView:
    return WizardView(
        session_id=wizard.context["id"],
        current_step=wizard.current_step,
        total_steps=wizard.total_steps,
        floor=wizard.floor,
        prefill_mode=wizard.is_prefill_mode,
        step_errors={step: list(errors) for step, errors in wizard.step_errors.items()},
        submitting=wizard.is_submitting,
        submit_error=wizard.submit_error,
        complete=wizard.is_complete,
        allowed_events=wizard.allowed_event_ids(),
        form=wizard.form_state.public_view(),
        uploads=_upload_view(wizard),
    )


def _resolve_field(wizard: RegistrationFlowMachine, key: str) -> str:
    name = wizard.form_state.resolve_field_name(key)
    if name is None:
        raise ValidationError(f"Unknown form field: {key}", details={"field": key})
    return name


@router.post("", response_model=WizardView, status_code=status.HTTP_201_CREATED)
async def open_registration(
    payload: Optional[RegistrationCreate] = Body(default=None),
    store: RegistrationSessionStore = Depends(get_session_store),
    document_store: DocumentStore = Depends(get_document_store),
    identity_service: IdentityService = Depends(get_identity_service),
):
    """
    Open a new registration wizard.

    With a bearer token the signed-in identity is reused and its email
    prefills the account step, which is then skipped.
    """
    prefill: Optional[PrefillData] = payload.prefill if payload else None
    user_id = None

    identity = await identity_service.get_current_identity()
    if identity is not None:
        user_id = identity.id
        if prefill is None:
            prefill = PrefillData(email=identity.email)
        elif not prefill.email:
            prefill = prefill.model_copy(update={"email": identity.email})

    wizard = get_flow_machine(
        "registration",
        user_id=user_id,
        prefill=prefill,
        uploads=UploadCoordinator.from_settings(document_store),
    )
    store.create(wizard)
    return _wizard_view(wizard)


@router.get("/{session_id}", response_model=WizardView)
async def get_registration_view(
    wizard: RegistrationFlowMachine = Depends(get_registration),
):
    return _wizard_view(wizard)


@router.patch("/{session_id}/form", response_model=WizardView)
async def update_form(
    updates: Dict[str, Any] = Body(...),
    wizard: RegistrationFlowMachine = Depends(get_registration),
):
    """Merge a partial update (snake_case or camelCase keys) into the form."""
    blocked = [
        key for key in updates if wizard.form_state.resolve_field_name(key) in DOCUMENT_ONLY_FIELDS
    ]
    if blocked:
        raise ValidationError(
            "Documents are attached through the documents endpoint",
            details={"fields": sorted(blocked)},
        )

    try:
        wizard.update_form_state(updates)
    except pydantic.ValidationError as e:
        raise ValidationError(
            "Invalid form values",
            details={"errors": e.errors(include_url=False, include_context=False, include_input=False)},
        )
    return _wizard_view(wizard)


@router.put("/{session_id}/documents/{field}", response_model=WizardView)
async def attach_document(
    field: str,
    file: UploadFile = File(...),
    wizard: RegistrationFlowMachine = Depends(get_registration),
):
    """
    Attach a file to a document field.

    Single-file fields are replaced (and their stored address cleared);
    degree certificates are appended.
    """
    name = _resolve_field(wizard, field)
    if name == DEGREE_CERTIFICATES_FIELD:
        document_type = DocumentType.DEGREE_CERTIFICATE
    elif name in DOCUMENT_FIELDS:
        document_type = DOCUMENT_FIELDS[name]
    else:
        raise ValidationError(f"{field} is not a document field", details={"field": field})

    content = await file.read()
    document = DocumentFile(
        filename=file.filename or document_type.value,
        content_type=file.content_type or "application/octet-stream",
        content=content,
    )
    valid, error = validate_document(document.content_type, document.size, document_type.value)
    if not valid:
        raise InvalidDocumentError(error, document_type=document_type.value)

    if name == DEGREE_CERTIFICATES_FIELD:
        state: FormState = wizard.form_state
        wizard.update_form_state(
            {DEGREE_CERTIFICATES_FIELD: state.degree_certificates + (document,)}
        )
    else:
        wizard.update_form_state({name: document, url_field(name): None})

    logger.info(
        "document_attached",
        session_id=wizard.context.get("id"),
        field=name,
        size=document.size,
    )
    return _wizard_view(wizard)


@router.post("/{session_id}/next", response_model=StepTransitionResponse)
async def next_step(wizard: RegistrationFlowMachine = Depends(get_registration)):
    step = wizard.current_step
    advanced = wizard.next()
    return StepTransitionResponse(
        advanced=advanced and wizard.current_step != step,
        current_step=wizard.current_step,
        errors=wizard.errors_for_step(step),
    )


@router.post("/{session_id}/back", response_model=StepTransitionResponse)
async def previous_step(wizard: RegistrationFlowMachine = Depends(get_registration)):
    step = wizard.current_step
    wizard.back()
    return StepTransitionResponse(
        advanced=wizard.current_step != step,
        current_step=wizard.current_step,
    )


@router.post("/{session_id}/submit")
@limiter.limit(f"{settings.rate_limit_submit_requests}/minute")
async def submit_registration(
    request: Request,
    wizard: RegistrationFlowMachine = Depends(get_registration),
    identity_service: IdentityService = Depends(get_identity_service),
    record_store: RecordStore = Depends(get_record_store),
):
    """
    Submit from the final step.

    200 on completion, 422 with violations when the last step is incomplete,
    502 when identity, upload or persistence fails (retryable).
    """
    wizard.orchestrator = SubmissionOrchestrator(identity_service, record_store)
    result = await wizard.submit()
    return JSONResponse(
        status_code=SUBMISSION_STATUS_CODES[SubmissionStatus(result.status)],
        content=result.model_dump(by_alias=True, mode="json"),
    )


@router.get("/{session_id}/uploads", response_model=UploadProgressResponse)
async def get_upload_progress(wizard: RegistrationFlowMachine = Depends(get_registration)):
    return _upload_view(wizard)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_registration(
    session_id: str,
    store: RegistrationSessionStore = Depends(get_session_store),
    wizard: RegistrationFlowMachine = Depends(get_registration),
):
    store.remove(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

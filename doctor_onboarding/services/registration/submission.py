"""
Submission orchestrator for the registration wizard.

Runs the one-shot sequence triggered from the last step: resolve the
identity, finish every outstanding document upload, compose the doctor
record and insert it exactly once. Failures are caught here and turned into
a single user-facing message on the wizard.
"""

import asyncio
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

import structlog

from doctor_onboarding.core.config import settings
from doctor_onboarding.core.exceptions import (
    AuthenticationError,
    IdentityFailure,
    PersistenceFailure,
    RegistrationError,
    SubmissionNotAllowedError,
    UploadFailure,
)
from doctor_onboarding.domain.ports import IdentityService, RecordStore
from doctor_onboarding.domain.schemas import (
    DEGREE_CERTIFICATES_FIELD,
    DOCUMENT_FIELDS,
    DocumentType,
    FormState,
    SubmissionResult,
    SubmissionStatus,
    url_field,
)
from doctor_onboarding.services.registration.validation_gate import TOTAL_STEPS

if TYPE_CHECKING:
    from doctor_onboarding.state_machines.registration_flow import RegistrationFlowMachine

logger = structlog.get_logger(__name__)

GENERIC_FAILURE_MESSAGE = "Registration failed. Please try again."


def compose_doctor_record(
    form_state: FormState, user_id: str, default_fee: float = 500
) -> Dict[str, Any]:
    """
    Build the doctors row from a fully uploaded form state.

    Bank details are collected by the wizard but not persisted here.
    """
    qualifications = [q.model_dump() for q in form_state.qualifications]
    locations = [location.model_dump() for location in form_state.practice_locations]
    fees = form_state.consultation_fees

    return {
        "user_id": user_id,
        "full_name": form_state.full_name,
        "email": form_state.email,
        "phone_number": form_state.mobile_number,
        "specialty": form_state.specialization[0] if form_state.specialization else None,
        "license_number": form_state.medical_registration_number,
        "experience_years": form_state.total_years_of_experience,
        "qualification": form_state.qualifications[0].degree if form_state.qualifications else "",
        "hospital_affiliation": ", ".join(location["clinic_name"] for location in locations),
        "consultation_fee": fees.in_clinic or default_fee,
        "profile_image_url": form_state.profile_picture_url,
        "is_verified": False,
        "is_active": True,
        "medical_registration_number": form_state.medical_registration_number,
        "issuing_council": form_state.issuing_council,
        "year_of_registration": form_state.year_of_registration,
        "medical_registration_certificate_url": form_state.medical_registration_certificate_url,
        "aadhaar_number": form_state.aadhaar_number,
        "aadhaar_front_url": form_state.aadhaar_front_url,
        "aadhaar_back_url": form_state.aadhaar_back_url,
        "pan_number": form_state.pan_number,
        "pan_card_url": form_state.pan_card_url,
        "super_specialization": form_state.super_specialization,
        "qualifications": qualifications,
        "degree_certificate_urls": [url for url in form_state.degree_certificate_urls if url],
        "total_years_of_experience": form_state.total_years_of_experience,
        "professional_bio": form_state.professional_bio,
        "languages_spoken": list(form_state.languages_spoken),
        "practice_locations": locations,
        "consultation_types": list(form_state.consultation_types),
        "consultation_fees": fees.model_dump(),
        "services_offered": list(form_state.services_offered),
        "cancelled_cheque_url": form_state.cancelled_cheque_url,
        "terms_accepted": form_state.terms_accepted,
        "privacy_policy_accepted": form_state.privacy_policy_accepted,
        "telemedicine_consent": form_state.telemedicine_consent,
    }


class SubmissionOrchestrator:
    """Coordinates identity, uploads and persistence for one submit."""

    def __init__(
        self,
        identity_service: IdentityService,
        record_store: RecordStore,
        default_consultation_fee: Optional[float] = None,
    ):
        self.identity_service = identity_service
        self.record_store = record_store
        self.default_consultation_fee = (
            settings.default_consultation_fee
            if default_consultation_fee is None
            else default_consultation_fee
        )

    async def submit(self, wizard: "RegistrationFlowMachine") -> SubmissionResult:
        """
        Submit the wizard's collected data.

        Returns:
            SubmissionResult with status completed, invalid or failed

        Raises:
            SubmissionNotAllowedError: If called before the last step or while
                another submit is in flight
        """
        if wizard.current_step != TOTAL_STEPS:
            raise SubmissionNotAllowedError(
                "Registration can only be submitted from the final step",
                details={"current_step": wizard.current_step},
            )
        if wizard.is_submitting:
            raise SubmissionNotAllowedError("A submission is already in progress")
        if wizard.uploads is None:
            raise SubmissionNotAllowedError("No upload coordinator configured")

        if not wizard.validate_current_step():
            return SubmissionResult(
                status=SubmissionStatus.INVALID,
                violations=wizard.errors_for_step(TOTAL_STEPS),
            )

        wizard.is_submitting = True
        wizard.submit_error = None
        try:
            user_id = await self._resolve_identity(wizard)
            wizard.user_id = user_id
            await self._upload_outstanding(wizard, user_id)

            record = compose_doctor_record(
                wizard.form_state, user_id, self.default_consultation_fee
            )
            inserted = await self._insert_record(record, user_id)
            await self._upsert_profile(wizard.form_state, user_id)
        except Exception as e:
            message = self._failure_message(e)
            wizard.submit_error = message
            logger.error(
                "registration_submit_failed",
                user_id=wizard.user_id,
                flow_id=wizard.context.get("id"),
                error_type=type(e).__name__,
                error=str(e),
            )
            return SubmissionResult(status=SubmissionStatus.FAILED, message=message)
        finally:
            wizard.is_submitting = False

        wizard.mark_complete()
        return SubmissionResult(status=SubmissionStatus.COMPLETED, record=inserted or record)

    async def _resolve_identity(self, wizard: "RegistrationFlowMachine") -> str:
        """Supplied user id, then the current session identity, then sign-up."""
        if wizard.user_id:
            return wizard.user_id

        try:
            current = await self.identity_service.get_current_identity()
            if current is not None:
                logger.info("registration_identity_reused", user_id=current.id)
                return current.id

            state = wizard.form_state
            created = await self.identity_service.create_identity(state.email, state.password)
        except RegistrationError:
            raise
        except AuthenticationError as e:
            raise IdentityFailure(e.message) from e
        except Exception as e:
            raise IdentityFailure(f"Failed to create account: {e}") from e

        if created is None or not created.id:
            raise IdentityFailure("Failed to create user account")
        logger.info("registration_identity_created", user_id=created.id)
        return created.id

    @staticmethod
    def _outstanding(state: FormState) -> List[Tuple[str, DocumentType, Optional[int]]]:
        """(field, document type, degree index) for every attached file with no address."""
        pending: List[Tuple[str, DocumentType, Optional[int]]] = [
            (field, document_type, None)
            for field, document_type in DOCUMENT_FIELDS.items()
            if getattr(state, field) is not None and not getattr(state, url_field(field))
        ]
        existing_urls = state.degree_certificate_urls
        for index, _ in enumerate(state.degree_certificates):
            if index < len(existing_urls) and existing_urls[index]:
                continue
            pending.append((DEGREE_CERTIFICATES_FIELD, DocumentType.DEGREE_CERTIFICATE, index))
        return pending

    async def _upload_outstanding(self, wizard: "RegistrationFlowMachine", user_id: str):
        """
        Upload every attached file that has no address yet.

        Addresses are merged into the form state as each transfer resolves, so
        a retry after a partial failure only re-sends what is still missing.
        """
        pending = self._outstanding(wizard.form_state)
        if not pending:
            return
        logger.info("registration_uploads_started", user_id=user_id, count=len(pending))
        await asyncio.gather(
            *(
                self._upload_one(wizard, user_id, field, document_type, index)
                for field, document_type, index in pending
            )
        )

        # A document re-attached mid-transfer keeps no address from the old file
        changed = self._outstanding(wizard.form_state)
        if changed:
            raise UploadFailure(
                "Documents changed while uploading. Please submit again.",
                field=changed[0][0],
            )

    async def _upload_one(
        self,
        wizard: "RegistrationFlowMachine",
        user_id: str,
        field: str,
        document_type: DocumentType,
        index: Optional[int] = None,
    ):
        file = wizard.attached_file(field, index)
        tracking_key = field if index is None else f"{field}_{index}"

        url = await wizard.uploads.upload(file, document_type, user_id, field=tracking_key)
        # The field may have been re-attached (or the wizard closed) while
        # this transfer ran; only the file that was sent gets this address.
        wizard.record_uploaded_url(field, url, index, source=file)

    async def _insert_record(self, record: Dict[str, Any], user_id: str) -> Optional[Dict[str, Any]]:
        try:
            inserted = await self.record_store.insert_doctor_profile(record)
        except Exception as e:
            message = getattr(e, "message", None) or str(e)
            raise PersistenceFailure(f"Failed to create doctor profile: {message}") from e
        logger.info("doctor_profile_created", user_id=user_id)
        return inserted

    async def _upsert_profile(self, state: FormState, user_id: str):
        """Base profile upsert; failure here does not fail the registration."""
        try:
            await self.record_store.upsert_user_profile(
                user_id,
                {"full_name": state.full_name, "phone_number": state.mobile_number},
            )
        except Exception as e:
            logger.warning("user_profile_upsert_failed", user_id=user_id, error=str(e))

    @staticmethod
    def _failure_message(error: Exception) -> str:
        if isinstance(error, (UploadFailure, IdentityFailure, PersistenceFailure)):
            return error.message
        return GENERIC_FAILURE_MESSAGE

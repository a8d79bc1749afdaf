"""
Registration Flow State Machine.

Drives the five-step doctor registration wizard:

    account -> verification -> clinical -> practice -> financial_legal

Forward moves are gated by the validation gate for the current step. In
prefill mode (identity details already known) the account step is skipped:
the wizard opens on verification and back navigation never returns to
account.
"""

from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

import structlog
from statemachine import State

from doctor_onboarding.core.exceptions import SubmissionNotAllowedError
from doctor_onboarding.domain.schemas import (
    DEGREE_CERTIFICATES_FIELD,
    DocumentFile,
    FormState,
    PrefillData,
    SubmissionResult,
    url_field,
)
from doctor_onboarding.services.registration.validation_gate import TOTAL_STEPS, validate

from .base import FlowMachine

if TYPE_CHECKING:
    from doctor_onboarding.services.registration.submission import SubmissionOrchestrator
    from doctor_onboarding.services.registration.upload_coordinator import UploadCoordinator

logger = structlog.get_logger(__name__)

FIRST_STEP = 1
PREFILL_FIRST_STEP = 2

STEP_TITLES = {
    1: "Basic Account",
    2: "Professional & Identity Verification",
    3: "Clinical & Public Profile",
    4: "Practice & Consultation Settings",
    5: "Financial Information & Legal Consents",
}


class RegistrationFlowMachine(FlowMachine):
    """
    State machine for the doctor registration wizard (in-memory).

    State values are the step numbers, so current_step is current_state.value.
    Owns the current FormState snapshot and the per-step violation lists.
    """

    account = State("Basic Account", initial=True, value=1)
    verification = State("Professional Verification", value=2)
    clinical = State("Clinical Profile", value=3)
    practice = State("Practice Settings", value=4)
    financial_legal = State("Financial & Legal", value=5)

    advance = (
        account.to(verification)
        | verification.to(clinical)
        | clinical.to(practice)
        | practice.to(financial_legal)
    )
    retreat = (
        financial_legal.to(practice)
        | practice.to(clinical)
        | clinical.to(verification)
        | verification.to(account, unless="is_prefill_mode")
    )

    def __init__(
        self,
        prefill: Optional[PrefillData] = None,
        user_id: Optional[str] = None,
        form_state: Optional[FormState] = None,
        uploads: Optional["UploadCoordinator"] = None,
        orchestrator: Optional["SubmissionOrchestrator"] = None,
        context: Optional[Dict[str, Any]] = None,
        **kwargs,
    ):
        """
        Initialize registration flow machine.

        Args:
            prefill: Known identity details; presence switches on prefill mode
            user_id: Identity already resolved by the caller, reused on submit
            form_state: Starting snapshot (defaults to one seeded from prefill)
            uploads: Upload coordinator tracking this wizard's documents
            orchestrator: Submission orchestrator used by submit()
            context: Flow context (id, metadata) for logging
        """
        self._prefill_mode = prefill is not None
        self.form_state = form_state or FormState.from_prefill(prefill)
        self.step_errors: Dict[int, List[str]] = {}
        self.uploads = uploads
        self.orchestrator = orchestrator
        self.is_submitting = False
        self.submit_error: Optional[str] = None
        self.is_complete = False
        self.is_closed = False
        kwargs.setdefault("start_value", self.floor)
        super().__init__(context=context, user_id=user_id, **kwargs)

    @property
    def is_prefill_mode(self) -> bool:
        return self._prefill_mode

    @property
    def floor(self) -> int:
        return PREFILL_FIRST_STEP if self._prefill_mode else FIRST_STEP

    @property
    def total_steps(self) -> int:
        return TOTAL_STEPS

    @property
    def current_step(self) -> int:
        return self.current_state.value

    @property
    def is_final_step(self) -> bool:
        return self.current_step == TOTAL_STEPS

    def errors_for_step(self, step: int) -> List[str]:
        return list(self.step_errors.get(step, []))

    def validate_current_step(self) -> bool:
        """
        Run the gate for the current step and record the outcome.

        Returns:
            True if the step has no violations
        """
        step = self.current_step
        violations = validate(step, self.form_state)
        if violations:
            self.step_errors[step] = violations
            logger.info(
                "step_validation_failed",
                step=step,
                violation_count=len(violations),
                flow_id=self.context.get("id"),
            )
            return False

        self.step_errors.pop(step, None)
        return True

    def next(self) -> bool:
        """
        Validate the current step and move forward one step if it is clean.

        On the final step a clean validation leaves the wizard in place;
        submission is a separate call.

        Returns:
            True if the current step validated
        """
        if not self.validate_current_step():
            return False

        if self.current_step < TOTAL_STEPS:
            self.advance()
        return True

    def back(self) -> int:
        """Move back one step, never below the floor. Returns the new step."""
        if self.current_step > self.floor:
            self.retreat()
        return self.current_step

    def update_form_state(self, partial: Mapping[str, Any]) -> FormState:
        """
        Merge a partial update into a new FormState snapshot.

        Any update invalidates the current step's previous validation result,
        even when the values did not change.
        """
        self.form_state = self.form_state.merged(partial)
        self.step_errors.pop(self.current_step, None)
        logger.debug(
            "form_state_updated",
            step=self.current_step,
            fields=sorted(partial.keys()),
            flow_id=self.context.get("id"),
        )
        return self.form_state

    def attached_file(self, field: str, index: Optional[int] = None) -> Optional[DocumentFile]:
        """File currently held by a document field (degree certificates by index)."""
        if field == DEGREE_CERTIFICATES_FIELD:
            if index is None:
                raise ValueError("Degree certificate uploads need an index")
            certificates = self.form_state.degree_certificates
            return certificates[index] if index < len(certificates) else None
        return getattr(self.form_state, field)

    def record_uploaded_url(
        self,
        field: str,
        url: str,
        index: Optional[int] = None,
        source: Optional[DocumentFile] = None,
    ) -> bool:
        """
        Store an upload address in the field's paired URL slot.

        With `source`, the address is only stored while the field still holds
        that file; a transfer that finishes after the file was replaced (or
        after close()) is dropped. Returns whether the address was stored.
        """
        current = self.attached_file(field, index)
        stale = source is not None and current is not source and current != source
        missing_degree = field == DEGREE_CERTIFICATES_FIELD and current is None
        if self.is_closed or stale or missing_degree:
            logger.info(
                "upload_result_discarded",
                field=field,
                index=index,
                closed=self.is_closed,
                flow_id=self.context.get("id"),
            )
            return False

        if field == DEGREE_CERTIFICATES_FIELD:
            urls = list(self.form_state.degree_certificate_urls)
            urls.extend([None] * (len(self.form_state.degree_certificates) - len(urls)))
            urls[index] = url
            self.update_form_state({"degree_certificate_urls": tuple(urls)})
        else:
            self.update_form_state({url_field(field): url})
        return True

    async def submit(self) -> SubmissionResult:
        """Hand the wizard to the submission orchestrator."""
        if self.orchestrator is None:
            raise SubmissionNotAllowedError("No submission orchestrator configured")
        return await self.orchestrator.submit(self)

    def mark_complete(self):
        self.is_complete = True
        logger.info(
            "registration_completed",
            user_id=self.user_id,
            flow_id=self.context.get("id"),
        )

    def close(self):
        """
        Discard collected data. In-flight transfers are not cancelled; their
        tracking entries are dropped.
        """
        self.is_closed = True
        self.form_state = FormState()
        self.step_errors.clear()
        self.submit_error = None
        if self.uploads is not None:
            self.uploads.abandon()
        logger.info("registration_closed", flow_id=self.context.get("id"))

    def get_flow_info(self) -> Dict[str, Any]:
        info = super().get_flow_info()
        info.update(
            {
                "step": self.current_step,
                "step_title": STEP_TITLES[self.current_step],
                "total_steps": TOTAL_STEPS,
                "floor": self.floor,
                "prefill_mode": self.is_prefill_mode,
                "step_errors": {step: list(errors) for step, errors in self.step_errors.items()},
                "submitting": self.is_submitting,
                "error_message": self.submit_error,
                "complete": self.is_complete,
            }
        )
        return info

    def on_enter_financial_legal(self):
        logger.info("final_step_reached", flow_id=self.context.get("id"))

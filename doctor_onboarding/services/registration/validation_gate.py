"""
Per-step validation gate for the registration wizard.

Rules are declared as data: each ValidationRule names its step, the field it
reports on, a check returning a message (or None) and an optional guard that
decides whether the rule applies to the current form state. validate() runs
every applicable rule for a step without short-circuiting, so one pass
collects every violation.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from doctor_onboarding.domain.schemas import (
    REMOTE_CONSULTATION_TYPES,
    ConsultationType,
    FormState,
    current_year,
)
from doctor_onboarding.utils.field_validation import (
    validate_aadhaar_number,
    validate_bank_account_number,
    validate_email,
    validate_ifsc_code,
    validate_mobile_number,
    validate_pan_number,
    validate_password,
    validate_pincode,
    validate_year,
)

TOTAL_STEPS = 5

Check = Callable[[FormState], Optional[str]]
Guard = Callable[[FormState], bool]


def always(state: FormState) -> bool:
    return True


@dataclass(frozen=True)
class ValidationRule:
    step: int
    field: str
    check: Check
    when: Guard = always

    def evaluate(self, state: FormState) -> Optional[str]:
        if not self.when(state):
            return None
        return self.check(state)


# Check builders

def required_text(field: str, message: str) -> Check:
    def check(state: FormState) -> Optional[str]:
        value = getattr(state, field)
        return None if value and str(value).strip() else message

    return check


def required_document(field: str, message: str) -> Check:
    def check(state: FormState) -> Optional[str]:
        return None if state.has_document(field) else message

    return check


def non_empty(field: str, message: str) -> Check:
    def check(state: FormState) -> Optional[str]:
        return None if getattr(state, field) else message

    return check


def must_accept(field: str, message: str) -> Check:
    def check(state: FormState) -> Optional[str]:
        return None if getattr(state, field) is True else message

    return check


def formatted(field: str, validator: Callable[[str], Tuple[bool, Optional[str]]]) -> Check:
    def check(state: FormState) -> Optional[str]:
        _, error = validator(getattr(state, field))
        return error

    return check


def year_in_range(field: str, label: str) -> Check:
    def check(state: FormState) -> Optional[str]:
        _, error = validate_year(getattr(state, field), current_year(), label)
        return error

    return check


def consultation_fee(
    consultation_type: ConsultationType, fee_field: str, label: str
) -> Tuple[Check, Guard]:
    def check(state: FormState) -> Optional[str]:
        fee = getattr(state.consultation_fees, fee_field)
        return None if fee and fee > 0 else f"{label} consultation fee must be greater than 0"

    def when(state: FormState) -> bool:
        return consultation_type in state.consultation_types

    return check, when


# Cross-field checks

def passwords_match(state: FormState) -> Optional[str]:
    return None if state.password == state.confirm_password else "Passwords do not match"


def bank_accounts_match(state: FormState) -> Optional[str]:
    if state.bank_account_number == state.confirm_bank_account_number:
        return None
    return "Bank account numbers do not match"


def qualifications_present(state: FormState) -> Optional[str]:
    if not state.qualifications:
        return "At least one qualification must be added"
    if not all(qualification.is_complete() for qualification in state.qualifications):
        return "All qualification fields must be completed"
    return None


def qualification_years(state: FormState) -> Optional[str]:
    max_year = current_year()
    for qualification in state.qualifications:
        valid, error = validate_year(
            qualification.year_of_completion, max_year, "Qualification year of completion"
        )
        if not valid:
            return error
    return None


def experience_in_range(state: FormState) -> Optional[str]:
    if 0 <= state.total_years_of_experience <= 70:
        return None
    return "Years of experience must be between 0 and 70"


def practice_locations_present(state: FormState) -> Optional[str]:
    if not state.practice_locations:
        return "At least one practice location is required"
    if not all(location.is_complete() for location in state.practice_locations):
        return "All practice location fields must be completed"
    return None


def practice_pincodes(state: FormState) -> Optional[str]:
    for location in state.practice_locations:
        _, error = validate_pincode(location.pincode)
        if error:
            return error
    return None


# Guards

def practice_locations_complete(state: FormState) -> bool:
    return bool(state.practice_locations) and all(
        location.is_complete() for location in state.practice_locations
    )


def qualifications_complete(state: FormState) -> bool:
    return bool(state.qualifications) and all(
        qualification.is_complete() for qualification in state.qualifications
    )


def has_remote_consultation(state: FormState) -> bool:
    return any(kind in state.consultation_types for kind in REMOTE_CONSULTATION_TYPES)


def financial_details_supplied(state: FormState) -> bool:
    """Bank details are optional as a block; once started, the block must be complete."""
    return any(
        str(value).strip()
        for value in (
            state.bank_account_holder_name,
            state.bank_account_number,
            state.confirm_bank_account_number,
            state.ifsc_code,
        )
    ) or state.cancelled_cheque is not None


_in_clinic_fee = consultation_fee(ConsultationType.IN_CLINIC, "in_clinic", "In-clinic")
_video_fee = consultation_fee(ConsultationType.VIDEO, "video", "Video")
_audio_fee = consultation_fee(ConsultationType.AUDIO, "audio", "Audio")


RULES: Tuple[ValidationRule, ...] = (
    # Step 1: Basic Account
    ValidationRule(1, "full_name", required_text("full_name", "Full name is required")),
    ValidationRule(1, "email", formatted("email", validate_email)),
    ValidationRule(1, "mobile_number", formatted("mobile_number", validate_mobile_number)),
    ValidationRule(1, "password", formatted("password", validate_password)),
    ValidationRule(1, "confirm_password", passwords_match),
    # Step 2: Professional & Identity Verification
    ValidationRule(
        2,
        "medical_registration_number",
        required_text("medical_registration_number", "Medical registration number is required"),
    ),
    ValidationRule(
        2, "issuing_council", required_text("issuing_council", "Issuing council is required")
    ),
    ValidationRule(
        2, "year_of_registration", year_in_range("year_of_registration", "Year of registration")
    ),
    ValidationRule(
        2,
        "medical_registration_certificate",
        required_document(
            "medical_registration_certificate",
            "Medical registration certificate is required",
        ),
    ),
    ValidationRule(2, "aadhaar_number", formatted("aadhaar_number", validate_aadhaar_number)),
    ValidationRule(
        2,
        "aadhaar_front",
        required_document("aadhaar_front", "Aadhaar card front image is required"),
    ),
    ValidationRule(
        2,
        "aadhaar_back",
        required_document("aadhaar_back", "Aadhaar card back image is required"),
    ),
    ValidationRule(2, "pan_number", formatted("pan_number", validate_pan_number)),
    ValidationRule(2, "pan_card", required_document("pan_card", "PAN card image is required")),
    # Step 3: Clinical & Public Profile
    ValidationRule(
        3, "profile_picture", required_document("profile_picture", "Profile picture is required")
    ),
    ValidationRule(
        3,
        "specialization",
        non_empty("specialization", "At least one specialization must be selected"),
    ),
    ValidationRule(3, "qualifications", qualifications_present),
    ValidationRule(3, "qualifications", qualification_years, when=qualifications_complete),
    ValidationRule(3, "total_years_of_experience", experience_in_range),
    ValidationRule(
        3, "professional_bio", required_text("professional_bio", "Professional bio is required")
    ),
    ValidationRule(
        3,
        "languages_spoken",
        non_empty("languages_spoken", "At least one language must be selected"),
    ),
    # Step 4: Practice & Consultation Settings
    ValidationRule(4, "practice_locations", practice_locations_present),
    ValidationRule(4, "practice_locations", practice_pincodes, when=practice_locations_complete),
    ValidationRule(
        4,
        "consultation_types",
        non_empty("consultation_types", "At least one consultation type must be selected"),
    ),
    ValidationRule(4, "consultation_fees", _in_clinic_fee[0], when=_in_clinic_fee[1]),
    ValidationRule(4, "consultation_fees", _video_fee[0], when=_video_fee[1]),
    ValidationRule(4, "consultation_fees", _audio_fee[0], when=_audio_fee[1]),
    # Step 5: Financial Information (optional block) & Legal Consents
    ValidationRule(
        5,
        "bank_account_holder_name",
        required_text("bank_account_holder_name", "Account holder name is required"),
        when=financial_details_supplied,
    ),
    ValidationRule(
        5,
        "bank_account_number",
        formatted("bank_account_number", validate_bank_account_number),
        when=financial_details_supplied,
    ),
    ValidationRule(5, "confirm_bank_account_number", bank_accounts_match),
    ValidationRule(
        5, "ifsc_code", formatted("ifsc_code", validate_ifsc_code), when=financial_details_supplied
    ),
    ValidationRule(
        5,
        "cancelled_cheque",
        required_document("cancelled_cheque", "Cancelled cheque image is required"),
        when=financial_details_supplied,
    ),
    ValidationRule(
        5,
        "terms_accepted",
        must_accept("terms_accepted", "You must accept the terms and conditions"),
    ),
    ValidationRule(
        5,
        "privacy_policy_accepted",
        must_accept("privacy_policy_accepted", "You must accept the privacy policy"),
    ),
    ValidationRule(
        5,
        "telemedicine_consent",
        must_accept(
            "telemedicine_consent",
            "You must accept the telemedicine consent for video/audio consultations",
        ),
        when=has_remote_consultation,
    ),
)


def rules_for_step(step: int) -> Tuple[ValidationRule, ...]:
    return tuple(rule for rule in RULES if rule.step == step)


def validate(step: int, state: FormState) -> List[str]:
    """
    Collect every violation for `step`, in rule order.

    An empty list means the step is complete.

    Raises:
        ValueError: If step is outside 1..TOTAL_STEPS
    """
    if not 1 <= step <= TOTAL_STEPS:
        raise ValueError(f"Unknown step: {step}. Steps run from 1 to {TOTAL_STEPS}")

    violations: List[str] = []
    for rule in rules_for_step(step):
        message = rule.evaluate(state)
        if message:
            violations.append(message)
    return violations

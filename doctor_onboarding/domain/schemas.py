from datetime import date
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from doctor_onboarding.core.exceptions import UnknownFormFieldError


def to_camel(string: str) -> str:
    """Convert snake_case to camelCase"""
    components = string.split("_")
    return components[0] + "".join(x.title() for x in components[1:])


def current_year() -> int:
    return date.today().year


class CamelCaseModel(BaseModel):
    """Base model with camelCase alias configuration"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,  # Allow both snake_case and camelCase
        use_enum_values=True,
    )


class FrozenCamelCaseModel(CamelCaseModel):
    """Immutable value object; updates go through model_copy/merged."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        frozen=True,
    )


class ConsultationType(str, Enum):
    IN_CLINIC = "In-Clinic"
    VIDEO = "Video"
    AUDIO = "Audio"


REMOTE_CONSULTATION_TYPES = (ConsultationType.VIDEO, ConsultationType.AUDIO)


class DocumentType(str, Enum):
    MEDICAL_CERTIFICATE = "medical_certificate"
    AADHAAR_FRONT = "aadhaar_front"
    AADHAAR_BACK = "aadhaar_back"
    PAN_CARD = "pan_card"
    PROFILE_IMAGE = "profile_image"
    DEGREE_CERTIFICATE = "degree_certificate"
    CANCELLED_CHEQUE = "cancelled_cheque"


class UploadState(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REAPED = "reaped"


class SubmissionStatus(str, Enum):
    COMPLETED = "completed"
    INVALID = "invalid"
    FAILED = "failed"


# Form value objects
class DocumentFile(FrozenCamelCaseModel):
    filename: str
    content_type: str
    content: bytes = Field(repr=False)

    @property
    def size(self) -> int:
        return len(self.content)

    def describe(self) -> Dict[str, Any]:
        return {"filename": self.filename, "contentType": self.content_type, "size": self.size}


class Qualification(FrozenCamelCaseModel):
    degree: str = ""
    medical_college: str = ""
    year_of_completion: int = Field(default_factory=current_year)

    def is_complete(self) -> bool:
        return bool(
            self.degree.strip() and self.medical_college.strip() and self.year_of_completion
        )


class PracticeLocation(FrozenCamelCaseModel):
    clinic_name: str = ""
    full_address: str = ""
    city: str = ""
    pincode: str = ""

    def is_complete(self) -> bool:
        return all(
            value.strip()
            for value in (self.clinic_name, self.full_address, self.city, self.pincode)
        )


class ConsultationFees(FrozenCamelCaseModel):
    in_clinic: float = 0
    video: float = 0
    audio: float = 0


# Single-file document fields and the classification each one is uploaded under.
# The uploaded address lives in "<field>_url".
DOCUMENT_FIELDS: Dict[str, DocumentType] = {
    "medical_registration_certificate": DocumentType.MEDICAL_CERTIFICATE,
    "aadhaar_front": DocumentType.AADHAAR_FRONT,
    "aadhaar_back": DocumentType.AADHAAR_BACK,
    "pan_card": DocumentType.PAN_CARD,
    "profile_picture": DocumentType.PROFILE_IMAGE,
    "cancelled_cheque": DocumentType.CANCELLED_CHEQUE,
}

DEGREE_CERTIFICATES_FIELD = "degree_certificates"

# Never echoed back by the API or written to logs
SECRET_FIELDS = frozenset(
    {
        "password",
        "confirm_password",
        "bank_account_number",
        "confirm_bank_account_number",
    }
)


def url_field(field: str) -> str:
    return f"{field}_url"


class PrefillData(CamelCaseModel):
    full_name: Optional[str] = None
    email: Optional[str] = None
    mobile_number: Optional[str] = None


class FormState(FrozenCamelCaseModel):
    """
    Everything the wizard collects, across all five sections.

    Snapshots are immutable: the wizard swaps in the result of merged()
    on every partial update.
    """

    # Section 1: Basic Account
    full_name: str = ""
    email: str = ""
    mobile_number: str = ""
    password: str = ""
    confirm_password: str = ""

    # Section 2: Professional & Identity Verification
    medical_registration_number: str = ""
    issuing_council: str = ""
    year_of_registration: int = Field(default_factory=current_year)
    medical_registration_certificate: Optional[DocumentFile] = None
    medical_registration_certificate_url: Optional[str] = None
    aadhaar_number: str = ""
    aadhaar_front: Optional[DocumentFile] = None
    aadhaar_front_url: Optional[str] = None
    aadhaar_back: Optional[DocumentFile] = None
    aadhaar_back_url: Optional[str] = None
    pan_number: str = ""
    pan_card: Optional[DocumentFile] = None
    pan_card_url: Optional[str] = None

    # Section 3: Clinical & Public Profile
    profile_picture: Optional[DocumentFile] = None
    profile_picture_url: Optional[str] = None
    specialization: Tuple[str, ...] = ()
    super_specialization: str = ""
    qualifications: Tuple[Qualification, ...] = Field(
        default_factory=lambda: (Qualification(),)
    )
    degree_certificates: Tuple[DocumentFile, ...] = ()
    degree_certificate_urls: Tuple[Optional[str], ...] = ()
    total_years_of_experience: int = 0
    professional_bio: str = ""
    languages_spoken: Tuple[str, ...] = ()

    # Section 4: Practice & Consultation Settings
    practice_locations: Tuple[PracticeLocation, ...] = Field(
        default_factory=lambda: (PracticeLocation(),)
    )
    consultation_types: Tuple[ConsultationType, ...] = ()
    consultation_fees: ConsultationFees = Field(default_factory=ConsultationFees)
    services_offered: Tuple[str, ...] = ()

    # Section 5: Financial Information & Legal Consents
    bank_account_holder_name: str = ""
    bank_account_number: str = ""
    confirm_bank_account_number: str = ""
    ifsc_code: str = ""
    bank_name: str = ""
    bank_branch: str = ""
    cancelled_cheque: Optional[DocumentFile] = None
    cancelled_cheque_url: Optional[str] = None
    terms_accepted: bool = False
    privacy_policy_accepted: bool = False
    telemedicine_consent: bool = False

    @classmethod
    def from_prefill(cls, prefill: Optional[PrefillData] = None) -> "FormState":
        """Seed a fresh snapshot; blank prefill values keep the defaults."""
        if prefill is None:
            return cls()
        seeded = {
            name: value
            for name, value in prefill.model_dump().items()
            if value
        }
        return cls(**seeded)

    @classmethod
    def resolve_field_name(cls, key: str) -> Optional[str]:
        if key in cls.model_fields:
            return key
        for name, field in cls.model_fields.items():
            if field.alias == key:
                return name
        return None

    def merged(self, updates: Mapping[str, Any]) -> "FormState":
        """
        Return a new snapshot with `updates` applied.

        Keys may be snake_case field names or their camelCase aliases.

        Raises:
            UnknownFormFieldError: If any key is not a form field
        """
        normalized: Dict[str, Any] = {}
        unknown: List[str] = []
        for key, value in updates.items():
            name = self.resolve_field_name(key)
            if name is None:
                unknown.append(key)
            else:
                normalized[name] = value
        if unknown:
            raise UnknownFormFieldError(unknown)

        data = {name: getattr(self, name) for name in type(self).model_fields}
        data.update(normalized)
        return type(self).model_validate(data)

    def has_document(self, field: str) -> bool:
        """File attached or already uploaded."""
        return getattr(self, field) is not None or bool(getattr(self, url_field(field)))

    def public_view(self) -> Dict[str, Any]:
        """camelCase dump without secrets or raw file bytes."""
        view: Dict[str, Any] = {}
        for name, field in type(self).model_fields.items():
            if name in SECRET_FIELDS:
                continue
            value = getattr(self, name)
            if isinstance(value, DocumentFile):
                value = value.describe()
            elif name == DEGREE_CERTIFICATES_FIELD:
                value = [document.describe() for document in value]
            elif isinstance(value, BaseModel):
                value = value.model_dump(by_alias=True)
            elif isinstance(value, tuple):
                value = [
                    item.model_dump(by_alias=True) if isinstance(item, BaseModel) else item
                    for item in value
                ]
            view[field.alias or name] = value
        return view


class Identity(BaseModel):
    id: str
    email: Optional[str] = None


class DocumentUploadResult(BaseModel):
    path: str
    public_url: Optional[str] = None
    signed_url: Optional[str] = None

    @property
    def url(self) -> str:
        return self.public_url or self.signed_url or ""


# Upload progress aggregate
class UploadTaskView(FrozenCamelCaseModel):
    file_id: str
    field: str
    document_type: DocumentType
    progress: int
    state: UploadState


class UploadProgress(FrozenCamelCaseModel):
    tasks: Tuple[UploadTaskView, ...] = ()

    @property
    def remaining(self) -> int:
        return sum(1 for task in self.tasks if task.state == UploadState.PENDING)

    def progress_for(self, file_id: str) -> Optional[int]:
        for task in self.tasks:
            if task.file_id == file_id:
                return task.progress
        return None


class SubmissionResult(CamelCaseModel):
    status: SubmissionStatus
    record: Optional[Dict[str, Any]] = None
    message: Optional[str] = None
    violations: List[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == SubmissionStatus.COMPLETED


# API Schemas
class RegistrationCreate(CamelCaseModel):
    prefill: Optional[PrefillData] = None


class StepTransitionResponse(CamelCaseModel):
    advanced: bool
    current_step: int
    errors: List[str] = Field(default_factory=list)


class UploadProgressResponse(CamelCaseModel):
    remaining: int
    tasks: List[UploadTaskView] = Field(default_factory=list)


class WizardView(CamelCaseModel):
    session_id: str
    current_step: int
    total_steps: int
    floor: int
    prefill_mode: bool
    step_errors: Dict[int, List[str]] = Field(default_factory=dict)
    submitting: bool = False
    submit_error: Optional[str] = None
    complete: bool = False
    allowed_events: List[str] = Field(default_factory=list)
    form: Dict[str, Any] = Field(default_factory=dict)
    uploads: UploadProgressResponse

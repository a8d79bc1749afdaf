"""Shared pytest fixtures for the registration wizard tests.

Provides in-memory fakes for the three ports (document store, identity
service, record store), document and form-state factories that satisfy each
step's rules, and a wizard factory wired to a fast upload coordinator.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Set

import pytest

from doctor_onboarding.core.exceptions import SupabaseError
from doctor_onboarding.domain.schemas import (
    ConsultationFees,
    DocumentFile,
    DocumentType,
    DocumentUploadResult,
    FormState,
    Identity,
    PracticeLocation,
    PrefillData,
    Qualification,
)
from doctor_onboarding.services.registration.submission import SubmissionOrchestrator
from doctor_onboarding.services.registration.upload_coordinator import UploadCoordinator
from doctor_onboarding.state_machines.registration_flow import RegistrationFlowMachine

JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x00" * 64
PDF_BYTES = b"%PDF-1.4\n%test document\n" + b"0" * 64


# ======================================================================
# Fakes
# ======================================================================


class FakeDocumentStore:
    """Records uploads; can fail per document type or hold uploads behind a gate.

    `gate` holds every upload; `gates` holds only the document types it names.
    """

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self.fail_on: Set[DocumentType] = set()
        self.gate: Optional[asyncio.Event] = None
        self.gates: Dict[DocumentType, asyncio.Event] = {}

    async def upload_document(
        self, file: DocumentFile, owner_id: str, document_type: DocumentType
    ) -> DocumentUploadResult:
        document_type = DocumentType(document_type)
        self.calls.append(
            {"filename": file.filename, "owner_id": owner_id, "document_type": document_type}
        )
        gate = self.gates.get(document_type) or self.gate
        if gate is not None:
            await gate.wait()
        if document_type in self.fail_on:
            raise SupabaseError("storage unavailable")

        path = f"{owner_id}/{document_type.value}/{file.filename}"
        if document_type == DocumentType.PROFILE_IMAGE:
            return DocumentUploadResult(path=path, public_url=f"https://storage.test/public/{path}")
        return DocumentUploadResult(path=path, signed_url=f"https://storage.test/signed/{path}")

    def uploaded_types(self) -> List[DocumentType]:
        return [call["document_type"] for call in self.calls]


class FakeIdentityService:
    def __init__(
        self,
        current: Optional[Identity] = None,
        created_id: str = "new-user-id",
        create_error: Optional[Exception] = None,
    ):
        self.current = current
        self.created_id = created_id
        self.create_error = create_error
        self.get_calls = 0
        self.create_calls: List[Dict[str, str]] = []

    async def get_current_identity(self) -> Optional[Identity]:
        self.get_calls += 1
        return self.current

    async def create_identity(self, email: str, password: str) -> Identity:
        self.create_calls.append({"email": email, "password": password})
        if self.create_error is not None:
            raise self.create_error
        return Identity(id=self.created_id, email=email)


class FakeRecordStore:
    def __init__(self, insert_error: Optional[Exception] = None, upsert_error: Optional[Exception] = None):
        self.insert_error = insert_error
        self.upsert_error = upsert_error
        self.inserts: List[Dict[str, Any]] = []
        self.upserts: List[Dict[str, Any]] = []

    async def insert_doctor_profile(self, record: Dict[str, Any]) -> Dict[str, Any]:
        if self.insert_error is not None:
            raise self.insert_error
        self.inserts.append(record)
        return {**record, "id": f"doctor-{len(self.inserts)}"}

    async def upsert_user_profile(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        if self.upsert_error is not None:
            raise self.upsert_error
        row = {"id": user_id, **data}
        self.upserts.append(row)
        return row


# ======================================================================
# Form factories
# ======================================================================


def jpeg(name: str = "image.jpg") -> DocumentFile:
    return DocumentFile(filename=name, content_type="image/jpeg", content=JPEG_BYTES)


def pdf(name: str = "document.pdf") -> DocumentFile:
    return DocumentFile(filename=name, content_type="application/pdf", content=PDF_BYTES)


def account_data() -> Dict[str, Any]:
    return {
        "full_name": "Dr. Asha Rao",
        "email": "asha.rao@example.com",
        "mobile_number": "9876543210",
        "password": "Secure123",
        "confirm_password": "Secure123",
    }


def verification_data() -> Dict[str, Any]:
    return {
        "medical_registration_number": "KMC-123456",
        "issuing_council": "Karnataka Medical Council",
        "year_of_registration": 2015,
        "medical_registration_certificate": pdf("registration.pdf"),
        "aadhaar_number": "1234 5678 9012",
        "aadhaar_front": jpeg("aadhaar_front.jpg"),
        "aadhaar_back": jpeg("aadhaar_back.jpg"),
        "pan_number": "ABCDE1234F",
        "pan_card": jpeg("pan.jpg"),
    }


def clinical_data() -> Dict[str, Any]:
    return {
        "profile_picture": jpeg("portrait.jpg"),
        "specialization": ("Cardiology", "Internal Medicine"),
        "qualifications": (
            Qualification(degree="MBBS", medical_college="AIIMS Delhi", year_of_completion=2010),
            Qualification(degree="MD", medical_college="CMC Vellore", year_of_completion=2014),
        ),
        "degree_certificates": (pdf("mbbs.pdf"), pdf("md.pdf")),
        "total_years_of_experience": 10,
        "professional_bio": "Interventional cardiologist with a decade of practice.",
        "languages_spoken": ("English", "Hindi", "Kannada"),
    }


def practice_data() -> Dict[str, Any]:
    return {
        "practice_locations": (
            PracticeLocation(
                clinic_name="Heart Care Clinic",
                full_address="12 MG Road",
                city="Bengaluru",
                pincode="560001",
            ),
            PracticeLocation(
                clinic_name="City Hospital",
                full_address="4 Residency Road",
                city="Bengaluru",
                pincode="560025",
            ),
        ),
        "consultation_types": ("In-Clinic",),
        "consultation_fees": ConsultationFees(in_clinic=800),
        "services_offered": ("ECG", "Echocardiography"),
    }


def financial_legal_data() -> Dict[str, Any]:
    return {
        "terms_accepted": True,
        "privacy_policy_accepted": True,
    }


def complete_form_state(**overrides: Any) -> FormState:
    data: Dict[str, Any] = {}
    for section in (account_data, verification_data, clinical_data, practice_data, financial_legal_data):
        data.update(section())
    data.update(overrides)
    return FormState().merged(data)


# ======================================================================
# Fixtures
# ======================================================================


@pytest.fixture
def document_store() -> FakeDocumentStore:
    return FakeDocumentStore()


@pytest.fixture
def identity_service() -> FakeIdentityService:
    return FakeIdentityService()


@pytest.fixture
def record_store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def coordinator(document_store: FakeDocumentStore) -> UploadCoordinator:
    return UploadCoordinator(document_store, tick_interval=0.01, reap_delay=None)


@pytest.fixture
def orchestrator(identity_service, record_store) -> SubmissionOrchestrator:
    return SubmissionOrchestrator(identity_service, record_store, default_consultation_fee=500)


@pytest.fixture
def final_step_wizard(coordinator, orchestrator):
    """Factory: a wizard holding a complete form, walked forward to step 5."""

    def build(
        form_state: Optional[FormState] = None,
        user_id: Optional[str] = None,
        prefill: Optional[PrefillData] = None,
    ) -> RegistrationFlowMachine:
        wizard = RegistrationFlowMachine(
            prefill=prefill,
            user_id=user_id,
            form_state=form_state or complete_form_state(),
            uploads=coordinator,
            orchestrator=orchestrator,
            context={"id": "test-session"},
        )
        while wizard.current_step < wizard.total_steps:
            assert wizard.next(), wizard.step_errors
        return wizard

    return build
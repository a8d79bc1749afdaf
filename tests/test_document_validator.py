"""Tests for document validation before storage.

Covers:
  - Declared type and size checks per document type
  - Magic-byte sniffing (libmagic) catching renamed files
"""

from __future__ import annotations

import pytest

from conftest import JPEG_BYTES, PDF_BYTES, jpeg, pdf
from doctor_onboarding.core.exceptions import InvalidDocumentError
from doctor_onboarding.domain.schemas import DocumentFile, DocumentType
from doctor_onboarding.services.registration.document_validator import DocumentValidator


@pytest.fixture(scope="module")
def validator() -> DocumentValidator:
    return DocumentValidator()


# ======================================================================
# Accepted documents
# ======================================================================


def test_jpeg_accepted_for_pan_card(validator):
    result = validator.validate(jpeg("pan.jpg"), DocumentType.PAN_CARD)

    assert result == {"valid": True, "mime_type": "image/jpeg"}


def test_pdf_accepted_for_degree_certificate(validator):
    result = validator.validate(pdf("mbbs.pdf"), DocumentType.DEGREE_CERTIFICATE)

    assert result["mime_type"] == "application/pdf"


def test_jpeg_accepted_where_pdf_also_allowed(validator):
    result = validator.validate(jpeg("registration.jpg"), DocumentType.MEDICAL_CERTIFICATE)

    assert result["mime_type"] == "image/jpeg"


# ======================================================================
# Rejections
# ======================================================================


def test_pdf_renamed_to_jpeg_rejected(validator):
    disguised = DocumentFile(filename="pan.jpg", content_type="image/jpeg", content=PDF_BYTES)

    with pytest.raises(InvalidDocumentError) as exc_info:
        validator.validate(disguised, DocumentType.PAN_CARD)

    assert exc_info.value.document_type == "pan_card"
    assert exc_info.value.details == {"detected_mime": "application/pdf"}


def test_declared_type_checked_before_content(validator, monkeypatch):
    sniffed = []
    monkeypatch.setattr(validator.magic, "from_buffer", lambda content: sniffed.append(content))
    declared_pdf = DocumentFile(filename="pan.pdf", content_type="application/pdf", content=PDF_BYTES)

    with pytest.raises(InvalidDocumentError, match="pan_card"):
        validator.validate(declared_pdf, DocumentType.PAN_CARD)
    assert sniffed == []


def test_empty_file_rejected(validator):
    empty = DocumentFile(filename="cheque.jpg", content_type="image/jpeg", content=b"")

    with pytest.raises(InvalidDocumentError, match="empty"):
        validator.validate(empty, DocumentType.CANCELLED_CHEQUE)


def test_oversized_profile_image_rejected(validator):
    oversized = DocumentFile(
        filename="portrait.jpg",
        content_type="image/jpeg",
        content=JPEG_BYTES + b"\x00" * (5 * 1024 * 1024),
    )

    with pytest.raises(InvalidDocumentError, match="5MB"):
        validator.validate(oversized, DocumentType.PROFILE_IMAGE)

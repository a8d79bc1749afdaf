"""
Document validation for registration uploads.
Checks declared content type and size per document type, then sniffs the
magic bytes so a renamed file cannot pass as a JPEG or PDF.
"""

from typing import Any, Dict

import magic
import structlog

from doctor_onboarding.core.exceptions import InvalidDocumentError
from doctor_onboarding.domain.schemas import DocumentFile, DocumentType
from doctor_onboarding.utils.field_validation import DOCUMENT_RULES, validate_document

logger = structlog.get_logger(__name__)

# libmagic reports both spellings as image/jpeg
DETECTED_ALIASES = {"image/jpg": "image/jpeg"}


class DocumentValidator:
    """
    Validates registration documents before they reach storage.
    """

    def __init__(self):
        self.magic = magic.Magic(mime=True)

    def validate_declared(self, file: DocumentFile, document_type: DocumentType) -> None:
        """Declared content type and size"""
        valid, error = validate_document(file.content_type, file.size, document_type.value)
        if not valid:
            logger.warning(
                "document_rejected",
                document_type=document_type.value,
                content_type=file.content_type,
                size=file.size,
            )
            raise InvalidDocumentError(error, document_type=document_type.value)

    def validate_magic_bytes(self, file: DocumentFile, document_type: DocumentType) -> Dict[str, Any]:
        """Detected MIME type must be one the document type accepts"""
        allowed_types, _ = DOCUMENT_RULES[document_type.value]
        allowed = {DETECTED_ALIASES.get(t, t) for t in allowed_types}

        mime_type = self.magic.from_buffer(file.content)
        if DETECTED_ALIASES.get(mime_type, mime_type) not in allowed:
            logger.warning(
                "invalid_mime_type",
                detected_mime=mime_type,
                filename=file.filename,
                document_type=document_type.value,
            )
            raise InvalidDocumentError(
                f"File content does not match an allowed type for {document_type.value}",
                document_type=document_type.value,
                details={"detected_mime": mime_type},
            )

        return {"valid": True, "mime_type": mime_type}

    def validate(self, file: DocumentFile, document_type: DocumentType) -> Dict[str, Any]:
        """
        Run all checks.

        Raises:
            InvalidDocumentError: If any check fails
        """
        self.validate_declared(file, document_type)
        result = self.validate_magic_bytes(file, document_type)
        logger.debug(
            "document_valid",
            filename=file.filename,
            document_type=document_type.value,
            mime_type=result["mime_type"],
        )
        return result

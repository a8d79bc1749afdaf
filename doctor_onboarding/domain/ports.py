"""
Narrow interfaces the registration core talks to.

The supabase adapters in doctor_onboarding.infrastructure implement these;
tests swap in in-memory fakes.
"""

from typing import Any, Dict, Optional, Protocol

from doctor_onboarding.domain.schemas import (
    DocumentFile,
    DocumentType,
    DocumentUploadResult,
    Identity,
)


class DocumentStore(Protocol):
    async def upload_document(
        self, file: DocumentFile, owner_id: str, document_type: DocumentType
    ) -> DocumentUploadResult:
        ...


class IdentityService(Protocol):
    async def get_current_identity(self) -> Optional[Identity]:
        ...

    async def create_identity(self, email: str, password: str) -> Identity:
        """Raises AuthenticationError for bad credentials or an existing identity."""
        ...


class RecordStore(Protocol):
    async def insert_doctor_profile(self, record: Dict[str, Any]) -> Dict[str, Any]:
        ...

    async def upsert_user_profile(
        self, user_id: str, data: Dict[str, Any]
    ) -> Dict[str, Any]:
        ...

import asyncio
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, Optional

import structlog  # type: ignore[import-not-found]
from pybreaker import CircuitBreaker  # type: ignore[import-not-found]
from tenacity import retry  # type: ignore[import-not-found]
from tenacity import stop_after_attempt, wait_exponential

import supabase  # type: ignore[import-not-found]

from doctor_onboarding.core.config import settings
from doctor_onboarding.core.exceptions import (
    AuthenticationError,
    DomainException,
    SupabaseError,
)
from doctor_onboarding.domain.schemas import (
    DocumentFile,
    DocumentType,
    DocumentUploadResult,
    Identity,
)
from doctor_onboarding.services.registration.document_validator import DocumentValidator

logger = structlog.get_logger(__name__)

# Circuit breaker for Supabase calls
supabase_breaker = CircuitBreaker(fail_max=5, reset_timeout=60)

supabase_retry = retry(
    wait=wait_exponential(multiplier=1, min=2, max=10),
    stop=stop_after_attempt(3),
    reraise=True,
)


class SupabaseClient:
    """
    Thin wrapper over the supabase SDK.

    The SDK is synchronous; the adapters below run these methods through
    asyncio.to_thread so concurrent uploads overlap.
    """

    def __init__(self, url: Optional[str] = None, service_key: Optional[str] = None, anon_key: Optional[str] = None):
        url = url or settings.supabase_url
        service_key = service_key or settings.supabase_service_key
        anon_key = anon_key or settings.supabase_anon_key
        if not url or not service_key:
            raise SupabaseError("Supabase is not configured (SUPABASE_URL / SUPABASE_SERVICE_KEY)")

        client_options: Any = supabase.ClientOptions(  # type: ignore[attr-defined]
            auto_refresh_token=False,
            persist_session=False,
        )
        # Service client bypasses RLS for storage and table writes;
        # the anon client is used for sign-up like a browser would.
        self.client: Any = supabase.create_client(url, service_key, options=client_options)  # type: ignore[attr-defined]
        self.anon_client: Any = supabase.create_client(  # type: ignore[attr-defined]
            url, anon_key or service_key, options=client_options
        )
        self._client_created_at = datetime.now(timezone.utc)

    def get_client_health(self) -> Dict[str, Any]:
        hours_since_creation = (datetime.now(timezone.utc) - self._client_created_at).total_seconds() / 3600
        return {
            "client_age_hours": round(hours_since_creation, 2),
            "circuit_state": supabase_breaker.current_state,
        }

    @supabase_breaker
    def upload_to_storage(
        self, bucket: str, path: str, file_data: bytes, content_type: str
    ) -> str:
        # Not retried: upsert is off, a replayed upload would hit "already exists"
        response = self.client.storage.from_(bucket).upload(
            path=path,
            file=file_data,
            file_options={"content-type": content_type, "cache-control": "3600", "upsert": "false"},
        )
        logger.info("file_upload_success", bucket=bucket, path=path)
        return getattr(response, "path", None) or path

    def get_public_url(self, bucket: str, path: str) -> str:
        return self.client.storage.from_(bucket).get_public_url(path)

    @supabase_breaker
    @supabase_retry
    def create_signed_url(self, bucket: str, path: str, expires_in: int) -> Optional[str]:
        response = self.client.storage.from_(bucket).create_signed_url(path, expires_in)
        return response.get("signedURL") or response.get("signedUrl")

    @supabase_breaker
    @supabase_retry
    def get_user(self, token: str) -> Optional[Identity]:
        response = self.client.auth.get_user(token)
        if not response or not response.user:
            return None
        return Identity(id=str(response.user.id), email=response.user.email)

    @supabase_breaker
    def sign_up(self, email: str, password: str) -> Identity:
        # Not retried: a repeated sign-up would report an existing account
        auth_response = self.anon_client.auth.sign_up({"email": email, "password": password})
        if not auth_response or not auth_response.user:
            raise AuthenticationError("Signup failed - no user returned")
        return Identity(id=str(auth_response.user.id), email=email)

    @supabase_breaker
    def insert_row(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        # Not retried: a replay after a lost response would insert a second row
        response = self.client.table(table).insert(record).execute()
        return response.data[0] if response.data else {}

    @supabase_breaker
    @supabase_retry
    def upsert_row(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        response = self.client.table(table).upsert(record).execute()
        return response.data[0] if response.data else {}


@lru_cache(maxsize=1)
def get_supabase_client() -> SupabaseClient:
    """Process-wide client, created on first use."""
    return SupabaseClient()


def bucket_for(document_type: DocumentType) -> str:
    if document_type == DocumentType.PROFILE_IMAGE:
        return settings.profile_images_bucket
    if document_type == DocumentType.DEGREE_CERTIFICATE:
        return settings.certificates_bucket
    return settings.documents_bucket


def storage_path(owner_id: str, document_type: DocumentType, filename: str) -> str:
    """<owner>/<type>/<timestamp>_<filename>"""
    timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
    return f"{owner_id}/{document_type.value}/{timestamp}_{filename}"


class SupabaseDocumentStore:
    """DocumentStore backed by supabase storage buckets."""

    def __init__(self, client: SupabaseClient, validator: Optional[DocumentValidator] = None):
        self.client = client
        self.validator = validator or DocumentValidator()

    async def upload_document(
        self, file: DocumentFile, owner_id: str, document_type: DocumentType
    ) -> DocumentUploadResult:
        """
        Validate and store one document.

        Profile images get a public URL; everything else a signed URL.

        Raises:
            InvalidDocumentError: If the document fails its type or size checks
            SupabaseError: If storage rejects the upload
        """
        document_type = DocumentType(document_type)
        self.validator.validate(file, document_type)

        bucket = bucket_for(document_type)
        path = storage_path(owner_id, document_type, file.filename)
        try:
            stored_path = await asyncio.to_thread(
                self.client.upload_to_storage, bucket, path, file.content, file.content_type
            )
        except DomainException:
            raise
        except Exception as e:
            logger.error("file_upload_error", bucket=bucket, path=path, error=str(e))
            raise SupabaseError(str(e)) from e

        if document_type == DocumentType.PROFILE_IMAGE:
            public_url = await asyncio.to_thread(self.client.get_public_url, bucket, stored_path)
            return DocumentUploadResult(path=stored_path, public_url=public_url)

        signed_url = None
        try:
            signed_url = await asyncio.to_thread(
                self.client.create_signed_url,
                bucket,
                stored_path,
                settings.signed_url_expiry_seconds,
            )
        except Exception as e:
            logger.warning("signed_url_creation_failed", bucket=bucket, path=stored_path, error=str(e))
        return DocumentUploadResult(path=stored_path, signed_url=signed_url)


class SupabaseIdentityService:
    """IdentityService backed by supabase auth. access_token is the caller's bearer token, if any."""

    def __init__(self, client: SupabaseClient, access_token: Optional[str] = None):
        self.client = client
        self.access_token = access_token

    async def get_current_identity(self) -> Optional[Identity]:
        if not self.access_token:
            return None
        try:
            return await asyncio.to_thread(self.client.get_user, self.access_token)
        except Exception as e:
            logger.warning("verify_token_error", error=str(e))
            raise AuthenticationError(f"Token verification failed: {str(e)}")

    async def create_identity(self, email: str, password: str) -> Identity:
        try:
            identity = await asyncio.to_thread(self.client.sign_up, email, password)
        except AuthenticationError:
            raise
        except Exception as e:
            logger.error("signup_error", error=str(e), error_type=type(e).__name__)
            raise AuthenticationError(str(e))
        logger.info("user_signup_success", user_id=identity.id)
        return identity


class SupabaseRecordStore:
    """RecordStore writing to the doctors and profiles tables."""

    def __init__(self, client: SupabaseClient):
        self.client = client

    async def insert_doctor_profile(self, record: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(self.client.insert_row, settings.doctors_table, record)
        except Exception as e:
            logger.error("doctor_insert_error", user_id=record.get("user_id"), error=str(e))
            raise SupabaseError(str(e)) from e

    async def upsert_user_profile(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(
                self.client.upsert_row, settings.profiles_table, {"id": user_id, **data}
            )
        except Exception as e:
            raise SupabaseError(f"Failed to upsert profile: {str(e)}") from e

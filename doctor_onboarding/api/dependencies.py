from typing import Optional

import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from doctor_onboarding.domain.ports import DocumentStore, IdentityService, RecordStore
from doctor_onboarding.services.registration.session_store import RegistrationSessionStore
from doctor_onboarding.state_machines.registration_flow import RegistrationFlowMachine

logger = structlog.get_logger(__name__)

# Registration is open to anonymous visitors; a bearer token only prefills identity
optional_bearer_scheme = HTTPBearer(auto_error=False)

registration_sessions = RegistrationSessionStore()


async def get_access_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_bearer_scheme),
) -> Optional[str]:
    return credentials.credentials if credentials else None


def get_session_store() -> RegistrationSessionStore:
    return registration_sessions


def get_registration(
    session_id: str,
    store: RegistrationSessionStore = Depends(get_session_store),
) -> RegistrationFlowMachine:
    """
    Dependency resolving the wizard behind a session id.
    Raises RegistrationSessionNotFoundError, handled in main as 404.
    """
    return store.get(session_id)


def get_document_store() -> DocumentStore:
    from doctor_onboarding.infrastructure.supabase_client import (
        SupabaseDocumentStore,
        get_supabase_client,
    )

    return SupabaseDocumentStore(get_supabase_client())


def get_identity_service(
    access_token: Optional[str] = Depends(get_access_token),
) -> IdentityService:
    from doctor_onboarding.infrastructure.supabase_client import (
        SupabaseIdentityService,
        get_supabase_client,
    )

    return SupabaseIdentityService(get_supabase_client(), access_token=access_token)


def get_record_store() -> RecordStore:
    from doctor_onboarding.infrastructure.supabase_client import (
        SupabaseRecordStore,
        get_supabase_client,
    )

    return SupabaseRecordStore(get_supabase_client())

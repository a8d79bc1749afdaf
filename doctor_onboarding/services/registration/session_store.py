"""
In-process store for open registration wizards.

Each wizard lives behind an opaque session id for the API. Sessions expire
after `ttl_seconds` without access; expired sessions are closed (tracking
abandoned, collected data discarded) when the store next touches them.
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, Optional

import structlog

from doctor_onboarding.core.config import settings
from doctor_onboarding.core.exceptions import RegistrationSessionNotFoundError

if TYPE_CHECKING:
    from doctor_onboarding.state_machines.registration_flow import RegistrationFlowMachine

logger = structlog.get_logger(__name__)


@dataclass
class RegistrationSession:
    session_id: str
    wizard: "RegistrationFlowMachine"
    created_at: float
    last_accessed: float = field(default=0.0)


class RegistrationSessionStore:
    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = (
            settings.registration_session_ttl_seconds if ttl_seconds is None else ttl_seconds
        )
        self._clock = clock
        self._sessions: Dict[str, RegistrationSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self, wizard: "RegistrationFlowMachine") -> str:
        """Store a wizard under a fresh session id and return the id."""
        self.purge_expired()
        now = self._clock()
        session_id = str(uuid.uuid4())
        wizard.context["id"] = session_id
        session = RegistrationSession(
            session_id=session_id, wizard=wizard, created_at=now, last_accessed=now
        )
        self._sessions[session_id] = session
        logger.info(
            "registration_session_created",
            session_id=session_id,
            prefill_mode=wizard.is_prefill_mode,
        )
        return session_id

    def get(self, session_id: str) -> "RegistrationFlowMachine":
        """
        Look up a live wizard and refresh its expiry.

        Raises:
            RegistrationSessionNotFoundError: If the id is unknown or expired
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise RegistrationSessionNotFoundError(session_id)

        now = self._clock()
        if self._is_expired(session, now):
            self._discard(session_id, reason="expired")
            raise RegistrationSessionNotFoundError(session_id)

        session.last_accessed = now
        return session.wizard

    def remove(self, session_id: str) -> bool:
        """Close and drop a wizard. Returns False if it was not present."""
        if session_id not in self._sessions:
            return False
        self._discard(session_id, reason="closed")
        return True

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [
            session_id
            for session_id, session in self._sessions.items()
            if self._is_expired(session, now)
        ]
        for session_id in expired:
            self._discard(session_id, reason="expired")
        return len(expired)

    def clear(self):
        for session_id in list(self._sessions):
            self._discard(session_id, reason="cleared")

    def _is_expired(self, session: RegistrationSession, now: float) -> bool:
        return now - session.last_accessed > self.ttl_seconds

    def _discard(self, session_id: str, reason: str):
        session = self._sessions.pop(session_id)
        session.wizard.close()
        logger.info("registration_session_discarded", session_id=session_id, reason=reason)

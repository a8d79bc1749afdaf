"""
Base state machine class for all flow state machines.

Provides common functionality for transition logging and flow info retrieval.
"""

from typing import Any, Dict, Optional

import structlog
from statemachine import StateMachine


class FlowMachine(StateMachine):
    """
    Base class for all flow state machines.

    Features:
    - Structured logging on every transition
    - get_flow_info() for API responses
    - Ownership guard shared by flows that belong to a user
    """

    def __init__(
        self,
        context: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        **kwargs,
    ):
        """
        Initialize flow machine.

        Args:
            context: Flow context (identifiers and metadata for logging)
            user_id: User ID for logging and ownership checks
            **kwargs: Passed through to StateMachine (e.g. start_value)
        """
        self.context: Dict[str, Any] = dict(context or {})
        self.user_id = user_id
        self.logger = structlog.get_logger(self.__class__.__module__)
        self.error_code: Optional[str] = None
        self.error_message: Optional[str] = None
        super().__init__(**kwargs)

    @property
    def state_id(self) -> str:
        return self.current_state.id

    def allowed_event_ids(self) -> list:
        """Events whose transitions from the current state pass their guards."""
        return [event.id for event in self.enabled_events()]

    def get_flow_info(self) -> Dict[str, Any]:
        """
        Returns current state + allowed events for API responses.
        """
        return {
            "state": self.current_state.id,
            "allowed_events": self.allowed_event_ids(),
            "metadata": self.context.get("metadata", {}),
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def after_transition(self, event: Any, source: Any, target: Any):
        """Generic hook: python-statemachine calls this after every transition."""
        self.log_transition(
            getattr(event, "id", event),
            getattr(source, "id", None),
            getattr(target, "id", None),
        )

    def log_transition(self, event: str, from_state: str, to_state: str):
        """
        Log state transition with structured logging.

        Args:
            event: Event name that triggered transition
            from_state: Previous state
            to_state: New state
        """
        self.logger.info(
            "state_transition",
            flow=self.__class__.__name__,
            transition_event=event,
            from_state=from_state,
            to_state=to_state,
            user_id=self.user_id,
            flow_id=self.context.get("id"),
        )

    def is_owner(self, user_id: str) -> bool:
        """
        Guard: Check if user owns this flow.
        """
        owner = self.context.get("user_id") or self.user_id
        return owner is not None and owner == user_id
